"""
Centralized settings and path configuration for the rate engine.
"""
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

PACKAGE_DIR = Path(__file__).resolve().parent.parent
SAMPLE_DATA_DIR = PACKAGE_DIR / 'data' / 'sample'

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Installed package: fall back to the working directory
    return Path.cwd()


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Rate configuration (carriers.csv, pricing_tables.csv, promotions.json, ...)
    data_dir: Path

    # Append-only customer pricing audit log (JSON lines)
    audit_log: Path

    default_volumetric_divisor: Decimal = Decimal('5000')
    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()

        data_dir = Path(os.environ.get('RATE_ENGINE_DATA_DIR') or SAMPLE_DATA_DIR)
        audit_log = Path(os.environ.get('RATE_ENGINE_AUDIT_LOG') or root / 'logs' / 'customer_pricing_audit.jsonl')

        return cls(
            project_root=root,
            data_dir=data_dir,
            audit_log=audit_log,
            log_level=os.environ.get('RATE_ENGINE_LOG_LEVEL', 'INFO').upper(),
        )


def configure_logging(settings: Optional['Settings'] = None):
    """Set root logging format and level for the API, UI and scripts."""
    settings = settings or get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Forget the cached instance so the next call re-reads the environment."""
    global _settings
    _settings = None
