#!/usr/bin/env python
"""
Validate a rate data directory before deploying it.

Usage:
    python scripts/validate_rates.py [DATA_DIR]

Defaults to RATE_ENGINE_DATA_DIR, else the bundled sample data.
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from rate_engine.config.settings import get_settings
from rate_engine.data.snapshot_loader import validate_data_dir


def main():
    data_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else get_settings().data_dir

    print("=" * 60)
    print(f"VALIDATING RATE DATA: {data_dir}")
    print("=" * 60)

    success, errors = validate_data_dir(data_dir)
    if not success:
        print("Validation errors:")
        for err in errors:
            print(f"  ❌ {err}")
        print(f"\n❌ Validation failed with {len(errors)} errors")
        sys.exit(1)

    print("✅ Rate data is valid")


if __name__ == "__main__":
    main()
