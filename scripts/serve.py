#!/usr/bin/env python
"""
Start the rate engine API (uvicorn) or the rate calculator UI (Streamlit).

Usage:
    python scripts/serve.py api [--port 8000] [--no-reload]
    python scripts/serve.py ui [--port 8501]
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
UI_PATH = PROJECT_ROOT / 'src' / 'rate_engine' / 'ui' / 'app_streamlit.py'


def build_env() -> dict:
    """Copy of the environment with src on PYTHONPATH."""
    env = os.environ.copy()
    src_path = str(PROJECT_ROOT / 'src')
    if env.get('PYTHONPATH'):
        env['PYTHONPATH'] = f"{src_path}{os.pathsep}{env['PYTHONPATH']}"
    else:
        env['PYTHONPATH'] = src_path
    return env


def api_command(args) -> list[str]:
    cmd = [
        sys.executable, '-m', 'uvicorn', 'rate_engine.api.main:app',
        '--host', args.host,
        '--port', str(args.port or 8000),
    ]
    if not args.no_reload:
        cmd.append('--reload')
    return cmd


def ui_command(args) -> list[str]:
    if not UI_PATH.exists():
        print(f"ERROR: UI module not found at {UI_PATH}")
        sys.exit(1)
    return [
        sys.executable, '-m', 'streamlit', 'run', str(UI_PATH),
        '--server.port', str(args.port or 8501),
    ]


def main():
    parser = argparse.ArgumentParser(description="Serve the shipping rate engine")
    parser.add_argument('target', choices=['api', 'ui'])
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=None)
    parser.add_argument('--no-reload', action='store_true', help="API only: disable auto-reload")
    args = parser.parse_args()

    cmd = api_command(args) if args.target == 'api' else ui_command(args)
    print(f"Starting {args.target}: {' '.join(cmd)}")
    try:
        subprocess.run(cmd, cwd=str(PROJECT_ROOT), env=build_env())
    except KeyboardInterrupt:
        print(f"\n{args.target} stopped.")


if __name__ == "__main__":
    main()
