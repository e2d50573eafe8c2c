"""
Point Cloud Annotator Backend: Command Line Entrypoint
========================================================

Usage:
    python -m app                          # role and port from the environment
    python -m app --role handler --port 8081
    python -m app --role gateway --host 127.0.0.1

Flags override SERVICE_ROLE / SERVER_PORT / SERVER_HOST. They are written
into the environment before the settings are loaded, so uvicorn's reload
worker sees the same values.

Exit Codes:
    0: clean shutdown
    2: invalid arguments (argparse)
    4: invalid configuration
"""

import argparse
import os
import sys
from typing import List, MutableMapping, Optional

from pydantic import ValidationError as PydanticValidationError

EXIT_CONFIG_ERROR = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app",
        description="Run the point cloud annotator backend in gateway or handler role.",
    )
    parser.add_argument(
        "--role",
        choices=["gateway", "handler"],
        help="Service role (overrides SERVICE_ROLE)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Server port (overrides SERVER_PORT)",
    )
    parser.add_argument(
        "--host",
        help="Bind address (overrides SERVER_HOST)",
    )
    return parser


def apply_overrides(args: argparse.Namespace, environ: MutableMapping[str, str]) -> None:
    """Copy the flags that were given into `environ`."""
    if args.role:
        environ["SERVICE_ROLE"] = args.role
    if args.port is not None:
        environ["SERVER_PORT"] = str(args.port)
    if args.host:
        environ["SERVER_HOST"] = args.host


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    apply_overrides(args, os.environ)

    import uvicorn

    try:
        # Imported late: app.config reads the environment at import time
        from app.config import settings as app_settings
    except PydanticValidationError as e:
        print(f"ERROR: invalid configuration:\n{e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    uvicorn.run(
        "app.main:app",
        host=app_settings.server_host,
        port=app_settings.server_port,
        reload=app_settings.is_development,
        log_level=app_settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
