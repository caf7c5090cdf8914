"""Serve the instrumented example application with uvicorn."""

import sys

import uvicorn

from instrumentipy.app import create_app
from instrumentipy.config import load_settings
from instrumentipy.core.errors import ConfigurationError


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"instrumentipy: refusing to start: {exc}", file=sys.stderr)
        return 2
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
