"""CLI entry point for the tool chat service."""

from __future__ import annotations

import uvicorn

from .config import get_settings
from .logging import configure_logging
from .server import build_app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = build_app(settings)
    config = uvicorn.Config(app, host=settings.host, port=settings.port)
    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    main()
