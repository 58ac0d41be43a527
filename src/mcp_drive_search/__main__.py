"""CLI entrypoint."""

from __future__ import annotations

import uvicorn

from .asgi import create_app
from .logging_setup import configure_logging
from .settings import Settings


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, json=settings.log_json)
    uvicorn.run(
        create_app(),
        host=settings.mcp_host,
        port=settings.mcp_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
