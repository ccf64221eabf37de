"""
API entry point.

Runs the HTTP surface: join requests, payment callbacks and read views.
"""

from aiohttp import web

from api.app import create_app
from contempla.config.logging import setup_logging
from contempla.config.settings import settings


def main() -> None:
    """Run the API server."""
    setup_logging("api")
    web.run_app(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        print=None,
    )


if __name__ == "__main__":
    main()
