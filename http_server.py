#!/usr/bin/env python3
"""
Piano Request Checker HTTP Server Runner
"""

from request_checker.crosscutting.config import get_config_manager
from request_checker.crosscutting.logging import setup_logging
from request_checker.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    settings = get_config_manager().get_settings()
    setup_logging(settings.log_level)
    server = HTTPServer(
        host=settings.http_host,
        port=settings.http_port,
        debug=True,
        settings=settings
    )
    server.run()


if __name__ == '__main__':
    main()
