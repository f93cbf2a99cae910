#!/usr/bin/env python
"""
Admin API Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py

The store owns one connection and one maintenance scheduler, so the API
always runs as a single worker.
"""

import argparse

from analytics_store.config import get_settings

APP = "analytics_store.serving.api.main:create_app"


def run_dev_server(host: str, port: int):
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        APP,
        factory=True,
        host=host,
        port=port,
        reload=True,
        reload_dirs=["analytics_store"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(host: str, port: int, log_level: str):
    """Run production server with Uvicorn directly."""
    import uvicorn

    uvicorn.run(
        APP,
        factory=True,
        host=host,
        port=port,
        workers=1,
        log_level=log_level.lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
        date_header=True,
    )


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Analytics Store Admin API Server")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode with auto-reload"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.api_port,
        help=f"Port to run on (default: {settings.api_port})"
    )

    args = parser.parse_args()

    if args.dev:
        print("Starting development server...")
        run_dev_server(settings.api_host, args.port)
    else:
        print("Starting admin API server...")
        run_prod_server(settings.api_host, args.port, settings.monitoring.log_level)
