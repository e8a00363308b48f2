"""Command-line entry point for the photobooth API server."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "info") -> None:
    """Configure root logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
    )


def main():
    """Main entry point."""
    import argparse
    import uvicorn

    from ..config import Settings
    from .app import create_app

    parser = argparse.ArgumentParser(description="Photobooth API server")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: search upwards from the working directory)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: 127.0.0.1 or HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: 3001 or PORT env var)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: LOG_LEVEL from the environment or .env, else info)",
    )

    args = parser.parse_args()

    settings = Settings.from_env(args.env_file)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port

    setup_logging(args.log_level or settings.log_level)

    logger.info(f"Starting photobooth API on {settings.host}:{settings.port}")
    logger.info(f"Environment: {'LOCAL' if settings.is_local else 'PRODUCTION'}")

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
