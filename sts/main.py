"""Main entry point for the time series recorder."""
import argparse
import logging
import sys
from pathlib import Path

from sts.config import load_config
from sts.engine import RecorderEngine
from sts.api import SeriesAPI
from sts.recovery import RecoveryError


def setup_logging(log_level: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Simple Time Series - record and plot named measurements"
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to configuration YAML file"
    )
    parser.add_argument("--data-path", help="Directory holding the durable series logs")
    parser.add_argument("--image-path", help="Directory receiving rendered plots")
    parser.add_argument("--host", help="Address to bind")
    parser.add_argument("--port", type=int, help="Port to listen on")
    return parser.parse_args(argv)


def main(argv=None):
    """Main function."""
    args = parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if args.data_path:
        config.storage.data_path = Path(args.data_path)
    if args.image_path:
        config.storage.image_path = Path(args.image_path)
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    # Setup logging
    setup_logging(config.global_.log_level)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("Simple Time Series")
    logger.info("=" * 60)
    if args.config:
        logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Queue size: {config.persistence.queue_size}")
    logger.info(f"Rendering: {'enabled' if config.render.enabled else 'disabled'}")

    engine = RecorderEngine(config)

    # Recovery must complete before the API accepts requests
    try:
        engine.start()
    except (RecoveryError, OSError) as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        sys.exit(1)

    api = SeriesAPI(engine.service, image_dir=engine.image_dir, self_metrics=engine.self_metrics)

    logger.info(f"Listening on {config.server.host}:{config.server.port}")
    try:
        api.run(
            host=config.server.host,
            port=config.server.port,
            ssl_keyfile=config.server.ssl_keyfile,
            ssl_certfile=config.server.ssl_certfile
        )
    except Exception as e:
        logger.error(f"API server error: {e}", exc_info=True)
        engine.stop()
        sys.exit(1)

    # uvicorn returns after handling SIGINT/SIGTERM
    engine.stop()


if __name__ == "__main__":
    main()
