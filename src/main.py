"""
Stremio Overseerr Bridge - Main entrypoint
Starts the addon server and the pending request sweeper
"""

import argparse
import logging
import sys

from app import build_dispatcher, create_app
from config_manager import ConfigManager
from request_dispatcher import CleanupSweeper

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the service"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Stremio addon that requests titles in Overseerr")
    parser.add_argument("--config", help="Path to settings.json")
    args = parser.parse_args(argv)

    try:
        config = ConfigManager(args.config).load_config()
    except ValueError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {str(e)}")
        return 1

    setup_logging(config["logging"]["level"])

    dispatcher = build_dispatcher(config)
    sweeper = CleanupSweeper(dispatcher, config["dedup"]["cleanup_interval_seconds"])
    sweeper.start()

    app = create_app(config, dispatcher)
    server = config["server"]
    public_url = server.get("public_url") or f"http://localhost:{server['port']}"
    logger.info(f"Stremio Overseerr addon running at: {public_url}")
    logger.info(f"Duplicate requests suppressed for {config['dedup']['ttl_minutes']} minutes")

    try:
        app.run(host=server["host"], port=server["port"], threaded=True)
    finally:
        sweeper.stop()
        dispatcher.shutdown(wait=False)

    return 0


if __name__ == "__main__":
    sys.exit(main())
