import logging
import os


def configure_logging() -> None:
    """Configure structured logging defaults for the application."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # The provider SDK logs every request at INFO; keep it quiet unless debugging.
    if level != "DEBUG":
        logging.getLogger("stripe").setLevel(logging.WARNING)
