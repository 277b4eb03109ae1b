import logging
import sys

from degreeplan.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure root logging with an ISO timestamp console format."""
    root_logger = logging.getLogger()
    # Avoid duplicate handlers when the app is re-created (tests, reload)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.setLevel((level or settings.log_level).upper())
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
