import logging
from logging.handlers import RotatingFileHandler

from .config import Settings

_MARKER = "_chair_monitor_handler"


def configure_logging(cfg: Settings) -> None:
    logger = logging.getLogger()
    logger.setLevel(cfg.log_level.upper())

    # Already configured (e.g. app created twice in one process)
    if any(getattr(h, _MARKER, False) for h in logger.handlers):
        return

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    setattr(ch, _MARKER, True)
    logger.addHandler(ch)

    # Rotating file (history growth is unbounded, logs should not be)
    if cfg.log_file:
        fh = RotatingFileHandler(
            cfg.log_file, maxBytes=2_000_000, backupCount=5
        )
        fh.setFormatter(fmt)
        setattr(fh, _MARKER, True)
        logger.addHandler(fh)

    # Silence per-request access noise, the ingest log line covers it
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
