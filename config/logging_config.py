"""Rich-handler logging preset."""
import logging
from rich.logging import RichHandler
from .app_config import settings

# chatty third-party loggers, kept one level above ours
NOISY_LOGGERS = ("tinytuya", "paho")

def configure(level: str | None = None):
    level_no = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=level_no,
        format="%(name)-38s │ %(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(rich_tracebacks=True, markup=False, show_path=False)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level_no, logging.INFO) + 10)
