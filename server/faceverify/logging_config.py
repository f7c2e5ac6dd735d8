import logging
import os
import warnings

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "PIL")


def configure_logging(level: str = "INFO") -> None:
    """Console logging for the server process, third-party chatter muted."""
    warnings.filterwarnings("ignore", category=FutureWarning)
    warnings.filterwarnings("ignore", category=DeprecationWarning)

    # OpenCV prints backend probing noise when a camera index is missing.
    os.environ.setdefault("OPENCV_LOG_LEVEL", "ERROR")

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
