# logging_config.py
import logging
import os


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once at startup.

    The format can be overridden with LOG_FORMAT.
    """
    fmt = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=fmt)
    # keep the google-genai/httpx request lines out of INFO output
    logging.getLogger("httpx").setLevel(logging.WARNING)
