import logging

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure root logging once per process (Streamlit reruns pages constantly)."""
    global _configured
    if _configured:
        return
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    _configured = True
