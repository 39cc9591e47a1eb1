# clinic_scheduling/utils/my_logging.py
"""Logging configuration"""
import logging
import sys
from clinic_scheduling.config.settings import get_settings


def setup_logging(verbose=True):
    """Configure engine logging"""
    settings = get_settings()

    if verbose:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if not verbose:
        # Per-gesture logs fire on every pointer move
        logging.getLogger("clinic_scheduling.services.gesture").setLevel(logging.ERROR)
