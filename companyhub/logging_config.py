"""Process-wide logging setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # Keep the Google client libraries quiet unless something is wrong.
    for noisy in ("google", "urllib3", "botocore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
