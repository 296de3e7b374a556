"""Environment-driven settings and logging setup."""

import logging
import os
import sys

# Get database URL from environment, default to local SQLite
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./trading_journal.db")

# Timezone used to classify a trade's market session from its open time
REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "US/Eastern")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )
