from __future__ import annotations

import logging
from datetime import tzinfo
from importlib import resources

import pandas as pd

from calldash.parser import parse_feed


logger = logging.getLogger(__name__)

SEED_RESOURCE = "seed_calls.csv"


def load_seed_text() -> str:
    return resources.files("calldash").joinpath(SEED_RESOURCE).read_text(encoding="utf-8")


def load_seed_records(tz: tzinfo) -> pd.DataFrame:
    """Bundled sample records used when neither the feed nor any cache entry is available."""
    records = parse_feed(load_seed_text(), tz).records
    logger.warning("Falling back to %d bundled seed records", len(records))
    return records
