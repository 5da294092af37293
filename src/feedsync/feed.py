"""
Feed file reading.

The vendor feed is a header-row CSV. Every cell is read as a string; empty
cells become empty strings rather than NaN so the normalizer sees the same
value shape for every column.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from feedsync.models import RawRecord, freeze_record
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.feed")

SAMPLE_BYTES = 64 * 1024


@dataclass(frozen=True)
class FeedFileInfo:
    path: Path
    size_bytes: int
    estimated_rows: int

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)


def describe_file(path: Path) -> FeedFileInfo:
    """
    Size and a row-count estimate extrapolated from the first 64 KB.

    The estimate excludes the header line.
    """
    size = path.stat().st_size
    with open(path, "rb") as fh:
        sample = fh.read(SAMPLE_BYTES)
    lines = sample.count(b"\n")
    if not sample:
        estimated = 0
    elif len(sample) >= size:
        if not sample.endswith(b"\n"):
            lines += 1
        estimated = max(0, lines - 1)
    else:
        estimated = max(0, int(size / (len(sample) / max(lines, 1))) - 1)
    return FeedFileInfo(path=path, size_bytes=size, estimated_rows=estimated)


def read_feed(path: Path) -> list[RawRecord]:
    """Parse the feed CSV into immutable string records, in file order."""
    logger.info(f"Reading feed file: {path.name}")
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=False, encoding="utf-8-sig")
    except pd.errors.EmptyDataError:
        logger.warning(f"Feed file is empty: {path.name}")
        return []
    df.columns = [str(c).strip() for c in df.columns]
    records = [freeze_record(row) for row in df.to_dict(orient="records")]
    logger.info(f"Parsed {len(records)} rows ({len(df.columns)} columns) from {path.name}")
    return records
