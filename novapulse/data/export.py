"""Signal history export as JSON or CSV."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from novapulse.data.models import Signal

logger = logging.getLogger(__name__)

CSV_HEADER = ["Time", "Price", "Type", "Success", "Confidence"]
FORMATS = ("json", "csv")


def iso_timestamp(epoch_ms: int) -> str:
    """``2024-01-01T00:00:00.000Z`` style UTC timestamp."""
    dt = datetime.fromtimestamp(epoch_ms // 1000, tz=timezone.utc)
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{epoch_ms % 1000:03d}Z"


def _success_text(success: bool | None) -> str:
    if success is None:
        return "null"
    return "true" if success else "false"


def signals_to_json(signals: Iterable[Signal]) -> str:
    records = [
        {
            "time": s.time,
            "price": s.price,
            "type": s.type.value,
            "success": s.success,
            "confidence": s.confidence,
        }
        for s in signals
    ]
    return json.dumps(records, indent=2)


def signals_to_csv(signals: Iterable[Signal]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for s in signals:
        writer.writerow(
            [iso_timestamp(s.time), s.price, s.type.value, _success_text(s.success), s.confidence]
        )
    return buf.getvalue()


def export_signals(signals: Iterable[Signal], fmt: str = "json") -> str:
    """Serialize the signal history in the requested format."""
    fmt = fmt.lower()
    if fmt == "json":
        return signals_to_json(signals)
    if fmt == "csv":
        return signals_to_csv(signals)
    raise ValueError(f"Unsupported export format: {fmt!r} (expected one of {FORMATS})")


def write_export(signals: Iterable[Signal], path: str, fmt: str = "json") -> int:
    """Write the export to *path*; returns the number of signals written."""
    signals = list(signals)
    content = export_signals(signals, fmt)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        f.write(content)
    logger.info("Exported %d signals to %s", len(signals), path)
    return len(signals)
