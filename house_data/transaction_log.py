"""
Transaction Log - Append-only audit trail of every payout, claim, buyback and burn
"""
import json
import os
import threading
from datetime import datetime, timezone
from decimal import Decimal


def _to_native_type(val):
    """Decimals are written as strings so no precision is lost."""
    if isinstance(val, Decimal):
        return str(val)
    if isinstance(val, datetime):
        return val.isoformat()
    return str(val)


class TransactionLog:
    """
    One JSON object per line. Entries are never rewritten or removed.

    Every entry carries `type` (game_payout | fee_claim | buyback | burn),
    `status` (success | failed) and an ISO-8601 UTC `timestamp`.
    Write errors propagate to the caller.
    """

    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

    def append(self, entry: dict) -> dict:
        record = dict(entry)
        record["timestamp"] = datetime.now(timezone.utc).isoformat()
        line = json.dumps(record, default=_to_native_type)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
                os.fsync(f.fileno())
        return record

    def read_entries(self) -> list:
        if not os.path.exists(self.path):
            return []
        entries = []
        with self._lock:
            with open(self.path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        entries.append(json.loads(line))
        return entries
