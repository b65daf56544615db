from __future__ import annotations

from typing import Iterable

from .models import TransactionRecord


def merge_records(records: Iterable[TransactionRecord]) -> list[TransactionRecord]:
    """
    Keep the first record for each (date, amount, merchant) key, in encounter order.

    A thread can surface the same body twice (overlapping body selectors, a body rendered both
    trimmed and expanded), which is why this runs per opened item before accumulation.
    """
    seen: set[str] = set()
    out: list[TransactionRecord] = []
    for rec in records:
        key = rec.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(rec)
    return out
