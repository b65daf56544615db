from __future__ import annotations

from card_usage_aggregator.dedup import merge_records
from card_usage_aggregator.models import TransactionRecord


def _rec(date: str, amount: int, merchant: str) -> TransactionRecord:
    return TransactionRecord(date=date, amount=amount, merchant=merchant)


def test_merge_drops_exact_duplicates_keeps_distinct_merchant() -> None:
    a = _rec("2024/01/10", 1000, "ローソン")
    b = _rec("2024/01/10", 1000, "ローソン")
    c = _rec("2024/01/10", 1000, "ファミリーマート")

    merged = merge_records([a, b, c])
    assert len(merged) == 2
    assert merged[0] is a
    assert merged[1] is c


def test_merge_preserves_encounter_order() -> None:
    recs = [
        _rec("2024/01/03", 300, "C"),
        _rec("2024/01/01", 100, "A"),
        _rec("2024/01/03", 300, "C"),
        _rec("2024/01/02", 200, "B"),
    ]
    assert [r.merchant for r in merge_records(recs)] == ["C", "A", "B"]


def test_merge_treats_unknown_sentinels_as_part_of_key() -> None:
    recs = [
        TransactionRecord(amount=500),
        TransactionRecord(amount=500),
        TransactionRecord(amount=500, date="2024/01/01"),
    ]
    assert len(merge_records(recs)) == 2


def test_merge_empty() -> None:
    assert merge_records([]) == []
