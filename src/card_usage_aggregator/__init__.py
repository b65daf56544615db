from .aggregator import Aggregator, build_search_query, handle_aggregate_request
from .dedup import merge_records
from .extract import extract_record
from .models import UNKNOWN_DATE, UNKNOWN_MERCHANT, AggregateResult, DateRange, TransactionRecord

__all__ = [
    "Aggregator",
    "build_search_query",
    "handle_aggregate_request",
    "merge_records",
    "extract_record",
    "UNKNOWN_DATE",
    "UNKNOWN_MERCHANT",
    "AggregateResult",
    "DateRange",
    "TransactionRecord",
]
