from .dates import format_record_date, format_search_date, preset_range, search_upper_bound
from .money import int_to_yen_str, yen_to_int

__all__ = [
    "format_record_date",
    "format_search_date",
    "preset_range",
    "search_upper_bound",
    "int_to_yen_str",
    "yen_to_int",
]
