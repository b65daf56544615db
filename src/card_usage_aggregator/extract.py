from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Callable, Optional

from .models import UNKNOWN_DATE, UNKNOWN_MERCHANT, TransactionRecord
from .util.dates import format_record_date
from .util.money import yen_to_int


logger = logging.getLogger(__name__)

# Shorter bodies are blank/placeholder renders, not notifications.
MIN_TEXT_LENGTH = 10

# (name, regex, converter); a converter returning None means "keep looking".
Pattern = tuple[str, "re.Pattern[str]", Callable[["re.Match[str]"], Any]]


def _amount(m: re.Match[str]) -> Optional[int]:
    try:
        value = yen_to_int(m.group(1))
    except ValueError:
        return None
    # A zero amount is never a usage record; let the next pattern try.
    return value if value > 0 else None


def _ymd(m: re.Match[str]) -> Optional[str]:
    return format_record_date(m.group(1), m.group(2), m.group(3))


def _merchant(m: re.Match[str]) -> Optional[str]:
    name = m.group(1).strip()
    return name or None


# Text is NFKC-normalised before matching, so "：" / "￥" / full-width digits arrive as ":" / "¥" / ASCII.
# Most specific first: the notification templates differ between versions.
AMOUNT_PATTERNS: list[Pattern] = [
    ("usage_amount_label", re.compile(r"ご利用金額\s*:\s*([0-9][0-9,]*)\s*円"), _amount),
    ("currency_symbol", re.compile(r"¥\s*([0-9][0-9,]*)"), _amount),
    ("yen_suffix", re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+|[0-9]+)\s*円"), _amount),
]

# The labelled date wins over any other date in the body (footers carry send timestamps).
DATE_PATTERNS: list[Pattern] = [
    (
        "usage_date_label",
        re.compile(r"ご利用日時?\s*:\s*(\d{4})\s*[年/]\s*(\d{1,2})\s*[月/]\s*(\d{1,2})"),
        _ymd,
    ),
    ("bare_date", re.compile(r"(\d{4})[年/](\d{1,2})[月/](\d{1,2})"), _ymd),
]

MERCHANT_PATTERNS: list[Pattern] = [
    ("usage_place_label", re.compile(r"(?:ご利用先|利用先)\s*:\s*(.+?)(?=\n|$|ご利用)"), _merchant),
    ("store_label", re.compile(r"(?:店名|加盟店)\s*:\s*(.+?)(?=\n|$)"), _merchant),
]


def normalize_text(raw_text: str) -> str:
    text = unicodedata.normalize("NFKC", raw_text or "")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def first_match(patterns: list[Pattern], text: str) -> tuple[Optional[str], Any]:
    """
    Walk `patterns` in order and return (pattern_name, value) for the first match that converts.
    """
    for name, pattern, convert in patterns:
        for m in pattern.finditer(text):
            value = convert(m)
            if value is not None:
                return name, value
    return None, None


def extract_record(raw_text: str, *, min_length: int = MIN_TEXT_LENGTH) -> Optional[TransactionRecord]:
    """
    Parse one card usage notification body into a record.

    Returns None when the text is too short or no amount could be found. Date and merchant are
    best-effort and fall back to the "unknown" sentinels.
    """
    text = normalize_text(raw_text).strip()
    if len(text) < min_length:
        return None

    amount_src, amount = first_match(AMOUNT_PATTERNS, text)
    if amount is None:
        logger.debug("No amount found in message body (chars=%d).", len(text))
        return None

    date_src, record_date = first_match(DATE_PATTERNS, text)
    merchant_src, merchant = first_match(MERCHANT_PATTERNS, text)
    logger.debug(
        "Extracted amount=%d via %s, date via %s, merchant via %s",
        amount,
        amount_src,
        date_src or "-",
        merchant_src or "-",
    )

    return TransactionRecord(
        date=record_date or UNKNOWN_DATE,
        merchant=merchant or UNKNOWN_MERCHANT,
        amount=amount,
    )


def extract_records(texts: list[str], *, min_length: int = MIN_TEXT_LENGTH) -> list[TransactionRecord]:
    out: list[TransactionRecord] = []
    for text in texts:
        rec = extract_record(text, min_length=min_length)
        if rec is not None:
            out.append(rec)
    return out
