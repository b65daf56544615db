from __future__ import annotations


def yen_to_int(value: str) -> int:
    """
    Parse values like:
    - "12,345"
    - "¥12,345"
    - "12345円"
    """
    if value is None:
        raise ValueError("yen_to_int: value is None")

    s = value.strip()
    if not s:
        raise ValueError("yen_to_int: empty string")

    # Remove currency symbols/spaces/commas
    s = s.replace("¥", "").replace("￥", "").replace("円", "").replace(",", "").strip()
    if not s.isdigit():
        raise ValueError(f"yen_to_int: not a yen amount: {value!r}")
    return int(s)


def int_to_yen_str(amount: int) -> str:
    return f"¥{int(amount):,}"
