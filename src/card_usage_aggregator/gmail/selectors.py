from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GmailSelectors:
    """
    Gmail's markup uses obfuscated class names that change over time.
    Keep all UI selectors/text hooks here for easy maintenance.
    """

    # Result list
    list_row: str = "tr.zA"
    empty_result_containers: str = ".TC, .ae4"
    empty_result_texts: tuple[str, ...] = ("一致するメッセージがありません", "No messages matched", "一致する")

    # Opened message / conversation. Bodies are tried in this order; the first selector with
    # visible matches wins so the same body is not read twice through two class names.
    message_bodies: tuple[str, ...] = ("div.a3s.aiL", "div.ii.gt", "div.a3s")
    message_body_fallback: str = ".gs"
    # Container of one message inside a conversation; used to find the body that belongs to a
    # collapsed indicator.
    message_container: str = ".adn, .h7, .kv, .kQ, .gs"
    # Any rendered body inside a message container.
    rendered_body: str = ".a3s"

    # Collapsed-message indicators. They are not mutually exclusive and their shape varies:
    # - counter badge ("3" older messages circle)
    # - collapsed message rows / headers
    # - explicit "Expand all" / "Show trimmed content" affordances
    collapsed_rows: str = "span.adx, div.kQ, div.kv, div.adf.ads"
    collapsed_indicators: tuple[str, ...] = (
        "span.adx",
        "div.kQ",
        "div.kv",
        "div.adf.ads",
        '[aria-label="すべて展開"], [aria-label="Expand all"], [data-tooltip="すべて展開"], [data-tooltip="Expand all"]',
        'div.ajR[role="button"], [aria-label="省略されたコンテンツを表示"], [aria-label="Show trimmed content"]',
    )

    # Back to list
    back_to_list: tuple[str, ...] = (
        '[aria-label="リストに戻る"]',
        '[aria-label="Back to list"]',
        '[data-tooltip="リストに戻る"]',
        '[data-tooltip="Back to list"]',
        ".ak.T-I-J3.J-J5-Ji",
    )
    back_to_list_shortcut: str = "u"
