from __future__ import annotations

from card_usage_aggregator.extract import extract_record, extract_records, normalize_text
from card_usage_aggregator.models import UNKNOWN_DATE, UNKNOWN_MERCHANT


NOTIFICATION = """
三井住友カード ご利用のお知らせ

いつも三井住友カードをご利用いただきありがとうございます。
お客様のカードご利用内容をお知らせいたします。

ご利用カード：三井住友カード
ご利用日時：2024/03/05 12:34
ご利用先：セブン－イレブン
ご利用金額：12,345円

配信日時：2024/03/06 08:00
"""


def test_labeled_amount_date_and_merchant() -> None:
    rec = extract_record(NOTIFICATION)
    assert rec is not None
    assert rec.amount == 12345
    assert rec.date == "2024/03/05"
    assert rec.merchant == "セブン-イレブン"


def test_labeled_amount_wins_over_other_yen_values() -> None:
    body = "ポイント残高：1,000円\nご利用金額：12,345円\n"
    rec = extract_record(body)
    assert rec is not None
    assert rec.amount == 12345


def test_currency_symbol_fallback() -> None:
    body = "カードのご利用がありました。 お支払い ¥12,345 （一括）"
    rec = extract_record(body)
    assert rec is not None
    assert rec.amount == 12345


def test_full_width_yen_sign_and_digits() -> None:
    body = "カードのご利用がありました。 ￥１２，３４５"
    rec = extract_record(body)
    assert rec is not None
    assert rec.amount == 12345


def test_bare_yen_suffix_fallback() -> None:
    body = "カードのご利用がありました。\n3,980 円 をご利用いただきました。"
    rec = extract_record(body)
    assert rec is not None
    assert rec.amount == 3980


def test_zero_amount_is_not_a_record() -> None:
    assert extract_record("カードのご利用がありました。ご利用金額：0円") is None


def test_no_amount_is_not_a_record() -> None:
    assert extract_record("ご利用日：2024年3月5日 ご利用先：どこか（金額は会員サイトでご確認ください）") is None


def test_short_text_is_noise() -> None:
    assert extract_record("¥500") is None
    assert extract_record("") is None


def test_kanji_date_is_zero_padded() -> None:
    rec = extract_record("ご利用日：2024年3月5日\nご利用金額：1,000円")
    assert rec is not None
    assert rec.date == "2024/03/05"


def test_labeled_date_preferred_over_footer_date() -> None:
    body = "配信日：2024/04/01\nご利用日：2024/03/05\nご利用金額：1,000円"
    rec = extract_record(body)
    assert rec is not None
    assert rec.date == "2024/03/05"


def test_bare_date_fallback_skips_impossible_dates() -> None:
    rec = extract_record("受付 2024/13/40 ／ 2024/02/29 のご利用 ¥2,000")
    assert rec is not None
    assert rec.date == "2024/02/29"


def test_missing_date_and_merchant_use_sentinels() -> None:
    rec = extract_record("カードのご利用がありました。ご利用金額：1,500円")
    assert rec is not None
    assert rec.date == UNKNOWN_DATE
    assert rec.merchant == UNKNOWN_MERCHANT


def test_merchant_stops_at_next_label_on_single_line() -> None:
    body = "ご利用日：2024/01/10 ご利用先：AMAZON.CO.JP ご利用金額：2,000円"
    rec = extract_record(body)
    assert rec is not None
    assert rec.merchant == "AMAZON.CO.JP"


def test_store_label_merchant_fallback() -> None:
    rec = extract_record("加盟店：ローソン\nご利用金額：800円")
    assert rec is not None
    assert rec.merchant == "ローソン"


def test_normalize_text_maps_full_width_forms() -> None:
    assert normalize_text("ご利用金額：１２，３４５円\r\n") == "ご利用金額:12,345円\n"


def test_extract_records_skips_misses() -> None:
    recs = extract_records([NOTIFICATION, "返信ありがとうございました。金額の記載はありません。", ""])
    assert len(recs) == 1
    assert recs[0].amount == 12345
