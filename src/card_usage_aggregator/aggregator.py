from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .config import ExtractionConfig, SearchConfig
from .dedup import merge_records
from .errors import ConfigurationError, ItemProcessingError, NavigationError, SearchTimeout
from .extract import extract_records
from .models import AggregateResult, DateRange, TransactionRecord
from .util.dates import format_search_date, search_upper_bound


logger = logging.getLogger(__name__)


def build_search_query(date_range: DateRange, *, sender: str, subject: str) -> str:
    """
    Gmail query for the notifications in `date_range`, end date included.
    """
    after = format_search_date(date_range.start)
    before = format_search_date(search_upper_bound(date_range.end))
    return f"from:{sender} subject:{subject} after:{after} before:{before}"


def sort_details(details: list[TransactionRecord]) -> list[TransactionRecord]:
    # Newest first. Dates are zero-padded so string order is date order; sorted() is stable so
    # same-day records keep extraction order. Records without a date go last.
    return sorted(details, key=lambda r: (r.has_date, r.date), reverse=True)


class Aggregator:
    """
    Runs one aggregation against a Gmail driver (see `gmail.client.GmailDriver`).

    The driver is addressed by row index only; rows are re-enumerated before every item because
    opening and closing a conversation re-renders the list.
    """

    def __init__(
        self,
        driver,
        *,
        search: Optional[SearchConfig] = None,
        extraction: Optional[ExtractionConfig] = None,
    ) -> None:
        self.driver = driver
        self.search = search or SearchConfig()
        self.extraction = extraction or ExtractionConfig()

    def aggregate(self, date_range: DateRange) -> AggregateResult:
        t0 = time.time()
        query = build_search_query(date_range, sender=self.search.sender, subject=self.search.subject)

        # NavigationError / SearchTimeout abort the whole run.
        self.driver.search(query)

        budget = self.driver.count_items()
        logger.info("Search returned %d item(s) for %s..%s", budget, date_range.start, date_range.end)
        if budget <= 0:
            return AggregateResult.empty()

        total = 0
        details: list[TransactionRecord] = []
        failed = 0
        for idx in range(budget):
            current = self.driver.count_items()
            if idx >= current:
                # Gmail dropped rows from the result list (e.g. a message got reclassified).
                logger.info("Result list shrank to %d item(s); stopping at item %d.", current, idx)
                break

            try:
                try:
                    records = self._read_item(idx)
                    for rec in records:
                        total += rec.amount
                        details.append(rec)
                finally:
                    self._back_to_list(idx)
            except Exception as e:
                failed += 1
                logger.warning("Skipping item %d after error: %s", idx, e)
                logger.debug("Item %d failure details", idx, exc_info=True)
                self.driver.save_debug(name_prefix=f"item_{idx}_error")

        result = AggregateResult(total_amount=total, count=len(details), details=sort_details(details))
        logger.info(
            "Aggregation finished: %d record(s), total=%d, failed_items=%d (seconds=%.2f)",
            result.count,
            result.total_amount,
            failed,
            time.time() - t0,
        )
        return result

    def _read_item(self, idx: int) -> list[TransactionRecord]:
        self.driver.open_item(idx)

        content = self.driver.wait_for_message_content()
        if not content:
            # Extract whatever did render; an empty read is just zero records.
            logger.warning("Item %d: timed out waiting for %s; extracting what rendered.", idx, content.condition)

        self.driver.expand_thread()

        texts = self.driver.message_texts()
        extracted = extract_records(texts, min_length=self.extraction.min_text_length)
        records = merge_records(extracted)
        if len(records) < len(extracted):
            logger.debug("Item %d: dropped %d duplicate record(s).", idx, len(extracted) - len(records))
        logger.info("Item %d: %d body(ies), %d record(s).", idx, len(texts), len(records))
        return records

    def _back_to_list(self, idx: int) -> None:
        method = self.driver.return_to_list()
        res = self.driver.wait_for_list_view()
        if not res:
            raise ItemProcessingError(
                f"list view did not reappear after leaving item {idx} (via {method or 'nothing'})",
                index=idx,
            )


def handle_aggregate_request(request: dict, run: Callable[[DateRange], AggregateResult]) -> dict:
    """
    `{"startDate", "endDate"}` -> `{"data": AggregateResult}` or `{"error": message}`.

    Navigation and search failures are passed through verbatim ("could not even start");
    a result with fewer records than exist is still a normal `data` response.
    """
    try:
        date_range = DateRange.from_iso(request.get("startDate"), request.get("endDate"))
    except ConfigurationError as e:
        return {"error": str(e)}

    try:
        result = run(date_range)
    except (NavigationError, SearchTimeout) as e:
        logger.error("Aggregation could not start: %s", e)
        return {"error": str(e)}
    except Exception as e:
        logger.exception("Aggregation failed")
        return {"error": f"Error while processing: {e}"}
    return {"data": result.to_wire()}
