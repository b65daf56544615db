from __future__ import annotations

import json
import logging
import re
import shutil
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional
from urllib.parse import quote

from playwright.sync_api import Locator, Page, sync_playwright

from ..aggregator import Aggregator, handle_aggregate_request
from ..config import AppConfig, ExtractionConfig, TimingConfig
from ..errors import NavigationError, SearchTimeout
from ..models import AggregateResult, DateRange
from ..wait import WaitResult, await_condition
from .expansion import expand_all
from .selectors import GmailSelectors


logger = logging.getLogger(__name__)

_MAILBOX_URL_RE = re.compile(r"^(https?://[^/]+/mail/u/\d+)")

# JS predicate: does this collapsed indicator still hide a message body?
# Indicators outside any message (toolbar "Expand all") only count while collapsed rows remain.
# An indicator already clicked during this expansion never counts again ("Show trimmed content"
# toggles, so a second click would collapse the body it just revealed).
_NEEDS_EXPANSION_JS = """
(el, args) => {
  if (el.getAttribute(args.markAttr) === args.token) {
    return false;
  }
  const container = el.closest(args.container);
  if (!container || container === document.body) {
    return document.querySelectorAll(args.collapsedRows).length > 0;
  }
  const body = container.querySelector(args.body);
  return !body || ((body.innerText || '').trim().length < args.minLength);
}
"""

_MARK_CLICKED_JS = "(el, args) => el.setAttribute(args.markAttr, args.token)"
_CLICKED_ATTR = "data-cua-expanded"


def mailbox_base_url(url: str) -> Optional[str]:
    """
    "https://mail.google.com/mail/u/0/#inbox" -> "https://mail.google.com/mail/u/0"
    """
    m = _MAILBOX_URL_RE.match((url or "").strip())
    return m.group(1) if m else None


def search_hash(query: str) -> str:
    return f"#search/{quote(query, safe='')}"


def is_search_url(url: str) -> bool:
    return "#search/" in (url or "")


class GmailDriver:
    """
    Drives one signed-in Gmail tab for the aggregator.

    List rows are never held across a UI change: every method re-queries by index, because Gmail
    replaces the row elements whenever a conversation is opened and closed.
    """

    def __init__(
        self,
        page: Page,
        *,
        selectors: Optional[GmailSelectors] = None,
        timing: Optional[TimingConfig] = None,
        extraction: Optional[ExtractionConfig] = None,
        debug_dir: str = "data/debug",
        step_debug: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.page = page
        self.selectors = selectors or GmailSelectors()
        self.timing = timing or TimingConfig()
        self.extraction = extraction or ExtractionConfig()
        self.debug_dir = debug_dir
        self.clock = clock
        self._step_debug_enabled = bool(step_debug)
        self._step_counter = 0
        self._expansion_id = 0

    # Render-wait plumbing

    def _sleep(self, ms: int) -> None:
        # Unlike time.sleep, this keeps Playwright's event loop running.
        self.page.wait_for_timeout(ms)

    def _wait(self, predicate, *, poll_ms: int, timeout_ms: int, condition: str) -> WaitResult:
        return await_condition(
            predicate,
            poll_interval_ms=poll_ms,
            timeout_ms=timeout_ms,
            condition=condition,
            sleep=self._sleep,
            clock=self.clock,
        )

    # Navigation

    def search(self, query: str) -> None:
        page = self.page
        base = mailbox_base_url(page.url)
        if not base:
            raise NavigationError(
                f"Could not recognise the Gmail URL ({page.url!r}). Open the Gmail main screen first."
            )

        target = search_hash(query)
        logger.info("Searching Gmail: %s", query)
        try:
            # Hash navigation only: a full reload would throw away the signed-in app state.
            page.evaluate("(h) => { window.location.hash = h; }", target)
        except Exception as e:
            raise NavigationError(f"Could not issue the Gmail search: {e}") from e

        if not self._wait(
            lambda: is_search_url(page.url),
            poll_ms=self.timing.url_change_poll_ms,
            timeout_ms=self.timing.url_change_timeout_ms,
            condition="url contains #search/",
        ):
            logger.debug("URL did not switch to #search/ yet (url=%s); continuing.", page.url)
        page.wait_for_timeout(self.timing.search_settle_ms)
        self.step("after_search_navigation")

        res = self._wait(
            self._results_ready,
            poll_ms=self.timing.search_poll_ms,
            timeout_ms=self.timing.search_timeout_ms,
            condition="search results rows or empty-result notice",
        )
        if not res:
            self.save_debug(name_prefix="search_timeout")
            raise SearchTimeout(
                f"Timed out loading search results after {res.waited_ms / 1000:.1f}s.",
                condition=res.condition,
            )
        page.wait_for_timeout(self.timing.results_settle_ms)
        self.step("search_results_ready")

    def _visible_rows(self) -> Locator:
        return self.page.locator(f"{self.selectors.list_row} >> visible=true")

    def _empty_result_shown(self) -> bool:
        texts = self.page.locator(self.selectors.empty_result_containers).all_inner_texts()
        return any(needle in t for t in texts for needle in self.selectors.empty_result_texts)

    def _results_ready(self) -> bool:
        if not is_search_url(self.page.url):
            return False
        if self._visible_rows().count() > 0:
            return True
        return self._empty_result_shown()

    # Result list

    def count_items(self) -> int:
        try:
            return int(self._visible_rows().count())
        except Exception:
            logger.debug("Failed to enumerate result rows.", exc_info=True)
            return 0

    def open_item(self, index: int) -> None:
        self._visible_rows().nth(index).click(timeout=15_000)
        self.page.wait_for_timeout(self.timing.open_settle_ms)
        self.step(f"opened_item_{index}")

    def wait_for_message_content(self) -> WaitResult:
        min_len = self.extraction.min_body_length
        return self._wait(
            lambda: self._longest_body_length() > min_len,
            poll_ms=self.timing.content_poll_ms,
            timeout_ms=self.timing.content_timeout_ms,
            condition=f"message body longer than {min_len} chars",
        )

    def _longest_body_length(self) -> int:
        best = 0
        for sel in self.selectors.message_bodies:
            lengths = self.page.locator(sel).evaluate_all(
                "els => els.map(e => (e.innerText || e.textContent || '').trim().length)"
            )
            best = max([best, *[int(n) for n in lengths]])
        return best

    # Thread expansion

    def expand_thread(self) -> int:
        self._expansion_id += 1
        expanded = expand_all(self._expand_round, max_rounds=self.timing.expand_max_rounds)
        if expanded:
            logger.info("Expanded %d collapsed message(s) in the conversation.", expanded)
            self.step("thread_expanded")
        return expanded

    def _expand_round(self) -> int:
        expanded = 0
        args = {
            "container": self.selectors.message_container,
            "collapsedRows": self.selectors.collapsed_rows,
            "body": self.selectors.rendered_body,
            "minLength": self.extraction.min_body_length,
            "markAttr": _CLICKED_ATTR,
            "token": str(self._expansion_id),
        }
        for sel in self.selectors.collapsed_indicators:
            loc = self.page.locator(sel)
            try:
                n = min(int(loc.count()), 50)
            except Exception:
                continue
            for i in range(n):
                el = loc.nth(i)
                try:
                    if not el.is_visible():
                        continue
                    if not el.evaluate(_NEEDS_EXPANSION_JS, args):
                        continue
                    # Mark first: the click may detach the element.
                    el.evaluate(_MARK_CLICKED_JS, args)
                    el.click(timeout=3_000)
                except Exception:
                    logger.debug("Could not click collapsed indicator %s[%d].", sel, i, exc_info=True)
                    continue
                expanded += 1
                self.page.wait_for_timeout(self.timing.expand_settle_ms)
        return expanded

    # Extraction input

    def message_texts(self) -> list[str]:
        """
        Rendered text of every visible message body in the open conversation.
        """
        for sel in self.selectors.message_bodies:
            texts = self._visible_texts(sel)
            if texts:
                return texts
        return self._visible_texts(self.selectors.message_body_fallback)

    def _visible_texts(self, selector: str) -> list[str]:
        try:
            texts = self.page.locator(f"{selector} >> visible=true").all_inner_texts()
        except Exception:
            logger.debug("Failed to read message bodies for selector=%s", selector, exc_info=True)
            return []
        return [t for t in texts if t.strip()]

    # Back to the list

    def return_to_list(self) -> str:
        """
        Best-effort: back button, then Gmail's `u` shortcut, then history.back().
        Returns the method used ("" if none worked); `wait_for_list_view` is the real gate.

        history.back() is only used while the tab is still on the conversation it opened; once the
        URL has moved on, going back again would land on whatever preceded the search (the inbox).
        """
        page = self.page
        thread_url = page.url
        for sel in self.selectors.back_to_list:
            try:
                btn = page.locator(f"{sel} >> visible=true")
                if btn.count() > 0:
                    btn.first.click(timeout=3_000)
                    page.wait_for_timeout(self.timing.back_settle_ms)
                    return "button"
            except Exception:
                continue

        try:
            page.keyboard.press(self.selectors.back_to_list_shortcut)
            if self._wait(
                self._on_result_list,
                poll_ms=self.timing.list_poll_ms,
                timeout_ms=self.timing.list_timeout_ms,
                condition="result list after shortcut",
            ):
                return "shortcut"
        except Exception:
            logger.debug("Back-to-list keyboard shortcut failed.", exc_info=True)

        if page.url != thread_url:
            logger.debug("URL left the conversation (%s); not going back in history.", page.url)
            return "shortcut"

        try:
            page.evaluate("() => window.history.back()")
            page.wait_for_timeout(self.timing.back_settle_ms)
            return "history"
        except Exception:
            logger.debug("history.back() failed.", exc_info=True)
        return ""

    def _on_result_list(self) -> bool:
        # Inbox rows use the same markup; only rows under a #search/ URL are our result list.
        return is_search_url(self.page.url) and self.count_items() > 0

    def wait_for_list_view(self) -> WaitResult:
        return self._wait(
            self._on_result_list,
            poll_ms=self.timing.list_poll_ms,
            timeout_ms=self.timing.list_timeout_ms,
            condition="search result rows visible",
        )

    # Debug artifacts

    def save_debug(self, *, name_prefix: str) -> None:
        try:
            out_dir = Path(self.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(out_dir / f"{name_prefix}.png"), full_page=True)
            (out_dir / f"{name_prefix}.html").write_text(self.page.content(), encoding="utf-8")
            # The rendered text can be fed to scripts/parse_mail_text_snapshot.py offline.
            try:
                (out_dir / f"{name_prefix}.txt").write_text(self.page.inner_text("body"), encoding="utf-8")
            except Exception:
                pass
        except Exception:
            logger.debug("Failed to save debug artifacts.", exc_info=True)

    def step(self, name: str) -> None:
        """
        If enabled, log step-by-step progress and save screenshots.
        """
        if not self._step_debug_enabled:
            return

        self._step_counter += 1
        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "step"
        logger.info("Step %02d %s (url=%s)", self._step_counter, name, getattr(self.page, "url", ""))
        try:
            out_dir = Path(self.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(out_dir / f"step_{self._step_counter:02d}_{safe}.png"), full_page=True)
        except Exception:
            logger.debug("Failed to save step screenshot (name=%s).", name, exc_info=True)


class GmailClient:
    """
    Opens a signed-in Gmail tab and runs the aggregator in it.

    Signing in is out of scope: either attach to a running Chrome over CDP (`gmail.cdp_url`) or
    reuse a Playwright storage_state captured from a signed-in browser.
    """

    def __init__(self, cfg: AppConfig, *, selectors: Optional[GmailSelectors] = None) -> None:
        self.cfg = cfg
        self.selectors = selectors or GmailSelectors()

    def aggregate(
        self,
        date_range: DateRange,
        *,
        headless: Optional[bool] = None,
        slow_mo_ms: int = 0,
        step_debug: bool = False,
    ) -> AggregateResult:
        Path(self.cfg.debug_dir).mkdir(parents=True, exist_ok=True)
        with self.session(headless=headless, slow_mo_ms=slow_mo_ms) as page:
            driver = GmailDriver(
                page,
                selectors=self.selectors,
                timing=self.cfg.timing,
                extraction=self.cfg.extraction,
                debug_dir=self.cfg.debug_dir,
                step_debug=step_debug,
            )
            aggregator = Aggregator(
                driver,
                search=self.cfg.search,
                extraction=self.cfg.extraction,
            )
            return aggregator.aggregate(date_range)

    def handle_request(self, request: dict, **kwargs) -> dict:
        """
        `{startDate, endDate}` -> `{data: ...}` or `{error: ...}`; exactly one response per request.
        """
        return handle_aggregate_request(request, lambda rng: self.aggregate(rng, **kwargs))

    @contextmanager
    def session(self, *, headless: Optional[bool] = None, slow_mo_ms: int = 0) -> Iterator[Page]:
        gcfg = self.cfg.gmail
        headless = gcfg.headless if headless is None else bool(headless)
        state_path = Path(gcfg.storage_state_path) if gcfg.storage_state_path else None

        with sync_playwright() as p:
            if gcfg.cdp_url:
                logger.info("Attaching to running browser over CDP: %s", gcfg.cdp_url)
                browser = p.chromium.connect_over_cdp(gcfg.cdp_url)
                try:
                    ctx = browser.contexts[0] if browser.contexts else browser.new_context()
                    page = self._find_gmail_page(ctx.pages) or ctx.new_page()
                    page.bring_to_front()
                    self._ensure_mailbox(page)
                    yield page
                finally:
                    # Disconnects; the user's browser keeps running.
                    browser.close()
                return

            browser = self._launch(p, headless=headless, slow_mo_ms=slow_mo_ms)
            try:
                ctx_kwargs: dict = {"color_scheme": "light", "locale": "ja-JP"}
                if state_path is not None and state_path.exists() and self._validate_or_restore_storage_state(state_path):
                    ctx_kwargs["storage_state"] = str(state_path)
                ctx = browser.new_context(**ctx_kwargs)
                try:
                    page = ctx.new_page()
                    self._ensure_mailbox(page)
                    yield page

                    # Keep the refreshed cookies for next time (best-effort).
                    if state_path is not None:
                        try:
                            state_path.parent.mkdir(parents=True, exist_ok=True)
                            ctx.storage_state(path=str(state_path))
                            self._backup_storage_state(state_path)
                        except Exception:
                            logger.debug("Failed to persist storage_state.", exc_info=True)
                finally:
                    ctx.close()
            finally:
                browser.close()

    def _launch(self, p, *, headless: bool, slow_mo_ms: int):
        channel = (self.cfg.gmail.browser_channel or "").strip()
        slow_mo = int(slow_mo_ms or 0)
        if channel:
            return p.chromium.launch(headless=headless, slow_mo=slow_mo, channel=channel)
        try:
            return p.chromium.launch(headless=headless, slow_mo=slow_mo)
        except Exception as e:
            msg = str(e)
            if "Executable doesn't exist" not in msg:
                raise
            logger.warning(
                "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
                msg,
            )
            try:
                return p.chromium.launch(headless=headless, slow_mo=slow_mo, channel="chrome")
            except Exception:
                return p.chromium.launch(headless=headless, slow_mo=slow_mo, channel="msedge")

    def _find_gmail_page(self, pages: list[Page]) -> Optional[Page]:
        for pg in pages:
            if mailbox_base_url(pg.url or "") and (pg.url or "").startswith(self.cfg.gmail.base_url):
                return pg
        return None

    def _ensure_mailbox(self, page: Page) -> None:
        """
        Make sure the tab shows the Gmail app. Safe to call on a tab that already does.
        """
        if not mailbox_base_url(page.url):
            target = f"{self.cfg.gmail.mailbox_url}/#inbox"
            logger.info("Opening Gmail: %s", target)
            try:
                page.goto(target, wait_until="domcontentloaded", timeout=60_000)
            except Exception as e:
                raise NavigationError(f"Could not open Gmail ({target}): {e}") from e

        ready_selector = f"{self.selectors.list_row}, h2.hP, input[name=\"q\"]"
        res = await_condition(
            lambda: "accounts.google.com" in page.url or page.locator(ready_selector).count() > 0,
            poll_interval_ms=500,
            timeout_ms=30_000,
            condition="gmail surface rendered",
            sleep=page.wait_for_timeout,
        )
        if "accounts.google.com" in page.url:
            raise NavigationError(
                "Gmail is not signed in. Attach to a signed-in browser (GMAIL_CDP_URL) or refresh the storage_state."
            )
        if not res:
            logger.warning("Gmail UI did not finish rendering within %.1fs; continuing.", res.waited_ms / 1000)

    # storage_state housekeeping

    def _storage_state_backup_path(self, state_path: Path) -> Path:
        return state_path.with_name(state_path.name + ".bak")

    def _validate_or_restore_storage_state(self, state_path: Path) -> bool:
        """
        Return True if `state_path` is usable JSON; otherwise quarantine it and try the `.bak` copy.
        """
        try:
            json.loads(state_path.read_text(encoding="utf-8"))
            return True
        except Exception:
            pass

        logger.warning("storage_state file is invalid JSON; ignoring and attempting restore from backup: %s", state_path)
        self._quarantine_file(state_path, prefix="storage_state")
        bak = self._storage_state_backup_path(state_path)
        if bak.exists():
            try:
                json.loads(bak.read_text(encoding="utf-8"))
                shutil.copy2(bak, state_path)
                logger.warning("Restored storage_state from backup: %s", bak)
                return True
            except Exception:
                logger.debug("Failed to restore storage_state from backup.", exc_info=True)
        return False

    def _backup_storage_state(self, state_path: Path) -> None:
        try:
            json.loads(state_path.read_text(encoding="utf-8"))
            shutil.copy2(state_path, self._storage_state_backup_path(state_path))
        except Exception:
            logger.debug("Failed to write storage_state backup.", exc_info=True)

    def _quarantine_file(self, path: Path, *, prefix: str) -> None:
        try:
            stamp = time.strftime("%Y%m%d_%H%M%S")
            path.rename(path.with_name(f"{path.name}.corrupt-{prefix}-{stamp}"))
        except Exception:
            logger.debug("Failed to quarantine file=%s", path, exc_info=True)
