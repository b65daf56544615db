from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_SENDER = "contact@vpass.ne.jp"
DEFAULT_SUBJECT = "ご利用のお知らせ"


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`; a YAML file is an optional override.
    """
    return {
        "gmail": {
            "mailbox": os.getenv("GMAIL_MAILBOX", "0"),
            "base_url": os.getenv("GMAIL_BASE_URL", "https://mail.google.com"),
            "cdp_url": os.getenv("GMAIL_CDP_URL", ""),
            "storage_state_path": os.getenv("GMAIL_STORAGE_STATE", "data/gmail_storage_state.json"),
            "browser_channel": os.getenv("GMAIL_BROWSER_CHANNEL", ""),
            "headless": _env_bool("GMAIL_HEADLESS", default=True),
        },
        "search": {
            "sender": os.getenv("SEARCH_SENDER", DEFAULT_SENDER),
            "subject": os.getenv("SEARCH_SUBJECT", DEFAULT_SUBJECT),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/aggregate.log"),
        },
        "debug_dir": os.getenv("DEBUG_DIR", "data/debug"),
    }


class GmailConfig(BaseModel):
    """
    Where the Gmail UI lives and how to get a signed-in browser.

    Either attach to a running Chrome started with `--remote-debugging-port` (`cdp_url`), or launch
    Chromium with a Playwright storage_state captured from a signed-in session.
    """

    mailbox: int = Field(default=0, ge=0)
    base_url: str = "https://mail.google.com"
    cdp_url: str = ""
    storage_state_path: str = "data/gmail_storage_state.json"
    browser_channel: str = ""
    headless: bool = True

    @model_validator(mode="after")
    def _normalize(self) -> "GmailConfig":
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("gmail.base_url must be a full URL like 'https://mail.google.com'")
        self.base_url = base_url
        self.cdp_url = (self.cdp_url or "").strip()
        return self

    @property
    def mailbox_url(self) -> str:
        return f"{self.base_url}/mail/u/{self.mailbox}"


class SearchConfig(BaseModel):
    sender: str = DEFAULT_SENDER
    subject: str = DEFAULT_SUBJECT


class TimingConfig(BaseModel):
    """
    Poll intervals, timeouts and settle delays (milliseconds). Gmail's render latency is unbounded,
    so timeouts are conservative.
    """

    url_change_timeout_ms: int = 5_000
    url_change_poll_ms: int = 100
    search_settle_ms: int = 2_000
    search_timeout_ms: int = 20_000
    search_poll_ms: int = 500
    results_settle_ms: int = 500

    open_settle_ms: int = 1_500
    content_timeout_ms: int = 10_000
    content_poll_ms: int = 300

    expand_max_rounds: int = Field(default=20, ge=0)
    expand_settle_ms: int = 400

    back_settle_ms: int = 1_000
    list_timeout_ms: int = 8_000
    list_poll_ms: int = 300


class ExtractionConfig(BaseModel):
    # Bodies shorter than this are ignored by the extractor.
    min_text_length: int = 10
    # A message body counts as rendered (and not collapsed) once it has this many characters.
    min_body_length: int = 50


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/aggregate.log"


class AppConfig(BaseModel):
    gmail: GmailConfig = GmailConfig()
    search: SearchConfig = SearchConfig()
    timing: TimingConfig = TimingConfig()
    extraction: ExtractionConfig = ExtractionConfig()
    logging: LoggingConfig = LoggingConfig()
    debug_dir: str = "data/debug"


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
