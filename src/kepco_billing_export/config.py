from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .portal.extractor import SCHEMAS
from .portal.locators import PortalLocators
from .portal.navigator import NavigationTiming


DEFAULT_BASE_URL = "https://online.kepco.co.kr"

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


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


def _env_first(*names: str, default: str = "") -> str:
    # First non-empty variable wins; lets the older USER_ID/USER_PW/USER_NUMBER names keep working.
    for name in names:
        value = os.getenv(name, "")
        if value:
            return value
    return default


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
    Provide a sensible env-only config so most users only need `.env`.

    YAML remains an optional override (timeouts, locators).
    """
    return {
        "portal": {
            "base_url": os.getenv("KEPCO_BASE_URL", DEFAULT_BASE_URL),
            "user_id": _env_first("KEPCO_USER_ID", "USER_ID"),
            "password": _env_first("KEPCO_USER_PW", "USER_PW"),
            "customer_number": _env_first("KEPCO_CUSTOMER_NUMBER", "USER_NUMBER"),
        },
        "browser": {
            "headless": _env_bool("KEPCO_HEADLESS", default=True),
            "viewport_width": os.getenv("KEPCO_VIEWPORT_WIDTH", "774"),
            "viewport_height": os.getenv("KEPCO_VIEWPORT_HEIGHT", "857"),
        },
        "extraction": {
            "max_concurrency": os.getenv("KEPCO_MAX_CONCURRENCY", "0"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
        },
    }


class PortalConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    user_id: str
    password: str = Field(repr=False)
    customer_number: str

    @model_validator(mode="after")
    def _validate(self) -> "PortalConfig":
        missing = [
            name
            for name, value in (
                ("portal.user_id (KEPCO_USER_ID)", self.user_id),
                ("portal.password (KEPCO_USER_PW)", self.password),
                ("portal.customer_number (KEPCO_CUSTOMER_NUMBER)", self.customer_number),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ValueError(f"Missing required setting(s): {', '.join(missing)}")

        base_url = (self.base_url or DEFAULT_BASE_URL).strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"portal.base_url must be a full URL like {DEFAULT_BASE_URL!r}")
        self.base_url = base_url
        return self


class BrowserConfig(BaseModel):
    headless: bool = True
    viewport_width: int = Field(default=774, gt=0)
    viewport_height: int = Field(default=857, gt=0)
    slow_mo_ms: int = Field(default=0, ge=0)


class TimingConfig(BaseModel):
    ready_timeout_s: float = Field(default=15.0, gt=0)
    ready_interval_s: float = Field(default=0.5, gt=0)
    busy_timeout_s: float = Field(default=20.0, gt=0)
    busy_interval_s: float = Field(default=1.0, gt=0)
    retry_attempts: int = Field(default=10, ge=1)
    retry_backoff_s: float = Field(default=1.0, ge=0)

    def to_timing(self) -> NavigationTiming:
        return NavigationTiming(**self.model_dump())


class ExtractionConfig(BaseModel):
    # 0 = one task per row, no cap.
    max_concurrency: int = Field(default=0, ge=0)
    recent_schema: str = "annual_card"
    older_schema: str = "monthly_detail"
    include_history: bool = True

    @field_validator("recent_schema", "older_schema")
    @classmethod
    def _known_schema(cls, v: str) -> str:
        name = (v or "").strip().lower()
        if name not in SCHEMAS:
            raise ValueError(f"unknown record schema {v!r} (known: {', '.join(sorted(SCHEMAS))})")
        return name


class LoggingConfig(BaseModel):
    level: str = "INFO"
    # Empty = stderr only (stdout carries the JSON output).
    file_path: str = ""


class AppConfig(BaseModel):
    portal: PortalConfig
    browser: BrowserConfig = BrowserConfig()
    timing: TimingConfig = TimingConfig()
    extraction: ExtractionConfig = ExtractionConfig()
    logging: LoggingConfig = LoggingConfig()
    # Locator overrides by PortalLocators field name, e.g. {"menu_button": "id=new_menu_id"}.
    locators: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_locators(self) -> "AppConfig":
        self.portal_locators()
        return self

    def portal_locators(self) -> PortalLocators:
        return PortalLocators().with_overrides(self.locators)


def load_config(path: Union[str, Path, None]) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
