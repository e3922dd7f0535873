from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _read_env(name: str, default: T, parse: Callable[[str], Optional[T]]) -> T:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = parse(raw)
    except ValueError:
        return default
    return default if value is None else value


def _positive(cast: Callable[[str], T]) -> Callable[[str], Optional[T]]:
    def parse(raw: str) -> Optional[T]:
        value = cast(raw)
        return value if value > 0 else None  # type: ignore[operator]

    return parse


def _boolean(raw: str) -> Optional[bool]:
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def read_float_env(name: str, default: float) -> float:
    return _read_env(name, default, _positive(float))


def read_int_env(name: str, default: int) -> int:
    return _read_env(name, default, _positive(int))


def read_bool_env(name: str, default: bool) -> bool:
    return _read_env(name, default, _boolean)


def read_str_env(name: str, default: str) -> str:
    return _read_env(name, default, str)


@dataclass(frozen=True)
class OverlayConfig:
    strict_invariants: bool
    translation_locale: str
    autocomplete_url: str
    autocomplete_timeout_s: float
    recent_history_limit: int
    settings_path: str
    search_url_template: str
    tag_translation_enabled: bool


def load_overlay_config() -> OverlayConfig:
    return OverlayConfig(
        strict_invariants=read_bool_env("OVERLAY_STRICT_INVARIANTS", False),
        translation_locale=read_str_env("TAG_TRANSLATION_LOCALE", "en"),
        autocomplete_url=read_str_env("AUTOCOMPLETE_URL", "https://www.pixiv.net/rpc/cps.php"),
        autocomplete_timeout_s=read_float_env("AUTOCOMPLETE_TIMEOUT_SECONDS", 5.0),
        recent_history_limit=read_int_env("RECENT_HISTORY_LIMIT", 50),
        settings_path=read_str_env("SETTINGS_PATH", "./settings/overlay_settings.json"),
        search_url_template=read_str_env(
            "SEARCH_URL_TEMPLATE", "https://www.pixiv.net/tags/{query}/artworks#ppixiv"
        ),
        tag_translation_enabled=read_bool_env("TAG_TRANSLATION_ENABLED", False),
    )
