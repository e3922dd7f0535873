from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence
from urllib.parse import quote

from overlay_events import Signal, Subscription

SEARCH_HISTORY = "recent-tag-searches"
BOOKMARK_TAG_HISTORY = "recent-bookmark-tags"


@dataclass(frozen=True)
class AutocompleteCandidate:
    key: str
    label: str = ""


class HistoryStore(Protocol):
    changed: Signal

    async def get_recent(self, kind: str) -> Sequence[str]: ...

    def add_recent(self, kind: str, value: str) -> None: ...

    def remove_recent(self, kind: str, value: str) -> None: ...

    def set_adding_disabled(self, disabled: bool) -> None: ...


class TranslationProvider(Protocol):
    async def get_translations(self, keys: Iterable[str], locale: str) -> Mapping[str, str]: ...


class AutocompleteProvider(Protocol):
    async def fetch_candidates(self, keyword: str) -> Sequence[AutocompleteCandidate]: ...


class Navigator(Protocol):
    def build_search_url(self, expression: str) -> str: ...

    def navigate(self, url: str, add_to_history: bool) -> None: ...

    def reload(self) -> None: ...


class IllustDataSource(Protocol):
    changed: Signal

    async def get_bookmark_tags(self, illust_id: str) -> Optional[list[str]]: ...


class BookmarkActions(Protocol):
    async def edit_bookmark_tags(self, illust_id: str, tags: Sequence[str]) -> None: ...


class SettingsStore:
    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path) if path else None
        self._values: dict[str, Any] = {}
        self._callbacks: dict[str, Signal] = {}
        self._load()

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if key in self._values and self._values[key] == value:
            return
        self._values[key] = value
        self._save()
        signal = self._callbacks.get(key)
        if signal is not None:
            signal.emit(key, value)

    def register_change_callback(self, key: str, callback: Callable[[str, Any], Any]) -> Subscription:
        signal = self._callbacks.setdefault(key, Signal(f"settings.{key}"))
        return signal.connect(callback)

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            loaded = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logging.warning("settings_load_failed path=%s error=%s", self._path, exc)
            return
        if isinstance(loaded, dict):
            self._values.update(loaded)

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as handle:
                json.dump(self._values, handle, ensure_ascii=False, indent=2)
        except OSError as exc:
            logging.warning("settings_save_failed path=%s error=%s", self._path, exc)


class RecentHistory:
    def __init__(self, settings: SettingsStore, limit: int = 50) -> None:
        self._settings = settings
        self._limit = limit
        self._adding_disabled = False
        self.changed = Signal("history.changed")

    @property
    def adding_disabled(self) -> bool:
        return self._adding_disabled

    async def get_recent(self, kind: str) -> Sequence[str]:
        return self._read(kind)

    def add_recent(self, kind: str, value: str) -> None:
        cleaned = (value or "").strip()
        if not cleaned:
            return
        if self._adding_disabled and kind == SEARCH_HISTORY:
            logging.debug("history_add_suppressed kind=%s value=%r", kind, cleaned)
            return
        items = [item for item in self._read(kind) if item != cleaned]
        items.insert(0, cleaned)
        self._write(kind, items[: self._limit])

    def remove_recent(self, kind: str, value: str) -> None:
        items = self._read(kind)
        if value not in items:
            return
        items.remove(value)
        self._write(kind, items)

    def replace_recent(self, kind: str, values: Sequence[str]) -> None:
        self._write(kind, list(values)[: self._limit])

    def set_adding_disabled(self, disabled: bool) -> None:
        self._adding_disabled = disabled

    def _read(self, kind: str) -> list[str]:
        return list(self._settings.get(kind, None) or [])

    def _write(self, kind: str, items: list[str]) -> None:
        self._settings.set(kind, items)
        self.changed.emit(kind)


class DictionaryTranslations:
    def __init__(self, table: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        self._table: dict[str, dict[str, str]] = {
            locale: dict(entries) for locale, entries in (table or {}).items()
        }

    def add(self, locale: str, key: str, label: str) -> None:
        self._table.setdefault(locale, {})[key] = label

    async def get_translations(self, keys: Iterable[str], locale: str) -> Mapping[str, str]:
        known = self._table.get(locale, {})
        return {key: known[key] for key in keys if key in known}


class SearchNavigator:
    def __init__(self, url_template: str) -> None:
        self._url_template = url_template
        self.navigated = Signal("navigator.navigated")
        self.reloaded = Signal("navigator.reloaded")

    def build_search_url(self, expression: str) -> str:
        return self._url_template.format(query=quote(expression.strip(), safe=""))

    def navigate(self, url: str, add_to_history: bool) -> None:
        logging.info("navigate url=%s add_to_history=%s", url, add_to_history)
        self.navigated.emit(url, add_to_history)

    def reload(self) -> None:
        logging.info("navigate_reload")
        self.reloaded.emit()


class InMemoryIllustData:
    def __init__(self, bookmarks: Optional[Mapping[str, Optional[Sequence[str]]]] = None) -> None:
        self._bookmarks: dict[str, Optional[list[str]]] = {
            illust_id: (list(tags) if tags is not None else None)
            for illust_id, tags in (bookmarks or {}).items()
        }
        self.changed = Signal("illust_data.changed")

    async def get_bookmark_tags(self, illust_id: str) -> Optional[list[str]]:
        tags = self._bookmarks.get(illust_id)
        return list(tags) if tags is not None else None

    async def edit_bookmark_tags(self, illust_id: str, tags: Sequence[str]) -> None:
        self._bookmarks[illust_id] = list(tags)
        logging.info("bookmark_tags_saved illust_id=%s tags=%s", illust_id, list(tags))
        self.changed.emit(illust_id)
