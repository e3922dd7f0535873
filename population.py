from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from collaborators import SEARCH_HISTORY, AutocompleteCandidate, HistoryStore, TranslationProvider
from overlay_state import CancellationToken, Entry, EntrySource, OverlayModel, PopulationResult
from search_tags import describe_search, referenced_tags, search_label

T = TypeVar("T")


async def read_collaborator(call: Awaitable[T], default: T, what: str) -> T:
    try:
        return await call
    except Exception as exc:  # noqa: BLE001 - collaborator boundary
        logging.warning("collaborator_failed call=%s error=%r", what, exc)
        return default


@dataclass(frozen=True)
class SourceSnapshot:
    history: tuple[str, ...] = ()
    autocomplete: tuple[AutocompleteCandidate, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)


class PopulationSource:
    name = "source"

    async def snapshot(self) -> SourceSnapshot:
        raise NotImplementedError

    def collect_keys(self, snapshot: SourceSnapshot) -> set[str]:
        return set()

    def build_entries(self, snapshot: SourceSnapshot, translations: Mapping[str, str]) -> list[Entry]:
        raise NotImplementedError


def _search_entry(search: str, source: EntrySource, translations: Mapping[str, str], metadata: Any = None) -> Entry:
    words = describe_search(search, translations)
    return Entry(
        key=search,
        label=search_label(search, words, translations),
        source=source,
        metadata=metadata,
        words=words,
    )


class SearchHistorySource(PopulationSource):
    name = "search-history"

    def __init__(
        self,
        history: HistoryStore,
        autocomplete_results: Callable[[], Sequence[AutocompleteCandidate]] = tuple,
    ) -> None:
        self._history = history
        self._autocomplete_results = autocomplete_results

    async def snapshot(self) -> SourceSnapshot:
        autocomplete = tuple(self._autocomplete_results())
        history = await read_collaborator(self._history.get_recent(SEARCH_HISTORY), (), "history.get_recent")
        return SourceSnapshot(history=tuple(history), autocomplete=autocomplete)

    def collect_keys(self, snapshot: SourceSnapshot) -> set[str]:
        keys = set(referenced_tags(snapshot.history))
        keys.update(referenced_tags(candidate.key for candidate in snapshot.autocomplete))
        return keys

    def build_entries(self, snapshot: SourceSnapshot, translations: Mapping[str, str]) -> list[Entry]:
        entries: list[Entry] = []
        for candidate in snapshot.autocomplete:
            labelled = dict(translations)
            if candidate.label and candidate.key not in labelled:
                labelled[candidate.key] = candidate.label
            entries.append(_search_entry(candidate.key, EntrySource.AUTOCOMPLETE, labelled, metadata=candidate))
        for search in snapshot.history:
            entries.append(_search_entry(search, EntrySource.HISTORY, translations))
        return entries


class EditTagsSource(PopulationSource):
    name = "search-edit"

    def __init__(self, history: HistoryStore) -> None:
        self._history = history

    async def snapshot(self) -> SourceSnapshot:
        history = await read_collaborator(self._history.get_recent(SEARCH_HISTORY), (), "history.get_recent")
        return SourceSnapshot(history=tuple(history))

    def collect_keys(self, snapshot: SourceSnapshot) -> set[str]:
        return set(referenced_tags(snapshot.history, skip_operators=True))

    def build_entries(self, snapshot: SourceSnapshot, translations: Mapping[str, str]) -> list[Entry]:
        tags = referenced_tags(snapshot.history, skip_operators=True)
        entries = [_search_entry(tag, EntrySource.HISTORY, translations) for tag in tags]
        entries.sort(key=lambda entry: entry.label.casefold())
        return entries


class PopulationPipeline:
    def __init__(
        self,
        model: OverlayModel,
        source: PopulationSource,
        translations: Optional[TranslationProvider] = None,
        locale: str = "en",
    ) -> None:
        self.model = model
        self.source = source
        self._translations = translations
        self._locale = locale
        self._token: Optional[CancellationToken] = None

    @property
    def running(self) -> bool:
        return self._token is not None and self.model.is_current(self._token)

    async def populate(self) -> PopulationResult:
        self.cancel()
        token = self._token = self.model.begin_population()

        snapshot = await self.source.snapshot()
        if not self.model.is_current(token):
            return self._superseded(token, "snapshot")

        keys = self.source.collect_keys(snapshot)
        translations = await self._lookup_translations(keys)
        if not self.model.is_current(token):
            return self._superseded(token, "translations")

        entries = self.source.build_entries(snapshot, translations)
        if not self.model.is_current(token):
            return self._superseded(token, "build")

        self.model.replace_entries(entries)
        if self._token is token:
            self._token = None
        logging.debug(
            "populate_published overlay=%s generation=%d entries=%d",
            self.model.name,
            token.generation,
            len(entries),
        )
        return PopulationResult.PUBLISHED

    def cancel(self) -> None:
        token, self._token = self._token, None
        if token is not None:
            token.cancel()

    async def _lookup_translations(self, keys: set[str]) -> Mapping[str, str]:
        if not keys or self._translations is None:
            return {}
        translated = await read_collaborator(
            self._translations.get_translations(sorted(keys), self._locale),
            {},
            "translations.get_translations",
        )
        return dict(translated or {})

    def _superseded(self, token: CancellationToken, step: str) -> PopulationResult:
        logging.debug(
            "populate_superseded overlay=%s generation=%d current=%d step=%s",
            self.model.name,
            token.generation,
            self.model.generation,
            step,
        )
        return PopulationResult.SUPERSEDED
