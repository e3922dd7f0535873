from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from collaborators import BOOKMARK_TAG_HISTORY, BookmarkActions, HistoryStore, IllustDataSource, TranslationProvider
from overlay_controller import OverlayController
from overlay_events import BackgroundTasks, Signal, Subscription, ViewScope
from overlay_state import Entry, EntrySource, OverlayModel
from population import PopulationPipeline, PopulationSource, SourceSnapshot, read_collaborator


@dataclass(frozen=True)
class BookmarkTagMetadata:
    illust_id: str
    active: bool


class BookmarkTagsSource(PopulationSource):
    name = "bookmark-tags"

    def __init__(
        self,
        illust_data: IllustDataSource,
        history: HistoryStore,
        current_illust: Callable[[], Optional[str]],
        carried_tags: Callable[[Optional[str]], Sequence[str]],
    ) -> None:
        self._illust_data = illust_data
        self._history = history
        self._current_illust = current_illust
        self._carried_tags = carried_tags
        self._loaded_illust_id: Optional[str] = None

    async def snapshot(self) -> SourceSnapshot:
        illust_id = self._current_illust()
        carried = tuple(self._carried_tags(illust_id))
        bookmark_tags: Optional[Sequence[str]] = None
        if illust_id is not None:
            bookmark_tags = await read_collaborator(
                self._illust_data.get_bookmark_tags(illust_id), None, "illust_data.get_bookmark_tags"
            )
        recent = await read_collaborator(
            self._history.get_recent(BOOKMARK_TAG_HISTORY), (), "history.get_recent"
        )
        return SourceSnapshot(
            history=tuple(recent),
            extra={
                "illust_id": illust_id,
                "bookmark_tags": tuple(bookmark_tags or ()),
                "carried": carried,
            },
        )

    def collect_keys(self, snapshot: SourceSnapshot) -> set[str]:
        return set(self._active_tags(snapshot)) | set(snapshot.history)

    def build_entries(self, snapshot: SourceSnapshot, translations: Mapping[str, str]) -> list[Entry]:
        illust_id = snapshot.extra.get("illust_id")
        active = self._active_tags(snapshot)
        shown = sorted(set(active) | set(snapshot.history))
        self._loaded_illust_id = illust_id
        return [
            Entry(
                key=tag,
                label=translations.get(tag) or tag,
                source=EntrySource.HISTORY,
                metadata=BookmarkTagMetadata(illust_id=illust_id, active=tag in active),
            )
            for tag in shown
        ]

    def pop_loaded_illust(self) -> Optional[str]:
        illust_id, self._loaded_illust_id = self._loaded_illust_id, None
        return illust_id

    @staticmethod
    def _active_tags(snapshot: SourceSnapshot) -> list[str]:
        active = list(snapshot.extra.get("bookmark_tags", ()))
        for tag in snapshot.extra.get("carried", ()):
            if tag not in active:
                active.append(tag)
        return active


class BookmarkTagEditor:
    def __init__(
        self,
        illust_data: IllustDataSource,
        actions: BookmarkActions,
        history: HistoryStore,
        translations: Optional[TranslationProvider] = None,
        *,
        view_scope: Optional[ViewScope] = None,
        locale: str = "en",
        strict: bool = False,
    ) -> None:
        self._illust_data = illust_data
        self._actions = actions
        self._history = history
        self._illust_id: Optional[str] = None
        self._displaying_illust_id: Optional[str] = None
        self._active: set[str] = set()
        self._tasks = BackgroundTasks("bookmark-tag-editor")
        self._source = BookmarkTagsSource(illust_data, history, lambda: self._illust_id, self._carried_tags)
        self.model = OverlayModel("bookmark-tag-editor", strict=strict)
        self.pipeline = PopulationPipeline(self.model, self._source, translations, locale)
        self.controller = OverlayController(self.pipeline)
        self.tags_changed = Signal("bookmark-tag-editor.tags_changed")
        self._subscriptions: list[Subscription] = [
            self.model.entries_replaced.connect(self._entries_replaced),
            illust_data.changed.connect(self._illust_changed),
            history.changed.connect(self._history_changed),
        ]
        if view_scope is not None:
            self._subscriptions.append(view_scope.listen(self.hide))

    @property
    def illust_id(self) -> Optional[str]:
        return self._illust_id

    @illust_id.setter
    def illust_id(self, value: Optional[str]) -> None:
        if value == self._illust_id:
            return
        if value is None:
            self.save_current_tags()
        self._illust_id = value
        logging.info("bookmark_editor_illust illust_id=%s", value)
        if value is None:
            self.hide_without_sync()
        elif self.controller.shown:
            self._tasks.spawn(self.controller.refresh(), label="illust-refresh")

    @property
    def displaying_illust_id(self) -> Optional[str]:
        return self._displaying_illust_id

    @property
    def visible(self) -> bool:
        return self.controller.visible

    @property
    def entries(self) -> tuple[Entry, ...]:
        return self.model.entries

    @property
    def selected_tags(self) -> list[str]:
        return [entry.key for entry in self.model.entries if entry.key in self._active]

    async def show(self) -> bool:
        if self._illust_id is None:
            logging.info("bookmark_editor_show_skipped reason=no_illust")
            return False
        return await self.controller.show()

    def hide(self) -> None:
        if not self.controller.shown:
            return
        self.save_current_tags()
        self.controller.hide()

    def hide_without_sync(self) -> None:
        self.controller.hide()

    async def toggle(self) -> bool:
        if self.controller.shown:
            self.hide()
            return False
        return await self.show()

    def toggle_tag(self, tag: str) -> bool:
        if tag not in {entry.key for entry in self.model.entries}:
            self.model.violation(f"toggled tag {tag!r} is not listed")
            return False
        if tag in self._active:
            self._active.discard(tag)
        else:
            self._active.add(tag)
        active = tag in self._active
        logging.debug("bookmark_tag_toggled tag=%r active=%s", tag, active)
        self.tags_changed.emit(self.selected_tags)
        return active

    def save_current_tags(self) -> Optional[asyncio.Task[Any]]:
        illust_id = self._illust_id
        if illust_id is None or illust_id != self._displaying_illust_id:
            return None
        return self._tasks.spawn(self._save(illust_id, self.selected_tags), label="save-tags")

    async def wait_idle(self) -> None:
        await self._tasks.drain()

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self.hide_without_sync()
        self._tasks.cancel_all()

    async def _save(self, illust_id: str, tags: list[str]) -> bool:
        current = await read_collaborator(
            self._illust_data.get_bookmark_tags(illust_id), None, "illust_data.get_bookmark_tags"
        )
        old_tags = list(current or [])
        if len(old_tags) == len(tags) and set(old_tags) == set(tags):
            return False
        logging.info("bookmark_tags_changed illust_id=%s old=%s new=%s", illust_id, old_tags, tags)
        await self._actions.edit_bookmark_tags(illust_id, tags)
        # The first tag ends up most recent.
        for tag in reversed(tags):
            self._history.add_recent(BOOKMARK_TAG_HISTORY, tag)
        return True

    def _carried_tags(self, illust_id: Optional[str]) -> Sequence[str]:
        if illust_id is None or illust_id != self._displaying_illust_id:
            return ()
        return self.selected_tags

    def _entries_replaced(self, entries: tuple[Entry, ...]) -> None:
        self._displaying_illust_id = self._source.pop_loaded_illust()
        self._active = {
            entry.key
            for entry in entries
            if isinstance(entry.metadata, BookmarkTagMetadata) and entry.metadata.active
        }

    def _illust_changed(self, illust_id: str) -> None:
        if illust_id != self._illust_id or not self.controller.shown:
            return
        self._tasks.spawn(self.controller.refresh(), label="illust-refresh")

    def _history_changed(self, kind: str) -> None:
        if kind != BOOKMARK_TAG_HISTORY or not self.controller.shown:
            return
        self._tasks.spawn(self.controller.refresh(), label="history-refresh")
