from __future__ import annotations

import logging
from typing import Optional

from autocomplete import AutocompleteCoalescer
from collaborators import (
    SEARCH_HISTORY,
    AutocompleteProvider,
    HistoryStore,
    Navigator,
    SettingsStore,
    TranslationProvider,
)
from keyboard_navigation import KeyEvent, SearchInput, SelectionNavigator, TextOrigin
from overlay_controller import ExclusiveOverlayGroup, OverlayController
from overlay_events import BackgroundTasks, Subscription, ViewScope
from overlay_state import Entry, OverlayModel
from population import EditTagsSource, PopulationPipeline, SearchHistorySource
from search_tags import split_search_tags, toggle_search_tag

DEFAULT_DROPDOWN_WIDTH = "400px"
FILTER_PREFIX = "f:"


class _PersistedWidth:
    def __init__(self, settings: SettingsStore, key: str) -> None:
        self._settings = settings
        self._key = key

    @property
    def width(self) -> str:
        return str(self._settings.get(self._key, DEFAULT_DROPDOWN_WIDTH) or DEFAULT_DROPDOWN_WIDTH)

    @width.setter
    def width(self, value: str) -> None:
        self._settings.set(self._key, value)


class TagSearchDropdown(_PersistedWidth):
    def __init__(
        self,
        search_input: SearchInput,
        history: HistoryStore,
        translations: Optional[TranslationProvider],
        autocomplete: AutocompleteProvider,
        settings: SettingsStore,
        *,
        locale: str = "en",
        strict: bool = False,
    ) -> None:
        super().__init__(settings, "tag-dropdown-width")
        self._input = search_input
        self._history = history
        self._tasks = BackgroundTasks("tag-dropdown")
        self.coalescer = AutocompleteCoalescer(
            autocomplete,
            read_input=lambda: self._input.text,
            on_results=self._autocomplete_updated,
        )
        self.model = OverlayModel("tag-dropdown", strict=strict)
        self.pipeline = PopulationPipeline(
            self.model,
            SearchHistorySource(history, lambda: self.coalescer.results),
            translations,
            locale,
        )
        self.controller = OverlayController(self.pipeline, on_hidden=self._input.blur)
        self.navigator = SelectionNavigator(self.model, self._input, on_navigate=self.coalescer.cancel)
        self._subscriptions: list[Subscription] = [
            history.changed.connect(self._history_changed),
            self._input.changed.connect(self._input_changed),
        ]

    @property
    def visible(self) -> bool:
        return self.controller.visible

    @property
    def shown(self) -> bool:
        return self.controller.shown

    @property
    def entries(self) -> tuple[Entry, ...]:
        return self.model.entries

    async def show(self) -> bool:
        return await self.controller.show()

    def hide(self) -> None:
        self.controller.hide()

    def handle_key(self, event: KeyEvent) -> bool:
        if not self.controller.visible:
            return False
        return self.navigator.handle_key(event)

    def activate(self, index: int) -> Optional[Entry]:
        if not 0 <= index < len(self.model.entries):
            self.model.violation(f"activated entry {index} outside {len(self.model.entries)} entries")
            return None
        entry = self.model.entries[index]
        self.hide()
        return entry

    def remove_history_entry(self, key: str) -> None:
        logging.info("history_entry_removed search=%r", key)
        self._history.remove_recent(SEARCH_HISTORY, key)

    async def wait_idle(self) -> None:
        await self._tasks.drain()

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self.coalescer.cancel()
        self.hide()
        self._tasks.cancel_all()

    def _input_changed(self, text: str, origin: TextOrigin) -> None:
        if origin is not TextOrigin.USER or not self.controller.visible:
            return
        self.navigator.set_selection(None)
        self.coalescer.on_query_changed(text)

    def _autocomplete_updated(self) -> None:
        self._tasks.spawn(self.controller.refresh(), label="autocomplete-refresh")

    def _history_changed(self, kind: str) -> None:
        if kind != SEARCH_HISTORY:
            return
        self._tasks.spawn(self.controller.refresh(), label="history-refresh")


class TagSearchEditDropdown(_PersistedWidth):
    def __init__(
        self,
        search_input: SearchInput,
        history: HistoryStore,
        translations: Optional[TranslationProvider],
        settings: SettingsStore,
        navigator: Navigator,
        *,
        locale: str = "en",
        strict: bool = False,
    ) -> None:
        super().__init__(settings, "search-edit-dropdown-width")
        self._input = search_input
        self._navigator = navigator
        self._tasks = BackgroundTasks("search-edit-dropdown")
        self.model = OverlayModel("search-edit-dropdown", strict=strict)
        self.pipeline = PopulationPipeline(self.model, EditTagsSource(history), translations, locale)
        # Toggling tags navigates repeatedly; keep those searches out of history while open.
        self.controller = OverlayController(
            self.pipeline,
            while_open=history.set_adding_disabled,
            on_hidden=self._input.blur,
        )
        self._subscriptions: list[Subscription] = [history.changed.connect(self._history_changed)]

    @property
    def visible(self) -> bool:
        return self.controller.visible

    @property
    def shown(self) -> bool:
        return self.controller.shown

    @property
    def entries(self) -> tuple[Entry, ...]:
        return self.model.entries

    def highlighted_keys(self) -> frozenset[str]:
        tags = set(split_search_tags(self._input.text))
        return frozenset(entry.key for entry in self.model.entries if entry.key in tags)

    def toggle_tag(self, tag: str) -> str:
        logging.info("search_tag_toggled tag=%r", tag)
        search = toggle_search_tag(self._input.text, tag)
        self._input.set_text(search, origin=TextOrigin.PROGRAM)
        self._input.focus()
        self._navigator.navigate(self._navigator.build_search_url(search), add_to_history=False)
        return search

    async def show(self) -> bool:
        return await self.controller.show()

    def hide(self) -> None:
        self.controller.hide()

    async def wait_idle(self) -> None:
        await self._tasks.drain()

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self.hide()
        self._tasks.cancel_all()

    def _history_changed(self, kind: str) -> None:
        if kind != SEARCH_HISTORY:
            return
        self._tasks.spawn(self.controller.refresh(), label="history-refresh")


class TagSearchBox:
    def __init__(
        self,
        *,
        history: HistoryStore,
        translations: Optional[TranslationProvider],
        autocomplete: AutocompleteProvider,
        settings: SettingsStore,
        navigator: Navigator,
        view_scope: ViewScope,
        locale: str = "en",
        strict: bool = False,
    ) -> None:
        self.input = SearchInput()
        self._history = history
        self._settings = settings
        self._navigator = navigator
        self._view_scope = view_scope
        self._tasks = BackgroundTasks("tag-search-box")
        self._mouse_over = False
        self.dropdown = TagSearchDropdown(
            self.input,
            history,
            translations,
            autocomplete,
            settings,
            locale=locale,
            strict=strict,
        )
        self.edit_dropdown = TagSearchEditDropdown(
            self.input,
            history,
            translations,
            settings,
            navigator,
            locale=locale,
            strict=strict,
        )
        self._overlays = ExclusiveOverlayGroup(self.dropdown.controller, self.edit_dropdown.controller)
        self._subscriptions: list[Subscription] = [
            view_scope.listen(self.hide),
            self.input.focus_changed.connect(self._focus_changed),
        ]

    async def show_history(self) -> bool:
        return await self._overlays.show(self.dropdown.controller)

    async def show_edit(self) -> bool:
        return await self._overlays.show(self.edit_dropdown.controller)

    async def toggle_edit(self) -> bool:
        if self.dropdown.shown:
            self.hide()
        if self.edit_dropdown.shown:
            self.hide()
            return False
        return await self.show_edit()

    def hide(self) -> None:
        self._overlays.hide_all()

    def handle_key(self, event: KeyEvent) -> bool:
        return self.dropdown.handle_key(event)

    def handle_input_changed(self, text: str) -> None:
        self.input.set_text(text, origin=TextOrigin.USER)

    def handle_pointer_enter(self) -> None:
        self._mouse_over = True

    def handle_pointer_leave(self) -> None:
        self._mouse_over = False
        self._hide_if_abandoned()

    def submit_search(self, from_input: bool = True) -> Optional[str]:
        content = self.input.text.strip()
        if not content:
            return None
        if content.startswith(FILTER_PREFIX):
            return self._start_filter(content)
        return self._start_search(content, from_input)

    async def wait_idle(self) -> None:
        await self._tasks.drain()
        await self.dropdown.wait_idle()
        await self.edit_dropdown.wait_idle()

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self.dropdown.shutdown()
        self.edit_dropdown.shutdown()
        self._tasks.cancel_all()

    def _start_filter(self, content: str) -> str:
        expression = content[len(FILTER_PREFIX):]
        if not expression:
            expression = "true"
        else:
            self._history.add_recent(SEARCH_HISTORY, content)
        logging.info("search_filter_applied filter=%r", expression)
        self._settings.set("search-filter", expression)
        self._navigator.reload()
        return expression

    def _start_search(self, search: str, from_input: bool) -> str:
        self._history.add_recent(SEARCH_HISTORY, search)
        if from_input:
            self.input.blur()
            self._view_scope.send_view_hidden()
        url = self._navigator.build_search_url(search)
        self._navigator.navigate(url, add_to_history=True)
        return url

    def _focus_changed(self, focused: bool) -> None:
        if focused:
            if not self.dropdown.shown and not self.edit_dropdown.shown:
                self._tasks.spawn(self.show_history(), label="show-history")
            return
        self._hide_if_abandoned()

    def _hide_if_abandoned(self) -> None:
        if self.dropdown.shown and not self.input.focused and not self._mouse_over:
            self.hide()
