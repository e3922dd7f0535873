from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any, Optional

from dotenv import load_dotenv
from PyQt6.QtWidgets import QApplication
from qasync import QEventLoop

from autocomplete import AutocompleteClient
from bookmark_tag_editor import BookmarkTagEditor
from collaborators import (
    DictionaryTranslations,
    InMemoryIllustData,
    RecentHistory,
    SearchNavigator,
    SettingsStore,
    TranslationProvider,
)
from config_utils import OverlayConfig, load_overlay_config
from context_menu import ContextMenuArbiter, ContextMenuOverlay, PointerEvent
from keyboard_navigation import KeyEvent, TextOrigin
from overlay_events import BackgroundTasks, ViewScope
from overlay_state import Entry, OverlayState
from overlay_ui import SearchOverlayWindow
from tag_search_box import TagSearchBox
from tag_translation_service import TagTranslationService


class TagSearchOverlayController:
    def __init__(
        self,
        ui: SearchOverlayWindow,
        loop: asyncio.AbstractEventLoop,
        config: Optional[OverlayConfig] = None,
    ) -> None:
        self.ui = ui
        self.loop = loop
        self.config = config or load_overlay_config()
        self._tasks = BackgroundTasks("controller")

        self.settings = SettingsStore(self.config.settings_path)
        self.history = RecentHistory(self.settings, limit=self.config.recent_history_limit)
        self.translations = self._build_translations()
        self.autocomplete = AutocompleteClient(
            self.config.autocomplete_url,
            timeout_s=self.config.autocomplete_timeout_s,
        )
        self.navigator = SearchNavigator(self.config.search_url_template)
        self.illust_data = InMemoryIllustData()

        self.root_scope = ViewScope("window")
        self.search_box = TagSearchBox(
            history=self.history,
            translations=self.translations,
            autocomplete=self.autocomplete,
            settings=self.settings,
            navigator=self.navigator,
            view_scope=self.root_scope.child("search-box"),
            locale=self.config.translation_locale,
            strict=self.config.strict_invariants,
        )
        self.context_menu = ContextMenuOverlay(self.root_scope, while_open=self.ui.set_popup_ui_hidden)
        self.arbiter = ContextMenuArbiter(self.context_menu, self.settings, scheduler=self.loop)
        self.bookmark_editor = BookmarkTagEditor(
            self.illust_data,
            self.illust_data,
            self.history,
            self.translations,
            view_scope=self.context_menu.scope,
            locale=self.config.translation_locale,
            strict=self.config.strict_invariants,
        )

        self.ui.query_edited.connect(self.search_box.handle_input_changed)
        self.ui.search_submitted.connect(self._on_search_submitted)
        self.ui.navigation_key.connect(self._on_navigation_key)
        self.ui.search_focus_changed.connect(self._on_search_focus_changed)
        self.ui.search_hover_changed.connect(self._on_search_hover_changed)
        self.ui.edit_toggled.connect(self._on_edit_toggled)
        self.ui.entry_activated.connect(self._on_entry_activated)
        self.ui.entry_removed.connect(self.search_box.dropdown.remove_history_entry)
        self.ui.tag_toggled.connect(self.search_box.edit_dropdown.toggle_tag)
        self.ui.bookmark_tag_toggled.connect(self.bookmark_editor.toggle_tag)
        self.ui.illust_changed.connect(self._on_illust_changed)
        self.ui.pointer_pressed.connect(self._on_pointer_pressed)
        self.ui.pointer_released.connect(self.arbiter.handle_pointer_up)
        self.ui.window_blurred.connect(self.arbiter.handle_window_blur)
        self.ui.native_menu_filter = self.arbiter.handle_context_menu

        self._project_state()
        self.ui.set_dropdown_width(self.search_box.dropdown.width)
        self.ui.set_edit_width(self.search_box.edit_dropdown.width)
        self.ui.set_status("Ready. Focus the search box to see recent searches.")

    def shutdown_sync(self) -> None:
        self.search_box.shutdown()
        self.bookmark_editor.shutdown()
        self.arbiter.shutdown()
        self._tasks.cancel_all()
        if not self.loop.is_closed():
            self.loop.create_task(self.autocomplete.aclose(), name="autocomplete-close")

    def _build_translations(self) -> TranslationProvider:
        if not self.config.tag_translation_enabled:
            return DictionaryTranslations()
        try:
            return TagTranslationService()
        except RuntimeError as exc:
            logging.warning("tag_translation_disabled error=%s", exc)
            return DictionaryTranslations()

    def _project_state(self) -> None:
        box = self.search_box
        box.input.changed.connect(self._on_input_changed)
        box.input.focus_changed.connect(self._on_box_focus_changed)
        box.dropdown.model.entries_replaced.connect(self.ui.set_dropdown_entries)
        box.dropdown.model.selection_changed.connect(self.ui.set_dropdown_selection)
        box.dropdown.controller.state_changed.connect(
            lambda state: self.ui.set_dropdown_visible(state is OverlayState.VISIBLE)
        )
        box.edit_dropdown.model.entries_replaced.connect(
            lambda entries: self.ui.set_edit_entries(entries, box.edit_dropdown.highlighted_keys())
        )
        box.edit_dropdown.controller.state_changed.connect(
            lambda state: self.ui.set_edit_visible(state is OverlayState.VISIBLE)
        )
        self.settings.register_change_callback(
            "tag-dropdown-width", lambda _key, value: self.ui.set_dropdown_width(str(value))
        )
        self.settings.register_change_callback(
            "search-edit-dropdown-width", lambda _key, value: self.ui.set_edit_width(str(value))
        )
        self.context_menu.state_changed.connect(self._on_context_menu_state)
        self.bookmark_editor.model.entries_replaced.connect(self._project_bookmark_tags)
        self.bookmark_editor.tags_changed.connect(lambda _tags: self._project_bookmark_tags())
        self.navigator.navigated.connect(lambda url, _add: self.ui.set_status(f"Search: {url}"))
        self.navigator.reloaded.connect(
            lambda: self.ui.set_status(f"Filter: {self.settings.get('search-filter', '')}")
        )

    def _project_bookmark_tags(self, entries: Optional[tuple[Entry, ...]] = None) -> None:
        editor = self.bookmark_editor
        self.ui.set_bookmark_entries(editor.entries if entries is None else entries, editor.selected_tags)

    def _on_input_changed(self, text: str, origin: TextOrigin) -> None:
        if origin is not TextOrigin.USER:
            self.ui.set_search_text(text)
        if self.search_box.edit_dropdown.visible:
            self.ui.set_edit_highlights(self.search_box.edit_dropdown.highlighted_keys())

    def _on_box_focus_changed(self, focused: bool) -> None:
        if not focused:
            self.ui.search_edit.clearFocus()

    def _on_search_submitted(self) -> None:
        target = self.search_box.submit_search()
        if target is not None:
            self.ui.search_edit.clearFocus()

    def _on_navigation_key(self, key: str) -> None:
        self.search_box.handle_key(KeyEvent(key))

    def _on_search_focus_changed(self, focused: bool) -> None:
        if focused:
            self.search_box.input.focus()
        else:
            self.search_box.input.blur()

    def _on_search_hover_changed(self, hovering: bool) -> None:
        if hovering:
            self.search_box.handle_pointer_enter()
        else:
            self.search_box.handle_pointer_leave()

    def _on_edit_toggled(self) -> None:
        self._schedule(self.search_box.toggle_edit(), "toggle-edit")

    def _on_entry_activated(self, index: int) -> None:
        entry = self.search_box.dropdown.activate(index)
        if entry is None:
            return
        self.search_box.input.set_text(entry.key, origin=TextOrigin.PROGRAM)
        self.search_box.submit_search(from_input=False)

    def _on_illust_changed(self, illust_id: str) -> None:
        self.bookmark_editor.illust_id = illust_id or None

    def _on_pointer_pressed(self, event: PointerEvent) -> None:
        self.arbiter.handle_pointer_down(event)
        self.arbiter.handle_window_pointer_down(event)

    def _on_context_menu_state(self, state: OverlayState) -> None:
        visible = state is OverlayState.VISIBLE
        self.ui.set_context_menu(visible, self.context_menu.anchor)
        if visible:
            self.search_box.hide()
            self._schedule(self.bookmark_editor.show(), "bookmark-editor-show")

    def _schedule(self, coro: Any, label: str) -> None:
        task = self._tasks.spawn(coro, label=label)

        def _report(done_task: asyncio.Task[Any]) -> None:
            if done_task.cancelled() or done_task.exception() is None:
                return
            self.ui.set_status(f"{label} failed: {done_task.exception()}")

        task.add_done_callback(_report)


def main() -> None:
    load_dotenv()
    log_level_name = (os.getenv("LOG_LEVEL", "INFO") or "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(message)s")

    app = QApplication(sys.argv)
    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)

    overlay = SearchOverlayWindow()
    controller = TagSearchOverlayController(overlay, loop)
    app.aboutToQuit.connect(controller.shutdown_sync)
    overlay.show()

    with loop:
        loop.run_forever()


if __name__ == "__main__":
    main()
