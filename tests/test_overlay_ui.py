from __future__ import annotations

import asyncio
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from PyQt6.QtCore import QPoint, Qt
from PyQt6.QtTest import QTest
from PyQt6.QtWidgets import QApplication

from collaborators import SEARCH_HISTORY
from config_utils import OverlayConfig
from context_menu import MouseButton, PointerEvent
from main import TagSearchOverlayController
from overlay_state import Entry, EntrySource
from overlay_ui import SearchOverlayWindow, parse_css_width


def _config(settings_path: str) -> OverlayConfig:
    return OverlayConfig(
        strict_invariants=False,
        translation_locale="en",
        autocomplete_url="https://example.test/rpc/cps.php",
        autocomplete_timeout_s=1.0,
        recent_history_limit=10,
        settings_path=settings_path,
        search_url_template="https://example.test/tags/{query}",
        tag_translation_enabled=False,
    )


class SearchOverlayWindowTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
        cls._app = QApplication.instance() or QApplication([])

    def test_parse_css_width(self) -> None:
        self.assertEqual(parse_css_width("520px"), 520)
        self.assertEqual(parse_css_width(" 300 "), 300)
        self.assertEqual(parse_css_width("wide"), 400)
        self.assertEqual(parse_css_width("", default=250), 250)

    def test_dropdown_projection(self) -> None:
        window = SearchOverlayWindow()
        window.set_dropdown_entries(
            [
                Entry("猫耳", "cat ears", EntrySource.AUTOCOMPLETE),
                Entry("dog", "dog", EntrySource.HISTORY),
            ]
        )
        window.set_dropdown_selection(1)
        window.set_dropdown_visible(True)
        window.set_dropdown_width("320px")

        self.assertEqual(window.dropdown_list.count(), 2)
        first = window.dropdown_list.item(0)
        self.assertTrue(first.font().italic())
        self.assertEqual(first.toolTip(), "猫耳")
        self.assertEqual(first.data(SearchOverlayWindow.ENTRY_KEY_ROLE), "猫耳")
        self.assertEqual(window.dropdown_list.currentRow(), 1)
        self.assertFalse(window.dropdown_list.isHidden())
        self.assertEqual(window.dropdown_list.width(), 320)

        window.set_dropdown_selection(None)
        self.assertEqual(window.dropdown_list.currentRow(), -1)
        window.close()

    def test_edit_and_bookmark_projection(self) -> None:
        window = SearchOverlayWindow()
        entries = [Entry("cat", "Cat", EntrySource.HISTORY), Entry("dog", "dog", EntrySource.HISTORY)]

        window.set_edit_entries(entries, highlighted=["dog"])
        window.set_bookmark_entries(entries, selected=["cat"])

        self.assertFalse(window.edit_list.item(0).font().bold())
        self.assertTrue(window.edit_list.item(1).font().bold())
        self.assertEqual(window.bookmark_list.item(0).checkState(), Qt.CheckState.Checked)
        self.assertEqual(window.bookmark_list.item(1).checkState(), Qt.CheckState.Unchecked)

        window.set_edit_visible(True)
        self.assertTrue(window.edit_button.isChecked())
        window.close()

    def test_context_menu_and_popup_ui(self) -> None:
        window = SearchOverlayWindow()

        window.set_context_menu(True, (30.0, 40.0))
        window.set_popup_ui_hidden(True)

        self.assertFalse(window.context_menu_frame.isHidden())
        self.assertEqual((window.context_menu_frame.x(), window.context_menu_frame.y()), (30, 40))
        self.assertTrue(window.status_label.isHidden())

        window.set_context_menu(False)
        window.set_popup_ui_hidden(False)
        self.assertTrue(window.context_menu_frame.isHidden())
        self.assertFalse(window.status_label.isHidden())
        window.close()

    def test_native_menu_filter_suppresses_popup(self) -> None:
        window = SearchOverlayWindow()
        calls: list[bool] = []

        def suppress() -> bool:
            calls.append(True)
            return True

        window.native_menu_filter = suppress
        window._on_context_menu_requested(window.preview.rect().center())

        self.assertEqual(calls, [True])
        self.assertFalse(window.native_menu.isVisible())
        window.close()

    def test_preview_target_enables_custom_menu(self) -> None:
        window = SearchOverlayWindow()

        self.assertEqual(window.preview_target.context_menu_target, "illust")
        self.assertIs(window.menu_target.parent, window.preview_target)
        window.close()

    def test_window_constructs_with_filters_installed(self) -> None:
        window = SearchOverlayWindow()

        self.assertTrue(window.context_menu_frame.isHidden())
        self.assertEqual(window.status_label.text(), "Ready")
        window.close()

    def test_press_inside_context_menu_is_reported_once(self) -> None:
        window = SearchOverlayWindow()
        window.show()
        window.set_context_menu(True, (10.0, 10.0))
        presses: list[PointerEvent] = []
        window.pointer_pressed.connect(presses.append)

        QTest.mousePress(window.context_menu_frame, Qt.MouseButton.LeftButton, Qt.KeyboardModifier.NoModifier, QPoint(4, 4))
        QTest.mouseRelease(window.context_menu_frame, Qt.MouseButton.LeftButton, Qt.KeyboardModifier.NoModifier, QPoint(4, 4))

        self.assertEqual([event.inside_menu for event in presses], [True])
        self.assertIs(presses[0].target, window.menu_target)
        window.close()


class ControllerWiringTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
        cls._app = QApplication.instance() or QApplication([])

    def setUp(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._tmp = tempfile.TemporaryDirectory()
        self.window = SearchOverlayWindow()
        self.controller = TagSearchOverlayController(
            self.window, self.loop, _config(str(Path(self._tmp.name) / "settings.json"))
        )
        self.controller.history.replace_recent(SEARCH_HISTORY, ["cat", "dog"])

    def tearDown(self) -> None:
        try:
            self.controller.shutdown_sync()
            self.loop.run_until_complete(
                asyncio.gather(*asyncio.all_tasks(self.loop), return_exceptions=True)
            )
            self.window.close()
        finally:
            self.loop.close()
            self._tmp.cleanup()

    def _focus_search(self) -> None:
        self.window.search_focus_changed.emit(True)
        self.loop.run_until_complete(self.controller.search_box.wait_idle())

    def _right_click_preview(self) -> None:
        self.controller.arbiter.handle_pointer_down(
            PointerEvent(MouseButton.RIGHT, target=self.window.preview_target, x=12.0, y=24.0)
        )
        self.loop.run_until_complete(self.controller._tasks.drain())

    def test_search_box_and_context_menu_drive_window(self) -> None:
        window, controller = self.window, self.controller
        self.loop.run_until_complete(controller.illust_data.edit_bookmark_tags("100", ["cat"]))

        self._focus_search()
        self.assertFalse(window.dropdown_list.isHidden())
        self.assertEqual(window.dropdown_list.count(), 2)

        window.navigation_key.emit("ArrowDown")
        self.assertEqual(window.search_edit.text(), "cat")
        self.assertEqual(window.dropdown_list.currentRow(), 0)

        window.illust_changed.emit("100")
        self._right_click_preview()

        self.assertTrue(window.dropdown_list.isHidden())
        self.assertFalse(window.context_menu_frame.isHidden())
        self.assertTrue(window.status_label.isHidden())
        self.assertTrue(window.native_menu_filter())
        self.assertEqual(window.bookmark_list.count(), 1)
        self.assertEqual(window.bookmark_list.item(0).checkState(), Qt.CheckState.Checked)

        controller.arbiter.handle_window_blur()
        self.assertTrue(window.context_menu_frame.isHidden())
        self.assertFalse(window.status_label.isHidden())

    def test_closing_dropdown_releases_line_edit_focus(self) -> None:
        self._focus_search()
        clear_focus = MagicMock()
        self.window.search_edit.clearFocus = clear_focus

        self._right_click_preview()

        self.assertFalse(self.controller.search_box.input.focused)
        clear_focus.assert_called_once_with()

        self._focus_search()
        self.assertTrue(self.controller.search_box.dropdown.visible)

    def test_toggle_mode_press_inside_menu_keeps_it_open(self) -> None:
        self.controller.settings.set("touchpad-mode", True)
        self.window.show()
        self._right_click_preview()
        self.controller.arbiter.handle_pointer_up(
            PointerEvent(MouseButton.RIGHT, target=self.window.preview_target)
        )

        QTest.mousePress(
            self.window.context_menu_frame, Qt.MouseButton.LeftButton, Qt.KeyboardModifier.NoModifier, QPoint(4, 4)
        )
        QTest.mouseRelease(
            self.window.context_menu_frame, Qt.MouseButton.LeftButton, Qt.KeyboardModifier.NoModifier, QPoint(4, 4)
        )
        self.loop.run_until_complete(asyncio.sleep(0))

        self.assertTrue(self.controller.context_menu.visible)
        self.assertFalse(self.window.context_menu_frame.isHidden())


if __name__ == "__main__":
    unittest.main()
