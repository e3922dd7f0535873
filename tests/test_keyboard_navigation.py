from __future__ import annotations

import unittest

from keyboard_navigation import Direction, KeyEvent, SearchInput, SelectionNavigator, TextOrigin
from overlay_state import Entry, EntrySource, OverlayModel


def _model(*keys: str) -> OverlayModel:
    model = OverlayModel("nav")
    model.replace_entries([Entry(key, key.title(), EntrySource.HISTORY) for key in keys])
    return model


class SelectionNavigatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.input = SearchInput()
        self.changes: list[tuple[str, TextOrigin]] = []
        self.input.changed.connect(lambda text, origin: self.changes.append((text, origin)))
        self.cancelled = 0

    def _navigator(self, model: OverlayModel) -> SelectionNavigator:
        def on_navigate() -> None:
            self.cancelled += 1

        return SelectionNavigator(model, self.input, on_navigate=on_navigate)

    def test_next_from_no_selection_starts_at_first(self) -> None:
        navigator = self._navigator(_model("cat", "dog", "bird"))

        self.assertEqual(navigator.move(Direction.NEXT), 0)
        self.assertEqual(self.changes, [("cat", TextOrigin.NAVIGATION)])

    def test_previous_from_no_selection_starts_at_last(self) -> None:
        navigator = self._navigator(_model("cat", "dog", "bird"))

        self.assertEqual(navigator.move(Direction.PREVIOUS), 2)
        self.assertEqual(self.input.text, "bird")

    def test_moving_n_times_wraps_back_to_start(self) -> None:
        navigator = self._navigator(_model("cat", "dog", "bird"))
        start = navigator.move(Direction.NEXT)

        for _ in range(3):
            navigator.move(Direction.NEXT)

        self.assertEqual(navigator.selected_index, start)

    def test_previous_wraps_from_first_to_last(self) -> None:
        navigator = self._navigator(_model("cat", "dog"))
        navigator.move(Direction.NEXT)

        self.assertEqual(navigator.move(Direction.PREVIOUS), 1)

    def test_empty_list_is_noop(self) -> None:
        navigator = self._navigator(OverlayModel("empty"))

        self.assertIsNone(navigator.move(Direction.NEXT))
        self.assertEqual(self.changes, [])
        self.assertEqual(self.cancelled, 0)

    def test_moving_cancels_pending_autocomplete(self) -> None:
        navigator = self._navigator(_model("cat"))

        navigator.move(Direction.NEXT)

        self.assertEqual(self.cancelled, 1)

    def test_clearing_selection_keeps_text(self) -> None:
        navigator = self._navigator(_model("cat", "dog"))
        navigator.move(Direction.NEXT)

        navigator.set_selection(None)

        self.assertIsNone(navigator.selected_index)
        self.assertEqual(self.input.text, "cat")
        self.assertEqual(len(self.changes), 1)
        self.assertEqual(self.cancelled, 1)

    def test_handle_key_maps_arrows_and_marks_event_handled(self) -> None:
        navigator = self._navigator(_model("cat", "dog"))
        down = KeyEvent("ArrowDown")
        other = KeyEvent("Enter")

        self.assertTrue(navigator.handle_key(down))
        self.assertFalse(navigator.handle_key(other))

        self.assertTrue(down.default_prevented)
        self.assertFalse(other.default_prevented)
        self.assertTrue(navigator.handle_key(KeyEvent("ArrowUp")))
        self.assertEqual(navigator.selected_index, 1)


class SearchInputTests(unittest.TestCase):
    def test_unchanged_text_does_not_emit(self) -> None:
        search_input = SearchInput("cat")
        changes: list[tuple[str, TextOrigin]] = []
        search_input.changed.connect(lambda text, origin: changes.append((text, origin)))

        search_input.set_text("cat")
        search_input.set_text("cats", origin=TextOrigin.PROGRAM)

        self.assertEqual(changes, [("cats", TextOrigin.PROGRAM)])

    def test_focus_changes_emit_once(self) -> None:
        search_input = SearchInput()
        events: list[bool] = []
        search_input.focus_changed.connect(events.append)

        search_input.focus()
        search_input.focus()
        search_input.blur()
        search_input.blur()

        self.assertEqual(events, [True, False])


if __name__ == "__main__":
    unittest.main()
