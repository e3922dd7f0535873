from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from overlay_events import Signal
from overlay_state import OverlayModel


class TextOrigin(Enum):
    USER = "user"
    NAVIGATION = "navigation"
    PROGRAM = "program"


class Direction(Enum):
    NEXT = 1
    PREVIOUS = -1


@dataclass
class KeyEvent:
    key: str
    shift: bool = False
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


KEY_DIRECTIONS = {
    "ArrowDown": Direction.NEXT,
    "ArrowUp": Direction.PREVIOUS,
}


class SearchInput:
    def __init__(self, text: str = "") -> None:
        self._text = text
        self._focused = False
        self.changed = Signal("search_input.changed")
        self.focus_changed = Signal("search_input.focus_changed")

    @property
    def text(self) -> str:
        return self._text

    @property
    def focused(self) -> bool:
        return self._focused

    def set_text(self, text: str, origin: TextOrigin = TextOrigin.USER) -> None:
        value = text or ""
        if value == self._text:
            return
        self._text = value
        self.changed.emit(value, origin)

    def focus(self) -> None:
        if self._focused:
            return
        self._focused = True
        self.focus_changed.emit(True)

    def blur(self) -> None:
        if not self._focused:
            return
        self._focused = False
        self.focus_changed.emit(False)


class SelectionNavigator:
    def __init__(
        self,
        model: OverlayModel,
        search_input: SearchInput,
        on_navigate: Optional[Callable[[], None]] = None,
    ) -> None:
        self._model = model
        self._input = search_input
        self._on_navigate = on_navigate

    @property
    def selected_index(self) -> Optional[int]:
        return self._model.selected_index

    def move(self, direction: Direction) -> Optional[int]:
        total = len(self._model.entries)
        if total == 0:
            return None
        if self._on_navigate is not None:
            self._on_navigate()
        index = self._model.selected_index
        if index is None:
            index = 0 if direction is Direction.NEXT else total - 1
        else:
            index = (index + direction.value) % total
        return self.set_selection(index)

    def set_selection(self, index: Optional[int]) -> Optional[int]:
        selected = self._model.select(index)
        entry = self._model.selected_entry
        if entry is not None:
            self._input.set_text(entry.key, origin=TextOrigin.NAVIGATION)
        return selected

    def handle_key(self, event: KeyEvent) -> bool:
        direction = KEY_DIRECTIONS.get(event.key)
        if direction is None:
            return False
        event.prevent_default()
        self.move(direction)
        return True
