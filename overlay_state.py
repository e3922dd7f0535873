from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from overlay_events import Signal
from search_tags import SearchWord


class OverlayInvariantError(RuntimeError):
    pass


class OverlayState(Enum):
    HIDDEN = "hidden"
    SHOWING = "showing"
    VISIBLE = "visible"


class EntrySource(Enum):
    HISTORY = "history"
    AUTOCOMPLETE = "autocomplete"


class PopulationResult(Enum):
    PUBLISHED = "published"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class Entry:
    key: str
    label: str
    source: EntrySource
    metadata: Any = None
    words: tuple[SearchWord, ...] = ()


@dataclass
class CancellationToken:
    generation: int
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class OverlayModel:
    name: str
    strict: bool = False
    generation: int = 0
    entries: tuple[Entry, ...] = ()
    selected_index: Optional[int] = None
    entries_replaced: Signal = field(init=False, repr=False, compare=False)
    selection_changed: Signal = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.entries_replaced = Signal(f"{self.name}.entries_replaced")
        self.selection_changed = Signal(f"{self.name}.selection_changed")

    @property
    def selected_entry(self) -> Optional[Entry]:
        if self.selected_index is None:
            return None
        return self.entries[self.selected_index]

    def begin_population(self) -> CancellationToken:
        self.generation += 1
        return CancellationToken(generation=self.generation)

    def is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and token.generation == self.generation

    def replace_entries(self, entries: Sequence[Entry]) -> None:
        self.entries = tuple(entries)
        self.selected_index = None
        self.entries_replaced.emit(self.entries)
        self.selection_changed.emit(None)

    def clear(self) -> None:
        if not self.entries and self.selected_index is None:
            return
        self.replace_entries(())

    def select(self, index: Optional[int]) -> Optional[int]:
        if index is not None and not 0 <= index < len(self.entries):
            self.violation(f"selection index {index} outside {len(self.entries)} entries")
            index = min(max(index, 0), len(self.entries) - 1) if self.entries else None
        if index == self.selected_index:
            return index
        self.selected_index = index
        self.selection_changed.emit(index)
        return index

    def violation(self, message: str) -> None:
        if self.strict:
            raise OverlayInvariantError(f"{self.name}: {message}")
        logging.error("overlay_invariant_violation overlay=%s detail=%s", self.name, message)
