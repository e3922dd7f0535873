from __future__ import annotations

import re
from typing import Callable, Iterable, Optional

from PyQt6.QtCore import QEvent, QObject, QPoint, Qt, pyqtSignal
from PyQt6.QtGui import QFont
from PyQt6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMenu,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from context_menu import MouseButton, PointerEvent, TargetNode
from overlay_state import Entry, EntrySource

_QT_BUTTONS = {
    Qt.MouseButton.LeftButton: MouseButton.LEFT,
    Qt.MouseButton.MiddleButton: MouseButton.MIDDLE,
    Qt.MouseButton.RightButton: MouseButton.RIGHT,
}
_NAVIGATION_KEYS = {
    Qt.Key.Key_Down: "ArrowDown",
    Qt.Key.Key_Up: "ArrowUp",
}
_WIDTH_PATTERN = re.compile(r"^\s*(\d+)")


def parse_css_width(value: str, default: int = 400) -> int:
    match = _WIDTH_PATTERN.match(value or "")
    return int(match.group(1)) if match else default


class SearchOverlayWindow(QWidget):
    DRAG_ZONE_HEIGHT = 28
    ENTRY_KEY_ROLE = Qt.ItemDataRole.UserRole

    query_edited = pyqtSignal(str)
    search_submitted = pyqtSignal()
    navigation_key = pyqtSignal(str)
    search_focus_changed = pyqtSignal(bool)
    search_hover_changed = pyqtSignal(bool)
    edit_toggled = pyqtSignal()
    entry_activated = pyqtSignal(int)
    entry_removed = pyqtSignal(str)
    tag_toggled = pyqtSignal(str)
    bookmark_tag_toggled = pyqtSignal(str)
    illust_changed = pyqtSignal(str)
    pointer_pressed = pyqtSignal(object)
    pointer_released = pyqtSignal(object)
    window_blurred = pyqtSignal()

    def __init__(self) -> None:
        super().__init__()
        self._drag_offset: Optional[QPoint] = None
        self.native_menu_filter: Optional[Callable[[], bool]] = None
        self.window_target = TargetNode("window")
        self.preview_target = TargetNode("preview", context_menu_target="illust", parent=self.window_target)
        self.menu_target = TargetNode("context-menu", parent=self.preview_target)
        self._build_ui()
        self._apply_window_style()

    def set_search_text(self, text: str) -> None:
        if self.search_edit.text() != text:
            self.search_edit.setText(text)

    def set_dropdown_entries(self, entries: Iterable[Entry]) -> None:
        self.dropdown_list.clear()
        for entry in entries:
            item = QListWidgetItem(entry.label)
            item.setData(self.ENTRY_KEY_ROLE, entry.key)
            if entry.source is EntrySource.AUTOCOMPLETE:
                font = item.font()
                font.setItalic(True)
                item.setFont(font)
            if entry.label != entry.key:
                item.setToolTip(entry.key)
            self.dropdown_list.addItem(item)

    def set_dropdown_selection(self, index: Optional[int]) -> None:
        if index is None:
            self.dropdown_list.clearSelection()
            self.dropdown_list.setCurrentRow(-1)
            return
        self.dropdown_list.setCurrentRow(index)
        self.dropdown_list.scrollToItem(self.dropdown_list.item(index))

    def set_dropdown_visible(self, visible: bool) -> None:
        self.dropdown_list.setVisible(visible)

    def set_dropdown_width(self, width: str) -> None:
        self.dropdown_list.setFixedWidth(parse_css_width(width))

    def set_edit_entries(self, entries: Iterable[Entry], highlighted: Iterable[str] = ()) -> None:
        self.edit_list.clear()
        for entry in entries:
            item = QListWidgetItem(entry.label)
            item.setData(self.ENTRY_KEY_ROLE, entry.key)
            self.edit_list.addItem(item)
        self.set_edit_highlights(highlighted)

    def set_edit_highlights(self, highlighted: Iterable[str]) -> None:
        keys = set(highlighted)
        for row in range(self.edit_list.count()):
            item = self.edit_list.item(row)
            font = item.font()
            font.setBold(item.data(self.ENTRY_KEY_ROLE) in keys)
            item.setFont(font)

    def set_edit_visible(self, visible: bool) -> None:
        self.edit_list.setVisible(visible)
        self.edit_button.setChecked(visible)

    def set_edit_width(self, width: str) -> None:
        self.edit_list.setFixedWidth(parse_css_width(width))

    def set_context_menu(self, visible: bool, anchor: Optional[tuple[float, float]] = None) -> None:
        if visible and anchor is not None:
            x, y = anchor
            self.context_menu_frame.move(int(x), int(y))
        self.context_menu_frame.setVisible(visible)
        if visible:
            self.context_menu_frame.raise_()

    def set_popup_ui_hidden(self, hidden: bool) -> None:
        self.status_label.setVisible(not hidden)

    def set_bookmark_entries(self, entries: Iterable[Entry], selected: Iterable[str]) -> None:
        active = set(selected)
        self.bookmark_list.clear()
        for entry in entries:
            item = QListWidgetItem(entry.label)
            item.setData(self.ENTRY_KEY_ROLE, entry.key)
            item.setFlags(item.flags() | Qt.ItemFlag.ItemIsUserCheckable)
            item.setCheckState(Qt.CheckState.Checked if entry.key in active else Qt.CheckState.Unchecked)
            self.bookmark_list.addItem(item)

    def set_status(self, message: str) -> None:
        self.status_label.setText(message)

    def _build_ui(self) -> None:
        root = QVBoxLayout(self)
        root.setContentsMargins(6, 6, 6, 6)

        panel = QFrame()
        panel.setObjectName("overlayPanel")
        root.addWidget(panel)

        layout = QVBoxLayout(panel)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(8)

        self.search_row = QFrame()
        search_layout = QHBoxLayout(self.search_row)
        search_layout.setContentsMargins(0, 0, 0, 0)
        search_layout.setSpacing(6)
        layout.addWidget(self.search_row)

        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search tags")
        self.search_edit.textEdited.connect(self.query_edited.emit)
        self.search_edit.returnPressed.connect(self.search_submitted.emit)
        search_layout.addWidget(self.search_edit)

        self.edit_button = QPushButton("Edit")
        self.edit_button.setCheckable(True)
        self.edit_button.clicked.connect(lambda _checked: self.edit_toggled.emit())
        search_layout.addWidget(self.edit_button)

        self.dropdown_list = QListWidget()
        self.dropdown_list.setObjectName("tagDropdown")
        self.dropdown_list.itemClicked.connect(
            lambda item: self.entry_activated.emit(self.dropdown_list.row(item))
        )
        self.dropdown_list.hide()
        layout.addWidget(self.dropdown_list)

        self.edit_list = QListWidget()
        self.edit_list.setObjectName("searchEditDropdown")
        self.edit_list.itemClicked.connect(lambda item: self.tag_toggled.emit(item.data(self.ENTRY_KEY_ROLE)))
        self.edit_list.hide()
        layout.addWidget(self.edit_list)

        illust_row = QHBoxLayout()
        illust_row.addWidget(QLabel("Illustration"))
        self.illust_edit = QLineEdit()
        self.illust_edit.setPlaceholderText("illust id")
        self.illust_edit.editingFinished.connect(lambda: self.illust_changed.emit(self.illust_edit.text().strip()))
        illust_row.addWidget(self.illust_edit)
        layout.addLayout(illust_row)

        self.preview = QFrame()
        self.preview.setObjectName("preview")
        self.preview.setMinimumHeight(220)
        self.preview.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self.preview.customContextMenuRequested.connect(self._on_context_menu_requested)
        layout.addWidget(self.preview, 1)

        self.context_menu_frame = QFrame(self.preview)
        self.context_menu_frame.setObjectName("contextMenu")
        menu_layout = QVBoxLayout(self.context_menu_frame)
        menu_layout.setContentsMargins(8, 8, 8, 8)
        menu_layout.addWidget(QLabel("Bookmark tags"))
        self.bookmark_list = QListWidget()
        self.bookmark_list.itemClicked.connect(
            lambda item: self.bookmark_tag_toggled.emit(item.data(self.ENTRY_KEY_ROLE))
        )
        menu_layout.addWidget(self.bookmark_list)
        self.context_menu_frame.resize(240, 200)
        self.context_menu_frame.hide()

        self.native_menu = QMenu(self)
        self.native_menu.addAction("Copy search").triggered.connect(self._copy_search)

        self.status_label = QLabel("Ready")
        layout.addWidget(self.status_label)

        # eventFilter reads every watched widget.
        for widget in (self.search_edit, self.search_row, self.dropdown_list, self.preview, self.context_menu_frame):
            widget.installEventFilter(self)

    def _apply_window_style(self) -> None:
        self.setWindowTitle("Tag Search Overlays")
        self.setWindowFlags(Qt.WindowType.FramelessWindowHint | Qt.WindowType.WindowStaysOnTopHint)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setMinimumSize(520, 420)
        self.resize(720, 560)
        self.search_edit.setFont(QFont(self.search_edit.font().family(), 13))

        self.setStyleSheet(
            """
            #overlayPanel {
                background-color: rgba(28, 28, 28, 200);
                border: 1px solid rgba(255, 255, 255, 48);
                border-radius: 12px;
            }
            #preview {
                background-color: rgba(0, 0, 0, 120);
                border-radius: 8px;
            }
            #contextMenu {
                background-color: rgba(40, 40, 40, 235);
                border: 1px solid rgba(255, 255, 255, 64);
                border-radius: 8px;
            }
            QLineEdit, QListWidget {
                background-color: rgba(43, 43, 43, 220);
                color: white;
                border: 1px solid rgba(255, 255, 255, 40);
                border-radius: 6px;
                padding: 4px;
            }
            QLabel {
                color: white;
            }
            QPushButton {
                background-color: rgba(70, 70, 70, 220);
                color: white;
                border: 1px solid rgba(255, 255, 255, 50);
                border-radius: 8px;
                padding: 6px 9px;
            }
            QPushButton:checked {
                background-color: rgba(96, 96, 140, 220);
            }
            """
        )

    def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # noqa: N802 - Qt override naming
        kind = event.type()
        if watched is self.search_edit:
            if kind == QEvent.Type.FocusIn:
                self.search_focus_changed.emit(True)
            elif kind == QEvent.Type.FocusOut:
                self.search_focus_changed.emit(False)
            elif kind == QEvent.Type.KeyPress and event.key() in _NAVIGATION_KEYS:
                self.navigation_key.emit(_NAVIGATION_KEYS[event.key()])
                return True
        elif watched is self.search_row or watched is self.dropdown_list:
            if kind == QEvent.Type.Enter:
                self.search_hover_changed.emit(True)
            elif kind == QEvent.Type.Leave:
                self.search_hover_changed.emit(False)
            elif watched is self.dropdown_list and kind == QEvent.Type.KeyPress:
                if event.key() == Qt.Key.Key_Delete and self.dropdown_list.currentItem() is not None:
                    self.entry_removed.emit(self.dropdown_list.currentItem().data(self.ENTRY_KEY_ROLE))
                    return True
        elif watched is self.preview or watched is self.context_menu_frame:
            inside_menu = watched is self.context_menu_frame
            if kind in (QEvent.Type.MouseButtonPress, QEvent.Type.MouseButtonRelease):
                pointer = self._pointer_event(event, inside_menu)
                if pointer is not None:
                    if kind == QEvent.Type.MouseButtonPress:
                        self.pointer_pressed.emit(pointer)
                    else:
                        self.pointer_released.emit(pointer)
                if inside_menu:
                    # Reported once; the preview underneath must not see it as an outside press.
                    event.accept()
                    return True
        return super().eventFilter(watched, event)

    def changeEvent(self, event: QEvent) -> None:  # noqa: N802 - Qt override naming
        if event.type() == QEvent.Type.ActivationChange and not self.isActiveWindow():
            self.window_blurred.emit()
        super().changeEvent(event)

    def mousePressEvent(self, event) -> None:  # noqa: N802 - Qt override naming
        if event.button() == Qt.MouseButton.LeftButton:
            local_pos = event.position().toPoint()
            if local_pos.y() <= self.DRAG_ZONE_HEIGHT:
                self._drag_offset = event.globalPosition().toPoint() - self.frameGeometry().topLeft()
                event.accept()

    def mouseMoveEvent(self, event) -> None:  # noqa: N802 - Qt override naming
        if self._drag_offset is not None and event.buttons() & Qt.MouseButton.LeftButton:
            self.move(event.globalPosition().toPoint() - self._drag_offset)
            event.accept()

    def mouseReleaseEvent(self, event) -> None:  # noqa: N802 - Qt override naming
        self._drag_offset = None
        event.accept()

    def _pointer_event(self, event, inside_menu: bool) -> Optional[PointerEvent]:
        button = _QT_BUTTONS.get(event.button())
        if button is None:
            return None
        position = self.preview.mapFromGlobal(event.globalPosition().toPoint())
        return PointerEvent(
            button=button,
            shift=bool(event.modifiers() & Qt.KeyboardModifier.ShiftModifier),
            target=self.menu_target if inside_menu else self.preview_target,
            x=float(position.x()),
            y=float(position.y()),
            inside_menu=inside_menu,
        )

    def _copy_search(self) -> None:
        self.search_edit.selectAll()
        self.search_edit.copy()

    def _on_context_menu_requested(self, position: QPoint) -> None:
        if self.native_menu_filter is not None and self.native_menu_filter():
            return
        self.native_menu.popup(self.preview.mapToGlobal(position))
