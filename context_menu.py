from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Callable, Optional, Protocol

from collaborators import SettingsStore
from overlay_events import Signal, Subscription, ViewScope
from overlay_state import OverlayState


class MouseButton(IntEnum):
    LEFT = 0
    MIDDLE = 1
    RIGHT = 2


class BlockReason(Enum):
    UNTIL_MOUSE_UP = "until_mouse_up"
    UNTIL_TIMER = "until_timer"


class ArbiterState(Enum):
    IDLE = "idle"
    BUTTON_DOWN = "button_down"
    BLOCKED_UNTIL_MOUSE_UP = "blocked_until_mouse_up"
    BLOCKED_UNTIL_TIMER = "blocked_until_timer"


@dataclass
class TargetNode:
    name: str = ""
    context_menu_target: Optional[str] = None
    parent: Optional[TargetNode] = None


@dataclass
class PointerEvent:
    button: MouseButton
    shift: bool = False
    target: Optional[TargetNode] = None
    x: float = 0.0
    y: float = 0.0
    inside_menu: bool = False
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass
class ButtonArbiterState:
    left_down: bool = False
    right_down: bool = False
    block_reason: Optional[BlockReason] = None
    toggle_mode: bool = False


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...

    def call_soon(self, callback: Callable[[], Any]) -> TimerHandle: ...


def context_menu_enabled_for(target: Optional[TargetNode]) -> bool:
    node = target
    while node is not None:
        if node.context_menu_target == "off":
            return False
        if node.context_menu_target is not None:
            return True
        node = node.parent
    return False


class ContextMenuOverlay:
    def __init__(
        self,
        view_scope: Optional[ViewScope] = None,
        while_open: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.scope = view_scope.child("context-menu") if view_scope is not None else ViewScope("context-menu")
        self._while_open = while_open
        self._visible = False
        self._anchor: Optional[tuple[float, float]] = None
        self._target: Optional[TargetNode] = None
        self.state_changed = Signal("context-menu.state_changed")

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def anchor(self) -> Optional[tuple[float, float]]:
        return self._anchor

    @property
    def target(self) -> Optional[TargetNode]:
        return self._target

    def show(self, x: float, y: float, target: Optional[TargetNode] = None) -> None:
        if self._visible:
            return
        self._visible = True
        self._anchor = (x, y)
        self._target = target
        logging.info("context_menu_shown x=%.0f y=%.0f target=%s", x, y, target.name if target else None)
        self._apply_while_open(True)
        self.state_changed.emit(OverlayState.VISIBLE)

    def hide(self) -> None:
        if not self._visible:
            return
        # Nested menus close before the container does.
        self.scope.send_view_hidden()
        self._visible = False
        self._anchor = None
        self._target = None
        logging.info("context_menu_hidden")
        self._apply_while_open(False)
        self.state_changed.emit(OverlayState.HIDDEN)

    def _apply_while_open(self, active: bool) -> None:
        if self._while_open is None:
            return
        try:
            self._while_open(active)
        except Exception:  # noqa: BLE001 - side-effect boundary
            logging.exception("context_menu_side_effect_failed active=%s", active)


class ContextMenuArbiter:
    BLOCK_RELEASE_DELAY_S = 0.05

    def __init__(
        self,
        menu: ContextMenuOverlay,
        settings: SettingsStore,
        *,
        scheduler: Optional[Scheduler] = None,
        shift_inversion_supported: bool = True,
    ) -> None:
        self.menu = menu
        self._settings = settings
        self._scheduler = scheduler
        self._shift_inversion_supported = shift_inversion_supported
        self._left_down = False
        self._right_down = False
        self._block_reason: Optional[BlockReason] = None
        self._timer: Optional[TimerHandle] = None
        self._subscriptions: list[Subscription] = [menu.state_changed.connect(self._menu_state_changed)]

    @property
    def toggle_mode(self) -> bool:
        return bool(self._settings.get("touchpad-mode", False))

    @property
    def block_reason(self) -> Optional[BlockReason]:
        return self._block_reason

    @property
    def suppress_native_menu(self) -> bool:
        return self._block_reason is not None

    @property
    def state(self) -> ArbiterState:
        if self._block_reason is BlockReason.UNTIL_MOUSE_UP:
            return ArbiterState.BLOCKED_UNTIL_MOUSE_UP
        if self._block_reason is BlockReason.UNTIL_TIMER:
            return ArbiterState.BLOCKED_UNTIL_TIMER
        if self._right_down:
            return ArbiterState.BUTTON_DOWN
        return ArbiterState.IDLE

    def snapshot(self) -> ButtonArbiterState:
        return ButtonArbiterState(
            left_down=self._left_down,
            right_down=self._right_down,
            block_reason=self._block_reason,
            toggle_mode=self.toggle_mode,
        )

    def handle_pointer_down(self, event: PointerEvent) -> bool:
        visible = self.menu.visible
        if not visible and not context_menu_enabled_for(event.target):
            return False
        if not visible and event.button is not MouseButton.RIGHT:
            return False

        self._set_button(event.button, True)
        if event.button is not MouseButton.RIGHT:
            return False

        if self._modifier_overrides(event.shift):
            logging.debug("context_menu_modifier_override shift=%s", event.shift)
            return False

        event.prevent_default()
        if self.toggle_mode and visible:
            self.menu.hide()
        else:
            self.menu.show(event.x, event.y, event.target)
        self._block_until_mouse_up()
        return True

    def handle_pointer_up(self, event: PointerEvent) -> None:
        if event.button is MouseButton.RIGHT and self._block_reason is BlockReason.UNTIL_MOUSE_UP:
            self._block_until_timer()

        if not self.menu.visible:
            return

        self._set_button(event.button, False)
        if self.toggle_mode:
            return
        if not self._left_down and not self._right_down:
            # A click on a menu item is delivered after this release.
            self._schedule().call_soon(self.menu.hide)

    def handle_window_pointer_down(self, event: PointerEvent) -> None:
        if not self.toggle_mode or not self.menu.visible or event.inside_menu:
            return
        logging.debug("context_menu_click_outside button=%s", event.button.name)
        self._schedule().call_soon(self.menu.hide)

    def handle_context_menu(self) -> bool:
        suppressed = self.suppress_native_menu
        logging.debug("native_context_menu suppressed=%s state=%s", suppressed, self.state.value)
        return suppressed

    def handle_window_blur(self) -> None:
        self.menu.hide()
        self._cancel_timer()
        self._left_down = False
        self._right_down = False
        if self._block_reason is not None:
            logging.info("context_menu_block_released reason=window_blur")
        self._block_reason = None

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self.handle_window_blur()

    def _modifier_overrides(self, shift: bool) -> bool:
        if self._shift_inversion_supported and self._settings.get("invert-popup-hotkey", False):
            return not shift
        return shift

    def _block_until_mouse_up(self) -> None:
        if self._block_reason is BlockReason.UNTIL_MOUSE_UP:
            return
        self._cancel_timer()
        logging.info("context_menu_block reason=until_mouse_up")
        self._block_reason = BlockReason.UNTIL_MOUSE_UP

    def _block_until_timer(self) -> None:
        logging.info("context_menu_block reason=until_timer delay_s=%.3f", self.BLOCK_RELEASE_DELAY_S)
        self._block_reason = BlockReason.UNTIL_TIMER
        self._cancel_timer()
        self._timer = self._schedule().call_later(self.BLOCK_RELEASE_DELAY_S, self._release_block)

    def _release_block(self) -> None:
        self._timer = None
        if self._block_reason is not BlockReason.UNTIL_TIMER:
            return
        logging.info("context_menu_block_released reason=timer")
        self._block_reason = None

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _set_button(self, button: MouseButton, down: bool) -> None:
        if button is MouseButton.LEFT:
            self._left_down = down
        elif button is MouseButton.RIGHT:
            self._right_down = down

    def _menu_state_changed(self, state: OverlayState) -> None:
        if state is OverlayState.HIDDEN:
            self._left_down = False
            self._right_down = False

    def _schedule(self) -> Scheduler:
        if self._scheduler is not None:
            return self._scheduler
        return asyncio.get_running_loop()
