from __future__ import annotations

import unittest
from typing import Callable

from collaborators import SettingsStore
from context_menu import (
    ArbiterState,
    BlockReason,
    ContextMenuArbiter,
    ContextMenuOverlay,
    MouseButton,
    PointerEvent,
    TargetNode,
    context_menu_enabled_for,
)
from overlay_events import ViewScope


class FakeHandle:
    def __init__(self, harness: "SchedulerHarness", delay: float, callback: Callable[[], object]) -> None:
        self.harness = harness
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SchedulerHarness:
    def __init__(self) -> None:
        self.later: list[FakeHandle] = []
        self.soon: list[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], object]) -> FakeHandle:
        handle = FakeHandle(self, delay, callback)
        self.later.append(handle)
        return handle

    def call_soon(self, callback: Callable[[], object]) -> FakeHandle:
        handle = FakeHandle(self, 0.0, callback)
        self.soon.append(handle)
        return handle

    @property
    def pending_timers(self) -> list[FakeHandle]:
        return [handle for handle in self.later if not handle.cancelled]

    def run_soon(self) -> None:
        handles, self.soon = self.soon, []
        for handle in handles:
            if not handle.cancelled:
                handle.callback()

    def fire_timers(self) -> None:
        for handle in self.pending_timers:
            handle.cancelled = True
            handle.callback()


PAGE = TargetNode("page")
IMAGE = TargetNode("image", context_menu_target="illust", parent=PAGE)
IMAGE_CHILD = TargetNode("caption", parent=IMAGE)
DISABLED = TargetNode("toolbar", context_menu_target="off", parent=IMAGE)


def _press(button: MouseButton, target: TargetNode = IMAGE, **kwargs) -> PointerEvent:
    return PointerEvent(button=button, target=target, x=120.0, y=80.0, **kwargs)


class ArbiterHarness:
    def __init__(self, **settings: object) -> None:
        self.settings = SettingsStore()
        for key, value in settings.items():
            self.settings.set(key.replace("_", "-"), value)
        self.scheduler = SchedulerHarness()
        self.effects: list[bool] = []
        self.menu = ContextMenuOverlay(ViewScope("window"), while_open=self.effects.append)
        self.arbiter = ContextMenuArbiter(self.menu, self.settings, scheduler=self.scheduler)


class TargetEligibilityTests(unittest.TestCase):
    def test_nearest_declaring_ancestor_decides(self) -> None:
        self.assertTrue(context_menu_enabled_for(IMAGE))
        self.assertTrue(context_menu_enabled_for(IMAGE_CHILD))
        self.assertFalse(context_menu_enabled_for(DISABLED))
        self.assertFalse(context_menu_enabled_for(PAGE))
        self.assertFalse(context_menu_enabled_for(None))


class ArbiterTimelineTests(unittest.TestCase):
    def test_open_block_release_timer_idle_reopen(self) -> None:
        harness = ArbiterHarness()
        arbiter, menu, scheduler = harness.arbiter, harness.menu, harness.scheduler

        event = _press(MouseButton.RIGHT)
        self.assertTrue(arbiter.handle_pointer_down(event))
        self.assertTrue(event.default_prevented)
        self.assertTrue(menu.visible)
        self.assertEqual(menu.anchor, (120.0, 80.0))
        self.assertIs(arbiter.state, ArbiterState.BLOCKED_UNTIL_MOUSE_UP)
        self.assertTrue(arbiter.handle_context_menu())

        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))
        self.assertIs(arbiter.state, ArbiterState.BLOCKED_UNTIL_TIMER)
        self.assertTrue(arbiter.handle_context_menu())
        self.assertEqual([handle.delay for handle in scheduler.pending_timers], [0.05])
        self.assertTrue(menu.visible)

        scheduler.run_soon()
        self.assertFalse(menu.visible)

        scheduler.fire_timers()
        self.assertIs(arbiter.state, ArbiterState.IDLE)
        self.assertFalse(arbiter.handle_context_menu())

        self.assertTrue(arbiter.handle_pointer_down(_press(MouseButton.RIGHT)))
        self.assertTrue(menu.visible)
        self.assertEqual(harness.effects, [True, False, True])

    def test_retriggered_timer_is_restarted_not_stacked(self) -> None:
        harness = ArbiterHarness()
        arbiter, scheduler = harness.arbiter, harness.scheduler

        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))
        first = scheduler.pending_timers[0]
        scheduler.run_soon()

        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        self.assertTrue(first.cancelled)
        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))

        self.assertEqual(len(scheduler.pending_timers), 1)
        self.assertIs(arbiter.block_reason, BlockReason.UNTIL_TIMER)

    def test_menu_stays_open_until_both_buttons_released(self) -> None:
        harness = ArbiterHarness()
        arbiter, menu, scheduler = harness.arbiter, harness.menu, harness.scheduler

        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        arbiter.handle_pointer_down(_press(MouseButton.LEFT, target=PAGE, inside_menu=True))
        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))
        scheduler.run_soon()
        self.assertTrue(menu.visible)

        arbiter.handle_pointer_up(_press(MouseButton.LEFT))
        self.assertTrue(menu.visible)
        scheduler.run_soon()
        self.assertFalse(menu.visible)

    def test_ineligible_target_and_non_right_press_are_ignored(self) -> None:
        harness = ArbiterHarness()
        arbiter = harness.arbiter

        self.assertFalse(arbiter.handle_pointer_down(_press(MouseButton.RIGHT, target=DISABLED)))
        self.assertFalse(arbiter.handle_pointer_down(_press(MouseButton.LEFT)))

        self.assertFalse(harness.menu.visible)
        self.assertIs(arbiter.state, ArbiterState.IDLE)
        self.assertFalse(arbiter.snapshot().left_down)

    def test_window_blur_hides_and_resets_everything(self) -> None:
        harness = ArbiterHarness()
        arbiter, scheduler = harness.arbiter, harness.scheduler
        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))
        timer = scheduler.pending_timers[0]

        arbiter.handle_window_blur()

        self.assertFalse(harness.menu.visible)
        self.assertTrue(timer.cancelled)
        self.assertIs(arbiter.state, ArbiterState.IDLE)
        self.assertEqual(arbiter.snapshot().block_reason, None)
        self.assertFalse(arbiter.handle_context_menu())

    def test_button_flags_reset_when_menu_hides(self) -> None:
        harness = ArbiterHarness()
        arbiter = harness.arbiter
        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        self.assertTrue(arbiter.snapshot().right_down)

        harness.menu.hide()

        snapshot = arbiter.snapshot()
        self.assertFalse(snapshot.right_down)
        self.assertIs(snapshot.block_reason, BlockReason.UNTIL_MOUSE_UP)


class ModifierTests(unittest.TestCase):
    def test_shift_lets_native_menu_through(self) -> None:
        harness = ArbiterHarness()

        event = _press(MouseButton.RIGHT, shift=True)
        self.assertFalse(harness.arbiter.handle_pointer_down(event))

        self.assertFalse(event.default_prevented)
        self.assertFalse(harness.menu.visible)
        self.assertFalse(harness.arbiter.handle_context_menu())

    def test_inverted_hotkey_requires_shift(self) -> None:
        harness = ArbiterHarness(invert_popup_hotkey=True)

        self.assertFalse(harness.arbiter.handle_pointer_down(_press(MouseButton.RIGHT)))
        self.assertTrue(harness.arbiter.handle_pointer_down(_press(MouseButton.RIGHT, shift=True)))
        self.assertTrue(harness.menu.visible)

    def test_inversion_ignored_where_host_cannot_cancel_with_shift(self) -> None:
        settings = SettingsStore()
        settings.set("invert-popup-hotkey", True)
        menu = ContextMenuOverlay()
        arbiter = ContextMenuArbiter(
            menu, settings, scheduler=SchedulerHarness(), shift_inversion_supported=False
        )

        self.assertTrue(arbiter.handle_pointer_down(_press(MouseButton.RIGHT)))
        self.assertTrue(menu.visible)


class ToggleModeTests(unittest.TestCase):
    def test_right_press_toggles_and_release_keeps_menu_open(self) -> None:
        harness = ArbiterHarness(touchpad_mode=True)
        arbiter, menu, scheduler = harness.arbiter, harness.menu, harness.scheduler

        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))
        scheduler.run_soon()
        self.assertTrue(menu.visible)
        self.assertTrue(arbiter.snapshot().toggle_mode)

        scheduler.fire_timers()
        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        self.assertFalse(menu.visible)
        self.assertIs(arbiter.state, ArbiterState.BLOCKED_UNTIL_MOUSE_UP)

    def test_press_outside_dismisses_on_next_turn(self) -> None:
        harness = ArbiterHarness(touchpad_mode=True)
        arbiter, menu, scheduler = harness.arbiter, harness.menu, harness.scheduler
        arbiter.handle_pointer_down(_press(MouseButton.RIGHT))
        arbiter.handle_pointer_up(_press(MouseButton.RIGHT))

        arbiter.handle_window_pointer_down(_press(MouseButton.LEFT, inside_menu=True))
        scheduler.run_soon()
        self.assertTrue(menu.visible)

        arbiter.handle_window_pointer_down(_press(MouseButton.LEFT, target=PAGE))
        self.assertTrue(menu.visible)
        scheduler.run_soon()
        self.assertFalse(menu.visible)


class ContextMenuOverlayTests(unittest.TestCase):
    def test_hiding_menu_broadcasts_view_hidden_to_nested_overlays(self) -> None:
        root = ViewScope("window")
        menu = ContextMenuOverlay(root)
        nested = menu.scope.child("bookmark-tags")
        hidden: list[str] = []
        nested.listen(lambda: hidden.append("nested"))

        menu.hide()
        menu.show(10, 20, IMAGE)
        menu.hide()

        self.assertEqual(hidden, ["nested"])
        self.assertIsNone(menu.anchor)
        self.assertIsNone(menu.target)

    def test_root_broadcast_reaches_menu_scope(self) -> None:
        root = ViewScope("window")
        menu = ContextMenuOverlay(root)
        hidden: list[bool] = []
        menu.scope.listen(lambda: hidden.append(True))

        root.send_view_hidden()

        self.assertEqual(hidden, [True])


if __name__ == "__main__":
    unittest.main()
