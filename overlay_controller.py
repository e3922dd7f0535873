from __future__ import annotations

import logging
from typing import Callable, Optional

from overlay_events import Signal
from overlay_state import OverlayInvariantError, OverlayModel, OverlayState, PopulationResult
from population import PopulationPipeline


class OverlayController:
    def __init__(
        self,
        pipeline: Optional[PopulationPipeline],
        *,
        model: Optional[OverlayModel] = None,
        while_open: Optional[Callable[[bool], None]] = None,
        on_hidden: Optional[Callable[[], None]] = None,
    ) -> None:
        if model is None:
            if pipeline is None:
                raise OverlayInvariantError("an overlay needs a pipeline or a model")
            model = pipeline.model
        self.model = model
        self.name = model.name
        self._pipeline = pipeline
        self._while_open = while_open
        self._on_hidden = on_hidden
        self._state = OverlayState.HIDDEN
        self._show_serial = 0
        self._refresh_requested = False
        self.state_changed = Signal(f"{self.name}.state_changed")

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def visible(self) -> bool:
        return self._state is OverlayState.VISIBLE

    @property
    def shown(self) -> bool:
        return self._state is not OverlayState.HIDDEN

    @property
    def generation(self) -> int:
        return self.model.generation

    async def show(self) -> bool:
        if self._state is not OverlayState.HIDDEN:
            return self.visible
        if self._pipeline is None:
            self.model.violation("show() called without a population pipeline")
            return False

        self._show_serial += 1
        serial = self._show_serial
        self._set_state(OverlayState.SHOWING)
        self._apply_while_open(True)
        try:
            while True:
                self._refresh_requested = False
                result = await self._pipeline.populate()
                if result is PopulationResult.SUPERSEDED or serial != self._show_serial:
                    return False
                if not self._refresh_requested:
                    break
                logging.debug("overlay_show_repopulate overlay=%s", self.name)
        except OverlayInvariantError:
            self._abort_show(serial)
            raise
        except Exception:  # noqa: BLE001 - population boundary
            logging.exception("overlay_populate_failed overlay=%s", self.name)
            self._abort_show(serial)
            return False

        self._set_state(OverlayState.VISIBLE)
        return True

    def hide(self) -> None:
        if self._state is OverlayState.HIDDEN:
            return
        if self._pipeline is not None:
            self._pipeline.cancel()
        self._refresh_requested = False
        self.model.clear()
        self._set_state(OverlayState.HIDDEN)
        self._apply_while_open(False)
        if self._on_hidden is not None:
            self._on_hidden()

    async def refresh(self) -> PopulationResult:
        if self._state is OverlayState.SHOWING:
            self._refresh_requested = True
            return PopulationResult.SUPERSEDED
        if self._state is OverlayState.HIDDEN or self._pipeline is None:
            return PopulationResult.SUPERSEDED
        try:
            return await self._pipeline.populate()
        except Exception:  # noqa: BLE001 - population boundary
            logging.exception("overlay_refresh_failed overlay=%s", self.name)
            return PopulationResult.SUPERSEDED

    async def toggle(self) -> bool:
        if self.shown:
            self.hide()
            return False
        return await self.show()

    def _abort_show(self, serial: int) -> None:
        if serial != self._show_serial or self._state is not OverlayState.SHOWING:
            return
        if self._pipeline is not None:
            self._pipeline.cancel()
        self.model.clear()
        self._set_state(OverlayState.HIDDEN)
        self._apply_while_open(False)

    def _apply_while_open(self, active: bool) -> None:
        if self._while_open is None:
            return
        try:
            self._while_open(active)
        except Exception:  # noqa: BLE001 - side-effect boundary
            logging.exception("overlay_side_effect_failed overlay=%s active=%s", self.name, active)

    def _set_state(self, state: OverlayState) -> None:
        if state is self._state:
            return
        self._state = state
        logging.debug("overlay_state overlay=%s state=%s generation=%d", self.name, state.value, self.generation)
        self.state_changed.emit(state)


class ExclusiveOverlayGroup:
    def __init__(self, *controllers: OverlayController) -> None:
        self._controllers = list(controllers)

    def add(self, controller: OverlayController) -> None:
        if controller not in self._controllers:
            self._controllers.append(controller)

    async def show(self, controller: OverlayController) -> bool:
        self.add(controller)
        for other in self._controllers:
            if other is not controller:
                other.hide()
        return await controller.show()

    def hide_all(self) -> None:
        for controller in self._controllers:
            controller.hide()

    @property
    def active(self) -> Optional[OverlayController]:
        for controller in self._controllers:
            if controller.shown:
                return controller
        return None
