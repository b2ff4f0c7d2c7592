# sheet/lifecycle.py
"""Show / hide / cancel lifecycle for a bottom sheet.

Two layers:
- `open_session` wires one controller + gesture tracker for a freshly mounted sheet and
  commits the initial halfway state.
- `InterimElement` keeps at most one sheet on screen and settles a Future when it leaves:
  resolved on hide, failed with `SheetCancelled` on cancel (backdrop click, escape,
  replacement by a newer sheet, teardown).

The embedding environment (Qt in `ui/sheet_host.py`) supplies the mount/unmount work.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
import threading
import traceback
from typing import Any, Callable, Optional

from sheet.controller import DEFAULT_TRANSITION_MS, PanelPositionController, Renderer, StateListener
from sheet.gesture import GestureTracker, ParentOf, RegisterFn
from sheet.models import SheetGeometry


@dataclass(frozen=True)
class SheetOptions:
    """
    Per-show options honored by the embedding environment.

    None of these affect the state machine:
    - disable_backdrop: do not cover the host with a backdrop.
    - click_outside_to_close: backdrop click cancels the sheet.
    - escape_to_close: Escape cancels the sheet.
    - disable_parent_scroll: swallow wheel scrolling of the host while shown.
    - on_load: called with the controller right after construction.
    """

    disable_backdrop: bool = False
    click_outside_to_close: bool = True
    escape_to_close: bool = True
    disable_parent_scroll: bool = True
    on_load: Optional[Callable[[PanelPositionController], None]] = None


class SheetCancelled(Exception):
    """Raised through the show() Future when a sheet is cancelled instead of hidden."""

    def __init__(self, reason: Any = None) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass
class SheetSession:
    """Controller + tracker pair bound to one mounted sheet."""

    options: SheetOptions
    controller: PanelPositionController
    tracker: GestureTracker

    def close(self) -> None:
        self.tracker.dispose()


def open_session(
    *,
    geometry: SheetGeometry,
    panel: Any,
    parent_of: ParentOf,
    register: RegisterFn,
    renderer: Optional[Renderer] = None,
    options: SheetOptions = SheetOptions(),
    transition_ms: int = DEFAULT_TRANSITION_MS,
    on_state_change: Optional[StateListener] = None,
    velocity_window_ms: float = 100.0,
) -> SheetSession:
    """
    Build the controller and tracker for a mounted panel and commit the initial state.

    Order matters:
    1) controller (no render yet),
    2) tracker attached to the surface,
    3) options.on_load hook,
    4) set_halfway() renders the initial frame.
    """
    controller = PanelPositionController(
        geometry=geometry,
        renderer=renderer,
        on_state_change=on_state_change,
        transition_ms=transition_ms,
    )
    tracker = GestureTracker(
        panel=panel,
        controller=controller,
        parent_of=parent_of,
        velocity_window_ms=velocity_window_ms,
    )
    tracker.attach(register)

    try:
        if options.on_load is not None:
            options.on_load(controller)
        controller.set_halfway()
    except Exception:
        tracker.dispose()
        raise

    return SheetSession(options=options, controller=controller, tracker=tracker)


# on_show mounts the element and returns its remover. The remover may return a Future
# that completes when the leave transition is done.
Remover = Callable[[], Optional["Future[Any]"]]
ShowFn = Callable[[SheetOptions], Remover]


class InterimElement:
    """
    One-at-a-time show/hide/cancel manager.

    Threading model:
    - Intended to be driven from the UI thread; a lock still guards the current entry so
      commands bridged from other threads cannot double-settle a Future.
    """

    def __init__(self, *, on_show: ShowFn) -> None:
        self._on_show = on_show
        self._lock = threading.Lock()
        self._current: Optional[tuple[Future, Remover]] = None

    @property
    def is_showing(self) -> bool:
        with self._lock:
            return self._current is not None

    def show(self, options: SheetOptions = SheetOptions()) -> "Future[Any]":
        """
        Show a new element, cancelling the current one first (reason "replaced").

        Errors raised by on_show propagate; nothing is left registered in that case.
        """
        self.cancel("replaced")

        fut: Future = Future()
        fut.set_running_or_notify_cancel()

        remover = self._on_show(options)
        with self._lock:
            self._current = (fut, remover)
        return fut

    def hide(self, response: Any = None) -> bool:
        return self._remove(lambda fut: fut.set_result(response))

    def cancel(self, reason: Any = None) -> bool:
        return self._remove(lambda fut: fut.set_exception(SheetCancelled(reason)))

    def destroy(self) -> bool:
        return self.cancel("destroyed")

    def _remove(self, settle: Callable[[Future], None]) -> bool:
        with self._lock:
            entry, self._current = self._current, None
        if entry is None:
            return False

        fut, remover = entry

        def finish(_: Any = None) -> None:
            if not fut.done():
                settle(fut)

        try:
            leaving = remover()
        except Exception:
            traceback.print_exc()
            finish()
            return True

        if isinstance(leaving, Future):
            leaving.add_done_callback(finish)
        else:
            finish()
        return True
