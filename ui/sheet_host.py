"""Qt embedding for the bottom sheet: mounting, dismissal, and the demo host window.

`QtSheetHost` implements the mount/unmount half of `InterimElement` for a host widget:
it measures geometry once, creates backdrop + panel, installs the drag filter and the
escape shortcut, and wires the controller's renderer and state callbacks into the
status store. `run_sheet_ui` builds the host window and runs the Qt event loop.
"""

from __future__ import annotations

from concurrent.futures import Future
import threading
import traceback
from typing import Any, Callable, Dict, Optional

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from config.config import AppConfig
from server.status_store import SheetStatusStore
from sheet.lifecycle import InterimElement, Remover, SheetCancelled, SheetOptions, SheetSession, open_session
from sheet.models import PanelState, RenderFrame
from ui.panel_sync import PanelCommandPoller
from ui.sheet_widget import BottomSheetPanel, SheetBackdrop, SheetDragFilter, widget_parent


ContentFactory = Callable[["QtSheetHost"], QWidget]


class QtSheetHost:
    """
    Shows one bottom sheet at a time inside `host`.

    Lifecycle per show():
    - geometry measured from host.height() (fixed until the sheet is dismissed)
    - backdrop (unless disabled), panel, drag filter, escape shortcut
    - open_session() commits halfway, which animates the panel in from below
    - hide()/cancel() dispose the tracker first, then slide the panel out and delete widgets

    Threading model:
    - All methods must be called on the Qt thread; remote commands arrive through
      PanelCommandPoller's signal, which is delivered on this thread.
    """

    def __init__(
        self,
        *,
        host: QWidget,
        cfg: AppConfig,
        store: Optional[SheetStatusStore] = None,
        content_factory: Optional[ContentFactory] = None,
    ) -> None:
        self._host = host
        self._cfg = cfg
        self._store = store
        self._content_factory = content_factory

        self._session: Optional[SheetSession] = None
        self._panel: Optional[BottomSheetPanel] = None
        self._backdrop: Optional[SheetBackdrop] = None
        self._escape_shortcut: Optional[QShortcut] = None

        self._interim = InterimElement(on_show=self._mount)

    @property
    def session(self) -> Optional[SheetSession]:
        return self._session

    @property
    def panel(self) -> Optional[BottomSheetPanel]:
        return self._panel

    @property
    def backdrop(self) -> Optional[SheetBackdrop]:
        return self._backdrop

    @property
    def escape_shortcut(self) -> Optional[QShortcut]:
        return self._escape_shortcut

    @property
    def is_showing(self) -> bool:
        return self._interim.is_showing

    # ----------------------------
    # Public lifecycle
    # ----------------------------

    def show(self, options: Optional[SheetOptions] = None) -> "Future[Any]":
        fut = self._interim.show(options or self._cfg.sheet_options())
        fut.add_done_callback(_log_outcome)
        return fut

    def hide(self, response: Any = None) -> bool:
        return self._interim.hide(response)

    def cancel(self, reason: Any = None) -> bool:
        return self._interim.cancel(reason)

    def destroy(self) -> bool:
        return self._interim.destroy()

    def set_state(self, state: PanelState) -> bool:
        if self._session is None:
            return False
        self._session.controller.set_state(state)
        return True

    def apply_command(self, cmd: Dict[str, Any]) -> None:
        """
        Apply a remote command from PanelCommandPoller.

        Shape: {"seq": int, "state": str | None, "action": "show" | "hide" | "cancel" | None}
        """
        action = cmd.get("action")
        if action == "show":
            self.show()
        elif action == "hide":
            self.hide("remote")
        elif action == "cancel":
            self.cancel("remote")

        state_raw = cmd.get("state")
        if state_raw is None:
            return
        try:
            state = PanelState.parse(state_raw)
        except ValueError:
            print("[ui]", "ignoring command with invalid state=", state_raw, flush=True)
            return
        if not self.set_state(state):
            print("[ui]", "no sheet shown; ignoring state command", state.value, flush=True)

    def relayout(self) -> None:
        """Follow host resizes horizontally. Vertical geometry stays fixed per sheet."""
        if self._backdrop is not None:
            self._backdrop.setGeometry(self._host.rect())
        if self._panel is not None and self._session is not None:
            self._panel.resize(self._host.width(), int(self._session.controller.geometry.viewport_height))

    # ----------------------------
    # Mount / unmount
    # ----------------------------

    def _mount(self, options: SheetOptions) -> Remover:
        host = self._host
        geometry = self._cfg.geometry_for(host.height())

        backdrop: Optional[SheetBackdrop] = None
        if not options.disable_backdrop:
            backdrop = SheetBackdrop(
                host,
                on_click=lambda: self.cancel("backdrop"),
                click_to_close=options.click_outside_to_close,
                lock_scroll=options.disable_parent_scroll,
            )
            backdrop.setGeometry(host.rect())
            backdrop.show()
            backdrop.raise_()

        content = self._content_factory(self) if self._content_factory is not None else None
        panel = BottomSheetPanel(host, content=content)
        # Start just below the viewport so the first halfway commit slides it in.
        panel.setGeometry(0, host.height(), host.width(), int(geometry.viewport_height))
        panel.show()
        panel.raise_()

        drag_filter = SheetDragFilter(host=host, panel=panel, lock_scroll=options.disable_parent_scroll)

        shortcut: Optional[QShortcut] = None
        if options.escape_to_close:
            shortcut = QShortcut(QKeySequence("Esc"), host)
            shortcut.activated.connect(lambda: QTimer.singleShot(0, lambda: self.cancel("escape")))  # type: ignore[arg-type]

        store = self._store

        def render(frame: RenderFrame) -> None:
            panel.apply_frame(frame)
            if store is not None:
                store.record_frame(frame)

        def on_state_change(previous: PanelState, current: PanelState, reason: str) -> None:
            print("[ui]", "state", previous.value, "->", current.value, "reason=", reason, flush=True)
            if store is not None:
                store.record_transition(previous, current, reason)

        if store is not None:
            store.set_showing(True)
            store.set_geometry(geometry)

        try:
            session = open_session(
                geometry=geometry,
                panel=panel,
                parent_of=widget_parent,
                register=drag_filter.register,
                renderer=render,
                options=options,
                transition_ms=self._cfg.transition_ms,
                on_state_change=on_state_change,
                velocity_window_ms=self._cfg.velocity_window_ms,
            )
        except Exception:
            # Undo the partial mount so a failed show leaves nothing behind.
            if shortcut is not None:
                shortcut.setEnabled(False)
                shortcut.deleteLater()
            panel.deleteLater()
            if backdrop is not None:
                backdrop.deleteLater()
            if store is not None:
                store.set_showing(False)
            raise

        self._session = session
        self._panel = panel
        self._backdrop = backdrop
        self._escape_shortcut = shortcut

        # Focus handoff so Escape reaches the sheet: first button in it, else the panel.
        if options.escape_to_close:
            panel.focus_target().setFocus(Qt.FocusReason.OtherFocusReason)

        print(
            "[ui]",
            "sheet shown",
            "viewport=",
            geometry.viewport_height,
            "halfway=",
            round(geometry.halfway_height, 1),
            "minimized=",
            geometry.minimized_height,
            flush=True,
        )

        def remove() -> Optional["Future[Any]"]:
            # Listeners first: in-flight drag samples for this sheet are dropped from here on.
            session.close()
            if shortcut is not None:
                shortcut.setEnabled(False)
                shortcut.deleteLater()

            if self._session is session:
                self._session = None
                self._panel = None
                self._backdrop = None
                self._escape_shortcut = None
            if store is not None:
                store.set_showing(False)

            def finalize() -> None:
                panel.deleteLater()
                if backdrop is not None:
                    backdrop.deleteLater()
                drag_filter.deleteLater()

            duration = int(self._cfg.transition_ms)
            if duration <= 0:
                finalize()
                return None

            done: Future = Future()
            done.set_running_or_notify_cancel()

            def on_left() -> None:
                finalize()
                done.set_result(None)

            if backdrop is not None:
                backdrop.hide()
            panel.slide_to(host.height(), duration_ms=duration, on_finished=on_left)
            return done

        return remove


def _log_outcome(fut: "Future[Any]") -> None:
    exc = fut.exception()
    if isinstance(exc, SheetCancelled):
        print("[ui]", "sheet cancelled", "reason=", exc.reason, flush=True)
    elif exc is not None:
        print("[ui]", "sheet failed", repr(exc), flush=True)
    else:
        print("[ui]", "sheet hidden", "response=", fut.result(), flush=True)


class SheetHostWindow(QWidget):
    """
    Demo host: scrollable background content plus an "Open sheet" button.

    The sheet itself is mounted over this widget by QtSheetHost.
    """

    def __init__(self, *, cfg: AppConfig, store: Optional[SheetStatusStore] = None) -> None:
        super().__init__()
        self.setWindowTitle("Bottom sheet")
        self.resize(int(cfg.window_width), int(cfg.window_height))

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)

        self._open_btn = QPushButton("Open sheet")
        layout.addWidget(self._open_btn)

        items = QListWidget()
        for i in range(1, 61):
            items.addItem(f"Background item {i}")
        layout.addWidget(items, 1)

        self.sheet_host = QtSheetHost(host=self, cfg=cfg, store=store, content_factory=_build_sheet_content)
        self._open_btn.clicked.connect(lambda: self.sheet_host.show())  # type: ignore[arg-type]

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self.sheet_host.relayout()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        try:
            self.sheet_host.destroy()
        except Exception:
            traceback.print_exc()
        super().closeEvent(event)


def _build_sheet_content(host: QtSheetHost) -> QWidget:
    """Sheet body: a title and one button per state plus hide/cancel."""
    w = QWidget()
    layout = QVBoxLayout(w)
    layout.setContentsMargins(0, 0, 0, 0)

    title = QLabel("Drag me, or flick me")
    title.setAlignment(Qt.AlignmentFlag.AlignHCenter)
    layout.addWidget(title)

    row = QHBoxLayout()
    for label, state in (
        ("Expand", PanelState.EXPANDED),
        ("Halfway", PanelState.HALFWAY),
        ("Minimize", PanelState.MINIMIZED),
    ):
        btn = QPushButton(label)
        btn.clicked.connect(lambda _=False, s=state: host.set_state(s))  # type: ignore[arg-type]
        row.addWidget(btn)
    layout.addLayout(row)

    done_row = QHBoxLayout()
    hide_btn = QPushButton("Done")
    hide_btn.clicked.connect(lambda: host.hide("done"))  # type: ignore[arg-type]
    cancel_btn = QPushButton("Cancel")
    cancel_btn.clicked.connect(lambda: host.cancel("button"))  # type: ignore[arg-type]
    done_row.addWidget(hide_btn)
    done_row.addWidget(cancel_btn)
    layout.addLayout(done_row)

    return w


def run_sheet_ui(
    *,
    cfg: AppConfig,
    store: SheetStatusStore,
    quit_flag: threading.Event,
    on_close: Callable[[], None],
    server_base_url: Optional[str] = None,
    show_on_start: bool = True,
) -> None:
    """
    Start (or attach to) the Qt application and show the host window.

    Responsibilities:
    - Build the host window and its QtSheetHost.
    - Poll GET {server_base_url}/panel for remote commands (if a base URL is given).
    - Poll a cross-thread quit_flag and close cleanly when requested.

    Threading model:
    - Must be called from the UI thread; blocks until the Qt event loop exits.
    """
    app = QApplication.instance() or QApplication([])

    w = SheetHostWindow(cfg=cfg, store=store)
    w.show()

    base = (server_base_url or "").strip().rstrip("/")
    poller: Optional[PanelCommandPoller] = None
    if base:
        poller = PanelCommandPoller(
            url=f"{base}/panel",
            poll_ms=int(cfg.command_poll_ms),
            timeout_sec=float(cfg.http_timeout_sec),
            parent=w,
        )
        poller.commandReceived.connect(w.sheet_host.apply_command)  # type: ignore[arg-type]
        poller.start()

    if show_on_start:
        # Defer until the window has its real size so geometry is measured correctly.
        QTimer.singleShot(0, lambda: w.sheet_host.show())

    quit_timer = QTimer()
    quit_timer.setInterval(200)

    def on_quit_tick() -> None:
        if quit_flag.is_set():
            quit_timer.stop()
            if poller is not None:
                poller.stop()
            w.close()
            app.quit()

    quit_timer.timeout.connect(on_quit_tick)  # type: ignore[arg-type]
    quit_timer.start()

    app.aboutToQuit.connect(on_close)  # type: ignore[arg-type]
    app.exec()
