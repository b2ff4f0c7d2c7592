"""Qt widgets for the bottom sheet.

- `BottomSheetPanel`: the draggable panel; applies `RenderFrame`s from the controller.
- `SheetBackdrop`: translucent cover behind the panel; click-to-dismiss + scroll lock.
- `SheetDragFilter`: application-wide event filter that turns left-button mouse input on
  the host into `PointerEvent`s for a `GestureTracker`.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from PySide6.QtCore import QEasingCurve, QEvent, QObject, QPoint, QPropertyAnimation, Qt, QTimer
from PySide6.QtGui import QColor, QMouseEvent, QPainter
from PySide6.QtWidgets import QAbstractButton, QApplication, QFrame, QVBoxLayout, QWidget

from sheet.gesture import Disposer, GestureTracker, PointerEvent, is_descendant_of
from sheet.models import PanelState, RenderFrame


def widget_parent(w: Any) -> Optional[QWidget]:
    """
    parent_of() for the ancestor walk.

    A deleted C++ object raises RuntimeError here; is_descendant_of treats that as the
    end of the chain.
    """
    if not isinstance(w, QWidget):
        return None
    return w.parentWidget()


class BottomSheetPanel(QFrame):
    """
    The sheet itself: a full-viewport-height frame translated vertically.

    Layout:
    - a small grab handle at the top
    - the caller-supplied content below it

    The committed state is exposed as the dynamic property `sheetState` so style sheets
    can target e.g. `BottomSheetPanel[sheetState="minimized"]`.
    """

    HANDLE_W = 40
    HANDLE_H = 5

    def __init__(self, parent: QWidget, *, content: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName("bottomSheet")
        self.setFrameShape(QFrame.Shape.NoFrame)
        self.setAutoFillBackground(True)
        # Not reachable with Tab; focus is handed to a child on show.
        self.setFocusPolicy(Qt.FocusPolicy.ClickFocus)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 18, 16, 16)
        layout.setSpacing(8)
        if content is not None:
            layout.addWidget(content)
        layout.addStretch(1)

        self._anim = QPropertyAnimation(self, b"pos", self)
        self._anim.setEasingCurve(QEasingCurve.Type.OutCubic)
        self._leave_anim: Optional[QPropertyAnimation] = None

        self.setProperty("sheetState", PanelState.HALFWAY.value)

    def apply_frame(self, frame: RenderFrame) -> None:
        """
        Renderer entry point.

        transition_ms == 0 moves immediately (dragging); otherwise animates to the target.
        """
        target = QPoint(0, int(round(frame.offset_px)))
        self._anim.stop()
        if frame.transition_ms <= 0:
            self.move(target)
        else:
            self._anim.setDuration(int(frame.transition_ms))
            self._anim.setStartValue(self.pos())
            self._anim.setEndValue(target)
            self._anim.start()

        if self.property("sheetState") != frame.state.value:
            self.setProperty("sheetState", frame.state.value)
            # Re-polish so property selectors in style sheets pick up the change.
            self.style().unpolish(self)
            self.style().polish(self)

    def slide_to(self, y: int, *, duration_ms: int, on_finished: Callable[[], None]) -> None:
        """Animate to an arbitrary y (used for the leave transition)."""
        self._anim.stop()
        leave = QPropertyAnimation(self, b"pos", self)
        leave.setEasingCurve(QEasingCurve.Type.InCubic)
        leave.setDuration(max(0, int(duration_ms)))
        leave.setStartValue(self.pos())
        leave.setEndValue(QPoint(0, int(y)))
        leave.finished.connect(on_finished)  # type: ignore[arg-type]
        leave.start()
        self._leave_anim = leave

    def focus_target(self) -> QWidget:
        """First button inside the panel, else the panel itself."""
        buttons = self.findChildren(QAbstractButton)
        return buttons[0] if buttons else self

    def paintEvent(self, event) -> None:  # type: ignore[override]
        super().paintEvent(event)
        p = QPainter(self)
        p.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        p.setPen(Qt.PenStyle.NoPen)
        p.setBrush(QColor(120, 120, 120, 180))
        x = (self.width() - self.HANDLE_W) // 2
        p.drawRoundedRect(x, 6, self.HANDLE_W, self.HANDLE_H, 2.5, 2.5)
        p.end()


class SheetBackdrop(QWidget):
    """
    Translucent cover behind the panel.

    - Click: schedules on_click on the next event-loop tick when click_to_close is set
      (the press must finish dispatching before the sheet is torn down).
    - Wheel: swallowed when lock_scroll is set so the host does not scroll underneath.
    """

    def __init__(
        self,
        parent: QWidget,
        *,
        on_click: Callable[[], None],
        click_to_close: bool,
        lock_scroll: bool,
    ) -> None:
        super().__init__(parent)
        self._on_click = on_click
        self._click_to_close = bool(click_to_close)
        self._lock_scroll = bool(lock_scroll)
        self._fill = QColor(0, 0, 0, 110)
        self.setFocusPolicy(Qt.FocusPolicy.NoFocus)

    def paintEvent(self, event) -> None:  # type: ignore[override]
        p = QPainter(self)
        p.fillRect(self.rect(), self._fill)
        p.end()

    def mousePressEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        event.accept()
        if self._click_to_close and event.button() == Qt.MouseButton.LeftButton:
            QTimer.singleShot(0, self._on_click)

    def wheelEvent(self, event) -> None:  # type: ignore[override]
        if self._lock_scroll:
            event.accept()
        else:
            event.ignore()


class SheetDragFilter(QObject):
    """
    Bridges Qt mouse input on a host widget to a GestureTracker.

    Installed on the QApplication so presses on any child of the host (including buttons
    inside the panel) are seen. The filter never consumes mouse events; children keep
    their normal behavior.

    Propagation note:
    - Qt re-delivers an ignored mouse event to each parent in turn, and application
      filters see every delivery. A press is accepted only when no sequence is pressed,
      and identical (type, timestamp, y) deliveries are collapsed.

    Scroll lock:
    - With lock_scroll set, wheel events on host widgets outside the panel are consumed.
    """

    def __init__(self, *, host: QWidget, panel: QWidget, lock_scroll: bool = False) -> None:
        super().__init__()
        self._host = host
        self._panel = panel
        self._lock_scroll = bool(lock_scroll)

        self._tracker: Optional[GestureTracker] = None
        self._installed = False
        self._pressed = False
        self._last_key: Optional[tuple[Any, float, float]] = None

    def register(self, tracker: GestureTracker) -> Disposer:
        """RegisterFn for GestureTracker.attach(); returns the matching disposer."""
        self._tracker = tracker
        app = QApplication.instance()
        if app is not None:
            app.installEventFilter(self)
            self._installed = True
        return self.unregister

    def unregister(self) -> None:
        if self._installed:
            app = QApplication.instance()
            if app is not None:
                app.removeEventFilter(self)
            self._installed = False
        self._tracker = None
        self._pressed = False
        self._last_key = None

    def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # type: ignore[override]
        et = event.type()
        if et not in (
            QEvent.Type.MouseButtonPress,
            QEvent.Type.MouseMove,
            QEvent.Type.MouseButtonRelease,
            QEvent.Type.Wheel,
        ):
            return False

        tracker = self._tracker
        if tracker is None or not isinstance(watched, QWidget):
            return False
        if not is_descendant_of(watched, self._host, parent_of=widget_parent):
            return False

        if et == QEvent.Type.Wheel:
            if self._lock_scroll and not is_descendant_of(watched, self._panel, parent_of=widget_parent):
                return True
            return False

        if not isinstance(event, QMouseEvent):
            return False

        y = float(event.globalPosition().y())
        ts = float(event.timestamp())
        key = (et, ts, y)
        if key == self._last_key:
            return False
        self._last_key = key

        pe = PointerEvent(origin=watched, y=y, timestamp_ms=ts)

        if et == QEvent.Type.MouseButtonPress:
            if event.button() != Qt.MouseButton.LeftButton or self._pressed:
                return False
            self._pressed = True
            tracker.on_drag_start(pe)
        elif et == QEvent.Type.MouseMove:
            if self._pressed:
                tracker.on_drag_move(pe)
        else:
            if event.button() != Qt.MouseButton.LeftButton or not self._pressed:
                return False
            self._pressed = False
            tracker.on_drag_end(pe)

        return False
