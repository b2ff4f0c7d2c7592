import importlib.util
import os
import unittest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

HAS_QT = importlib.util.find_spec("PySide6") is not None

if HAS_QT:
    from PySide6.QtCore import QEvent, QPoint, QPointF, Qt
    from PySide6.QtGui import QMouseEvent, QWheelEvent
    from PySide6.QtWidgets import QApplication, QLabel, QWidget

    from config.config import AppConfig
    from server.status_store import SheetStatusStore
    from sheet.gesture import PointerEvent
    from sheet.lifecycle import SheetCancelled, SheetOptions
    from sheet.models import DragSample, PanelState
    from ui.panel_sync import PanelCommandPoller, parse_command
    from ui.sheet_host import QtSheetHost


def make_cfg(**overrides):
    values = dict(
        server_host="127.0.0.1",
        server_port=8736,
        halfway_ratio=0.6,
        minimized_height_px=56.0,
        velocity_threshold=0.5,
        distance_threshold_px=20.0,
        # No animations: frames and dismissal apply synchronously.
        transition_ms=0,
        padding_px=0.0,
        velocity_window_ms=100.0,
        disable_backdrop=False,
        click_outside_to_close=True,
        escape_to_close=True,
        disable_parent_scroll=True,
        window_width=400,
        window_height=800,
        command_poll_ms=250,
        http_timeout_sec=0.35,
        history_seconds=60.0,
    )
    values.update(overrides)
    return AppConfig(**values)


def send_mouse(widget, etype, y, ts, *, button=None, buttons=None):
    """Deliver a synthetic left-button mouse event at global (10, y) with timestamp ts."""
    if button is None:
        button = Qt.MouseButton.NoButton if etype == QEvent.Type.MouseMove else Qt.MouseButton.LeftButton
    if buttons is None:
        # Moves and presses carry the held button; without it Qt drops untracked moves.
        buttons = Qt.MouseButton.NoButton if etype == QEvent.Type.MouseButtonRelease else Qt.MouseButton.LeftButton
    ev = QMouseEvent(etype, QPointF(10, 10), QPointF(10, y), button, buttons, Qt.KeyboardModifier.NoModifier)
    ev.setTimestamp(int(ts))
    QApplication.sendEvent(widget, ev)


def send_wheel(widget):
    ev = QWheelEvent(
        QPointF(10, 10),
        QPointF(10, 10),
        QPoint(0, 0),
        QPoint(0, -120),
        Qt.MouseButton.NoButton,
        Qt.KeyboardModifier.NoModifier,
        Qt.ScrollPhase.NoScrollPhase,
        False,
    )
    QApplication.sendEvent(widget, ev)


if HAS_QT:

    class WheelCounter(QWidget):
        """Host child that records the wheel events that reach it."""

        def __init__(self, parent=None):
            super().__init__(parent)
            self.wheels = 0

        def wheelEvent(self, event):  # type: ignore[override]
            self.wheels += 1
            event.ignore()


@unittest.skipUnless(HAS_QT, "PySide6 not installed")
class TestParseCommand(unittest.TestCase):
    def test_valid(self):
        self.assertEqual(
            parse_command({"seq": 4, "state": "expanded", "action": None}),
            {"seq": 4, "state": "expanded", "action": None},
        )

    def test_invalid(self):
        self.assertIsNone(parse_command([]))
        self.assertIsNone(parse_command({"seq": "4"}))
        self.assertIsNone(parse_command({"seq": True}))
        self.assertEqual(parse_command({"seq": 1, "state": 3})["state"], None)


@unittest.skipUnless(HAS_QT, "PySide6 not installed")
class TestPanelCommandPoller(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = QApplication.instance() or QApplication([])

    def setUp(self):
        self.poller = PanelCommandPoller(url="http://127.0.0.1:1/panel", poll_ms=250, timeout_sec=0.35)

    def tearDown(self):
        self.poller.deleteLater()

    def test_first_poll_sets_baseline(self):
        payload = {"seq": 3, "state": "minimized", "action": None, "commands": [{"seq": 3, "state": "minimized", "action": None}]}
        self.assertEqual(self.poller.take_new(payload), [])

    def test_every_newer_command_is_returned_in_order(self):
        self.poller.take_new({"seq": 0, "state": None, "action": None, "commands": []})

        payload = {
            "seq": 2,
            "state": "expanded",
            "action": None,
            # Out of order on purpose; delivery is by seq.
            "commands": [
                {"seq": 2, "state": "expanded", "action": None},
                {"seq": 1, "state": None, "action": "show"},
            ],
        }
        cmds = self.poller.take_new(payload)
        self.assertEqual([c["seq"] for c in cmds], [1, 2])
        self.assertEqual(cmds[0]["action"], "show")
        self.assertEqual(cmds[1]["state"], "expanded")

        # Same seq again: nothing new.
        self.assertEqual(self.poller.take_new(payload), [])

    def test_falls_back_to_latest_without_queue(self):
        self.poller.take_new({"seq": 1, "state": None, "action": None})
        cmds = self.poller.take_new({"seq": 5, "state": "halfway", "action": None, "commands": []})
        self.assertEqual(cmds, [{"seq": 5, "state": "halfway", "action": None}])

    def test_invalid_payload_keeps_baseline(self):
        self.poller.take_new({"seq": 1, "state": None, "action": None})
        self.assertEqual(self.poller.take_new(None), [])
        self.assertEqual(self.poller.take_new({"seq": "x"}), [])
        cmds = self.poller.take_new({"seq": 2, "state": None, "action": "hide", "commands": [{"seq": 2, "state": None, "action": "hide"}]})
        self.assertEqual([c["action"] for c in cmds], ["hide"])


@unittest.skipUnless(HAS_QT, "PySide6 not installed")
class TestQtSheetHost(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = QApplication.instance() or QApplication([])

    def setUp(self):
        self.host_widget = QWidget()
        self.host_widget.resize(400, 800)
        self.store = SheetStatusStore(history_seconds=60)
        self.host = QtSheetHost(host=self.host_widget, cfg=make_cfg(), store=self.store)

    def tearDown(self):
        self.host.destroy()
        self.host_widget.deleteLater()
        self.app.processEvents()

    def test_show_places_panel_at_halfway(self):
        fut = self.host.show()
        self.assertTrue(self.host.is_showing)
        self.assertFalse(fut.done())
        self.assertEqual(self.host.panel.y(), 320)
        self.assertEqual(self.host.panel.property("sheetState"), "halfway")

        p = self.store.get_payload()
        self.assertTrue(p["panel"]["showing"])
        self.assertEqual(p["panel"]["state"], "halfway")
        self.assertEqual(p["geometry"]["viewport_height"], 800.0)

    def test_setters_move_panel(self):
        self.host.show()
        self.assertTrue(self.host.set_state(PanelState.EXPANDED))
        self.assertEqual(self.host.panel.y(), 0)
        self.host.session.controller.set_minimized()
        self.assertEqual(self.host.panel.y(), 744)
        self.assertEqual(self.host.panel.property("sheetState"), "minimized")
        self.assertEqual(self.store.get_history()[-1]["current"], "minimized")

    def test_drag_through_tracker(self):
        self.host.show()
        panel = self.host.panel
        tracker = self.host.session.tracker
        tracker.on_drag_start(PointerEvent(origin=panel, y=400, timestamp_ms=0))
        tracker.on_drag_move(PointerEvent(origin=panel, y=380, timestamp_ms=10))
        self.assertEqual(panel.y(), 300)
        tracker.on_drag_end(PointerEvent(origin=panel, y=360, timestamp_ms=20))
        # Dragged up 40 at 2 px/ms from halfway.
        self.assertEqual(self.host.session.controller.state, PanelState.EXPANDED)
        self.assertEqual(panel.y(), 0)

    def test_on_load_transition_is_recorded_with_its_rule(self):
        """A commit made from on_load is recorded with the snap rule, not a stale reason."""

        def flick_up(controller):
            controller.on_drag_end_sample(DragSample(distance_y=-30, velocity_y=-1.0))

        self.host.show(SheetOptions(on_load=flick_up))
        hist = self.store.get_history()
        self.assertEqual(
            [(h["previous"], h["current"], h["rule"]) for h in hist],
            [("halfway", "expanded", "flick_or_drag"), ("expanded", "halfway", "setter")],
        )

        self.host.set_state(PanelState.MINIMIZED)
        self.assertEqual(self.store.get_history()[-1]["rule"], "setter")

    def test_focus_moves_into_panel_only_with_escape_to_close(self):
        self.host.show(SheetOptions(escape_to_close=False))
        self.assertIsNone(self.host_widget.focusWidget())
        self.assertIsNone(self.host.escape_shortcut)
        self.host.hide()

        self.host.show(SheetOptions(escape_to_close=True))
        # No content, so the panel itself takes focus.
        self.assertIs(self.host_widget.focusWidget(), self.host.panel)
        self.assertIsNotNone(self.host.escape_shortcut)

    def test_hide_resolves_and_unmounts(self):
        fut = self.host.show()
        self.assertTrue(self.host.hide("done"))
        self.assertEqual(fut.result(timeout=0), "done")
        self.assertIsNone(self.host.panel)
        self.assertIsNone(self.host.session)
        self.assertFalse(self.store.get_payload()["panel"]["showing"])

    def test_show_again_cancels_previous(self):
        first = self.host.show()
        second = self.host.show()
        exc = first.exception(timeout=0)
        self.assertIsInstance(exc, SheetCancelled)
        self.assertEqual(exc.reason, "replaced")
        self.assertFalse(second.done())

    def test_remote_commands(self):
        self.host.apply_command({"seq": 1, "state": None, "action": "show"})
        self.assertTrue(self.host.is_showing)
        self.host.apply_command({"seq": 2, "state": "minimized", "action": None})
        self.assertEqual(self.host.panel.y(), 744)
        self.host.apply_command({"seq": 3, "state": "bogus", "action": None})
        self.assertEqual(self.host.session.controller.state, PanelState.MINIMIZED)
        self.host.apply_command({"seq": 4, "state": None, "action": "cancel"})
        self.assertFalse(self.host.is_showing)

    def test_show_then_state_within_one_poll(self):
        """Both queued commands reach the host: the sheet opens, then expands."""
        self.store.request_visibility("show")
        self.store.request_state(PanelState.EXPANDED)

        poller = PanelCommandPoller(url="http://127.0.0.1:1/panel", poll_ms=250, timeout_sec=0.35)
        try:
            poller.take_new({"seq": 0, "state": None, "action": None, "commands": []})
            payload = self.store.get_command()
            payload["commands"] = self.store.get_commands(0)
            for cmd in poller.take_new(payload):
                self.host.apply_command(cmd)
        finally:
            poller.deleteLater()

        self.assertTrue(self.host.is_showing)
        self.assertEqual(self.host.session.controller.state, PanelState.EXPANDED)
        self.assertEqual(self.host.panel.y(), 0)

    def test_state_command_without_sheet_is_ignored(self):
        self.assertFalse(self.host.set_state(PanelState.EXPANDED))
        self.host.apply_command({"seq": 1, "state": "expanded", "action": None})
        self.assertFalse(self.host.is_showing)


@unittest.skipUnless(HAS_QT, "PySide6 not installed")
class TestQtSheetInput(unittest.TestCase):
    """Real Qt mouse, wheel and shortcut input through the drag filter and backdrop."""

    @classmethod
    def setUpClass(cls):
        cls.app = QApplication.instance() or QApplication([])

    def setUp(self):
        self.host_widget = QWidget()
        self.host_widget.resize(400, 800)
        self.background = WheelCounter(self.host_widget)
        self.background.setGeometry(0, 0, 400, 800)
        self.store = SheetStatusStore(history_seconds=60)
        self.host = QtSheetHost(
            host=self.host_widget,
            cfg=make_cfg(),
            store=self.store,
            content_factory=lambda _host: QLabel("content"),
        )
        self.host_widget.show()

    def tearDown(self):
        self.host.destroy()
        self.host_widget.close()
        self.host_widget.deleteLater()
        self.app.processEvents()

    def content(self):
        return self.host.panel.findChild(QLabel)

    def test_flick_on_content_snaps(self):
        self.host.show()
        label = self.content()
        send_mouse(label, QEvent.Type.MouseButtonPress, 500, 1000)
        send_mouse(label, QEvent.Type.MouseMove, 480, 1010)
        self.assertEqual(self.host.panel.y(), 300)
        send_mouse(label, QEvent.Type.MouseMove, 460, 1020)
        send_mouse(label, QEvent.Type.MouseButtonRelease, 460, 1030)

        controller = self.host.session.controller
        self.assertEqual(controller.state, PanelState.EXPANDED)
        self.assertEqual(controller.last_decision.rule, "flick_or_drag")
        self.assertEqual(self.host.panel.y(), 0)

    def test_drag_on_background_leaves_state(self):
        self.host.show(SheetOptions(disable_backdrop=True))
        send_mouse(self.background, QEvent.Type.MouseButtonPress, 500, 1000)
        send_mouse(self.background, QEvent.Type.MouseMove, 300, 1010)
        send_mouse(self.background, QEvent.Type.MouseButtonRelease, 200, 1020)

        controller = self.host.session.controller
        self.assertEqual(controller.state, PanelState.HALFWAY)
        self.assertIsNone(controller.last_decision)
        self.assertEqual(self.host.panel.y(), 320)

    def test_propagated_move_is_seen_once(self):
        self.host.show()
        tracker = self.host.session.tracker
        moves = []
        original = tracker.on_drag_move

        def counting_move(event):
            moves.append(event.y)
            original(event)

        tracker.on_drag_move = counting_move

        label = self.content()
        send_mouse(label, QEvent.Type.MouseButtonPress, 500, 1000)
        send_mouse(label, QEvent.Type.MouseMove, 490, 1010)
        self.assertEqual(moves, [490.0])
        self.assertEqual(self.host.panel.y(), 310)

    def test_second_press_does_not_restart_sequence(self):
        self.host.show()
        tracker = self.host.session.tracker
        starts = []
        original = tracker.on_drag_start

        def counting_start(event):
            starts.append(event.y)
            original(event)

        tracker.on_drag_start = counting_start

        label = self.content()
        send_mouse(label, QEvent.Type.MouseButtonPress, 500, 1000)
        send_mouse(label, QEvent.Type.MouseButtonPress, 700, 1005)
        self.assertEqual(starts, [500.0])

        send_mouse(label, QEvent.Type.MouseMove, 490, 1010)
        # Distance is measured from the first press.
        self.assertEqual(self.host.panel.y(), 310)

    def test_wheel_outside_panel_is_swallowed(self):
        self.host.show()
        send_wheel(self.background)
        self.assertEqual(self.background.wheels, 0)

    def test_wheel_passes_when_scroll_unlocked(self):
        self.host.show(SheetOptions(disable_parent_scroll=False))
        send_wheel(self.background)
        self.assertEqual(self.background.wheels, 1)

    def test_backdrop_click_cancels_on_next_tick(self):
        fut = self.host.show()
        send_mouse(self.host.backdrop, QEvent.Type.MouseButtonPress, 100, 1000)
        # The press finishes dispatching before the sheet is torn down.
        self.assertTrue(self.host.is_showing)
        self.assertFalse(fut.done())

        self.app.processEvents()
        self.assertFalse(self.host.is_showing)
        exc = fut.exception(timeout=0)
        self.assertIsInstance(exc, SheetCancelled)
        self.assertEqual(exc.reason, "backdrop")

    def test_backdrop_click_ignored_without_click_to_close(self):
        fut = self.host.show(SheetOptions(click_outside_to_close=False))
        send_mouse(self.host.backdrop, QEvent.Type.MouseButtonPress, 100, 1000)
        self.app.processEvents()
        self.assertTrue(self.host.is_showing)
        self.assertFalse(fut.done())

    def test_escape_cancels(self):
        fut = self.host.show()
        self.host.escape_shortcut.activated.emit()
        self.assertTrue(self.host.is_showing)

        self.app.processEvents()
        exc = fut.exception(timeout=0)
        self.assertIsInstance(exc, SheetCancelled)
        self.assertEqual(exc.reason, "escape")
        self.assertIsNone(self.host.escape_shortcut)


if __name__ == "__main__":
    unittest.main()
