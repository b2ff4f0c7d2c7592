import unittest

from sheet.controller import COMMIT_SETTER, PanelPositionController
from sheet.models import DragSample, PanelState, SheetGeometry
from sheet.snap import RULE_FLICK_OR_DRAG, RULE_STAY


class TestPanelPositionController(unittest.TestCase):
    def setUp(self):
        self.geo = SheetGeometry(viewport_height=800.0, halfway_height=480.0, minimized_height=56.0)
        self.frames = []
        self.changes = []
        self.ctl = PanelPositionController(
            geometry=self.geo,
            renderer=self.frames.append,
            on_state_change=lambda prev, cur, reason: self.changes.append((prev, cur)),
        )

    def test_initial_state_is_halfway_without_render(self):
        """Construction does not draw; the lifecycle commits the first frame."""
        self.assertEqual(self.ctl.current_state(), PanelState.HALFWAY)
        self.assertEqual(self.ctl.offset, 320.0)
        self.assertEqual(self.frames, [])

    def test_setters_commit_baselines_with_transition(self):
        self.ctl.set_expanded()
        self.assertEqual(self.ctl.state, PanelState.EXPANDED)
        frame = self.frames[-1]
        self.assertEqual(frame.offset_px, 0.0)
        self.assertEqual(frame.transition_ms, 500)
        self.assertFalse(frame.dragging)

        self.ctl.set_minimized()
        self.assertEqual(self.frames[-1].offset_px, 744.0)
        self.ctl.set_halfway()
        self.assertEqual(self.frames[-1].offset_px, 320.0)
        self.assertEqual(
            self.changes,
            [
                (PanelState.HALFWAY, PanelState.EXPANDED),
                (PanelState.EXPANDED, PanelState.MINIMIZED),
                (PanelState.MINIMIZED, PanelState.HALFWAY),
            ],
        )

    def test_setters_are_idempotent(self):
        self.ctl.set_expanded()
        self.ctl.set_expanded()
        self.assertEqual(self.frames[0], self.frames[1])
        self.assertEqual(len(self.changes), 1)
        self.assertEqual(self.ctl.commit_reason, COMMIT_SETTER)

    def test_drag_move_renders_without_transition(self):
        offset = self.ctl.on_drag_move_sample(DragSample(distance_y=30, velocity_y=0.1))
        self.assertEqual(offset, 350.0)
        frame = self.frames[-1]
        self.assertEqual(frame.transition_ms, 0)
        self.assertTrue(frame.dragging)
        self.assertEqual(frame.state, PanelState.HALFWAY)
        self.assertTrue(self.ctl.dragging)
        # Moving does not commit.
        self.assertEqual(self.ctl.state, PanelState.HALFWAY)
        self.assertEqual(self.changes, [])

    def test_drag_end_commits_decision(self):
        decision = self.ctl.on_drag_end_sample(DragSample(distance_y=30, velocity_y=0.6))
        self.assertEqual(decision.state, PanelState.MINIMIZED)
        self.assertEqual(decision.rule, RULE_FLICK_OR_DRAG)
        self.assertIs(self.ctl.last_decision, decision)
        self.assertEqual(self.ctl.commit_reason, RULE_FLICK_OR_DRAG)
        self.assertFalse(self.ctl.dragging)

        # Final sample frame, then the committed baseline with the snap transition.
        self.assertEqual(self.frames[-2].offset_px, 350.0)
        self.assertEqual(self.frames[-2].transition_ms, 0)
        self.assertEqual(self.frames[-1].offset_px, 744.0)
        self.assertEqual(self.frames[-1].transition_ms, 500)
        self.assertEqual(self.changes, [(PanelState.HALFWAY, PanelState.MINIMIZED)])

    def test_listener_receives_commit_reason(self):
        """Each change reports why it happened: the snap rule, or "setter"."""
        seen = []
        ctl = PanelPositionController(
            geometry=self.geo,
            on_state_change=lambda prev, cur, reason: seen.append((cur, reason)),
        )
        ctl.on_drag_end_sample(DragSample(distance_y=30, velocity_y=0.6))
        ctl.set_expanded()
        self.assertEqual(
            seen,
            [(PanelState.MINIMIZED, RULE_FLICK_OR_DRAG), (PanelState.EXPANDED, COMMIT_SETTER)],
        )

    def test_drag_end_stay_snaps_back(self):
        self.ctl.on_drag_move_sample(DragSample(distance_y=10))
        decision = self.ctl.on_drag_end_sample(DragSample(distance_y=10, velocity_y=0.1))
        self.assertEqual(decision.rule, RULE_STAY)
        self.assertEqual(self.ctl.offset, 320.0)
        self.assertEqual(self.frames[-1].offset_px, 320.0)
        self.assertEqual(self.changes, [])

    def test_padding_is_added_to_rendered_offsets_only(self):
        geo = SheetGeometry(viewport_height=800.0, halfway_height=480.0, minimized_height=56.0, padding_px=12.0)
        frames = []
        ctl = PanelPositionController(geometry=geo, renderer=frames.append)
        ctl.set_expanded()
        self.assertEqual(frames[-1].offset_px, 12.0)
        self.assertEqual(ctl.offset, 0.0)

    def test_failing_renderer_does_not_block_commit(self):
        def broken(_frame):
            raise RuntimeError("view gone")

        ctl = PanelPositionController(geometry=self.geo, renderer=broken)
        ctl.set_minimized()
        self.assertEqual(ctl.state, PanelState.MINIMIZED)

    def test_custom_transition(self):
        ctl = PanelPositionController(geometry=self.geo, renderer=self.frames.append, transition_ms=-5)
        self.assertEqual(ctl.transition_ms, 0)
        ctl.set_expanded()
        self.assertEqual(self.frames[-1].transition_ms, 0)


if __name__ == "__main__":
    unittest.main()
