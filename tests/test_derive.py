import unittest

from core.landmarks import UnknownLandmark
from engine.derive import derive_composite_joints, midpoint_series
from engine.series import FrameSample, JointSeries, TimeSeriesStore


def series(name, samples):
    return JointSeries(name=name, color=(0, 0, 0), samples=[FrameSample(*sample) for sample in samples])


class MidpointTests(unittest.TestCase):
    def test_pairs_within_tolerance(self) -> None:
        left = series("left_hip", [(0.0, 0.2, 0.4, 0.0), (1.0, 0.2, 0.4, 0.0)])
        right = series("right_hip", [(0.05, 0.4, 0.6, 0.2), (1.5, 0.4, 0.6, 0.2)])
        center = midpoint_series("center_hip", left, right)
        self.assertEqual(len(center), 1)
        sample = center.samples[0]
        self.assertEqual(sample.t, 0.0)
        self.assertAlmostEqual(sample.x, 0.3)
        self.assertAlmostEqual(sample.y, 0.5)
        self.assertAlmostEqual(sample.z, 0.1)
        self.assertIsNone(sample.visibility)

    def test_first_match_wins(self) -> None:
        left = series("left_hip", [(1.0, 0.0, 0.0, 0.0)])
        right = series("right_hip", [(0.92, 1.0, 1.0, 1.0), (1.0, 0.5, 0.5, 0.5)])
        center = midpoint_series("center_hip", left, right)
        self.assertAlmostEqual(center.samples[0].x, 0.5)

    def test_length_bounded_by_sources(self) -> None:
        left = series("left_hip", [(index / 10.0, 0.1, 0.1, 0.1) for index in range(10)])
        right = series("right_hip", [(0.0, 0.3, 0.3, 0.3)])
        center = midpoint_series("center_hip", left, right)
        self.assertLessEqual(len(center), len(left))
        self.assertEqual([sample.t for sample in center], [0.0])

    def test_each_partner_used_once(self) -> None:
        left = series("left_hip", [(0.0, 0.2, 0.2, 0.2), (0.05, 0.4, 0.4, 0.4)])
        right = series("right_hip", [(0.0, 0.6, 0.6, 0.6)])
        center = midpoint_series("center_hip", left, right)
        self.assertLessEqual(len(center), min(len(left), len(right)))
        self.assertEqual([sample.t for sample in center], [0.0])
        self.assertAlmostEqual(center.samples[0].x, 0.4)

    def test_later_samples_take_next_unused_partner(self) -> None:
        left = series("left_hip", [(0.0, 0.0, 0.0, 0.0), (0.03, 0.0, 0.0, 0.0)])
        right = series("right_hip", [(0.01, 0.2, 0.2, 0.2), (0.02, 0.6, 0.6, 0.6)])
        center = midpoint_series("center_hip", left, right)
        self.assertEqual([sample.t for sample in center], [0.0, 0.03])
        self.assertAlmostEqual(center.samples[0].x, 0.1)
        self.assertAlmostEqual(center.samples[1].x, 0.3)


class DeriveCompositeJointsTests(unittest.TestCase):
    def test_aliases_share_series(self) -> None:
        store = TimeSeriesStore()
        added = derive_composite_joints(store)
        self.assertEqual(added, ["left_hand", "right_hand", "center_hip"])
        self.assertIs(store.series("left_hand"), store.series("left_wrist"))
        store.append("left_wrist", FrameSample(t=0.0, x=0.1, y=0.2, z=0.3))
        self.assertEqual(len(store.series("left_hand")), 1)

    def test_center_hip_uses_derived_color(self) -> None:
        store = TimeSeriesStore()
        derive_composite_joints(store)
        self.assertEqual(store.series("center_hip").color, (128, 128, 128))

    def test_unknown_source_rejected_before_mutation(self) -> None:
        store = TimeSeriesStore()
        with self.assertRaises(UnknownLandmark):
            derive_composite_joints(store, aliases={"left_hand": "left_wrist", "tail": "tail_base"})
        self.assertNotIn("left_hand", store)
        self.assertNotIn("center_hip", store)

    def test_existing_name_rejected(self) -> None:
        store = TimeSeriesStore()
        derive_composite_joints(store)
        with self.assertRaises(ValueError):
            derive_composite_joints(store, aliases={"left_hand": "left_wrist"}, midpoints={})

    def test_custom_midpoint(self) -> None:
        store = TimeSeriesStore()
        store.append("left_shoulder", FrameSample(t=0.0, x=0.2, y=0.6, z=0.0))
        store.append("right_shoulder", FrameSample(t=0.0, x=0.4, y=0.6, z=0.0))
        derive_composite_joints(store, aliases={}, midpoints={"neck": ("left_shoulder", "right_shoulder")})
        self.assertAlmostEqual(store.series("neck").samples[0].x, 0.3)


if __name__ == "__main__":
    unittest.main()
