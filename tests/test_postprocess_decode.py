import unittest

import numpy as np

from doc_kit.config import DetectionConfig
from doc_kit.errors import ShapeMismatch
from doc_kit.postprocess import DocumentPostprocessor

from fakes import make_output0


def _row(cx, cy, w, h, obj, scores):
    return [cx, cy, w, h, obj, *scores]


class TestDocumentPostprocessDecode(unittest.TestCase):
    def setUp(self) -> None:
        self.post = DocumentPostprocessor(DetectionConfig(class_threshold=0.2, target_class_id=3))

    def test_keeps_target_class_and_remaps(self) -> None:
        out = make_output0([_row(320, 200, 300, 100, 0.5, [0.1, 0.2, 0.3, 0.5])])
        boxes = self.post.process(out, np.array([0]), 1.0, 1280 / 720)
        self.assertEqual(len(boxes), 1)
        box = boxes[0]
        self.assertEqual(box.class_id, 3)
        self.assertAlmostEqual(box.probability, 0.25)
        # floor((200 - 50) * 1.777..) = floor(266.66..) = 266
        self.assertEqual(box.as_xywh(), (170, 266, 300, 177))

    def test_argmax_tie_resolves_to_lowest_index(self) -> None:
        post = DocumentPostprocessor(DetectionConfig(class_threshold=0.0, target_class_id=1))
        out = make_output0([_row(100, 100, 100, 100, 1.0, [0.1, 0.5, 0.2, 0.5])])
        boxes = post.process(out, np.array([0]), 1.0, 1.0)
        self.assertEqual([b.class_id for b in boxes], [1])

        post_other = DocumentPostprocessor(DetectionConfig(class_threshold=0.0, target_class_id=3))
        self.assertEqual(post_other.process(out, np.array([0]), 1.0, 1.0), [])

    def test_score_equal_to_threshold_is_kept(self) -> None:
        post = DocumentPostprocessor(DetectionConfig(class_threshold=0.25, target_class_id=0))
        out = make_output0([_row(50, 50, 40, 40, 0.5, [0.5, 0.25])])
        boxes = post.process(out, np.array([0]), 1.0, 1.0)
        self.assertEqual(len(boxes), 1)
        self.assertEqual(boxes[0].probability, 0.25)

    def test_score_below_threshold_is_dropped(self) -> None:
        out = make_output0([_row(50, 50, 40, 40, 0.2, [0.0, 0.0, 0.0, 0.9])])
        self.assertEqual(self.post.process(out, np.array([0]), 1.0, 1.0), [])

    def test_other_class_dropped_regardless_of_score(self) -> None:
        out = make_output0([_row(50, 50, 40, 40, 1.0, [0.99, 0.0, 0.0, 0.01])])
        self.assertEqual(self.post.process(out, np.array([0]), 1.0, 1.0), [])

    def test_aspect_exactly_at_limit_is_rejected(self) -> None:
        out = make_output0([_row(500, 500, 80, 100, 1.0, [0.0, 0.0, 0.0, 1.0])])
        self.assertEqual(self.post.process(out, np.array([0]), 1.0, 1.0), [])

    def test_aspect_just_above_limit_is_kept(self) -> None:
        out = make_output0([_row(100000, 100000, 80001, 100000, 1.0, [0.0, 0.0, 0.0, 1.0])])
        boxes = self.post.process(out, np.array([0]), 1.0, 1.0)
        self.assertEqual(len(boxes), 1)
        self.assertEqual((boxes[0].width, boxes[0].height), (80001, 100000))

    def test_aspect_uses_remapped_geometry(self) -> None:
        # 100x100 in model space becomes 100x177 after remap: aspect 0.56.
        out = make_output0([_row(200, 200, 100, 100, 1.0, [0.0, 0.0, 0.0, 1.0])])
        self.assertEqual(self.post.process(out, np.array([0]), 1.0, 1280 / 720), [])
        self.assertEqual(len(self.post.process(out, np.array([0]), 1.0, 1.0)), 1)

    def test_zero_height_after_remap(self) -> None:
        out = make_output0(
            [
                _row(10, 10, 20, 0.5, 1.0, [0.0, 0.0, 0.0, 1.0]),  # width 20 / height 0 -> kept
                _row(10, 10, 0.5, 0.5, 1.0, [0.0, 0.0, 0.0, 1.0]),  # 0 / 0 -> rejected
            ]
        )
        boxes = self.post.process(out, np.array([0, 1]), 1.0, 1.0)
        self.assertEqual([b.as_xywh() for b in boxes], [(0, 9, 20, 0)])

    def test_floor_truncation_towards_top_left(self) -> None:
        out = make_output0([_row(10.5, 7.25, 21.5, 20.5, 1.0, [0.0, 0.0, 0.0, 1.0])])
        boxes = self.post.process(out, np.array([0]), 1.0, 1.0)
        # x = floor(10.5 - 10.75) = -1, y = floor(7.25 - 10.25) = -3
        self.assertEqual(boxes[0].as_xywh(), (-1, -3, 21, 20))

    def test_preserves_nms_order(self) -> None:
        rows = [
            _row(100, 100, 100, 100, 0.6, [0.0, 0.0, 0.0, 1.0]),
            _row(300, 300, 120, 100, 0.9, [0.0, 0.0, 0.0, 1.0]),
            _row(500, 500, 140, 100, 0.7, [0.0, 0.0, 0.0, 1.0]),
        ]
        boxes = self.post.process(make_output0(rows), np.array([2, 0, 1]), 1.0, 1.0)
        self.assertEqual([b.width for b in boxes], [140, 100, 120])

    def test_empty_selection_returns_empty_list(self) -> None:
        out = make_output0([_row(100, 100, 100, 100, 1.0, [0.0, 0.0, 0.0, 1.0])])
        self.assertEqual(self.post.process(out, np.array([], dtype=np.int64), 1.0, 1.0), [])

    def test_column_index_vector_is_flattened(self) -> None:
        out = make_output0([_row(100, 100, 100, 100, 1.0, [0.0, 0.0, 0.0, 1.0])])
        boxes = self.post.process(out, np.array([[0]], dtype=np.int32), 1.0, 1.0)
        self.assertEqual(len(boxes), 1)

    def test_out_of_range_index_raises(self) -> None:
        out = make_output0([_row(100, 100, 100, 100, 1.0, [0.0, 0.0, 0.0, 1.0])])
        with self.assertRaises(ShapeMismatch):
            self.post.process(out, np.array([0, 1]), 1.0, 1.0)
        with self.assertRaises(ShapeMismatch):
            self.post.process(out, np.array([-1]), 1.0, 1.0)

    def test_bad_output_shape_raises(self) -> None:
        with self.assertRaises(ShapeMismatch):
            self.post.process(np.zeros((5, 9), dtype=np.float32), np.array([0]), 1.0, 1.0)
        with self.assertRaises(ShapeMismatch):
            self.post.process(np.zeros((1, 5, 5), dtype=np.float32), np.array([0]), 1.0, 1.0)
        with self.assertRaises(ShapeMismatch):
            self.post.process(np.zeros((2, 5, 9), dtype=np.float32), np.array([0]), 1.0, 1.0)

    def test_non_finite_geometry_on_kept_row_raises(self) -> None:
        out = make_output0([_row(float("nan"), 200, 300, 100, 0.9, [0.0, 0.0, 0.0, 0.9])])
        with self.assertRaises(ShapeMismatch):
            self.post.process(out, np.array([0]), 1.0, 1.0)

        out = make_output0([_row(320, 200, float("inf"), 100, 0.9, [0.0, 0.0, 0.0, 0.9])])
        with self.assertRaises(ShapeMismatch):
            self.post.process(out, np.array([0]), 1.0, 1.0)

    def test_non_finite_geometry_on_filtered_row_is_ignored(self) -> None:
        # Class 0 wins, so the row never reaches the output.
        out = make_output0(
            [
                _row(float("nan"), 200, 300, 100, 0.9, [0.9, 0.0, 0.0, 0.0]),
                _row(320, 200, 300, 100, 0.9, [0.0, 0.0, 0.0, 0.9]),
            ]
        )
        boxes = self.post.process(out, np.array([0, 1]), 1.0, 1.0)
        self.assertEqual([b.as_xywh() for b in boxes], [(170, 150, 300, 100)])

    def test_non_flat_selection_raises(self) -> None:
        out = make_output0([_row(100, 100, 100, 100, 1.0, [0.0, 0.0, 0.0, 1.0])] * 4)
        with self.assertRaises(ShapeMismatch):
            self.post.process(out, np.array([[0, 1], [2, 3]]), 1.0, 1.0)


if __name__ == "__main__":
    unittest.main()
