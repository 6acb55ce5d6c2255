import math
import unittest

from solver.coordinates import local_coordinates, offset_coordinates


class LocalCoordinatesTests(unittest.TestCase):
    def test_length_matches_product_of_sides(self):
        for shape in [(1,), (3,), (2, 3), (3, 3, 3), (1, 2, 2), (2, 1, 3, 2), (4, 0, 2)]:
            with self.subTest(shape=shape):
                self.assertEqual(math.prod(shape), len(local_coordinates(shape)))

    def test_empty_shape_yields_single_empty_tuple(self):
        self.assertEqual(((),), local_coordinates(()))

    def test_last_axis_varies_fastest(self):
        self.assertEqual(
            ((0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)),
            local_coordinates((2, 3)),
        )

    def test_coordinates_are_distinct_and_in_bounds(self):
        shape = (2, 3, 4)
        coords = local_coordinates(shape)
        self.assertEqual(len(coords), len(set(coords)))
        for point in coords:
            for value, length in zip(point, shape):
                self.assertTrue(0 <= value < length)

    def test_accepts_lists(self):
        self.assertEqual(local_coordinates((2, 2)), local_coordinates([2, 2]))


class OffsetCoordinatesTests(unittest.TestCase):
    def test_translates_box_by_corner(self):
        self.assertEqual(
            ((1, 2), (1, 3), (2, 2), (2, 3)),
            offset_coordinates((1, 2), (2, 2)),
        )

    def test_zero_corner_matches_local_coordinates(self):
        self.assertEqual(local_coordinates((2, 1, 3)), offset_coordinates((0, 0, 0), (2, 1, 3)))


if __name__ == "__main__":
    unittest.main()
