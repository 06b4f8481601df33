import unittest

import support  # noqa: F401

from scoring import (
    calculate_new_price,
    calculate_points,
    lineup_points,
    min_points_for_valorization,
)


class TestCalculatePoints(unittest.TestCase):
    def test_goals_assists_fouls(self):
        self.assertEqual(calculate_points({"goals": 2, "assists": 1, "fouls": 3}), 20.1)

    def test_every_weight(self):
        scouts = {
            "goals": 1,
            "assists": 1,
            "shots_on_target": 1,
            "saves": 1,
            "clean_sheet": 1,
            "own_goals": 1,
            "red_cards": 1,
            "fouls": 1,
        }
        # 8 + 5 + 3 + 7 + 5 - 3 - 3 - 0.3
        self.assertEqual(calculate_points(scouts), 21.7)

    def test_missing_and_none_fields_count_as_zero(self):
        self.assertEqual(calculate_points({}), 0.0)
        self.assertEqual(calculate_points({"goals": None, "unknown": 99}), 0.0)

    def test_negative_total(self):
        self.assertEqual(calculate_points({"own_goals": 1, "red_cards": 1}), -6.0)


class TestPriceRevaluation(unittest.TestCase):
    def test_min_points(self):
        self.assertEqual(min_points_for_valorization(5.00), 2.9)

    def test_valorizes_when_reaching_threshold(self):
        self.assertEqual(calculate_new_price(5.00, 3.0), 5.50)

    def test_devalues_below_half_threshold(self):
        self.assertEqual(calculate_new_price(5.00, 1.0), 4.50)

    def test_unchanged_in_between(self):
        self.assertEqual(calculate_new_price(5.00, 2.0), 5.00)

    def test_exact_threshold_valorizes(self):
        self.assertEqual(calculate_new_price(5.00, 2.9), 5.50)

    def test_exact_half_threshold_is_unchanged(self):
        self.assertEqual(calculate_new_price(5.00, 1.45), 5.00)


class TestLineupPoints(unittest.TestCase):
    def test_only_starters_count(self):
        entries = [
            {"player_id": "a", "is_starter": True},
            {"player_id": "b", "is_starter": True},
            {"player_id": "c", "is_starter": False},
        ]
        points = {"a": 10.0, "b": 2.5, "c": 100.0}
        self.assertEqual(lineup_points(entries, points), 12.5)

    def test_players_without_scouts_score_zero(self):
        entries = [{"player_id": "a", "is_starter": True}]
        self.assertEqual(lineup_points(entries, {}), 0.0)


if __name__ == '__main__':
    unittest.main()
