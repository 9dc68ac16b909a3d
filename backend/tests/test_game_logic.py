import sys
import os

import pytest

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scoring import make_leaderboard, normalize_choices, score_answer


# ---------------------------------------------------------------------------
# Scoring Tests
# ---------------------------------------------------------------------------

class TestFullyCorrect:
    def test_speed_bonus_scenario(self):
        """Answering {1} with 5000ms left on a 20s question earns 1100."""
        assert score_answer([1], [1], 5000) == 1100

    def test_no_time_left(self):
        assert score_answer([0], [0], 0) == 1000

    def test_bonus_is_floored(self):
        assert score_answer([0], [0], 149) == 1002

    def test_full_time_remaining(self):
        assert score_answer([2], 2, 20000) == 1400

    def test_negative_remaining_clamped(self):
        assert score_answer([0], [0], -300) == 1000

    def test_multi_select_all_correct_gets_bonus(self):
        assert score_answer([0, 2], [2, 0], 1000) == 1020

    def test_non_increasing_as_time_runs_out(self):
        scores = [score_answer([1], [1], ms) for ms in range(20000, -1, -37)]
        assert all(a >= b for a, b in zip(scores, scores[1:]))


class TestPartialCredit:
    def test_half_of_two(self):
        """Correct set {0,2}, submitted {0} -> 500."""
        assert score_answer([0, 2], [0], 5000) == 500

    def test_no_time_bonus(self):
        assert score_answer([0, 2], [0], 0) == score_answer([0, 2], [0], 19999)

    def test_wrong_extras_do_not_change_partial_credit(self):
        base = score_answer([0, 1, 2], [0], 3000)
        assert score_answer([0, 1, 2], [0, 3], 3000) == base
        assert score_answer([0, 1, 2], [0, 3, 4, 5], 3000) == base

    def test_thirds_are_floored(self):
        assert score_answer([0, 1, 2], [0], 0) == 333
        assert score_answer([0, 1, 2], [0, 1], 0) == 666

    def test_all_correct_plus_wrong_extra_is_partial(self):
        """Every correct choice plus a wrong one loses the full-credit path."""
        assert score_answer([0, 1], [0, 1, 3], 10000) == 1000
        assert score_answer([0, 1, 2], [0, 1, 2, 3], 10000) == 1000

    def test_duplicates_ignored(self):
        assert score_answer([0, 2], [0, 0, 0], 0) == 500


class TestNoCredit:
    def test_fully_wrong(self):
        assert score_answer([0], [1], 5000) == 0

    def test_empty_submission(self):
        assert score_answer([0], [], 5000) == 0

    def test_out_of_range_index(self):
        assert score_answer([0], [99], 5000) == 0


class TestNormalizeChoices:
    def test_single_index(self):
        assert normalize_choices(3) == {3}

    def test_list_is_deduplicated(self):
        assert normalize_choices([2, 1, 2]) == {1, 2}

    def test_order_independent(self):
        assert normalize_choices([3, 1]) == normalize_choices([1, 3])


# ---------------------------------------------------------------------------
# Leaderboard Tests
# ---------------------------------------------------------------------------

def make_players(*entries):
    return [{"name": name, "score": score, "answered": False} for name, score in entries]


class TestLeaderboard:
    def test_sorted_descending(self):
        lb = make_leaderboard(make_players(("Alice", 500), ("Bob", 800), ("Charlie", 300)))
        assert [e["score"] for e in lb] == [800, 500, 300]
        assert [e["name"] for e in lb] == ["Bob", "Alice", "Charlie"]

    def test_ties_keep_join_order(self):
        players = make_players(("B", 1000), ("C", 1000), ("A", 500))
        lb = make_leaderboard(players)
        assert [e["name"] for e in lb] == ["B", "C", "A"]

    def test_deterministic_across_calls(self):
        players = make_players(("B", 1000), ("C", 1000), ("A", 500))
        first = make_leaderboard(players)
        for _ in range(5):
            assert make_leaderboard(players) == first

    def test_only_name_and_score(self):
        lb = make_leaderboard(make_players(("Solo", 100)))
        assert lb == [{"name": "Solo", "score": 100}]

    def test_empty_leaderboard(self):
        assert make_leaderboard([]) == []

    def test_accepts_dict_values(self):
        players = {"c1": {"name": "X", "score": 1}, "c2": {"name": "Y", "score": 2}}
        assert [e["name"] for e in make_leaderboard(players.values())] == ["Y", "X"]
