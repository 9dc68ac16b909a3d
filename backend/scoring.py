"""Answer scoring and leaderboard ordering.

Both functions are pure: they read their inputs and never touch room state.
"""
from typing import Iterable, List, Set, Union

import config


def normalize_choices(choice_indices: Union[int, Iterable[int]]) -> Set[int]:
    """Accept a single index or a list of indices; return them as a set."""
    if isinstance(choice_indices, int):
        return {choice_indices}
    return {int(i) for i in choice_indices}


def score_answer(correct_indices: Iterable[int], submitted: Union[int, Iterable[int]],
                 remaining_ms: float) -> int:
    """Points for one submission.

    A fully correct answer (every correct choice, nothing else) earns
    BASE_POINTS plus one point per SPEED_BONUS_MS_PER_POINT ms left on the
    clock. A partially correct one earns an equal share of BASE_POINTS per
    correct choice picked, with no speed bonus. Anything else earns 0.
    """
    correct = set(correct_indices)
    if not correct:
        return 0
    chosen = normalize_choices(submitted)
    hits = chosen & correct
    misses = chosen - correct
    remaining_ms = max(0, remaining_ms)

    if hits == correct and not misses:
        return config.BASE_POINTS + int(remaining_ms // config.SPEED_BONUS_MS_PER_POINT)
    if hits:
        return config.BASE_POINTS * len(hits) // len(correct)
    return 0


def make_leaderboard(players: Iterable[dict]) -> List[dict]:
    # sorted() is stable, so ties keep join order
    ranked = sorted(players, key=lambda p: p["score"], reverse=True)
    return [{"name": p["name"], "score": p["score"]} for p in ranked]
