"""
Score validation for padel sets and matches.

A set ends on the game that decides it: 6 games against at most 4, 7-5 or
7-6 (tie-break), or a long set won by exactly 2 past 6-6 (8-6, 9-7 ...).
A match is won by taking a strict majority of the counted sets; a 0-0 third
set means it was not played.
"""

from typing import Dict

from padpok.models.match_state import Score, SetScore
from padpok.services.exceptions import ValidationError
from padpok.utils.constants import (
    GAMES_TO_WIN_SET,
    MIN_SET_MARGIN,
    SETS_TO_WIN_MATCH,
    TIE_BREAK_GAMES,
)


def is_valid_set(team1: int, team2: int) -> bool:
    """
    Check whether a finished set score is possible.

    Args:
        team1: Games won by team 1
        team2: Games won by team 2

    Returns:
        True only for a score the set could have finished on
    """
    if team1 < 0 or team2 < 0:
        return False

    high, low = max(team1, team2), min(team1, team2)

    # 6-0 .. 6-4
    if high == GAMES_TO_WIN_SET:
        return high - low >= MIN_SET_MARGIN

    # 7-5, 7-6; anything lower was already over at 6-x
    if high == TIE_BREAK_GAMES:
        return GAMES_TO_WIN_SET - 1 <= low <= GAMES_TO_WIN_SET

    # Long sets: 8-6, 9-7 ...
    return high > TIE_BREAK_GAMES and high - low == MIN_SET_MARGIN


def count_sets_won(score: Score) -> Dict[str, int]:
    """Count sets won by each side; a 0-0 set counts for nobody."""
    won = {"team1": 0, "team2": 0}
    for set_score in score.sets():
        if set_score.not_played:
            continue
        if set_score.team1 > set_score.team2:
            won["team1"] += 1
        elif set_score.team2 > set_score.team1:
            won["team2"] += 1
    return won


def determine_winner(score: Score) -> str:
    """
    Apply the majority rule to a score, ignoring any declared winner.

    Raises:
        ValidationError: If neither side holds a strict majority of sets
    """
    won = count_sets_won(score)
    for team in ("team1", "team2"):
        if won[team] >= SETS_TO_WIN_MATCH:
            return team
    raise ValidationError(
        f"No team won {SETS_TO_WIN_MATCH} sets ({won['team1']}-{won['team2']}); "
        "a third set is needed to decide the match"
    )


def _check_set(name: str, set_score: SetScore) -> None:
    if set_score.team1 < 0 or set_score.team2 < 0:
        raise ValidationError(f"{name}: game counts cannot be negative")
    if not is_valid_set(set_score.team1, set_score.team2):
        raise ValidationError(
            f"{name}: {set_score.team1}-{set_score.team2} is not a finished set "
            "(win by 2 from 6 games, or 7-6 / 7-5)"
        )


def check_score(score: Score) -> str:
    """
    Validate a score and return the winning team.

    Both set validity and the winner majority must hold; there is no partial
    acceptance. If no winner is declared, the computed one is returned.

    Raises:
        ValidationError: With a message naming the offending set or the winner mismatch
    """
    _check_set("Set 1", score.set1)
    _check_set("Set 2", score.set2)
    if score.set3 is not None and not score.set3.not_played:
        _check_set("Set 3", score.set3)

    winner = determine_winner(score)
    if score.winner is not None and score.winner != winner:
        raise ValidationError(
            f"Declared winner {score.winner} did not win the majority of sets"
        )
    return winner


def validate_score(score: Score) -> bool:
    """Return True if the score passes every rule, False otherwise."""
    try:
        check_score(score)
    except ValidationError:
        return False
    return True
