"""Validation rules for match results.

Scores are game counts inside a best-of-n match. A score is valid when no
player wins more games than the format needs and the total number of games
does not exceed n. Equal scores are accepted and mean a draw (e.g. a BO3
called at 1-1 on time), except where the caller forbids draws.
"""

from typing import Iterable, Optional

from swisscut.errors import ValidationError
from swisscut.models import MatchFormat

__all__ = [
    "ValidationError",
    "validate_match_score",
    "validate_participants",
    "validate_reporter",
]


def validate_match_score(
    player1_score: int,
    player2_score: int,
    match_format: MatchFormat,
    allow_draw: bool = True,
) -> tuple[bool, str]:
    """Validate a reported match score against its format.

    Args:
        player1_score: Games won by player 1
        player2_score: Games won by player 2
        match_format: Best-of-n format of the phase
        allow_draw: False for elimination matches, which need a winner

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_match_score(2, 1, MatchFormat.BO3)
        (True, '')
        >>> validate_match_score(1, 1, MatchFormat.BO2)
        (True, '')
        >>> validate_match_score(3, 0, MatchFormat.BO3)
        (False, 'A player cannot win more than 2 games in BO3 (got 3)')
    """
    if not isinstance(player1_score, int) or not isinstance(player2_score, int):
        return False, "Scores must be whole numbers of games"

    if isinstance(player1_score, bool) or isinstance(player2_score, bool):
        return False, "Scores must be whole numbers of games"

    if player1_score < 0 or player2_score < 0:
        return False, "Scores cannot be negative"

    to_win = match_format.games_to_win
    best = max(player1_score, player2_score)
    if best > to_win:
        return False, f"A player cannot win more than {to_win} games in {match_format.value} (got {best})"

    total = player1_score + player2_score
    if total > match_format.max_games:
        return (
            False,
            f"Too many games for {match_format.value} (maximum: {match_format.max_games}, got: {total})",
        )

    if player1_score == player2_score and not allow_draw:
        return False, "Elimination matches cannot end in a draw"

    return True, ""


def validate_participants(
    player_ids: Iterable[Optional[str]], roster_ids: set[str]
) -> tuple[bool, str]:
    """Check that every non-bye participant belongs to the roster.

    Args:
        player_ids: Participant ids of a match (None entries are byes)
        roster_ids: Ids of the event roster

    Returns:
        Tuple of (is_valid, error_message)
    """
    seen = set()
    for player_id in player_ids:
        if player_id is None:
            continue
        if player_id not in roster_ids:
            return False, f"Unknown participant: {player_id}"
        if player_id in seen:
            return False, f"Participant {player_id} cannot play against themselves"
        seen.add(player_id)
    return True, ""


def validate_reporter(reporter_id: str, player1_id: str, player2_id: Optional[str]) -> tuple[bool, str]:
    """Check that a reporter is one of the match's players."""
    if reporter_id not in (player1_id, player2_id):
        return False, "Only players of the match can report or confirm its result"
    return True, ""
