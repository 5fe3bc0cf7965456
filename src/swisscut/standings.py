"""Standings calculator with tie-breaking rules."""

import logging
from collections import defaultdict
from typing import Iterable, Optional, Sequence, Union

from swisscut.models import Match, Participant, ScoringTable, Standing

logger = logging.getLogger(__name__)

DEFAULT_OMW_FLOOR = 1 / 3


def compute_match_win_percentage(wins: int, matches_played: int, floor: float = DEFAULT_OMW_FLOOR) -> float:
    """Compute a floored match-win percentage.

    Args:
        wins: Matches won (byes included)
        matches_played: Wins + losses + draws
        floor: Minimum value returned

    Returns:
        max(wins / matches_played, floor), or floor when nothing was played

    Examples:
        >>> compute_match_win_percentage(3, 4)
        0.75
        >>> round(compute_match_win_percentage(0, 3), 4)
        0.3333
    """
    if matches_played <= 0:
        return floor
    return max(wins / matches_played, floor)


def _roster_ids(roster: Iterable[Union[Participant, str]]) -> list[str]:
    ids = []
    for entry in roster:
        ids.append(entry.id if isinstance(entry, Participant) else entry)
    return ids


def sort_standings(standings: list[Standing]) -> list[Standing]:
    """Order standings and assign ranks.

    Sorted by match points, OMW% and games difference, all descending.
    Python's sort is stable, so fully tied participants keep input order
    and still get distinct, adjacent ranks.
    """

    def sort_key(standing: Standing):
        return (
            -standing.match_points,
            -standing.opponent_match_win_percentage,
            -standing.games_diff,
        )

    ordered = sorted(standings, key=sort_key)
    for rank, standing in enumerate(ordered, start=1):
        standing.rank = rank
    return ordered


def calculate_standings(
    matches: Sequence[Match],
    roster: Iterable[Union[Participant, str]],
    scoring: Optional[ScoringTable] = None,
    omw_floor: float = DEFAULT_OMW_FLOOR,
) -> list[Standing]:
    """Calculate standings for a phase based on match results.

    Only Completed matches count. A bye is a win for its only participant
    and adds no games on either side.

    Args:
        matches: All matches of the phase, any status
        roster: Participants (or participant ids) of the event, in
            registration order
        scoring: Match points per outcome (default 3/1/0)
        omw_floor: Floor applied to every match-win percentage

    Returns:
        List of Standing objects sorted by rank (1 = best)
    """
    scoring = scoring or ScoringTable()
    player_ids = _roster_ids(roster)
    standings = {player_id: Standing(player_id=player_id) for player_id in player_ids}
    # Players who left the roster still count as opponents but are not ranked
    dropped: dict[str, Standing] = {}
    opponents = defaultdict(list)

    def lookup(player_id: str) -> Standing:
        if player_id in standings:
            return standings[player_id]
        if player_id not in dropped:
            logger.info("Participant %s is no longer on the roster; counting as opponent only", player_id)
            dropped[player_id] = Standing(player_id=player_id)
        return dropped[player_id]

    for match in matches:
        if not match.is_completed:
            continue

        p1 = lookup(match.player1_id)

        if match.is_bye:
            p1.wins += 1
            p1.byes += 1
            p1.match_points += scoring.win
            continue

        p2 = lookup(match.player2_id)

        p1.games_won += match.player1_score
        p1.games_lost += match.player2_score
        p2.games_won += match.player2_score
        p2.games_lost += match.player1_score

        if match.winner_id == match.player1_id:
            winner, loser = p1, p2
        elif match.winner_id == match.player2_id:
            winner, loser = p2, p1
        else:
            winner = loser = None

        if winner is None:
            p1.draws += 1
            p2.draws += 1
            p1.match_points += scoring.draw
            p2.match_points += scoring.draw
        else:
            winner.wins += 1
            winner.match_points += scoring.win
            loser.losses += 1
            loser.match_points += scoring.loss

        opponents[p1.player_id].append(p2.player_id)
        opponents[p2.player_id].append(p1.player_id)

    for standing in [*standings.values(), *dropped.values()]:
        standing.match_win_percentage = compute_match_win_percentage(
            standing.wins, standing.matches_played, omw_floor
        )

    for standing in standings.values():
        faced = list(dict.fromkeys(opponents[standing.player_id]))
        if faced:
            total = sum(lookup(opp).match_win_percentage for opp in faced)
            standing.opponent_match_win_percentage = total / len(faced)

    return sort_standings(list(standings.values()))


def standings_by_player(standings: Iterable[Standing]) -> dict[str, Standing]:
    """Index standings by participant id."""
    return {standing.player_id: standing for standing in standings}
