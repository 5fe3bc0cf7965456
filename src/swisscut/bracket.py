"""Single-elimination bracket generator and advancer."""

import logging
import math
from typing import Sequence

from swisscut.errors import BracketCompleteError, InvalidStateError, RoundIncompleteError, ValidationError
from swisscut.models import Match, Pairing

logger = logging.getLogger(__name__)


def next_power_of_2(n: int) -> int:
    """Return the next power of 2 >= n.

    Examples:
        >>> next_power_of_2(5)
        8
        >>> next_power_of_2(8)
        8
        >>> next_power_of_2(15)
        16
    """
    if n <= 0:
        return 1
    return 2 ** math.ceil(math.log2(n))


def total_rounds(bracket_size: int) -> int:
    """Number of rounds needed to play a bracket down to its Final.

    Examples:
        >>> total_rounds(8)
        3
        >>> total_rounds(2)
        1
    """
    return int(math.log2(next_power_of_2(bracket_size)))


def get_seed_order(bracket_size: int) -> list[int]:
    """Seeds in top-to-bottom bracket line order.

    Consecutive entries meet in round 1 (seed k against seed size + 1 - k)
    and the halves are arranged so the top two seeds can only meet in the
    Final, seeds 1-4 only in the semifinals, and so on.

    Examples:
        >>> get_seed_order(4)
        [1, 4, 2, 3]
        >>> get_seed_order(8)
        [1, 8, 4, 5, 2, 7, 3, 6]
    """
    if bracket_size < 2 or bracket_size != next_power_of_2(bracket_size):
        raise ValueError(f"Bracket size must be a power of 2 >= 2, got {bracket_size}")

    order = [1, 2]
    while len(order) < bracket_size:
        size = len(order) * 2
        order = [seed for s in order for seed in (s, size + 1 - s)]
    return order


def round_label(round_number: int, rounds: int, match_number: int) -> str:
    """Human-readable bracket slot label.

    Args:
        round_number: Round of the match (1-based)
        rounds: Total rounds of the bracket
        match_number: Position of the match inside its round (1-based)

    Examples:
        >>> round_label(3, 3, 1)
        'Final'
        >>> round_label(2, 3, 2)
        'Semifinal 2'
        >>> round_label(1, 4, 5)
        'Round 1 Match 5'
    """
    remaining = rounds - round_number
    if remaining == 0:
        return "Final"
    if remaining == 1:
        return f"Semifinal {match_number}"
    if remaining == 2:
        return f"Quarterfinal {match_number}"
    return f"Round {round_number} Match {match_number}"


def build_first_round(seeded_ids: Sequence[str], top_cut: int) -> list[Pairing]:
    """Build round-1 pairings from participants in seed order.

    Args:
        seeded_ids: Participant ids, best seed first
        top_cut: Number of participants admitted to the bracket

    Returns:
        Pairings in bracket line order; seeds without an opponent get a bye

    Raises:
        ValidationError: If fewer than 2 participants are admitted
    """
    qualifiers = list(seeded_ids[:top_cut])
    if len(qualifiers) < 2:
        raise ValidationError(f"A bracket needs at least 2 participants, got {len(qualifiers)}")

    bracket_size = next_power_of_2(len(qualifiers))
    order = get_seed_order(bracket_size)

    pairings = []
    for i in range(0, bracket_size, 2):
        top_seed, bottom_seed = order[i], order[i + 1]
        player1 = qualifiers[top_seed - 1]
        player2 = qualifiers[bottom_seed - 1] if bottom_seed <= len(qualifiers) else None
        pairings.append(Pairing(player1_id=player1, player2_id=player2))

    byes = sum(1 for p in pairings if p.player2_id is None)
    logger.info(
        "Bracket of %d for %d qualifier(s): %d match(es), %d bye(s)",
        bracket_size,
        len(qualifiers),
        len(pairings),
        byes,
    )
    return pairings


def advance_round(current_round: Sequence[Match]) -> list[Pairing]:
    """Build the next round from the winners of the current one.

    Args:
        current_round: Every match of the latest bracket round

    Returns:
        Pairings for the next round: winners of matches 1 and 2 meet in
        match 1, winners of 3 and 4 in match 2, and so on

    Raises:
        BracketCompleteError: If the current round is the Final
        RoundIncompleteError: If a match is not Completed
        InvalidStateError: If a completed match has no winner
    """
    matches = sorted(current_round, key=lambda m: m.match_number)
    if not matches:
        raise InvalidStateError("No bracket round to advance from")

    if len(matches) == 1:
        raise BracketCompleteError("The Final has already been generated")

    unfinished = [m for m in matches if not m.is_completed]
    if unfinished:
        raise RoundIncompleteError(
            f"{len(unfinished)} match(es) of round {matches[0].round} are not completed"
        )

    winners = []
    for match in matches:
        if match.winner_id is None:
            raise InvalidStateError(f"Bracket match {match.match_id} has no winner")
        winners.append(match.winner_id)

    if len(winners) % 2 != 0:
        raise InvalidStateError(f"Cannot advance a round of {len(winners)} matches")

    return [Pairing(player1_id=winners[i], player2_id=winners[i + 1]) for i in range(0, len(winners), 2)]
