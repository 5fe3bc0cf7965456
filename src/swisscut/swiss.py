"""Swiss pairing generator.

Pairs participants by current standing:

1. Participants are ranked by the standings calculator and split into score
   groups (same match points), highest group first.
2. Inside a group the top half plays the bottom half (rank 1 vs rank n/2+1,
   ...), avoiding anyone already met in the phase.
3. A participant with no legal opponent left in their group floats down and
   takes the best legal opponent from the next group.
4. With an odd count, one participant gets a bye: fewest previous byes
   first, then lowest rank.

Steps 2 and 3 run as a depth-first search over the ranked list with failed
sub-pools memoised, so a rematch-free pairing is found whenever one exists
within the search limit. Rematches are never produced silently: the caller
gets NoEligiblePairingError unless it explicitly allows rematches.
"""

import logging
import random
from collections import Counter
from typing import Iterable, Optional, Sequence

from swisscut.errors import NoEligiblePairingError
from swisscut.models import Match, Pairing, Standing

logger = logging.getLogger(__name__)


class _SearchExhausted(Exception):
    """Internal: the search hit its step limit."""


def played_pairs(matches: Iterable[Match]) -> set[frozenset]:
    """Return every pair of participants that already met, any match status."""
    pairs = set()
    for match in matches:
        if match.player2_id is not None:
            pairs.add(frozenset((match.player1_id, match.player2_id)))
    return pairs


def bye_counts(matches: Iterable[Match]) -> Counter:
    """Count byes received per participant."""
    return Counter(match.player1_id for match in matches if match.is_bye)


def group_by_score(standings: Sequence[Standing]) -> list[list[Standing]]:
    """Split ranked standings into score groups, highest points first.

    Examples:
        >>> groups = group_by_score([Standing("a", 6), Standing("b", 3), Standing("c", 3)])
        >>> [[s.player_id for s in g] for g in groups]
        [['a'], ['b', 'c']]
    """
    groups: dict[int, list[Standing]] = {}
    for standing in standings:
        groups.setdefault(standing.match_points, []).append(standing)
    return [groups[points] for points in sorted(groups, reverse=True)]


class SwissPairer:
    """Pairs one Swiss round.

    Args:
        order: Participant ids in pairing order (rank order, or the shuffled
            roster for round 1)
        points: Match points per participant
        previous: Pairs that already met in the phase
        byes: Byes already received per participant
        search_limit: Maximum number of search steps before giving up
    """

    def __init__(
        self,
        order: Sequence[str],
        points: dict[str, int],
        previous: set[frozenset],
        byes: Optional[Counter] = None,
        search_limit: int = 100_000,
    ):
        self.order = list(order)
        self.points = points
        self.previous = previous
        self.byes = byes or Counter()
        self.search_limit = search_limit
        self._position = {player_id: index for index, player_id in enumerate(self.order)}
        self._steps = 0
        self._failed: set[frozenset] = set()

    def has_played(self, player_a: str, player_b: str) -> bool:
        return frozenset((player_a, player_b)) in self.previous

    def bye_candidates(self) -> list[str]:
        """Participants ordered by bye preference: fewest byes, then lowest rank."""
        return sorted(self.order, key=lambda p: (self.byes[p], -self._position[p]))

    def candidates(self, top: str, rest: Sequence[str]) -> list[str]:
        """Opponents for `top` in order of preference.

        Same score group first, with the top-half vs bottom-half preference,
        then the lower groups (floating down) in rank order.
        """
        group = [top] + [p for p in rest if self.points[p] == self.points[top]]
        half = len(group) // 2
        preferred = group[half:] + list(reversed(group[1:half]))
        same_group = set(group)
        lower = [p for p in rest if p not in same_group]
        return [p for p in preferred if p != top] + lower

    def _search(self, remaining: list[str]) -> Optional[list[tuple[str, str]]]:
        if not remaining:
            return []

        key = frozenset(remaining)
        if key in self._failed:
            return None

        self._steps += 1
        if self._steps > self.search_limit:
            raise _SearchExhausted()

        top, rest = remaining[0], remaining[1:]
        for opponent in self.candidates(top, rest):
            if self.has_played(top, opponent):
                continue
            result = self._search([p for p in rest if p != opponent])
            if result is not None:
                return [(top, opponent)] + result

        self._failed.add(key)
        return None

    def _greedy(self, remaining: list[str]) -> list[tuple[str, str]]:
        """Pair in preference order, taking a rematch only when nothing else is left."""
        pairs = []
        remaining = list(remaining)
        while len(remaining) >= 2:
            top, rest = remaining[0], remaining[1:]
            options = self.candidates(top, rest)
            fresh = [p for p in options if not self.has_played(top, p)]
            opponent = fresh[0] if fresh else options[0]
            pairs.append((top, opponent))
            remaining = [p for p in rest if p != opponent]
        return pairs

    def _pairings(self, pairs: list[tuple[str, str]], bye: Optional[str]) -> list[Pairing]:
        pairings = [
            Pairing(player1_id=a, player2_id=b, rematch=self.has_played(a, b)) for a, b in pairs
        ]
        if bye is not None:
            pairings.append(Pairing(player1_id=bye, player2_id=None))
        return pairings

    def pair(self, allow_rematches: bool = False) -> list[Pairing]:
        """Pair the round.

        Args:
            allow_rematches: Fall back to a greedy pairing with rematches
                when no rematch-free pairing exists

        Returns:
            Pairings in board order, bye last

        Raises:
            NoEligiblePairingError: No rematch-free pairing and rematches
                not allowed
        """
        self._steps = 0
        self._failed = set()

        bye_options: list[Optional[str]] = [None]
        if len(self.order) % 2 == 1:
            bye_options = self.bye_candidates()

        try:
            for bye in bye_options:
                remaining = [p for p in self.order if p != bye]
                pairs = self._search(remaining)
                if pairs is not None:
                    return self._pairings(pairs, bye)
            reason = "every candidate pairing repeats an earlier match"
        except _SearchExhausted:
            reason = f"search limit of {self.search_limit} steps reached"

        if not allow_rematches:
            raise NoEligiblePairingError(f"No pairing without rematches: {reason}")

        bye = bye_options[0]
        pairs = self._greedy([p for p in self.order if p != bye])
        pairings = self._pairings(pairs, bye)
        logger.warning(
            "Paired with %d rematch(es) (%s)", sum(1 for p in pairings if p.rematch), reason
        )
        return pairings


def generate_swiss_pairings(
    standings: Sequence[Standing],
    matches: Sequence[Match],
    round_number: int,
    allow_rematches: bool = False,
    search_limit: int = 100_000,
    rng: Optional[random.Random] = None,
) -> list[Pairing]:
    """Generate the pairings of one Swiss round.

    Args:
        standings: Current ranked standings of the phase (every active
            participant appears exactly once)
        matches: All existing matches of the phase
        round_number: Round being paired (1-based)
        allow_rematches: Accept rematches when they cannot be avoided
        search_limit: Maximum pairing search steps
        rng: Shuffles the pairing order of round 1 when given

    Returns:
        List of Pairing objects, bye last

    Raises:
        NoEligiblePairingError: If rematches are unavoidable and not allowed
    """
    order = [standing.player_id for standing in standings]
    if round_number == 1 and rng is not None:
        rng.shuffle(order)

    points = {standing.player_id: standing.match_points for standing in standings}
    pairer = SwissPairer(
        order=order,
        points=points,
        previous=played_pairs(matches),
        byes=bye_counts(matches),
        search_limit=search_limit,
    )
    pairings = pairer.pair(allow_rematches=allow_rematches)

    logger.info(
        "Swiss round %d: %d pairing(s) for %d participant(s)", round_number, len(pairings), len(order)
    )
    return pairings
