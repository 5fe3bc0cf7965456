"""Data models for swisscut.

Domain model hierarchy:
- An event has a roster of Participants and an ordered list of Phases
- A Phase is either Swiss (fixed number of rounds) or Bracket (top cut)
- A Phase contains Matches, grouped by round
- Standings are derived from a Phase's completed Matches, never stored
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class PhaseKind(str, Enum):
    """Phase kinds."""

    SWISS = "swiss"
    BRACKET = "bracket"


class PhaseStatus(str, Enum):
    """Phase status. Transitions only move forward, one step at a time."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MatchFormat(str, Enum):
    """Best-of-n match formats."""

    BO1 = "BO1"
    BO2 = "BO2"
    BO3 = "BO3"
    BO5 = "BO5"

    @property
    def max_games(self) -> int:
        """Number of games in the format (the n in best-of-n)."""
        return int(self.value[2:])

    @property
    def games_to_win(self) -> int:
        """Games needed to take the match outright."""
        return self.max_games // 2 + 1


class MatchStatus(str, Enum):
    """Match status."""

    PENDING = "pending"  # Not yet played
    IN_PROGRESS = "in_progress"  # First report staged, awaiting confirmation
    COMPLETED = "completed"  # Final
    DISPUTED = "disputed"  # Conflicting reports, needs an organizer


class ParticipantKind(str, Enum):
    """How the participant was added to the event."""

    REGISTERED = "registered"
    EMAIL = "email"
    GUEST = "guest"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# ============================================================================
# Phase configuration
# ============================================================================


@dataclass(frozen=True)
class SwissConfig:
    """Swiss phase settings."""

    round_count: int

    @property
    def kind(self) -> PhaseKind:
        return PhaseKind.SWISS


@dataclass(frozen=True)
class BracketConfig:
    """Single-elimination phase settings."""

    top_cut: int

    @property
    def kind(self) -> PhaseKind:
        return PhaseKind.BRACKET


PhaseConfig = Union[SwissConfig, BracketConfig]


# ============================================================================
# Core Domain Models
# ============================================================================


@dataclass
class Participant:
    """A roster entry.

    The id is opaque: it may belong to a registered account, an account
    created from an email invitation or an account-less guest.
    """

    id: str
    name: str
    kind: ParticipantKind = ParticipantKind.REGISTERED

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


@dataclass
class Phase:
    """One stage of a tournament."""

    id: str
    event_id: str
    name: str
    match_format: MatchFormat
    config: PhaseConfig
    order: int = 1
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    # None means "use the engine default"
    require_confirmation: Optional[bool] = None

    @property
    def kind(self) -> PhaseKind:
        """Phase kind, derived from the config variant."""
        return self.config.kind

    @property
    def is_swiss(self) -> bool:
        return isinstance(self.config, SwissConfig)

    @property
    def is_bracket(self) -> bool:
        return isinstance(self.config, BracketConfig)

    def __str__(self) -> str:
        return f"Phase {self.order}: {self.name} [{self.kind.value}, {self.status.value}]"


@dataclass
class Match:
    """A single contest between two participants, or one participant and a bye.

    `player1_score`/`player2_score` hold the staged scores while the match is
    InProgress or Disputed, and the final scores once Completed.
    """

    match_id: str
    phase_id: str
    player1_id: str
    player2_id: Optional[str] = None  # None = bye
    round: int = 1
    match_number: int = 1  # Position within the round (bracket order)
    bracket_slot: Optional[str] = None  # "Final", "Semifinal 1", ...
    player1_score: int = 0
    player2_score: int = 0
    winner_id: Optional[str] = None  # None = draw (or undecided)
    status: MatchStatus = MatchStatus.PENDING
    reported_by: Optional[str] = None
    confirmed_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0  # Optimistic-lock token, 0 = never stored

    @property
    def is_bye(self) -> bool:
        """Check if this is a bye match."""
        return self.player2_id is None

    @property
    def is_completed(self) -> bool:
        """Check if match is finished."""
        return self.status == MatchStatus.COMPLETED

    @property
    def is_draw(self) -> bool:
        return self.is_completed and not self.is_bye and self.winner_id is None

    @property
    def player_ids(self) -> tuple[str, ...]:
        """Participants in the match (one entry for a bye)."""
        if self.player2_id is None:
            return (self.player1_id,)
        return (self.player1_id, self.player2_id)

    def involves(self, player_id: str) -> bool:
        return player_id in self.player_ids

    def opponent_of(self, player_id: str) -> Optional[str]:
        """Return the other participant, None for a bye."""
        if player_id == self.player1_id:
            return self.player2_id
        if player_id == self.player2_id:
            return self.player1_id
        raise ValueError(f"{player_id} does not play in match {self.match_id}")

    def __str__(self) -> str:
        opponent = self.player2_id or "BYE"
        score = f"{self.player1_score}-{self.player2_score}" if self.is_completed else "vs"
        return f"Match {self.match_id}: {self.player1_id} {score} {opponent}"


@dataclass
class Standing:
    """Standing for a participant within a phase.

    Tracks all metrics needed for tie-breaking.
    """

    player_id: str
    match_points: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    byes: int = 0
    games_won: int = 0
    games_lost: int = 0
    # Own match-win percentage after applying the floor
    match_win_percentage: float = 0.0
    opponent_match_win_percentage: float = 0.0
    rank: Optional[int] = None

    @property
    def games_diff(self) -> int:
        return self.games_won - self.games_lost

    @property
    def matches_played(self) -> int:
        return self.wins + self.losses + self.draws

    def __str__(self) -> str:
        pos = f"#{self.rank}" if self.rank else "unranked"
        return (
            f"{pos} {self.player_id}: {self.match_points}pts "
            f"{self.wins}-{self.losses}-{self.draws} OMW {self.opponent_match_win_percentage:.2%}"
        )


# ============================================================================
# Settings and Result Models
# ============================================================================


@dataclass(frozen=True)
class ScoringTable:
    """Match points per outcome. A bye scores as a win."""

    win: int = 3
    draw: int = 1
    loss: int = 0


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings, usually built from a YAML config file."""

    scoring: ScoringTable = field(default_factory=ScoringTable)
    omw_floor: float = 1 / 3
    require_confirmation: bool = False
    allow_self_reporting: bool = True
    shuffle_first_round: bool = False
    random_seed: int = 42
    concurrency_retries: int = 0
    pairing_search_limit: int = 100_000


@dataclass
class Pairing:
    """Output of the pairing generators, before it becomes a Match."""

    player1_id: str
    player2_id: Optional[str] = None  # None = bye
    rematch: bool = False


@dataclass
class RoundGeneration:
    """Result of a round generation call."""

    phase_id: str
    round: int
    matches: list[Match] = field(default_factory=list)
    created: bool = True  # False when an existing round was returned
    warnings: list[str] = field(default_factory=list)
