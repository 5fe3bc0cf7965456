"""Tournament engine facade.

Wires the pure generators (swiss, bracket, standings) to the repositories and
exposes every operation an organizer or a player needs:

    >>> engine = TournamentEngine.from_session(db.get_session())  # doctest: +SKIP
    >>> phase = engine.add_phase("event-1", "Swiss", "BO3", SwissConfig(5))  # doctest: +SKIP
    >>> engine.generate_swiss_round(phase.id)  # doctest: +SKIP
"""

import logging
import random
from typing import Optional, Sequence

from swisscut.bracket import advance_round, build_first_round, round_label, total_rounds
from swisscut.errors import InvalidStateError, NotFoundError, RoundIncompleteError, RoundLimitReachedError, ValidationError
from swisscut.lifecycle import MatchLifecycle, new_match
from swisscut.models import (
    EngineSettings,
    Match,
    MatchStatus,
    Pairing,
    Phase,
    PhaseKind,
    PhaseStatus,
    RoundGeneration,
    Standing,
)
from swisscut.phases import PhaseManager
from swisscut.standings import calculate_standings
from swisscut.storage import EventRepository, MatchRepository, ParticipantRepository, PhaseRepository
from swisscut.swiss import generate_swiss_pairings

logger = logging.getLogger(__name__)


def generated_match_id(phase_id: str, round_number: int, match_number: int) -> str:
    """Deterministic id of a generated match."""
    return f"{phase_id}-r{round_number}-m{match_number}"


def is_untouched(round_matches: Sequence[Match]) -> bool:
    """True when no result was recorded in a round except its byes."""
    played = [m for m in round_matches if not m.is_bye]
    return bool(played) and all(m.status == MatchStatus.PENDING for m in played)


class TournamentEngine:
    """Pairing, bracket, standings and match-result operations over a store."""

    def __init__(
        self,
        phases: PhaseRepository,
        matches: MatchRepository,
        participants: ParticipantRepository,
        events: EventRepository,
        settings: Optional[EngineSettings] = None,
    ):
        self.phases = phases
        self.matches = matches
        self.participants = participants
        self.events = events
        self.settings = settings or EngineSettings()
        self.phase_manager = PhaseManager(phases, events, matches)
        self.lifecycle = MatchLifecycle(matches, phases, participants, self.settings)

    @classmethod
    def from_session(cls, session, settings: Optional[EngineSettings] = None) -> "TournamentEngine":
        """Build an engine over the SQLAlchemy repositories of one session."""
        return cls(
            phases=PhaseRepository(session),
            matches=MatchRepository(session),
            participants=ParticipantRepository(session),
            events=EventRepository(session),
            settings=settings,
        )

    # ========================================================================
    # Phase management
    # ========================================================================

    def add_phase(self, event_id, name, match_format, config, require_confirmation=None) -> Phase:
        return self.phase_manager.add_phase(event_id, name, match_format, config, require_confirmation)

    def update_phase_status(self, phase_id: str, status) -> Phase:
        return self.phase_manager.update_phase_status(phase_id, status)

    def set_current_phase(self, phase_id: str) -> Phase:
        return self.phase_manager.set_current_phase(phase_id)

    def get_current_phase(self, event_id: str) -> Optional[Phase]:
        return self.phase_manager.get_current_phase(event_id)

    def delete_phase(self, phase_id: str) -> None:
        self.phase_manager.delete_phase(phase_id)

    def update_phase(self, phase_id: str, **changes) -> Phase:
        return self.phase_manager.update_phase(phase_id, **changes)

    def list_phases(self, event_id: str) -> list[Phase]:
        return self.phase_manager.list_phases(event_id)

    def get_phase(self, phase_id: str) -> Phase:
        return self.phase_manager.get_phase(phase_id)

    # ========================================================================
    # Standings
    # ========================================================================

    def get_standings(self, phase_id: str) -> list[Standing]:
        """Ranked standings of a phase from its completed matches."""
        phase = self.get_phase(phase_id)
        return calculate_standings(
            self.matches.get_by_phase(phase.id),
            self.participants.load_roster(phase.event_id),
            scoring=self.settings.scoring,
            omw_floor=self.settings.omw_floor,
        )

    def get_matches(self, phase_id: str, round_number: Optional[int] = None) -> list[Match]:
        """Matches of a phase, or of one of its rounds."""
        self.get_phase(phase_id)
        if round_number is None:
            return self.matches.get_by_phase(phase_id)
        return self.matches.get_round(phase_id, round_number)

    # ========================================================================
    # Round generation
    # ========================================================================

    def _phase_for_generation(self, phase_id: str, kind: PhaseKind) -> Phase:
        phase = self.get_phase(phase_id)
        if phase.kind != kind:
            raise InvalidStateError(f"Phase {phase_id} is a {phase.kind.value} phase, not {kind.value}")
        if phase.status == PhaseStatus.COMPLETED:
            raise InvalidStateError(f"Phase {phase_id} is completed")
        return phase

    def _store_round(
        self,
        phase: Phase,
        round_number: int,
        pairings: list[Pairing],
        bracket_rounds: Optional[int] = None,
    ) -> RoundGeneration:
        matches = []
        for number, pairing in enumerate(pairings, start=1):
            slot = round_label(round_number, bracket_rounds, number) if bracket_rounds else None
            matches.append(
                new_match(
                    phase,
                    round_number,
                    number,
                    pairing.player1_id,
                    pairing.player2_id,
                    bracket_slot=slot,
                    match_id=generated_match_id(phase.id, round_number, number),
                )
            )

        stored, created = self.matches.insert_round(phase.id, round_number, matches)
        # The phase read before the insert may be stale if another caller won the race
        if created and self.get_phase(phase.id).status == PhaseStatus.NOT_STARTED:
            self.phase_manager.update_phase_status(phase.id, PhaseStatus.IN_PROGRESS)

        warnings = [
            f"Rematch in round {round_number}: {p.player1_id} vs {p.player2_id}" for p in pairings if p.rematch
        ]
        logger.info(
            "Round %d of phase %s %s (%d match(es))",
            round_number,
            phase.id,
            "generated" if created else "already existed",
            len(stored),
        )
        return RoundGeneration(
            phase_id=phase.id,
            round=round_number,
            matches=stored,
            created=created,
            warnings=warnings if created else [],
        )

    def _existing_round(self, phase: Phase, round_number: int) -> RoundGeneration:
        matches = self.matches.get_round(phase.id, round_number)
        logger.info("Round %d of phase %s has no results yet, returning it", round_number, phase.id)
        return RoundGeneration(phase_id=phase.id, round=round_number, matches=matches, created=False)

    def _check_latest_round(self, phase: Phase, latest: int) -> bool:
        """Return True when the latest round is untouched and should be returned as is.

        Raises:
            RoundIncompleteError: If results were entered but the round is unfinished
        """
        current = self.matches.get_round(phase.id, latest)
        if all(m.is_completed for m in current):
            return False
        if is_untouched(current):
            return True
        unfinished = sum(1 for m in current if not m.is_completed)
        raise RoundIncompleteError(f"Round {latest} of phase {phase.id} has {unfinished} unfinished match(es)")

    def generate_swiss_round(self, phase_id: str, allow_rematches: bool = False) -> RoundGeneration:
        """Pair the next Swiss round.

        Calling it again before any result of the new round is entered returns
        the same round with created=False.

        Args:
            phase_id: Swiss phase
            allow_rematches: Pair anyway, with rematches, when no
                rematch-free pairing exists (rematches are listed in warnings)

        Raises:
            RoundIncompleteError: Latest round has unfinished matches
            RoundLimitReachedError: All configured rounds were generated
            NoEligiblePairingError: Only pairings with rematches exist
            ValidationError: Fewer than 2 participants on the roster
        """
        phase = self._phase_for_generation(phase_id, PhaseKind.SWISS)
        latest = self.matches.latest_round(phase.id)

        if latest and self._check_latest_round(phase, latest):
            return self._existing_round(phase, latest)

        if latest >= phase.config.round_count:
            raise RoundLimitReachedError(
                f"Phase {phase.id} already has all {phase.config.round_count} round(s)"
            )

        roster = self.participants.load_roster(phase.event_id)
        if len(roster) < 2:
            raise ValidationError(f"At least 2 participants are needed, got {len(roster)}")

        existing = self.matches.get_by_phase(phase.id)
        standings = calculate_standings(
            existing, roster, scoring=self.settings.scoring, omw_floor=self.settings.omw_floor
        )

        round_number = latest + 1
        rng = None
        if round_number == 1 and self.settings.shuffle_first_round:
            rng = random.Random(f"{self.settings.random_seed}:{phase.id}")

        pairings = generate_swiss_pairings(
            standings,
            existing,
            round_number,
            allow_rematches=allow_rematches,
            search_limit=self.settings.pairing_search_limit,
            rng=rng,
        )
        return self._store_round(phase, round_number, pairings)

    def _bracket_seeding(self, phase: Phase) -> list[str]:
        """Participant ids in seed order: previous phase standings, else roster order."""
        earlier = [p for p in self.list_phases(phase.event_id) if p.order < phase.order]
        if earlier:
            previous = earlier[-1]
            logger.info("Seeding bracket %s from standings of phase %s", phase.id, previous.id)
            return [s.player_id for s in self.get_standings(previous.id)]
        return [p.id for p in self.participants.load_roster(phase.event_id)]

    def generate_bracket_round1(self, phase_id: str) -> RoundGeneration:
        """Seed the bracket and create its first round.

        Raises:
            ValidationError: Fewer than 2 participants to seed
        """
        phase = self._phase_for_generation(phase_id, PhaseKind.BRACKET)
        if self.matches.latest_round(phase.id):
            return RoundGeneration(
                phase_id=phase.id, round=1, matches=self.matches.get_round(phase.id, 1), created=False
            )

        pairings = build_first_round(self._bracket_seeding(phase), phase.config.top_cut)
        return self._store_round(phase, 1, pairings, bracket_rounds=total_rounds(len(pairings) * 2))

    def generate_next_bracket_round(self, phase_id: str) -> RoundGeneration:
        """Advance the winners of the latest bracket round.

        Raises:
            InvalidStateError: Round 1 was not generated yet
            RoundIncompleteError: Latest round has unfinished matches
            BracketCompleteError: Latest round is the Final
        """
        phase = self._phase_for_generation(phase_id, PhaseKind.BRACKET)
        latest = self.matches.latest_round(phase.id)
        if latest == 0:
            raise InvalidStateError(f"Generate round 1 of phase {phase.id} first")

        current = self.matches.get_round(phase.id, latest)
        if latest > 1 and is_untouched(current):
            return self._existing_round(phase, latest)

        first_round = self.matches.get_round(phase.id, 1)
        rounds = total_rounds(len(first_round) * 2)
        pairings = advance_round(current)
        return self._store_round(phase, latest + 1, pairings, bracket_rounds=rounds)

    # ========================================================================
    # Match lifecycle
    # ========================================================================

    def get_match(self, match_id: str) -> Match:
        match = self.matches.get_by_id(match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        return match

    def report_result(self, match_id: str, player1_score: int, player2_score: int, reporter_id: str) -> Match:
        return self.lifecycle.report_result(match_id, player1_score, player2_score, reporter_id)

    def confirm_result(self, match_id: str, confirmer_id: str) -> Match:
        return self.lifecycle.confirm_result(match_id, confirmer_id)

    def edit_match(self, match_id: str, player1_score: int, player2_score: int, organizer_id: str) -> Match:
        return self.lifecycle.edit_match(match_id, player1_score, player2_score, organizer_id)

    def delete_match(self, match_id: str) -> None:
        self.lifecycle.delete_match(match_id)

    def create_match(self, phase_id: str, player1_id: str, player2_id: Optional[str] = None, **kwargs) -> Match:
        return self.lifecycle.create_match(phase_id, player1_id, player2_id, **kwargs)

    def delete_round(self, phase_id: str, round_number: int) -> int:
        return self.lifecycle.delete_round(phase_id, round_number)
