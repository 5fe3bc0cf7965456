"""Match lifecycle: result reporting, confirmation and organizer overrides.

State machine:

    Pending --report--> Completed                  (no confirmation required)
    Pending --report--> InProgress --confirm-----> Completed
                        InProgress --other report-> Completed (same scores)
                        InProgress --other report-> Disputed  (different scores)
    any     --organizer edit--> Completed

Every transition is a read-validate-write cycle against the match's version
token. A conflicting write raises ConcurrentModificationError; the cycle is
retried `concurrency_retries` times before the error reaches the caller.
"""

import logging
import uuid
from dataclasses import replace
from typing import Callable, Optional

from swisscut.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from swisscut.models import EngineSettings, Match, MatchStatus, Phase, PhaseStatus
from swisscut.storage import MatchRepository, ParticipantRepository, PhaseRepository
from swisscut.validation import validate_match_score, validate_participants, validate_reporter

logger = logging.getLogger(__name__)


def new_match(
    phase: Phase,
    round_number: int,
    match_number: int,
    player1_id: str,
    player2_id: Optional[str] = None,
    bracket_slot: Optional[str] = None,
    match_id: Optional[str] = None,
) -> Match:
    """Create an unsaved match; a bye comes back already Completed.

    The bye's stored score is games-to-win against nothing (2-0 in BO3).
    """
    match = Match(
        match_id=match_id or uuid.uuid4().hex,
        phase_id=phase.id,
        player1_id=player1_id,
        player2_id=player2_id,
        round=round_number,
        match_number=match_number,
        bracket_slot=bracket_slot,
    )
    if match.is_bye:
        match.player1_score = phase.match_format.games_to_win
        match.status = MatchStatus.COMPLETED
        match.winner_id = player1_id
    return match


def winner_by_score(match: Match, player1_score: int, player2_score: int) -> Optional[str]:
    """Winner implied by a score, None for a draw."""
    if player1_score > player2_score:
        return match.player1_id
    if player2_score > player1_score:
        return match.player2_id
    return None


class MatchLifecycle:
    """Applies result transitions to stored matches."""

    def __init__(
        self,
        matches: MatchRepository,
        phases: PhaseRepository,
        participants: ParticipantRepository,
        settings: Optional[EngineSettings] = None,
    ):
        self.matches = matches
        self.phases = phases
        self.participants = participants
        self.settings = settings or EngineSettings()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _get_match(self, match_id: str) -> Match:
        match = self.matches.get_by_id(match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        return match

    def _get_phase(self, phase_id: str) -> Phase:
        phase = self.phases.get_by_id(phase_id)
        if phase is None:
            raise NotFoundError(f"Phase {phase_id} not found")
        return phase

    def requires_confirmation(self, phase: Phase) -> bool:
        """Phase override when set, engine default otherwise."""
        if phase.require_confirmation is not None:
            return phase.require_confirmation
        return self.settings.require_confirmation

    def _check_score(self, phase: Phase, player1_score: int, player2_score: int) -> None:
        is_valid, msg = validate_match_score(
            player1_score, player2_score, phase.match_format, allow_draw=phase.is_swiss
        )
        if not is_valid:
            raise ValidationError(msg)

    def _mutate(self, match_id: str, transition: Callable[[Match], Match]) -> Match:
        """Run read-validate-write, retrying on version conflicts."""
        attempts = self.settings.concurrency_retries + 1
        for attempt in range(1, attempts + 1):
            match = self._get_match(match_id)
            updated = transition(match)
            try:
                return self.matches.update(updated)
            except ConcurrentModificationError:
                if attempt == attempts:
                    raise
                logger.debug(
                    "Match %s changed concurrently, retrying (attempt %d of %d)",
                    match_id,
                    attempt + 1,
                    attempts,
                )
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # player operations
    # ------------------------------------------------------------------

    def report_result(self, match_id: str, player1_score: int, player2_score: int, reporter_id: str) -> Match:
        """Report a result as one of the match's players.

        Args:
            match_id: Match being reported
            player1_score: Games won by the match's player 1
            player2_score: Games won by the match's player 2
            reporter_id: Participant submitting the report

        Returns:
            The updated match (Completed, InProgress or Disputed)

        Raises:
            NotFoundError: Unknown match
            AuthorizationError: Reporter is not a player of the match, or
                self-reporting is disabled
            ValidationError: Score impossible for the match format
            InvalidStateError: Match already Completed or Disputed
            ConcurrentModificationError: Lost a write race after all retries
        """

        def transition(match: Match) -> Match:
            phase = self._get_phase(match.phase_id)

            if match.is_bye:
                raise InvalidStateError(f"Match {match.match_id} is a bye and completes automatically")
            if match.status in (MatchStatus.COMPLETED, MatchStatus.DISPUTED):
                raise InvalidStateError(
                    f"Cannot report match {match.match_id}: status is {match.status.value}"
                )
            if phase.status == PhaseStatus.COMPLETED:
                raise InvalidStateError(f"Phase {phase.id} is completed")

            is_valid, msg = validate_reporter(reporter_id, match.player1_id, match.player2_id)
            if not is_valid:
                raise AuthorizationError(msg)
            if not self.settings.allow_self_reporting:
                raise AuthorizationError("Self-reporting is disabled; an organizer must enter the result")

            self._check_score(phase, player1_score, player2_score)

            if not self.requires_confirmation(phase):
                return replace(
                    match,
                    player1_score=player1_score,
                    player2_score=player2_score,
                    winner_id=winner_by_score(match, player1_score, player2_score),
                    status=MatchStatus.COMPLETED,
                    reported_by=reporter_id,
                    confirmed_by=reporter_id,
                )

            if match.status == MatchStatus.PENDING or match.reported_by == reporter_id:
                # First report, or the same player correcting their own report
                return replace(
                    match,
                    player1_score=player1_score,
                    player2_score=player2_score,
                    winner_id=None,
                    status=MatchStatus.IN_PROGRESS,
                    reported_by=reporter_id,
                    confirmed_by=None,
                )

            if (match.player1_score, match.player2_score) == (player1_score, player2_score):
                return replace(
                    match,
                    winner_id=winner_by_score(match, player1_score, player2_score),
                    status=MatchStatus.COMPLETED,
                    confirmed_by=reporter_id,
                )

            logger.warning(
                "Match %s disputed: %s reported %d-%d, %s reported %d-%d",
                match.match_id,
                match.reported_by,
                match.player1_score,
                match.player2_score,
                reporter_id,
                player1_score,
                player2_score,
            )
            return replace(match, status=MatchStatus.DISPUTED)

        match = self._mutate(match_id, transition)
        logger.info("Result reported for %s by %s: %s", match_id, reporter_id, match.status.value)
        return match

    def confirm_result(self, match_id: str, confirmer_id: str) -> Match:
        """Confirm the staged result of an InProgress match.

        Raises:
            InvalidStateError: Match is not awaiting confirmation
            AuthorizationError: Confirmer is not the opponent of the reporter
        """

        def transition(match: Match) -> Match:
            if match.status != MatchStatus.IN_PROGRESS:
                raise InvalidStateError(
                    f"Match {match.match_id} is not awaiting confirmation (status: {match.status.value})"
                )
            is_valid, msg = validate_reporter(confirmer_id, match.player1_id, match.player2_id)
            if not is_valid:
                raise AuthorizationError(msg)
            if confirmer_id == match.reported_by:
                raise AuthorizationError("A result must be confirmed by the opponent of the reporter")
            return replace(
                match,
                winner_id=winner_by_score(match, match.player1_score, match.player2_score),
                status=MatchStatus.COMPLETED,
                confirmed_by=confirmer_id,
            )

        match = self._mutate(match_id, transition)
        logger.info("Result of %s confirmed by %s", match_id, confirmer_id)
        return match

    # ------------------------------------------------------------------
    # organizer operations
    # ------------------------------------------------------------------

    def edit_match(self, match_id: str, player1_score: int, player2_score: int, organizer_id: str) -> Match:
        """Set the final result of a match from any state (organizer override).

        A bye can be rescored but its only participant always keeps the win.
        """

        def transition(match: Match) -> Match:
            phase = self._get_phase(match.phase_id)
            self._check_score(phase, player1_score, player2_score)
            if match.is_bye:
                if player1_score <= player2_score:
                    raise ValidationError(f"Match {match.match_id} is a bye; {match.player1_id} must win it")
                winner_id = match.player1_id
            else:
                winner_id = winner_by_score(match, player1_score, player2_score)
            return replace(
                match,
                player1_score=player1_score,
                player2_score=player2_score,
                winner_id=winner_id,
                status=MatchStatus.COMPLETED,
                reported_by=organizer_id,
                confirmed_by=organizer_id,
            )

        match = self._mutate(match_id, transition)
        if self.matches.latest_round(match.phase_id) > match.round:
            logger.warning(
                "Match %s edited after round %d was followed by later rounds", match_id, match.round
            )
        logger.info("Match %s set to %d-%d by organizer %s", match_id, player1_score, player2_score, organizer_id)
        return match

    def delete_match(self, match_id: str) -> None:
        """Delete a single match (organizer only)."""
        if not self.matches.delete(match_id):
            raise NotFoundError(f"Match {match_id} not found")
        logger.info("Match %s deleted", match_id)

    def create_match(
        self,
        phase_id: str,
        player1_id: str,
        player2_id: Optional[str] = None,
        round_number: Optional[int] = None,
        player1_score: Optional[int] = None,
        player2_score: Optional[int] = None,
        organizer_id: Optional[str] = None,
    ) -> Match:
        """Create a match by hand, optionally with its final result.

        Args:
            phase_id: Phase the match belongs to
            player1_id: First participant
            player2_id: Second participant, None for a bye
            round_number: Target round (default: the latest round, or 1)
            player1_score: Final score of player 1 (give both scores or none)
            player2_score: Final score of player 2
            organizer_id: Organizer recorded as reporter of a scored match

        Raises:
            NotFoundError: Unknown phase
            InvalidStateError: Phase is completed
            ValidationError: Unknown participant, participant already playing
                in the round, or invalid score
        """
        phase = self._get_phase(phase_id)
        if phase.status == PhaseStatus.COMPLETED:
            raise InvalidStateError(f"Phase {phase_id} is completed")

        roster_ids = {p.id for p in self.participants.load_roster(phase.event_id)}
        is_valid, msg = validate_participants((player1_id, player2_id), roster_ids)
        if not is_valid:
            raise ValidationError(msg)

        if round_number is None:
            round_number = max(self.matches.latest_round(phase_id), 1)
        if round_number < 1:
            raise ValidationError(f"Round must be at least 1, got {round_number}")

        existing = self.matches.get_round(phase_id, round_number)
        for match in existing:
            for player_id in (player1_id, player2_id):
                if player_id is not None and match.involves(player_id):
                    raise ValidationError(f"Participant {player_id} already plays in round {round_number}")

        match_number = max((m.match_number for m in existing), default=0) + 1
        match = new_match(phase, round_number, match_number, player1_id, player2_id)

        if (player1_score is None) != (player2_score is None):
            raise ValidationError("Give both scores or neither")
        if player1_score is not None and not match.is_bye:
            self._check_score(phase, player1_score, player2_score)
            match.player1_score = player1_score
            match.player2_score = player2_score
            match.winner_id = winner_by_score(match, player1_score, player2_score)
            match.status = MatchStatus.COMPLETED
            match.reported_by = organizer_id
            match.confirmed_by = organizer_id

        match = self.matches.add(match)
        logger.info("Manual match %s created in round %d of phase %s", match.match_id, round_number, phase_id)
        return match

    def delete_round(self, phase_id: str, round_number: int) -> int:
        """Delete the latest round of a phase.

        Returns:
            Number of matches deleted

        Raises:
            InvalidStateError: If a later round exists
        """
        self._get_phase(phase_id)
        count = self.matches.delete_round(phase_id, round_number)
        logger.info("Deleted round %d of phase %s (%d match(es))", round_number, phase_id, count)
        return count
