"""Phase manager: ordered phases of an event and their status."""

import logging
import uuid
from dataclasses import replace
from typing import Optional, Union

from swisscut.errors import InvalidStateError, NotFoundError, ValidationError
from swisscut.models import BracketConfig, MatchFormat, Phase, PhaseConfig, PhaseStatus, SwissConfig
from swisscut.storage import EventRepository, MatchRepository, PhaseRepository

logger = logging.getLogger(__name__)

# Allowed status transitions
NEXT_STATUS = {
    PhaseStatus.NOT_STARTED: PhaseStatus.IN_PROGRESS,
    PhaseStatus.IN_PROGRESS: PhaseStatus.COMPLETED,
}

_UNSET = object()


def validate_phase_config(config: PhaseConfig) -> tuple[bool, str]:
    """Validate a phase configuration.

    Examples:
        >>> validate_phase_config(SwissConfig(round_count=5))
        (True, '')
        >>> validate_phase_config(BracketConfig(top_cut=1))
        (False, 'top_cut must be an integer >= 2, got 1')
    """
    if isinstance(config, SwissConfig):
        value = config.round_count
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            return False, f"round_count must be an integer >= 1, got {value!r}"
        return True, ""
    if isinstance(config, BracketConfig):
        value = config.top_cut
        if isinstance(value, bool) or not isinstance(value, int) or value < 2:
            return False, f"top_cut must be an integer >= 2, got {value!r}"
        return True, ""
    return False, f"Unknown phase config: {config!r}"


def _coerce_format(match_format: Union[MatchFormat, str]) -> MatchFormat:
    try:
        return MatchFormat(match_format)
    except ValueError:
        valid = ", ".join(f.value for f in MatchFormat)
        raise ValidationError(f"Invalid match format {match_format!r} (valid: {valid})")


class PhaseManager:
    """Creates, orders and transitions the phases of an event."""

    def __init__(self, phases: PhaseRepository, events: EventRepository, matches: MatchRepository):
        self.phases = phases
        self.events = events
        self.matches = matches

    def get_phase(self, phase_id: str) -> Phase:
        """Get a phase or raise NotFoundError."""
        phase = self.phases.get_by_id(phase_id)
        if phase is None:
            raise NotFoundError(f"Phase {phase_id} not found")
        return phase

    def list_phases(self, event_id: str) -> list[Phase]:
        """Phases of an event in order."""
        return self.phases.get_by_event(event_id)

    def add_phase(
        self,
        event_id: str,
        name: str,
        match_format: Union[MatchFormat, str],
        config: PhaseConfig,
        require_confirmation: Optional[bool] = None,
    ) -> Phase:
        """Append a new NotStarted phase to an event.

        Args:
            event_id: Event the phase belongs to
            name: Display name
            match_format: BO1, BO2, BO3 or BO5
            config: SwissConfig or BracketConfig
            require_confirmation: Per-phase override of the engine default

        Returns:
            The stored phase, with order = last order + 1

        Raises:
            ValidationError: Empty name, unknown format or invalid config
        """
        if not name or not name.strip():
            raise ValidationError("Phase name cannot be empty")
        is_valid, msg = validate_phase_config(config)
        if not is_valid:
            raise ValidationError(msg)

        phase = Phase(
            id=uuid.uuid4().hex,
            event_id=event_id,
            name=name.strip(),
            match_format=_coerce_format(match_format),
            config=config,
            order=self.phases.next_order(event_id),
            status=PhaseStatus.NOT_STARTED,
            require_confirmation=require_confirmation,
        )
        self.phases.create(phase)
        logger.info("Added %s to event %s", phase, event_id)
        return phase

    def update_phase_status(self, phase_id: str, status: Union[PhaseStatus, str]) -> Phase:
        """Move a phase one step forward.

        Raises:
            InvalidStateError: For a skip, a reopen or an unchanged status
        """
        phase = self.get_phase(phase_id)
        try:
            status = PhaseStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid phase status: {status!r}")

        if NEXT_STATUS.get(phase.status) != status:
            raise InvalidStateError(
                f"Cannot move phase {phase_id} from {phase.status.value} to {status.value}"
            )

        phase = self.phases.update(replace(phase, status=status))
        logger.info("Phase %s is now %s", phase_id, status.value)
        return phase

    def set_current_phase(self, phase_id: str) -> Phase:
        """Point the event of a phase at it, whatever its status."""
        phase = self.get_phase(phase_id)
        self.events.set_current_phase(phase.event_id, phase.id)
        logger.info("Current phase of event %s set to %s", phase.event_id, phase_id)
        return phase

    def get_current_phase(self, event_id: str) -> Optional[Phase]:
        """Current phase of an event, None when no pointer is set."""
        phase_id = self.events.get_current_phase_id(event_id)
        if phase_id is None:
            return None
        return self.phases.get_by_id(phase_id)

    def delete_phase(self, phase_id: str) -> None:
        """Delete a phase that has not started.

        Raises:
            InvalidStateError: If the phase is InProgress or Completed
        """
        phase = self.get_phase(phase_id)
        if phase.status != PhaseStatus.NOT_STARTED:
            raise InvalidStateError(f"Cannot delete phase {phase_id}: status is {phase.status.value}")

        if self.events.get_current_phase_id(phase.event_id) == phase_id:
            self.events.set_current_phase(phase.event_id, None)
        self.phases.delete(phase_id)
        logger.info("Deleted phase %s", phase_id)

    def update_phase(
        self,
        phase_id: str,
        name: Optional[str] = None,
        match_format: Optional[Union[MatchFormat, str]] = None,
        config: Optional[PhaseConfig] = None,
        require_confirmation=_UNSET,
    ) -> Phase:
        """Edit phase settings.

        Raises:
            InvalidStateError: Changing the kind of a started phase, or the
                top cut of a bracket that already has matches
            ValidationError: Invalid values, or a round count below the
                number of rounds already generated
        """
        phase = self.get_phase(phase_id)
        changes = {}

        if name is not None:
            if not name.strip():
                raise ValidationError("Phase name cannot be empty")
            changes["name"] = name.strip()

        if match_format is not None:
            changes["match_format"] = _coerce_format(match_format)

        if config is not None:
            is_valid, msg = validate_phase_config(config)
            if not is_valid:
                raise ValidationError(msg)
            if config.kind != phase.kind and phase.status != PhaseStatus.NOT_STARTED:
                raise InvalidStateError(f"Cannot change the kind of phase {phase_id} once started")

            generated = self.matches.latest_round(phase_id)
            if isinstance(config, SwissConfig) and phase.is_swiss and config.round_count < generated:
                raise ValidationError(
                    f"round_count {config.round_count} is below the {generated} round(s) already generated"
                )
            if isinstance(config, BracketConfig) and phase.is_bracket and generated and config != phase.config:
                raise InvalidStateError(f"Cannot change the top cut of phase {phase_id} after seeding")
            changes["config"] = config

        if require_confirmation is not _UNSET:
            changes["require_confirmation"] = require_confirmation

        if not changes:
            return phase

        phase = self.phases.update(replace(phase, **changes))
        logger.info("Updated phase %s: %s", phase_id, ", ".join(sorted(changes)))
        return phase
