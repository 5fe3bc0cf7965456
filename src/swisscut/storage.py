"""SQLite storage layer for swisscut.

Provides ORM models and repository pattern for data persistence. The
repositories are the engine's match record store: they hand out domain
dataclasses, never ORM rows.

Matches carry a `version` column used as an optimistic-lock token:
MatchRepository.update only writes when the stored version still equals the
version that was read.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import NullPool

from swisscut.errors import ConcurrentModificationError, InvalidStateError, NotFoundError, ValidationError
from swisscut.models import (
    BracketConfig,
    Match,
    MatchFormat,
    MatchStatus,
    Participant,
    ParticipantKind,
    Phase,
    PhaseKind,
    PhaseStatus,
    SwissConfig,
    utcnow,
)
from swisscut.paths import get_data_dir

logger = logging.getLogger(__name__)

Base = declarative_base()


# ============================================================================
# ORM Models
# ============================================================================


class EventORM(Base):
    """Event table.

    Events themselves are managed elsewhere; this row only holds the
    current-phase pointer.
    """

    __tablename__ = "events"

    id = Column(String(64), primary_key=True)
    current_phase_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    phases = relationship("PhaseORM", back_populates="event")


class ParticipantORM(Base):
    """Roster entry. Roster order is insertion order (pk)."""

    __tablename__ = "participants"
    __table_args__ = (UniqueConstraint("event_id", "participant_id", name="uq_participant_event"),)

    pk = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(64), ForeignKey("events.id"), nullable=False)
    participant_id = Column(String(64), nullable=False)
    name = Column(String(200), nullable=False)
    kind = Column(String(20), nullable=False, default="registered")  # registered, email, guest
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PhaseORM(Base):
    """Phase table.

    Swiss-only and bracket-only settings live in nullable columns; the
    domain model turns them back into SwissConfig / BracketConfig.
    """

    __tablename__ = "phases"

    id = Column(String(64), primary_key=True)
    event_id = Column(String(64), ForeignKey("events.id"), nullable=False)
    name = Column(String(200), nullable=False)
    kind = Column(String(10), nullable=False)  # swiss, bracket
    match_format = Column(String(3), nullable=False)  # BO1, BO2, BO3, BO5
    phase_order = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="not_started")
    round_count = Column(Integer, nullable=True)  # Swiss only
    top_cut = Column(Integer, nullable=True)  # Bracket only
    require_confirmation = Column(Boolean, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    event = relationship("EventORM", back_populates="phases")
    matches = relationship("MatchORM", back_populates="phase")


class MatchORM(Base):
    """Match table."""

    __tablename__ = "matches"
    __table_args__ = (UniqueConstraint("phase_id", "round", "match_number", name="uq_match_slot"),)

    id = Column(String(160), primary_key=True)
    phase_id = Column(String(64), ForeignKey("phases.id"), nullable=False)
    player1_id = Column(String(64), nullable=False)
    player2_id = Column(String(64), nullable=True)  # None = bye
    player1_score = Column(Integer, nullable=False, default=0)
    player2_score = Column(Integer, nullable=False, default=0)
    winner_id = Column(String(64), nullable=True)
    round = Column(Integer, nullable=False)
    match_number = Column(Integer, nullable=False)
    bracket_slot = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    reported_by = Column(String(64), nullable=True)
    confirmed_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    phase = relationship("PhaseORM", back_populates="matches")


# ============================================================================
# ORM <-> domain conversion
# ============================================================================


def _phase_to_domain(row: PhaseORM) -> Phase:
    if row.kind == PhaseKind.SWISS.value:
        config = SwissConfig(round_count=row.round_count)
    else:
        config = BracketConfig(top_cut=row.top_cut)
    return Phase(
        id=row.id,
        event_id=row.event_id,
        name=row.name,
        match_format=MatchFormat(row.match_format),
        config=config,
        order=row.phase_order,
        status=PhaseStatus(row.status),
        require_confirmation=row.require_confirmation,
    )


def _phase_columns(phase: Phase) -> dict:
    return {
        "event_id": phase.event_id,
        "name": phase.name,
        "kind": phase.kind.value,
        "match_format": phase.match_format.value,
        "phase_order": phase.order,
        "status": phase.status.value,
        "round_count": phase.config.round_count if phase.is_swiss else None,
        "top_cut": phase.config.top_cut if phase.is_bracket else None,
        "require_confirmation": phase.require_confirmation,
    }


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _match_to_domain(row: MatchORM) -> Match:
    return Match(
        match_id=row.id,
        phase_id=row.phase_id,
        player1_id=row.player1_id,
        player2_id=row.player2_id,
        round=row.round,
        match_number=row.match_number,
        bracket_slot=row.bracket_slot,
        player1_score=row.player1_score,
        player2_score=row.player2_score,
        winner_id=row.winner_id,
        status=MatchStatus(row.status),
        reported_by=row.reported_by,
        confirmed_by=row.confirmed_by,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        version=row.version,
    )


def _match_columns(match: Match) -> dict:
    return {
        "phase_id": match.phase_id,
        "player1_id": match.player1_id,
        "player2_id": match.player2_id,
        "player1_score": match.player1_score,
        "player2_score": match.player2_score,
        "winner_id": match.winner_id,
        "round": match.round,
        "match_number": match.match_number,
        "bracket_slot": match.bracket_slot,
        "status": match.status.value,
        "reported_by": match.reported_by,
        "confirmed_by": match.confirmed_by,
    }


# ============================================================================
# Database Manager
# ============================================================================


class DatabaseManager:
    """Manages SQLite database connection and session."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file (default: .swisscut/swisscut.sqlite)
        """
        self.db_path = Path(db_path) if db_path else get_data_dir() / "swisscut.sqlite"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Use NullPool for SQLite to avoid connection pool issues
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            poolclass=NullPool,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()


# ============================================================================
# Repository Pattern
# ============================================================================


class EventRepository:
    """Repository for the per-event current-phase pointer."""

    def __init__(self, session):
        self.session = session

    def get_or_create(self, event_id: str) -> EventORM:
        """Return the event row, creating it on first use."""
        event = self.session.query(EventORM).filter(EventORM.id == event_id).first()
        if event is None:
            event = EventORM(id=event_id)
            self.session.add(event)
            self.session.commit()
        return event

    def get_current_phase_id(self, event_id: str) -> Optional[str]:
        event = self.session.query(EventORM).filter(EventORM.id == event_id).first()
        return event.current_phase_id if event else None

    def set_current_phase(self, event_id: str, phase_id: Optional[str]) -> None:
        """Point the event at a phase (None clears the pointer)."""
        event = self.get_or_create(event_id)
        event.current_phase_id = phase_id
        self.session.commit()


class ParticipantRepository:
    """Repository for the event roster."""

    def __init__(self, session):
        self.session = session

    def add(self, event_id: str, participant: Participant) -> Participant:
        """Add a participant to an event roster.

        Raises:
            ValidationError: If the participant is already on the roster
        """
        EventRepository(self.session).get_or_create(event_id)
        row = ParticipantORM(
            event_id=event_id,
            participant_id=participant.id,
            name=participant.name,
            kind=participant.kind.value,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ValidationError(f"Participant {participant.id} is already registered for {event_id}")
        return participant

    def load_roster(self, event_id: str) -> list[Participant]:
        """Get the roster of an event in registration order."""
        rows = (
            self.session.query(ParticipantORM)
            .filter(ParticipantORM.event_id == event_id)
            .order_by(ParticipantORM.pk)
            .all()
        )
        return [Participant(id=r.participant_id, name=r.name, kind=ParticipantKind(r.kind)) for r in rows]

    def remove(self, event_id: str, participant_id: str) -> bool:
        """Remove a participant from the roster.

        Returns:
            True if deleted, False if not found
        """
        count = (
            self.session.query(ParticipantORM)
            .filter(ParticipantORM.event_id == event_id, ParticipantORM.participant_id == participant_id)
            .delete()
        )
        self.session.commit()
        return count > 0


class PhaseRepository:
    """Repository for Phase operations."""

    def __init__(self, session):
        self.session = session

    def create(self, phase: Phase) -> Phase:
        """Create a new phase in the database."""
        EventRepository(self.session).get_or_create(phase.event_id)
        self.session.add(PhaseORM(id=phase.id, **_phase_columns(phase)))
        self.session.commit()
        return phase

    def get_by_id(self, phase_id: str) -> Optional[Phase]:
        """Get phase by ID.

        Returns:
            Phase if found, None otherwise
        """
        row = self.session.query(PhaseORM).filter(PhaseORM.id == phase_id).first()
        return _phase_to_domain(row) if row else None

    def get_by_event(self, event_id: str) -> list[Phase]:
        """Get all phases of an event, ordered by phase order."""
        rows = (
            self.session.query(PhaseORM)
            .filter(PhaseORM.event_id == event_id)
            .order_by(PhaseORM.phase_order)
            .all()
        )
        return [_phase_to_domain(r) for r in rows]

    def next_order(self, event_id: str) -> int:
        """Order value for the next phase added to an event."""
        current = (
            self.session.query(func.max(PhaseORM.phase_order))
            .filter(PhaseORM.event_id == event_id)
            .scalar()
        )
        return (current or 0) + 1

    def update(self, phase: Phase) -> Phase:
        """Write back every column of an existing phase.

        Raises:
            NotFoundError: If the phase does not exist
        """
        count = (
            self.session.query(PhaseORM)
            .filter(PhaseORM.id == phase.id)
            .update(_phase_columns(phase), synchronize_session=False)
        )
        self.session.commit()
        if count == 0:
            raise NotFoundError(f"Phase {phase.id} not found")
        return phase

    def delete(self, phase_id: str) -> bool:
        """Delete a phase and any matches it still holds.

        Returns:
            True if deleted, False if not found
        """
        self.session.query(MatchORM).filter(MatchORM.phase_id == phase_id).delete()
        count = self.session.query(PhaseORM).filter(PhaseORM.id == phase_id).delete()
        self.session.commit()
        return count > 0


class MatchRepository:
    """Repository for Match operations."""

    def __init__(self, session):
        self.session = session

    def add(self, match: Match) -> Match:
        """Insert a new match.

        Raises:
            ValidationError: If the id or the phase/round/number slot is taken
        """
        now = utcnow()
        row = MatchORM(
            id=match.match_id,
            created_at=match.created_at or now,
            updated_at=now,
            version=1,
            **_match_columns(match),
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ValidationError(
                f"Match {match.match_id} (round {match.round}, number {match.match_number}) already exists"
            )
        return _match_to_domain(row)

    def get_by_id(self, match_id: str) -> Optional[Match]:
        """Get match by ID.

        Returns:
            Match if found, None otherwise
        """
        row = self.session.query(MatchORM).filter(MatchORM.id == match_id).first()
        return _match_to_domain(row) if row else None

    def get_by_phase(self, phase_id: str) -> list[Match]:
        """Get all matches of a phase, any status, by round and number."""
        rows = (
            self.session.query(MatchORM)
            .filter(MatchORM.phase_id == phase_id)
            .order_by(MatchORM.round, MatchORM.match_number)
            .all()
        )
        return [_match_to_domain(r) for r in rows]

    def get_by_event(self, event_id: str) -> list[Match]:
        """Get all matches of every phase of an event."""
        rows = (
            self.session.query(MatchORM)
            .join(PhaseORM, MatchORM.phase_id == PhaseORM.id)
            .filter(PhaseORM.event_id == event_id)
            .order_by(PhaseORM.phase_order, MatchORM.round, MatchORM.match_number)
            .all()
        )
        return [_match_to_domain(r) for r in rows]

    def get_round(self, phase_id: str, round_number: int) -> list[Match]:
        """Get the matches of one round, by match number."""
        rows = (
            self.session.query(MatchORM)
            .filter(MatchORM.phase_id == phase_id, MatchORM.round == round_number)
            .order_by(MatchORM.match_number)
            .all()
        )
        return [_match_to_domain(r) for r in rows]

    def latest_round(self, phase_id: str) -> int:
        """Highest round number of a phase, 0 when no match exists."""
        current = (
            self.session.query(func.max(MatchORM.round)).filter(MatchORM.phase_id == phase_id).scalar()
        )
        return current or 0

    def update(self, match: Match) -> Match:
        """Write a match back if nobody changed it since it was read.

        Args:
            match: Match carrying the version it was read with

        Returns:
            The stored match with its new version

        Raises:
            ConcurrentModificationError: If the stored version moved on
            NotFoundError: If the match no longer exists
        """
        values = _match_columns(match)
        values["updated_at"] = utcnow()
        values["version"] = match.version + 1
        count = (
            self.session.query(MatchORM)
            .filter(MatchORM.id == match.match_id, MatchORM.version == match.version)
            .update(values, synchronize_session=False)
        )
        self.session.commit()

        if count == 0:
            if self.get_by_id(match.match_id) is None:
                raise NotFoundError(f"Match {match.match_id} not found")
            raise ConcurrentModificationError(
                f"Match {match.match_id} was modified concurrently (expected version {match.version})"
            )
        return self.get_by_id(match.match_id)

    def insert_round(self, phase_id: str, round_number: int, matches: list[Match]) -> tuple[list[Match], bool]:
        """Insert a whole round atomically, once.

        Returns:
            (matches, created): the stored round, and False when the round
            already existed (the given matches are then discarded)
        """
        existing = self.get_round(phase_id, round_number)
        if existing:
            return existing, False

        now = utcnow()
        for match in matches:
            self.session.add(
                MatchORM(
                    id=match.match_id,
                    created_at=match.created_at or now,
                    updated_at=now,
                    version=1,
                    **_match_columns(match),
                )
            )
        try:
            self.session.commit()
        except IntegrityError:
            # Another caller stored the same round first
            self.session.rollback()
            logger.info("Round %d of phase %s was inserted concurrently", round_number, phase_id)
            return self.get_round(phase_id, round_number), False
        return self.get_round(phase_id, round_number), True

    def delete_round(self, phase_id: str, round_number: int) -> int:
        """Delete every match of the latest round of a phase.

        Returns:
            Number of matches deleted

        Raises:
            InvalidStateError: If a later round exists or the round is empty
        """
        latest = self.latest_round(phase_id)
        if latest == 0 or round_number > latest:
            raise InvalidStateError(f"Round {round_number} has no matches in phase {phase_id}")
        if round_number != latest:
            raise InvalidStateError(
                f"Only the latest round ({latest}) can be deleted; round {round_number} has later rounds"
            )
        count = (
            self.session.query(MatchORM)
            .filter(MatchORM.phase_id == phase_id, MatchORM.round == round_number)
            .delete()
        )
        self.session.commit()
        return count

    def delete(self, match_id: str) -> bool:
        """Delete a match by ID.

        Returns:
            True if deleted, False if not found
        """
        count = self.session.query(MatchORM).filter(MatchORM.id == match_id).delete()
        self.session.commit()
        return count > 0
