"""End-to-end tests for round generation over the SQLite store."""

import pytest

from swisscut.errors import (
    BracketCompleteError,
    InvalidStateError,
    NoEligiblePairingError,
    RoundIncompleteError,
    RoundLimitReachedError,
    ValidationError,
)
from swisscut.engine import TournamentEngine
from swisscut.models import (
    BracketConfig,
    EngineSettings,
    MatchStatus,
    Pairing,
    Participant,
    PhaseStatus,
    SwissConfig,
)

EVENT_ID = "spring-open"


def play_out_round(engine, result, winner="player1"):
    """Report every open match of a round; player 1 wins 2-0 unless told otherwise."""
    for match in result.matches:
        if match.is_completed:
            continue
        if winner == "player1":
            engine.report_result(match.match_id, 2, 0, match.player1_id)
        else:
            engine.report_result(match.match_id, 0, 2, match.player2_id)


class TestSwissRounds:
    def test_first_round(self, make_engine):
        engine = make_engine(players=8)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        result = engine.generate_swiss_round(phase.id)

        assert result.created is True
        assert result.round == 1
        assert [m.match_id for m in result.matches] == [f"{phase.id}-r1-m{i}" for i in range(1, 5)]
        assert all(m.status == MatchStatus.PENDING for m in result.matches)
        assert engine.get_phase(phase.id).status == PhaseStatus.IN_PROGRESS

    def test_generation_is_idempotent(self, make_engine):
        engine = make_engine(players=8)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        first = engine.generate_swiss_round(phase.id)
        second = engine.generate_swiss_round(phase.id)

        assert second.created is False
        assert [m.match_id for m in second.matches] == [m.match_id for m in first.matches]
        assert len(engine.get_matches(phase.id)) == 4

    def test_incomplete_round_blocks_generation(self, make_engine):
        engine = make_engine(players=8)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))
        match = engine.generate_swiss_round(phase.id).matches[0]
        engine.report_result(match.match_id, 2, 0, match.player1_id)

        with pytest.raises(RoundIncompleteError):
            engine.generate_swiss_round(phase.id)

    def test_full_phase_without_rematches(self, make_engine):
        engine = make_engine(players=8)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        for round_number in range(1, 4):
            result = engine.generate_swiss_round(phase.id)
            assert result.round == round_number
            assert result.warnings == []
            play_out_round(engine, result)

        pairs = [frozenset(m.player_ids) for m in engine.get_matches(phase.id)]
        assert len(pairs) == 12
        assert len(set(pairs)) == 12

        with pytest.raises(RoundLimitReachedError):
            engine.generate_swiss_round(phase.id)

        standings = engine.get_standings(phase.id)
        assert sum(s.match_points for s in standings) == 12 * 3
        assert [s.rank for s in standings] == list(range(1, 9))

    def test_odd_roster_gets_one_completed_bye(self, make_engine):
        engine = make_engine(players=7)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        recipients = []
        for _ in range(3):
            result = engine.generate_swiss_round(phase.id)
            byes = [m for m in result.matches if m.is_bye]
            assert len(byes) == 1
            assert byes[0].status == MatchStatus.COMPLETED
            assert byes[0].winner_id == byes[0].player1_id
            assert (byes[0].player1_score, byes[0].player2_score) == (2, 0)
            recipients.append(byes[0].player1_id)
            play_out_round(engine, result)

        assert len(set(recipients)) == 3
        bye_standing = next(s for s in engine.get_standings(phase.id) if s.player_id == recipients[0])
        assert bye_standing.byes == 1

    def test_rematch_needs_explicit_permission(self, make_engine):
        engine = make_engine(players=2)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=2))
        play_out_round(engine, engine.generate_swiss_round(phase.id))

        with pytest.raises(NoEligiblePairingError):
            engine.generate_swiss_round(phase.id)

        result = engine.generate_swiss_round(phase.id, allow_rematches=True)
        assert result.round == 2
        assert len(result.warnings) == 1
        assert "Rematch" in result.warnings[0]

    def test_shuffled_first_round_is_reproducible(self, db):
        settings = EngineSettings(shuffle_first_round=True, random_seed=11)
        engine = TournamentEngine.from_session(db.get_session(), settings=settings)
        for i in range(1, 11):
            engine.participants.add(EVENT_ID, Participant(id=f"p{i}", name=f"Player {i}"))
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        result = engine.generate_swiss_round(phase.id)
        players = [p for m in result.matches for p in m.player_ids]
        assert sorted(players) == sorted(f"p{i}" for i in range(1, 11))

        engine.delete_round(phase.id, 1)
        again = engine.generate_swiss_round(phase.id)
        assert [m.player_ids for m in again.matches] == [m.player_ids for m in result.matches]

    def test_needs_two_participants(self, make_engine):
        engine = make_engine(players=1)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        with pytest.raises(ValidationError):
            engine.generate_swiss_round(phase.id)

    def test_wrong_kind_and_completed_phase(self, make_engine):
        engine = make_engine(players=4)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        with pytest.raises(InvalidStateError):
            engine.generate_bracket_round1(phase.id)

        engine.update_phase_status(phase.id, PhaseStatus.IN_PROGRESS)
        engine.update_phase_status(phase.id, PhaseStatus.COMPLETED)
        with pytest.raises(InvalidStateError):
            engine.generate_swiss_round(phase.id)

    def test_deleting_latest_round_allows_regeneration(self, make_engine):
        engine = make_engine(players=4)
        phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))
        play_out_round(engine, engine.generate_swiss_round(phase.id))
        engine.generate_swiss_round(phase.id)

        with pytest.raises(InvalidStateError):
            engine.delete_round(phase.id, 1)

        assert engine.delete_round(phase.id, 2) == 2
        assert engine.generate_swiss_round(phase.id).created is True

    def test_racing_generators_share_one_round(self, db):
        first = TournamentEngine.from_session(db.get_session())
        second = TournamentEngine.from_session(db.get_session())
        for i in range(1, 5):
            first.participants.add(EVENT_ID, Participant(id=f"p{i}", name=f"Player {i}"))
        phase = first.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))

        # Second caller read the phase before the first one started it
        stale = second.get_phase(phase.id)
        winner = first.generate_swiss_round(phase.id)
        loser = second._store_round(stale, 1, [Pairing("p4", "p3"), Pairing("p2", "p1")])

        assert loser.created is False
        assert [m.match_id for m in loser.matches] == [m.match_id for m in winner.matches]
        assert [m.player_ids for m in loser.matches] == [m.player_ids for m in winner.matches]
        assert first.get_phase(phase.id).status == PhaseStatus.IN_PROGRESS
        assert len(second.get_matches(phase.id)) == 2


class TestBracketRounds:
    def test_top_eight_seeded_from_previous_phase(self, make_engine):
        engine = make_engine(players=8)
        swiss = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))
        for _ in range(3):
            play_out_round(engine, engine.generate_swiss_round(swiss.id))
        seeds = [s.player_id for s in engine.get_standings(swiss.id)]

        top8 = engine.add_phase(EVENT_ID, "Top 8", "BO3", BracketConfig(top_cut=8))
        result = engine.generate_bracket_round1(top8.id)

        assert [(m.player1_id, m.player2_id) for m in result.matches] == [
            (seeds[0], seeds[7]),
            (seeds[3], seeds[4]),
            (seeds[1], seeds[6]),
            (seeds[2], seeds[5]),
        ]
        assert [m.bracket_slot for m in result.matches] == [
            "Quarterfinal 1",
            "Quarterfinal 2",
            "Quarterfinal 3",
            "Quarterfinal 4",
        ]

    def test_top_cut_five(self, make_engine):
        engine = make_engine(players=6)
        phase = engine.add_phase(EVENT_ID, "Top 5", "BO3", BracketConfig(top_cut=5))

        first = engine.generate_bracket_round1(phase.id)
        byes = [m for m in first.matches if m.is_bye]
        played = [m for m in first.matches if not m.is_bye]
        assert len(first.matches) == 4
        assert [m.player1_id for m in byes] == ["p1", "p2", "p3"]
        assert [(m.player1_id, m.player2_id) for m in played] == [("p4", "p5")]

        engine.report_result(played[0].match_id, 0, 2, "p5")
        second = engine.generate_next_bracket_round(phase.id)

        assert [(m.player1_id, m.player2_id) for m in second.matches] == [("p1", "p5"), ("p2", "p3")]
        assert [m.bracket_slot for m in second.matches] == ["Semifinal 1", "Semifinal 2"]

    def test_play_to_the_final(self, make_engine):
        engine = make_engine(players=4)
        phase = engine.add_phase(EVENT_ID, "Top 4", "BO3", BracketConfig(top_cut=4))
        semis = engine.generate_bracket_round1(phase.id)
        assert [m.bracket_slot for m in semis.matches] == ["Semifinal 1", "Semifinal 2"]

        with pytest.raises(RoundIncompleteError):
            engine.generate_next_bracket_round(phase.id)

        play_out_round(engine, semis, winner="player2")
        final = engine.generate_next_bracket_round(phase.id)
        assert [(m.player1_id, m.player2_id, m.bracket_slot) for m in final.matches] == [("p4", "p3", "Final")]

        # Untouched final is returned again
        again = engine.generate_next_bracket_round(phase.id)
        assert again.created is False
        assert [m.match_id for m in again.matches] == [m.match_id for m in final.matches]

        play_out_round(engine, final)
        with pytest.raises(BracketCompleteError):
            engine.generate_next_bracket_round(phase.id)

    def test_round_one_is_idempotent(self, make_engine):
        engine = make_engine(players=4)
        phase = engine.add_phase(EVENT_ID, "Top 4", "BO3", BracketConfig(top_cut=4))

        first = engine.generate_bracket_round1(phase.id)
        second = engine.generate_bracket_round1(phase.id)

        assert second.created is False
        assert [m.match_id for m in second.matches] == [m.match_id for m in first.matches]

    def test_advance_needs_round_one(self, make_engine):
        engine = make_engine(players=4)
        phase = engine.add_phase(EVENT_ID, "Top 4", "BO3", BracketConfig(top_cut=4))

        with pytest.raises(InvalidStateError):
            engine.generate_next_bracket_round(phase.id)

    def test_bracket_needs_two_participants(self, make_engine):
        engine = make_engine(players=1)
        phase = engine.add_phase(EVENT_ID, "Final", "BO3", BracketConfig(top_cut=2))

        with pytest.raises(ValidationError):
            engine.generate_bracket_round1(phase.id)


def test_standings_are_stable_between_calls(make_engine):
    engine = make_engine(players=6)
    phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=2))
    play_out_round(engine, engine.generate_swiss_round(phase.id))

    assert engine.get_standings(phase.id) == engine.get_standings(phase.id)


def test_removed_participant_keeps_opponents_credit(make_engine):
    engine = make_engine(players=4)
    phase = engine.add_phase(EVENT_ID, "Swiss", "BO3", SwissConfig(round_count=3))
    result = engine.generate_swiss_round(phase.id)
    play_out_round(engine, result)
    winner, loser = result.matches[0].player1_id, result.matches[0].player2_id

    assert engine.participants.remove(EVENT_ID, loser) is True
    standings = {s.player_id: s for s in engine.get_standings(phase.id)}

    assert loser not in standings
    assert (standings[winner].wins, standings[winner].match_points) == (1, 3)
    assert standings[winner].opponent_match_win_percentage == pytest.approx(1 / 3)
