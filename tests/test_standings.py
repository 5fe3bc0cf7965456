"""Tests for standings calculation and tie-breaking."""

import logging

import pytest

from swisscut.models import Match, MatchStatus, ScoringTable
from swisscut.standings import calculate_standings, compute_match_win_percentage, standings_by_player


def completed(match_id, p1, p2, s1, s2, round_number=1):
    """Build a completed match with the winner implied by the score."""
    winner = None
    if p2 is None:
        winner = p1
    elif s1 > s2:
        winner = p1
    elif s2 > s1:
        winner = p2
    return Match(
        match_id=match_id,
        phase_id="swiss",
        player1_id=p1,
        player2_id=p2,
        round=round_number,
        player1_score=s1,
        player2_score=s2,
        winner_id=winner,
        status=MatchStatus.COMPLETED,
    )


ROSTER = ["a", "b", "c", "d", "e"]


@pytest.fixture
def round_one():
    return [
        completed("m1", "a", "b", 2, 0),
        completed("m2", "c", "d", 1, 1),
        completed("m3", "e", None, 2, 0),
    ]


def test_points_and_records(round_one):
    """Win, draw, loss and bye are accumulated with the default 3/1/0 table."""
    table = standings_by_player(calculate_standings(round_one, ROSTER))

    assert table["a"].match_points == 3
    assert (table["a"].wins, table["a"].losses, table["a"].draws) == (1, 0, 0)
    assert table["b"].match_points == 0
    assert table["b"].losses == 1
    assert table["c"].match_points == 1
    assert table["d"].draws == 1


def test_bye_is_a_win_with_no_games(round_one):
    table = standings_by_player(calculate_standings(round_one, ROSTER))

    assert table["e"].match_points == 3
    assert table["e"].wins == 1
    assert table["e"].byes == 1
    assert table["e"].games_won == 0
    assert table["e"].games_lost == 0
    # Byes do not count as an opponent
    assert table["e"].opponent_match_win_percentage == 0.0


def test_games_are_oriented_per_participant(round_one):
    table = standings_by_player(calculate_standings(round_one, ROSTER))

    assert (table["a"].games_won, table["a"].games_lost) == (2, 0)
    assert (table["b"].games_won, table["b"].games_lost) == (0, 2)
    assert table["b"].games_diff == -2


def test_omw_uses_floored_opponent_percentage(round_one):
    table = standings_by_player(calculate_standings(round_one, ROSTER))

    # b won nothing: 0% floored to 1/3
    assert table["a"].opponent_match_win_percentage == pytest.approx(1 / 3)
    assert table["b"].opponent_match_win_percentage == pytest.approx(1.0)


def test_ranking_order(round_one):
    """Points, then OMW%, then games difference; full ties keep roster order."""
    standings = calculate_standings(round_one, ROSTER)

    assert [s.player_id for s in standings] == ["a", "e", "c", "d", "b"]
    assert [s.rank for s in standings] == [1, 2, 3, 4, 5]


def test_omw_floor_is_configurable(round_one):
    table = standings_by_player(calculate_standings(round_one, ROSTER, omw_floor=0.25))

    assert table["a"].opponent_match_win_percentage == pytest.approx(0.25)


def test_distinct_opponents_counted_once():
    matches = [
        completed("m1", "a", "b", 2, 0, round_number=1),
        completed("m2", "a", "b", 2, 1, round_number=2),
        completed("m3", "a", "c", 2, 0, round_number=3),
        completed("m4", "c", "d", 2, 0, round_number=1),
        completed("m5", "c", "d", 2, 0, round_number=2),
    ]
    table = standings_by_player(calculate_standings(matches, ["a", "b", "c", "d"]))

    # b: 0/2 -> 1/3, c: 2/3; mean over {b, c}
    assert table["a"].opponent_match_win_percentage == pytest.approx((1 / 3 + 2 / 3) / 2)


def test_pending_and_in_progress_matches_are_ignored():
    matches = [
        Match(match_id="m1", phase_id="swiss", player1_id="a", player2_id="b"),
        Match(
            match_id="m2",
            phase_id="swiss",
            player1_id="c",
            player2_id="d",
            player1_score=2,
            status=MatchStatus.IN_PROGRESS,
        ),
    ]
    standings = calculate_standings(matches, ["a", "b", "c", "d"])

    assert all(s.match_points == 0 and s.matches_played == 0 for s in standings)
    assert [s.player_id for s in standings] == ["a", "b", "c", "d"]


def test_custom_scoring_table(round_one):
    scoring = ScoringTable(win=2, draw=1, loss=0)
    table = standings_by_player(calculate_standings(round_one, ROSTER, scoring=scoring))

    assert table["a"].match_points == 2
    assert table["e"].match_points == 2
    assert table["c"].match_points == 1


def test_dropped_participant_still_counts_as_opponent(caplog):
    matches = [
        completed("m1", "a", "ghost", 2, 0),
        completed("m2", "ghost", "b", 2, 1, round_number=2),
    ]

    with caplog.at_level(logging.INFO, logger="swisscut.standings"):
        table = standings_by_player(calculate_standings(matches, ["a", "b"]))

    assert "ghost" not in table
    assert (table["a"].wins, table["a"].match_points, table["a"].games_won) == (1, 3, 2)
    assert (table["b"].losses, table["b"].games_won, table["b"].games_lost) == (1, 1, 2)
    # ghost went 1-1
    assert table["a"].opponent_match_win_percentage == pytest.approx(0.5)
    assert table["b"].opponent_match_win_percentage == pytest.approx(0.5)
    assert "no longer on the roster" in caplog.text


def test_standings_are_idempotent(round_one):
    first = calculate_standings(round_one, ROSTER)
    second = calculate_standings(round_one, ROSTER)

    assert first == second


def test_input_matches_are_not_mutated(round_one):
    before = [(m.match_id, m.status, m.winner_id, m.player1_score) for m in round_one]
    calculate_standings(round_one, ROSTER)

    assert [(m.match_id, m.status, m.winner_id, m.player1_score) for m in round_one] == before


def test_compute_match_win_percentage():
    assert compute_match_win_percentage(3, 4) == 0.75
    assert compute_match_win_percentage(0, 0) == pytest.approx(1 / 3)
    assert compute_match_win_percentage(0, 2, floor=0.0) == 0.0
