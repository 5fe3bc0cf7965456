"""Tests for score and participant validation rules."""

import pytest

from swisscut.models import MatchFormat
from swisscut.validation import validate_match_score, validate_participants, validate_reporter


class TestValidateMatchScore:
    """Test cases for validate_match_score function."""

    @pytest.mark.parametrize(
        "match_format,score",
        [
            (MatchFormat.BO1, (1, 0)),
            (MatchFormat.BO1, (0, 1)),
            (MatchFormat.BO2, (2, 0)),
            (MatchFormat.BO2, (1, 1)),
            (MatchFormat.BO3, (2, 1)),
            (MatchFormat.BO3, (0, 2)),
            (MatchFormat.BO5, (3, 2)),
            (MatchFormat.BO5, (1, 3)),
        ],
    )
    def test_valid_scores(self, match_format, score):
        assert validate_match_score(*score, match_format) == (True, "")

    def test_draws_allowed_by_default(self):
        # Unfinished BO3 called on time
        assert validate_match_score(1, 1, MatchFormat.BO3) == (True, "")
        assert validate_match_score(0, 0, MatchFormat.BO1) == (True, "")

    def test_draws_rejected_when_forbidden(self):
        is_valid, msg = validate_match_score(1, 1, MatchFormat.BO3, allow_draw=False)
        assert is_valid is False
        assert "draw" in msg

    def test_too_many_games_won(self):
        is_valid, msg = validate_match_score(3, 0, MatchFormat.BO3)
        assert is_valid is False
        assert "more than 2 games" in msg

    def test_too_many_games_total(self):
        is_valid, msg = validate_match_score(2, 1, MatchFormat.BO2)
        assert is_valid is False
        assert "Too many games" in msg

    def test_negative_scores(self):
        is_valid, msg = validate_match_score(-1, 2, MatchFormat.BO3)
        assert is_valid is False
        assert "negative" in msg

    def test_non_integer_scores(self):
        assert validate_match_score(1.5, 0, MatchFormat.BO3)[0] is False
        assert validate_match_score(True, 0, MatchFormat.BO3)[0] is False
        assert validate_match_score("2", 0, MatchFormat.BO3)[0] is False


class TestValidateParticipants:
    def test_known_participants(self):
        assert validate_participants(["a", "b"], {"a", "b", "c"}) == (True, "")

    def test_bye_is_ignored(self):
        assert validate_participants(["a", None], {"a"}) == (True, "")

    def test_unknown_participant(self):
        is_valid, msg = validate_participants(["a", "x"], {"a", "b"})
        assert is_valid is False
        assert "Unknown participant: x" in msg

    def test_self_play(self):
        is_valid, msg = validate_participants(["a", "a"], {"a"})
        assert is_valid is False
        assert "themselves" in msg


def test_validate_reporter():
    assert validate_reporter("a", "a", "b") == (True, "")
    assert validate_reporter("b", "a", "b") == (True, "")
    assert validate_reporter("c", "a", "b")[0] is False


def test_format_properties():
    assert MatchFormat.BO1.games_to_win == 1
    assert MatchFormat.BO2.games_to_win == 2
    assert MatchFormat.BO3.games_to_win == 2
    assert MatchFormat.BO5.games_to_win == 3
    assert MatchFormat.BO5.max_games == 5
