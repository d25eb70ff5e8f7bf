from types import SimpleNamespace

from app.services.goal_weights import PARTIAL_WEIGHTS_ERROR, validate_goal_weights


def _rows(*weights, qualitative=()):
    return [
        SimpleNamespace(title=f"KPI {i}", description="desc", goal_weight=w, is_qualitative=i in qualitative)
        for i, w in enumerate(weights)
    ]


def test_weights_summing_to_100_are_valid():
    result = validate_goal_weights(_rows("30", "30", "40"))
    assert result.is_valid
    assert result.total == 100


def test_partial_weights_are_rejected():
    result = validate_goal_weights(_rows("30", "30", ""))
    assert not result.is_valid
    assert result.error == PARTIAL_WEIGHTS_ERROR


def test_fraction_weights_are_scaled():
    result = validate_goal_weights(_rows("0.3", "0.3", "0.4"))
    assert result.is_valid
    assert result.total == 100


def test_percent_signs_are_stripped():
    assert validate_goal_weights(_rows("30%", "30%", "40%")).is_valid


def test_no_weights_needs_confirmation():
    result = validate_goal_weights(_rows("", None, ""))
    assert result.is_valid
    assert result.needs_confirmation


def test_wrong_total_reports_current_total():
    result = validate_goal_weights(_rows("30", "30", "30"))
    assert not result.is_valid
    assert "Current total is 90.00%" in result.error


def test_qualitative_rows_need_no_weight():
    result = validate_goal_weights(_rows("50", "50", "", qualitative={2}))
    assert result.is_valid
    assert not result.needs_confirmation


def test_rows_without_description_are_ignored():
    rows = _rows("50", "50") + [SimpleNamespace(title="Half filled", description="", goal_weight="", is_qualitative=False)]
    assert validate_goal_weights(rows).is_valid


def test_weights_with_trailing_text_count_by_leading_number():
    """A weight typed as "30 pts" counts as 30."""
    result = validate_goal_weights(_rows("30 pts", "30 pts", "40 points"))
    assert result.is_valid
    assert result.total == 100

    partial = validate_goal_weights(_rows("30 pts", "30", "tbd"))
    assert partial.error == PARTIAL_WEIGHTS_ERROR
