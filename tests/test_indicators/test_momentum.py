"""Tests for RSI, streaks, percent-rank and ConnorsRSI."""

import math

import pytest

from trendbot.indicators.momentum import (
    compute_connors_rsi,
    compute_rsi,
    connors_rsi_series,
    percent_rank_series,
    rsi_series,
    streak_series,
)


def _zigzag(n: int) -> list[float]:
    """Deterministic noisy series with both gains and losses."""
    return [100 + 5 * math.sin(i * 0.7) + (i % 3) * 0.4 for i in range(n)]


class TestRsi:
    """Tests for rsi_series / compute_rsi."""

    def test_output_length_and_warmup(self) -> None:
        """The series matches the input length with period bars of warmup."""
        values = _zigzag(30)
        result = rsi_series(values, 14)
        assert len(result) == 30
        assert all(v is None for v in result[:14])
        assert all(v is not None for v in result[14:])

    def test_too_short_is_all_none(self) -> None:
        """Too little history yields None."""
        assert rsi_series([1.0, 2.0], 14) == [None, None]
        assert compute_rsi([1.0, 2.0], 14) is None
        assert compute_rsi([], 14) is None

    def test_only_gains_is_100(self) -> None:
        """No losses gives RSI 100."""
        assert rsi_series([1.0, 2.0, 3.0], 2)[2] == 100.0

    def test_only_losses_is_0(self) -> None:
        """No gains gives RSI 0."""
        assert rsi_series([3.0, 2.0, 1.0], 2)[2] == 0.0

    def test_known_wilder_value(self) -> None:
        """Gain 1, loss 1 -> 50; then +1: avg_gain 0.75, avg_loss 0.25 -> 75."""
        result = rsi_series([1.0, 2.0, 1.0, 2.0], 2)
        assert result[2] == pytest.approx(50.0)
        assert result[3] == pytest.approx(75.0)

    def test_always_within_bounds(self) -> None:
        """RSI stays within 0 to 100."""
        for value in rsi_series(_zigzag(200), 14):
            if value is not None:
                assert 0.0 <= value <= 100.0


class TestStreakSeries:
    def test_streaks(self) -> None:
        """Streaks count consecutive ups and downs and reset on flat bars."""
        assert streak_series([1, 2, 3, 2, 1, 1, 2]) == [0, 1, 2, -1, -2, 0, 1]

    def test_empty(self) -> None:
        """No values give no streaks."""
        assert streak_series([]) == []


class TestPercentRank:
    def test_warmup_and_value(self) -> None:
        """Percent rank of the latest return within the lookback window."""
        result = percent_rank_series([1.0, 2.0, 4.0, 4.5], 2)
        assert result[:2] == [None, None]
        # returns [0, 1, 2, 0.5]; window at 2 = [1, 2] -> 2 of 2 <= 2
        assert result[2] == 100.0
        # window at 3 = [2, 0.5] -> 1 of 2 <= 0.5
        assert result[3] == 50.0


class TestConnorsRsi:
    """ConnorsRSI is the mean of its three components."""

    def test_first_value_at_index_100(self) -> None:
        """The first value needs the 100-bar percent-rank window."""
        result = connors_rsi_series(_zigzag(120))
        assert len(result) == 120
        assert result[99] is None
        assert result[100] is not None

    def test_mean_of_components(self) -> None:
        """Each value averages price RSI, streak RSI and percent rank."""
        values = _zigzag(150)
        crsi = connors_rsi_series(values)
        price_rsi = rsi_series(values, 3)
        streak_rsi = rsi_series(streak_series(values), 2)
        rank = percent_rank_series(values, 100)
        for i in (100, 125, 149):
            expected = (price_rsi[i] + streak_rsi[i] + rank[i]) / 3
            assert crsi[i] == pytest.approx(expected)

    def test_compute_returns_last(self) -> None:
        """compute_connors_rsi returns the last series value or None."""
        values = _zigzag(130)
        assert compute_connors_rsi(values) == connors_rsi_series(values)[-1]
        assert compute_connors_rsi(values[:50]) is None
