"""Tests for the military rank resolver and forum rank progression."""

import math

import pytest

from fleetrank.ranks import (
    BOTTOM_RANK,
    RANK_THRESHOLDS,
    TOP_RANK,
    RankThreshold,
    resolve_forum_rank,
    resolve_rank,
    sanitize_xp,
)

# ─── Table integrity ─────────────────────────────────────────────────────────


class TestThresholdTable:
    """The shipped table must cover [0, inf) without gaps or overlap."""

    def test_descending_by_min_xp(self):
        mins = [t.min_xp for t in RANK_THRESHOLDS]
        assert mins == sorted(mins, reverse=True)

    def test_contiguous(self):
        for higher, lower in zip(RANK_THRESHOLDS, RANK_THRESHOLDS[1:]):
            assert lower.max_xp + 1 == higher.min_xp

    def test_starts_at_zero(self):
        assert BOTTOM_RANK.min_xp == 0
        assert BOTTOM_RANK.name == "Crewman"

    def test_levels_are_unique_and_ordered(self):
        levels = [t.level for t in RANK_THRESHOLDS]
        assert levels == list(range(10, 0, -1))


# ─── Resolver ────────────────────────────────────────────────────────────────


class TestResolveRank:

    @pytest.mark.parametrize("xp,name,progress", [
        (0, "Crewman", 0.0),
        (500, "Crewman", 50.0),
        (999, "Crewman", 99.9),
        (1000, "Chief Petty Officer", 0.0),
        (2500, "Ensign", 0.0),
        (20000, "Lieutenant", 66.6667),
        (99999, "Commander", 99.998),
        (250000, "Admiral", 0.0),
        (500000, "Fleet Admiral", 100.0),
        (750000, "Fleet Admiral", 100.0),
        (5_000_000, "Fleet Admiral", 100.0),
    ])
    def test_table_driven(self, xp, name, progress):
        rank = resolve_rank(xp)
        assert rank.name == name
        assert rank.xp == xp
        assert rank.progress_to_next == pytest.approx(progress, abs=1e-3)
        assert rank.is_overridden is False

    def test_carries_threshold_attributes(self):
        rank = resolve_rank(30000)
        assert rank.name == "Lieutenant Commander"
        assert rank.pips == 4
        assert rank.level == 6
        assert rank.min_xp == 25000
        assert rank.max_xp == 49999
        assert rank.pip_color == "bg-orange-300"

    def test_override_forces_top_rank(self):
        rank = resolve_rank(0, is_overridden=True)
        assert rank.name == TOP_RANK.name
        assert rank.level == TOP_RANK.level
        assert rank.progress_to_next == 100.0
        assert rank.is_overridden is True

    def test_override_still_reports_actual_xp(self):
        rank = resolve_rank(1234, is_overridden=True)
        assert rank.xp == 1234
        assert rank.name == "Fleet Admiral"

    @pytest.mark.parametrize("xp", [0, 10, 999, 1000, 75000, 10**9])
    def test_override_dominance(self, xp):
        assert resolve_rank(xp, True).level == TOP_RANK.level

    @pytest.mark.parametrize("bad", [-1, -5000, float("nan"), None, "lots", [], {}])
    def test_invalid_xp_treated_as_zero(self, bad):
        rank = resolve_rank(bad)
        assert rank.name == "Crewman"
        assert rank.xp == 0
        assert rank.progress_to_next == 0.0

    def test_infinite_xp_resolves_to_top(self):
        rank = resolve_rank(float("inf"))
        assert rank.name == "Fleet Admiral"
        assert rank.progress_to_next == 100.0

    def test_integer_beyond_float_range_resolves_to_top(self):
        rank = resolve_rank(10**400)
        assert rank.name == "Fleet Admiral"
        assert rank.progress_to_next == 100.0
        assert math.isinf(rank.xp)

    def test_negative_integer_beyond_float_range_is_zero(self):
        rank = resolve_rank(-10**400)
        assert rank.name == "Crewman"
        assert rank.xp == 0

    def test_fractional_xp_between_tiers_stays_in_lower(self):
        rank = resolve_rank(999.5)
        assert rank.name == "Crewman"
        assert rank.progress_to_next == pytest.approx(99.95)

    def test_numeric_strings_are_accepted(self):
        assert resolve_rank("2500").name == "Ensign"

    def test_to_dict(self):
        d = resolve_rank(1000).to_dict()
        assert d["name"] == "Chief Petty Officer"
        assert d["progress_to_next"] == 0.0
        assert set(d) >= {"name", "pips", "level", "progress_to_next", "xp", "is_overridden"}


class TestResolverProperties:
    """Totality, monotonicity and progress bounds over a sweep of values."""

    SWEEP = sorted(
        {0, 1, 998, 999, 1000, 1001}
        | {t.min_xp + d for t in RANK_THRESHOLDS for d in (-1, 0, 1)}
        | {t.max_xp for t in RANK_THRESHOLDS}
        | set(range(0, 1_200_000, 7919))
    )

    def test_totality(self):
        names = {t.name for t in RANK_THRESHOLDS}
        for xp in self.SWEEP:
            if xp < 0:
                continue
            assert resolve_rank(xp).name in names

    def test_monotonic_levels(self):
        levels = [resolve_rank(xp).level for xp in self.SWEEP if xp >= 0]
        assert levels == sorted(levels)

    def test_progress_bounds(self):
        for xp in self.SWEEP:
            for overridden in (False, True):
                progress = resolve_rank(xp, overridden).progress_to_next
                assert 0.0 <= progress <= 100.0


class TestCustomThresholds:
    """A caller-supplied table follows the same rules."""

    TABLE = (
        RankThreshold("Fleet Admiral", 7, "", "", 500000, 999999, 3),
        RankThreshold("Ensign", 2, "", "", 1000, 499999, 2),
        RankThreshold("Crewman", 1, "", "", 0, 999, 1),
    )

    def test_worked_examples(self):
        assert resolve_rank(0, thresholds=self.TABLE).name == "Crewman"
        assert resolve_rank(0, thresholds=self.TABLE).progress_to_next == 0.0
        crewman = resolve_rank(999, thresholds=self.TABLE)
        assert crewman.name == "Crewman"
        assert crewman.progress_to_next == pytest.approx(99.9)
        ensign = resolve_rank(1000, thresholds=self.TABLE)
        assert ensign.name == "Ensign"
        assert ensign.progress_to_next == 0.0
        top = resolve_rank(750000, thresholds=self.TABLE)
        assert top.name == "Fleet Admiral"
        assert top.progress_to_next == 100.0
        assert resolve_rank(0, True, thresholds=self.TABLE).name == "Fleet Admiral"

    def test_xp_below_lowest_min_falls_back_to_lowest(self):
        table = (
            RankThreshold("High", 2, "", "", 100, 199, 2),
            RankThreshold("Low", 1, "", "", 50, 99, 1),
        )
        rank = resolve_rank(10, thresholds=table)
        assert rank.name == "Low"
        assert rank.progress_to_next == 0.0


class TestSanitizeXp:

    def test_passthrough(self):
        assert sanitize_xp(42) == 42
        assert sanitize_xp(42.5) == 42.5

    def test_whole_floats_become_ints(self):
        assert sanitize_xp(10.0) == 10
        assert isinstance(sanitize_xp(10.0), int)

    def test_booleans_are_not_xp(self):
        assert sanitize_xp(True) == 0

    def test_infinity_survives(self):
        assert math.isinf(sanitize_xp(float("inf")))


# ─── Forum ranks ─────────────────────────────────────────────────────────────


class TestResolveForumRank:

    RANKS = [
        {"slug": "ensign", "min_points": 1000},
        {"slug": "cadet", "min_points": 0},
        {"slug": "crewman", "min_points": 100},
    ]

    def test_current_and_next(self):
        current, nxt, progress = resolve_forum_rank(550, self.RANKS)
        assert current["slug"] == "crewman"
        assert nxt["slug"] == "ensign"
        assert progress == pytest.approx(50.0)

    def test_top_rank_has_full_progress(self):
        current, nxt, progress = resolve_forum_rank(5000, self.RANKS)
        assert current["slug"] == "ensign"
        assert nxt is None
        assert progress == 100.0

    def test_zero_xp(self):
        current, nxt, progress = resolve_forum_rank(0, self.RANKS)
        assert current["slug"] == "cadet"
        assert nxt["slug"] == "crewman"
        assert progress == 0.0

    def test_empty_rank_list(self):
        assert resolve_forum_rank(100, []) == (None, None, 0.0)

    def test_below_lowest_min_clamps_to_zero(self):
        current, _, progress = resolve_forum_rank(5, [{"min_points": 10}, {"min_points": 20}])
        assert current["min_points"] == 10
        assert progress == 0.0
