from __future__ import annotations

import random
import unittest
from dataclasses import replace

from instawin.allocation.config import DEFAULT_SETTINGS, EngineSettings
from instawin.allocation.probability import (
    PlayContext,
    base_probability,
    calculate_probability,
    draw,
    fatigue_adjustment,
    force_win_adjustment,
    pacing_adjustment,
    time_pressure_adjustment,
)


def make_context(**overrides) -> PlayContext:
    # Mid-campaign, exactly on schedule: base 50/500 = 0.1, pacing ratio 1.0.
    values = dict(
        plays_so_far=0,
        wins_so_far=0,
        remaining_stock=50,
        initial_stock=100,
        total_tokens=1000,
        used_tokens=500,
        minutes_remaining=600.0,
        minutes_elapsed=600.0,
        elapsed_fraction=0.5,
    )
    values.update(overrides)
    return PlayContext(**values)


class _ConstantRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class BaseProbabilityTests(unittest.TestCase):
    def test_on_schedule_context_uses_fair_rate(self) -> None:
        breakdown = calculate_probability(make_context(), DEFAULT_SETTINGS)
        self.assertAlmostEqual(breakdown.base, 0.1)
        self.assertAlmostEqual(breakdown.probability, 0.1)
        self.assertEqual(breakdown.factors, {})
        self.assertIsNone(breakdown.forced_by)

    def test_zero_stock_gives_zero_base(self) -> None:
        settings = replace(DEFAULT_SETTINGS, desperation_mode_enabled=True, force_win_enabled=True)
        context = make_context(remaining_stock=0, minutes_remaining=0.5)
        breakdown = calculate_probability(context, settings)
        self.assertEqual(breakdown.base, 0.0)
        self.assertIsNone(breakdown.forced_by)
        # The floor still applies; the allocator turns such a win into a loss.
        self.assertEqual(breakdown.probability, settings.min_probability)

    def test_no_tokens_left_makes_every_unit_overdue(self) -> None:
        context = make_context(used_tokens=1000)
        self.assertEqual(base_probability(context, DEFAULT_SETTINGS), 1.0)

    def test_configured_base_probability_overrides_fair_rate(self) -> None:
        settings = replace(DEFAULT_SETTINGS, base_probability=0.25)
        self.assertEqual(base_probability(make_context(), settings), 0.25)

    def test_expected_remaining_plays_is_capped_by_remaining_tokens(self) -> None:
        context = make_context(used_tokens=500, minutes_elapsed=10.0, minutes_remaining=30.0)
        # 50 plays/minute for 30 minutes would be 1500, only 500 tokens remain.
        self.assertEqual(context.expected_remaining_plays(), 500.0)
        self.assertEqual(make_context(used_tokens=0).expected_remaining_plays(), 0.0)


class EligibleStockTests(unittest.TestCase):
    def test_base_spreads_only_eligible_stock(self) -> None:
        context = make_context(eligible_stock=10)
        self.assertEqual(context.winnable_stock, 10)
        self.assertAlmostEqual(base_probability(context, DEFAULT_SETTINGS), 10 / 500)

    def test_unset_eligible_stock_means_everything_is_winnable(self) -> None:
        self.assertEqual(make_context().winnable_stock, 50)

    def test_no_eligible_stock_disables_forcing(self) -> None:
        settings = replace(
            DEFAULT_SETTINGS, force_win_enabled=True, desperation_mode_enabled=True
        )
        context = make_context(eligible_stock=0, minutes_remaining=0.5, used_tokens=0)
        breakdown = calculate_probability(context, settings)
        self.assertEqual(breakdown.base, 0.0)
        self.assertIsNone(breakdown.forced_by)
        self.assertEqual(breakdown.probability, settings.min_probability)

    def test_pacing_keeps_campaign_wide_totals(self) -> None:
        full = pacing_adjustment(make_context(), DEFAULT_SETTINGS, 0.1)
        restricted = pacing_adjustment(make_context(eligible_stock=0), DEFAULT_SETTINGS, 0.1)
        self.assertEqual(restricted.factor, full.factor)
        self.assertEqual(restricted.detail, full.detail)


class FatigueTests(unittest.TestCase):
    def test_player_past_threshold_gets_lower_probability(self) -> None:
        fresh = calculate_probability(make_context(plays_so_far=5), DEFAULT_SETTINGS)
        tired = calculate_probability(make_context(plays_so_far=7), DEFAULT_SETTINGS)
        self.assertAlmostEqual(fresh.probability, 0.1)
        # Penalty 0.10 + 1 * 0.02 past the threshold of 6.
        self.assertAlmostEqual(tired.probability, 0.1 * 0.88)
        self.assertLess(tired.probability, fresh.probability)

    def test_win_penalty_is_capped(self) -> None:
        one_win = fatigue_adjustment(make_context(wins_so_far=1), DEFAULT_SETTINGS, 0.1)
        many_wins = fatigue_adjustment(make_context(wins_so_far=5), DEFAULT_SETTINGS, 0.1)
        self.assertAlmostEqual(one_win.factor, 0.8)
        self.assertAlmostEqual(many_wins.factor, 0.4)

    def test_factor_never_drops_below_floor(self) -> None:
        settings = replace(DEFAULT_SETTINGS, fatigue_min_probability=0.3)
        adjustment = fatigue_adjustment(
            make_context(plays_so_far=100, wins_so_far=10), settings, 0.1
        )
        self.assertAlmostEqual(adjustment.factor, 0.3)

    def test_disabled_fatigue_is_neutral(self) -> None:
        settings = replace(DEFAULT_SETTINGS, fatigue_enabled=False)
        adjustment = fatigue_adjustment(make_context(plays_so_far=50), settings, 0.1)
        self.assertEqual(adjustment.factor, 1.0)
        self.assertFalse(adjustment.active)


class PacingTests(unittest.TestCase):
    def _factor(self, remaining_stock: int, **settings_overrides) -> float:
        settings = replace(DEFAULT_SETTINGS, **settings_overrides)
        context = make_context(remaining_stock=remaining_stock)
        return pacing_adjustment(context, settings, 0.1).factor

    def test_bands(self) -> None:
        # Half the campaign elapsed; awarded share / 0.5 is the ratio.
        self.assertEqual(self._factor(20), 0.60)  # ratio 1.6
        self.assertEqual(self._factor(40), 0.80)  # ratio 1.2
        self.assertEqual(self._factor(50), 1.0)  # ratio 1.0
        self.assertEqual(self._factor(60), 1.20)  # ratio 0.8
        self.assertEqual(self._factor(70), 1.40)  # ratio 0.6

    def test_token_basis_measures_progress_by_tokens(self) -> None:
        context = make_context(elapsed_fraction=0.25)
        time_based = pacing_adjustment(context, DEFAULT_SETTINGS, 0.1)
        token_based = pacing_adjustment(
            context, replace(DEFAULT_SETTINGS, pacing_basis="tokens"), 0.1
        )
        self.assertEqual(time_based.factor, 0.60)
        self.assertEqual(token_based.factor, 1.0)

    def test_no_progress_is_neutral(self) -> None:
        context = make_context(elapsed_fraction=0.0, minutes_elapsed=0.0)
        self.assertEqual(pacing_adjustment(context, DEFAULT_SETTINGS, 0.1).factor, 1.0)


class TimePressureTests(unittest.TestCase):
    def test_outside_conservation_window_is_neutral(self) -> None:
        adjustment = time_pressure_adjustment(make_context(), DEFAULT_SETTINGS, 0.1)
        self.assertFalse(adjustment.active)

    def test_final_phase_applies_final_boost(self) -> None:
        adjustment = time_pressure_adjustment(
            make_context(minutes_remaining=0.5), DEFAULT_SETTINGS, 0.1
        )
        self.assertEqual(adjustment.detail, "final")
        self.assertEqual(adjustment.factor, 10.0)
        self.assertEqual(adjustment.supersedes, ("pacing",))

    def test_distribution_phase_boosts_toward_required_rate(self) -> None:
        # 50 plays/minute, 3 minutes left: 150 expected plays for 50 units.
        context = make_context(minutes_remaining=3.0, minutes_elapsed=10.0)
        adjustment = time_pressure_adjustment(context, DEFAULT_SETTINGS, 0.1)
        self.assertEqual(adjustment.detail, "distribution")
        self.assertAlmostEqual(adjustment.factor, (50 / 150) / (50 / 500))

    def test_distribution_boost_is_capped(self) -> None:
        context = make_context(minutes_remaining=3.0, minutes_elapsed=600.0)
        adjustment = time_pressure_adjustment(context, DEFAULT_SETTINGS, 0.1)
        self.assertEqual(adjustment.factor, DEFAULT_SETTINGS.time_distribution_max)

    def test_distribution_without_observed_plays_uses_max(self) -> None:
        context = make_context(minutes_remaining=3.0, used_tokens=0)
        adjustment = time_pressure_adjustment(context, DEFAULT_SETTINGS, 0.1)
        self.assertEqual(adjustment.factor, DEFAULT_SETTINGS.time_distribution_max)

    def test_conservation_boosts_when_stock_is_plentiful(self) -> None:
        # 50 units awarded in 600 minutes: stock lasts 600 more, 25 needed.
        context = make_context(minutes_remaining=30.0)
        adjustment = time_pressure_adjustment(context, DEFAULT_SETTINGS, 0.1)
        self.assertEqual(adjustment.detail, "conservation")
        self.assertEqual(adjustment.factor, DEFAULT_SETTINGS.time_conservation_boost)

    def test_conservation_half_boost_for_moderate_margin(self) -> None:
        # Stock runs out in 62.5 minutes against 25 minutes to distribution.
        context = make_context(minutes_remaining=30.0, minutes_elapsed=62.5)
        adjustment = time_pressure_adjustment(context, DEFAULT_SETTINGS, 0.1)
        self.assertAlmostEqual(adjustment.factor, 1.15)

    def test_conservation_slows_down_fast_depletion(self) -> None:
        # 5 units/minute: stock is gone in 10 minutes, 25 before distribution.
        context = make_context(minutes_remaining=30.0, minutes_elapsed=10.0)
        adjustment = time_pressure_adjustment(context, DEFAULT_SETTINGS, 0.1)
        self.assertAlmostEqual(adjustment.factor, 0.4)

    def test_active_phase_replaces_pacing_factor(self) -> None:
        # Pacing alone would dampen (ratio 1.6); the final phase takes over.
        context = make_context(remaining_stock=20, minutes_remaining=0.5)
        breakdown = calculate_probability(context, DEFAULT_SETTINGS)
        self.assertEqual(breakdown.factors, {"time_pressure": 10.0})
        self.assertAlmostEqual(breakdown.probability, 0.04 * 10.0)

    def test_disabled_time_pressure_is_neutral(self) -> None:
        settings = replace(DEFAULT_SETTINGS, time_pressure_enabled=False)
        adjustment = time_pressure_adjustment(
            make_context(minutes_remaining=0.5), settings, 0.1
        )
        self.assertFalse(adjustment.active)


class ForcingTests(unittest.TestCase):
    def test_force_win_when_no_plays_are_expected(self) -> None:
        settings = replace(DEFAULT_SETTINGS, force_win_enabled=True)
        context = make_context(minutes_remaining=0.5, used_tokens=0)
        breakdown = calculate_probability(context, settings)
        self.assertEqual(breakdown.forced_by, "force_win")
        self.assertEqual(breakdown.probability, 1.0)

    def test_force_win_skipped_when_expected_wins_cover_stock(self) -> None:
        settings = replace(DEFAULT_SETTINGS, force_win_enabled=True)
        # 50 plays/minute for half a minute: 25 plays at 0.5 clear 5 units.
        context = make_context(
            remaining_stock=5, minutes_remaining=0.5, minutes_elapsed=10.0
        )
        adjustment = force_win_adjustment(context, settings, 0.5)
        self.assertIsNone(adjustment.forced)

    def test_force_win_waits_for_threshold(self) -> None:
        settings = replace(DEFAULT_SETTINGS, force_win_enabled=True)
        adjustment = force_win_adjustment(
            make_context(minutes_remaining=2.0, used_tokens=0), settings, 0.1
        )
        self.assertIsNone(adjustment.forced)

    def test_desperation_forces_max_probability(self) -> None:
        settings = replace(
            DEFAULT_SETTINGS, desperation_mode_enabled=True, max_probability=0.9
        )
        breakdown = calculate_probability(make_context(minutes_remaining=3.0), settings)
        self.assertEqual(breakdown.forced_by, "desperation")
        self.assertEqual(breakdown.probability, 0.9)

    def test_desperation_takes_precedence_over_force_win(self) -> None:
        settings = replace(
            DEFAULT_SETTINGS,
            force_win_enabled=True,
            desperation_mode_enabled=True,
            max_probability=0.9,
        )
        context = make_context(minutes_remaining=0.5, used_tokens=0)
        breakdown = calculate_probability(context, settings)
        self.assertEqual(breakdown.forced_by, "desperation")
        self.assertEqual(breakdown.probability, 0.9)


class ClampTests(unittest.TestCase):
    def test_probability_stays_within_bounds(self) -> None:
        rng = random.Random(20240611)
        variants = [
            DEFAULT_SETTINGS,
            replace(DEFAULT_SETTINGS, max_probability=0.5, min_probability=0.05),
            replace(DEFAULT_SETTINGS, force_win_enabled=True, desperation_mode_enabled=True),
            replace(DEFAULT_SETTINGS, max_probability=0.2, desperation_mode_enabled=True),
            replace(DEFAULT_SETTINGS, pacing_basis="tokens", base_probability=0.9),
        ]
        for _ in range(500):
            initial = rng.randint(0, 200)
            total = rng.randint(0, 2000)
            elapsed = rng.uniform(0.0, 600.0)
            remaining_minutes = rng.uniform(0.01, 600.0)
            context = PlayContext(
                plays_so_far=rng.randint(0, 30),
                wins_so_far=rng.randint(0, 5),
                remaining_stock=rng.randint(0, initial),
                initial_stock=initial,
                total_tokens=total,
                used_tokens=rng.randint(0, total),
                minutes_remaining=remaining_minutes,
                minutes_elapsed=elapsed,
                elapsed_fraction=elapsed / (elapsed + remaining_minutes),
            )
            for settings in variants:
                breakdown = calculate_probability(context, settings)
                self.assertGreaterEqual(breakdown.probability, settings.min_probability)
                self.assertLessEqual(breakdown.probability, settings.max_probability)

    def test_breakdown_json_lists_active_stages_only(self) -> None:
        payload = calculate_probability(
            make_context(plays_so_far=7), DEFAULT_SETTINGS
        ).to_json()
        self.assertEqual([s["stage"] for s in payload["stages"]], ["fatigue"])
        self.assertIn("fatigue", payload["factors"])


class DrawTests(unittest.TestCase):
    def test_draw_compares_against_probability(self) -> None:
        rng = _ConstantRandom(0.5)
        self.assertTrue(draw(0.6, rng))
        self.assertFalse(draw(0.5, rng))
        self.assertFalse(draw(0.0, _ConstantRandom(0.0)))


if __name__ == "__main__":
    unittest.main()
