from __future__ import annotations

import random
import unittest

from models import Personality, RivalKind, RivalRelationship, Winner
from rivals import (
    EncounterResult,
    MetricSnapshot,
    apply_encounter,
    assign_character,
    default_phantom_config,
    generate_phantom_metrics,
    heat_delta,
    next_win_streak,
    overall_result,
    respect_delta,
    run_showdown,
    simulate,
    suggested_phantom_config,
)
from tests.helpers import at


USER = MetricSnapshot(workouts=4, volume=1000, prs=1)
RIVAL = MetricSnapshot(workouts=3, volume=800, prs=0)


def result(winner: Winner, margin: float) -> EncounterResult:
    return EncounterResult(personality=Personality.RIVAL, winner=winner, margin=margin, dominant_factor="volume")


class TestSimulate(unittest.TestCase):
    def test_consistency_example(self) -> None:
        outcome = simulate(USER, RIVAL, Personality.MIRROR)
        self.assertEqual(outcome.winner, Winner.USER)
        self.assertEqual(outcome.dominant_factor, "workouts")
        self.assertAlmostEqual(outcome.margin, 38.5)

    def test_categories_best_of_three(self) -> None:
        outcome = simulate(USER, RIVAL, Personality.RIVAL)
        self.assertEqual(outcome.winner, Winner.USER)
        self.assertEqual(outcome.dominant_factor, "volume")
        self.assertEqual(outcome.margin, 62.0)

    def test_identical_metrics_tie(self) -> None:
        for personality in (Personality.MIRROR, Personality.RIVAL, Personality.MENTOR):
            outcome = simulate(USER, USER, personality)
            self.assertEqual(outcome.winner, Winner.TIE, personality)
            self.assertEqual(outcome.dominant_factor, "none")

    def test_volume_inside_band_is_a_tie(self) -> None:
        outcome = simulate(
            MetricSnapshot(workouts=3, volume=1010),
            MetricSnapshot(workouts=3, volume=1000),
            Personality.RIVAL,
        )
        self.assertEqual(outcome.breakdown["volume"].winner, Winner.TIE)

    def test_mentor_rewards_growth_over_raw_numbers(self) -> None:
        improving = MetricSnapshot(workouts=3, volume=1000, previous_workouts=2, previous_volume=500)
        plateaued = MetricSnapshot(workouts=5, volume=3000, previous_workouts=5, previous_volume=3000)
        outcome = simulate(improving, plateaued, Personality.MENTOR)
        self.assertEqual(outcome.winner, Winner.USER)
        self.assertEqual(outcome.dominant_factor, "growth")

    def test_volatile_is_reproducible_with_seed(self) -> None:
        first = simulate(USER, RIVAL, Personality.NEMESIS, random.Random(42))
        second = simulate(USER, RIVAL, Personality.NEMESIS, random.Random(42))
        self.assertEqual(first, second)
        self.assertGreaterEqual(first.chaos_factor, 0.7)
        self.assertLessEqual(first.chaos_factor, 1.3)

    def test_volatile_chaos_scales_rival_prs(self) -> None:
        even = MetricSnapshot(prs=1)
        chaos = random.Random(3).uniform(0.7, 1.3)
        outcome = simulate(even, even, Personality.NEMESIS, random.Random(3))

        self.assertAlmostEqual(outcome.chaos_factor, round(chaos, 4))
        self.assertLess(chaos, 1 / 1.05)
        self.assertAlmostEqual(outcome.user_score, 50.0)
        self.assertAlmostEqual(outcome.rival_score, round(50.0 * chaos, 4))
        self.assertEqual(outcome.winner, Winner.USER)
        self.assertEqual(outcome.dominant_factor, "prs")
        self.assertEqual(outcome.breakdown["prs"].winner, Winner.TIE)

    def test_margin_stays_in_range(self) -> None:
        rng = random.Random(3)
        for personality in Personality:
            outcome = simulate(MetricSnapshot(workouts=20, volume=90000, prs=6), MetricSnapshot(), personality, rng)
            self.assertGreaterEqual(outcome.margin, 0)
            self.assertLessEqual(outcome.margin, 100)


class TestRelationshipDeltas(unittest.TestCase):
    def test_respect_is_symmetric_and_doubles_when_dominant(self) -> None:
        self.assertEqual(respect_delta(result(Winner.USER, 5)), 1)
        self.assertEqual(respect_delta(result(Winner.RIVAL, 5)), -1)
        self.assertEqual(respect_delta(result(Winner.USER, 30)), 2)
        self.assertEqual(respect_delta(result(Winner.TIE, 0)), 0)

    def test_heat_rises_when_close_and_cools_when_lopsided(self) -> None:
        self.assertEqual(heat_delta(result(Winner.USER, 5), 0), 10)
        self.assertEqual(heat_delta(result(Winner.USER, 15), 0), 5)
        self.assertEqual(heat_delta(result(Winner.USER, 40), 0), -5)
        self.assertEqual(heat_delta(result(Winner.USER, 5), -3), 15)

    def test_signed_win_streak(self) -> None:
        self.assertEqual(next_win_streak(2, Winner.USER), 3)
        self.assertEqual(next_win_streak(2, Winner.RIVAL), -1)
        self.assertEqual(next_win_streak(-2, Winner.RIVAL), -3)
        self.assertEqual(next_win_streak(-2, Winner.TIE), -2)

    def test_apply_encounter_clamps(self) -> None:
        top = RivalRelationship(id="r", respect_level=5, rivalry_heat=100)
        updated = apply_encounter(top, result(Winner.USER, 5), at())
        self.assertEqual((updated.respect_level, updated.rivalry_heat), (5, 100))

        bottom = RivalRelationship(id="r", respect_level=1, rivalry_heat=0)
        updated = apply_encounter(bottom, result(Winner.RIVAL, 60), at())
        self.assertEqual((updated.respect_level, updated.rivalry_heat), (1, 0))
        self.assertEqual(bottom.encounter_count, 0)

    def test_tallies_always_add_up(self) -> None:
        relationship = RivalRelationship(id="r")
        winners = [Winner.USER, Winner.USER, Winner.TIE, Winner.RIVAL, Winner.RIVAL, Winner.RIVAL, Winner.USER]
        for i, winner in enumerate(winners):
            relationship = apply_encounter(relationship, result(winner, 12), at(seconds=i))
            self.assertEqual(
                relationship.user_wins + relationship.rival_wins + relationship.ties,
                relationship.encounter_count,
            )
        self.assertEqual(relationship.longest_win_streak, 2)
        self.assertEqual(relationship.longest_lose_streak, 3)
        self.assertEqual(relationship.win_streak, 1)
        self.assertEqual(relationship.last_encounter, at(seconds=6))


class TestPhantomsAndCharacters(unittest.TestCase):
    def test_phantom_generation_is_seeded(self) -> None:
        config = default_phantom_config(Personality.MIRROR)
        first = generate_phantom_metrics(USER, config, rng=random.Random(11))
        second = generate_phantom_metrics(USER, config, rng=random.Random(11))
        self.assertEqual(first, second)
        self.assertGreaterEqual(first.volume, 0)

    def test_suggested_config_by_level(self) -> None:
        self.assertEqual(suggested_phantom_config(1).personality, Personality.MIRROR)
        self.assertEqual(suggested_phantom_config(40).personality, Personality.NEMESIS)

    def test_character_assignment_is_stable(self) -> None:
        self.assertEqual(assign_character(Personality.RIVAL, "abc").id, "blaze")
        self.assertEqual(
            assign_character(Personality.NEMESIS, "seed-1"),
            assign_character(Personality.NEMESIS, "seed-1"),
        )


class TestShowdown(unittest.TestCase):
    def test_overall_result(self) -> None:
        self.assertEqual(overall_result(0, 0, 0), "no_contest")
        self.assertEqual(overall_result(3, 0, 0), "flawless")
        self.assertEqual(overall_result(0, 2, 0), "routed")
        self.assertEqual(overall_result(2, 1, 0), "victorious")
        self.assertEqual(overall_result(1, 1, 1), "even")
        self.assertEqual(overall_result(1, 2, 0), "defeated")

    def test_showdown_batches_active_rivals(self) -> None:
        relationships = [
            RivalRelationship(id="peer", rival_kind=RivalKind.PEER, peer_user_id="bob",
                              personality=Personality.RIVAL),
            RivalRelationship(id="ghost", rival_kind=RivalKind.PEER, peer_user_id="nobody"),
            RivalRelationship(id="off", active=False),
        ]
        summary = run_showdown(USER, relationships, {"bob": RIVAL}, random.Random(1), at())

        self.assertEqual([e.relationship_id for e in summary.entries], ["peer"])
        self.assertEqual((summary.wins, summary.losses, summary.ties), (1, 0, 0))
        self.assertEqual(summary.overall, "flawless")
        self.assertEqual(len(summary.relationships), 3)
        self.assertEqual(summary.relationships[0].user_wins, 1)
        self.assertIs(summary.relationships[1], relationships[1])
        self.assertIs(summary.relationships[2], relationships[2])


if __name__ == "__main__":
    unittest.main()
