import unittest
from dataclasses import dataclass

from showtime_monitor.matching import (
    contains_match,
    match,
    match_scored,
    normalize,
    score,
    word_coverage,
)


@dataclass(frozen=True)
class Named:
    name: str


class NormalizeTests(unittest.TestCase):
    def test_drops_punctuation_and_case(self) -> None:
        self.assertEqual(normalize("Tron: Ares"), "tron ares")

    def test_drops_leading_article(self) -> None:
        self.assertEqual(normalize("The Batman"), "batman")
        self.assertEqual(normalize("A Minecraft Movie"), "minecraft movie")

    def test_keeps_lone_article(self) -> None:
        self.assertEqual(normalize("The"), "the")

    def test_ampersand(self) -> None:
        self.assertEqual(normalize("Fast & Furious"), "fast and furious")


class MatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.candidates = [
            Named("Minions"),
            Named("Tron: Ares Special Edition"),
            Named("Tron: Ares"),
        ]

    def test_exact_title_first_variant_second(self) -> None:
        scored = match_scored("Tron: Ares", self.candidates, threshold=0.4)
        names = [c.name for c, _ in scored]
        self.assertEqual(names, ["Tron: Ares", "Tron: Ares Special Edition"])
        self.assertLess(scored[0][1], scored[1][1])

    def test_unrelated_title_excluded(self) -> None:
        names = [c.name for c in match("Tron: Ares", self.candidates, threshold=0.4)]
        self.assertNotIn("Minions", names)

    def test_exact_match_scores_zero(self) -> None:
        self.assertEqual(score("Tron: Ares", "TRON ARES"), 0.0)

    def test_empty_inputs(self) -> None:
        self.assertEqual(match("", self.candidates, threshold=0.4), [])
        self.assertEqual(match("   ", self.candidates, threshold=0.4), [])
        self.assertEqual(match("Tron", [], threshold=0.4), [])

    def test_threshold_is_strict(self) -> None:
        self.assertEqual(match("Tron: Ares", [Named("Tron: Ares")], threshold=0.0), [])

    def test_ties_keep_input_order(self) -> None:
        candidates = [Named("Tron Ares"), Named("Tron: Ares")]
        self.assertEqual(match("tron ares", candidates, threshold=0.4), candidates)

    def test_titles_sharing_one_word_are_rejected(self) -> None:
        self.assertEqual(match("Tron: Ares", [Named("Tron: Legacy")], threshold=0.4), [])
        self.assertEqual(match("Star Wars", [Named("A Star Is Born")], threshold=0.4), [])
        self.assertGreaterEqual(score("Tron: Ares", "Tron: Legacy"), 0.6)

    def test_small_typo_still_matches(self) -> None:
        self.assertLess(score("Tron Aers", "Tron: Ares"), 0.1)

    def test_word_coverage(self) -> None:
        self.assertEqual(word_coverage("tron ares", "tron ares special edition"), 1.0)
        self.assertEqual(word_coverage("tron ares", "tron legacy"), 0.5)
        self.assertEqual(word_coverage("minions", "tron ares"), 0.0)

    def test_custom_key(self) -> None:
        self.assertEqual(match("tron", ["Tron", "Minions"], threshold=0.4, key=str), ["Tron"])


class ContainsMatchTests(unittest.TestCase):
    def test_case_insensitive_substring(self) -> None:
        candidates = [Named("AMC Lincoln Square 13"), Named("AMC Empire 25")]
        found = contains_match("lincoln", candidates)
        self.assertEqual([c.name for c in found], ["AMC Lincoln Square 13"])

    def test_empty_query(self) -> None:
        self.assertEqual(contains_match(" ", [Named("x")]), [])


if __name__ == "__main__":
    unittest.main()
