import unittest

from ads_analytics import sql_utils
from ads_analytics.settings import ConfidenceBracket, ImpressionShareSettings, PerformanceThresholds


class TestLiterals(unittest.TestCase):
    def test_escape_like_value_escapes_wildcards_and_quotes(self):
        self.assertEqual(sql_utils.escape_like_value("50%_off's"), r"50\%\_off\'s")

    def test_escape_like_value_escapes_backslash_first(self):
        self.assertEqual(sql_utils.escape_like_value("a\\b"), r"a\\b")
        self.assertEqual(sql_utils.escape_like_value("a\\%"), r"a\\\%")

    def test_quote_literal(self):
        self.assertEqual(sql_utils.quote_literal("O'Brien"), r"'O\'Brien'")

    def test_array_literal(self):
        self.assertEqual(sql_utils.array_literal(["US", "AU"]), "ARRAY['US', 'AU']")
        self.assertEqual(sql_utils.array_literal([]), "ARRAY<STRING>[]")

    def test_sql_number_drops_float_noise(self):
        self.assertEqual(sql_utils.sql_number(0.15 * 100), "15")
        self.assertEqual(sql_utils.sql_number(500), "500")
        self.assertEqual(sql_utils.sql_number(1.2), "1.2")


class TestFilters(unittest.TestCase):
    def test_in_clause(self):
        self.assertEqual(sql_utils.in_clause(["US", "AU"], "country"), "country IN ('US', 'AU')")

    def test_in_clause_empty_matches_nothing(self):
        self.assertEqual(sql_utils.in_clause([], "platform"), "1=0")

    def test_like_match_any(self):
        clause = sql_utils.like_match_any(["Brand", "Promo_Q4"])
        self.assertEqual(
            clause,
            r"(LOWER(campaign) LIKE LOWER('%Brand%') OR LOWER(campaign) LIKE LOWER('%Promo\_Q4%'))",
        )

    def test_like_match_any_skips_blank_names(self):
        self.assertEqual(sql_utils.like_match_any(["Brand", "   ", ""]), "(LOWER(campaign) LIKE LOWER('%Brand%'))")
        self.assertEqual(sql_utils.like_match_any([]), "1=0")

    def test_days_from_range(self):
        self.assertEqual(sql_utils.days_from_range("14d"), 14)
        self.assertEqual(sql_utils.days_from_range("30d"), 30)
        self.assertEqual(sql_utils.days_from_range("90d"), 7)

    def test_comparison_days(self):
        self.assertEqual(sql_utils.comparison_days("month_over_month"), (30, 60))
        self.assertEqual(sql_utils.comparison_days("year_over_year"), (7, 14))

    def test_date_filters(self):
        self.assertEqual(sql_utils.date_filter(14), "date >= DATE_SUB(CURRENT_DATE(), INTERVAL 14 DAY)")
        self.assertEqual(sql_utils.date_filter(7, "bd"), "bd.date >= DATE_SUB(CURRENT_DATE(), INTERVAL 7 DAY)")
        self.assertEqual(
            sql_utils.comparison_date_filter(7, 14),
            "date >= DATE_SUB(CURRENT_DATE(), INTERVAL 14 DAY) "
            "AND date < DATE_SUB(CURRENT_DATE(), INTERVAL 7 DAY)",
        )


class TestExpressions(unittest.TestCase):
    def test_safe_ratios(self):
        self.assertEqual(sql_utils.safe_cpa(), "SAFE_DIVIDE(spend, NULLIF(conversions, 0))")
        self.assertEqual(sql_utils.safe_ctr(), "SAFE_DIVIDE(clicks, NULLIF(impressions, 0)) * 100")

    def test_change_ratio_requires_positive_baseline(self):
        expr = sql_utils.change_ratio("cur", "prev")
        self.assertIn("prev IS NOT NULL AND prev > 0", expr)
        self.assertIn("THEN (cur - prev) / prev ELSE NULL END", expr)

    def test_performance_rating_tiers_are_ordered(self):
        case = sql_utils.performance_rating_case("cpa", PerformanceThresholds())
        excellent = case.index("WHEN cpa <= 25 THEN 'EXCELLENT'")
        good = case.index("WHEN cpa <= 40 THEN 'GOOD'")
        acceptable = case.index("WHEN cpa <= 60 THEN 'ACCEPTABLE'")
        fallback = case.index("ELSE 'NEEDS_ATTENTION'")
        self.assertTrue(excellent < good < acceptable < fallback)

    def test_platform_target_case(self):
        case = sql_utils.platform_target_case("platform", {"Meta": 50.0, "Google": 25.0}, 40.0)
        self.assertEqual(case, "CASE platform WHEN 'Meta' THEN 50 WHEN 'Google' THEN 25 ELSE 40 END")

    def test_scale_potential_case(self):
        case = sql_utils.scale_potential_case("s", ((500, 1.0), (1500, 0.5)), 0.2)
        self.assertEqual(case, "CASE WHEN s < 500 THEN s * 1 WHEN s < 1500 THEN s * 0.5 ELSE s * 0.2 END")

    def test_confidence_case(self):
        case = sql_utils.confidence_case("s", "c", [("HIGH", ConfidenceBracket(2000, 20))])
        self.assertIn("WHEN s >= 2000 AND c >= 20 THEN 'HIGH'", case)
        self.assertTrue(case.endswith("ELSE 'INSUFFICIENT'\n  END"))

    def test_platform_pivot(self):
        self.assertEqual(
            sql_utils.platform_pivot("spend", ["Meta"]),
            "ROUND(SUM(CASE WHEN platform = 'Meta' THEN spend END), 2) as meta_spend",
        )
        self.assertIn("as google_cpa", sql_utils.platform_cpa_pivot(["Google"]))


class TestImpressionShareExpressions(unittest.TestCase):
    def setUp(self):
        self.config = ImpressionShareSettings()

    def test_opportunity_type_case(self):
        case = sql_utils.opportunity_type_case("b", "r", self.config)
        self.assertIn("WHEN COALESCE(b, 0) >= 20 THEN 'BUDGET_OPPORTUNITY'", case)
        self.assertIn("WHEN COALESCE(r, 0) >= 30 THEN 'RANK_OPPORTUNITY'", case)
        self.assertIn("ELSE 'OPTIMIZED'", case)

    def test_budget_status_case(self):
        case = sql_utils.budget_status_case("u", self.config)
        self.assertIn("WHEN u IS NULL THEN 'UNKNOWN'", case)
        self.assertIn("WHEN u >= 95 THEN 'CONSTRAINED'", case)

    def test_opportunity_score(self):
        score = sql_utils.opportunity_score("b", "r", "m", self.config)
        self.assertIn("COALESCE(b, 0) * 0.6", score)
        self.assertIn("COALESCE(r, 0) * 0.4", score)
        self.assertIn("LOG10(GREATEST(COALESCE(m, 0), 10))", score)


if __name__ == '__main__':
    unittest.main()
