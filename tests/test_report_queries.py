import unittest

from ads_analytics import report_queries
from ads_analytics.settings import Settings


def _settings():
    return Settings(
        blended_summary_table="proj-1.analytics.blended_summary",
        impression_share_table="proj-1.analytics.impression_share_report",
    )


class TestWeeklyReport(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()

    def test_sections_and_table(self):
        request = report_queries.WeeklyReportRequest.from_params(date_range="14d")
        sql = report_queries.build_weekly_report_query(request, self.settings)
        for tag in ("PLATFORM_OVERVIEW", "REGIONAL_OVERVIEW", "TOP_ISSUES", "SCALE_OPPORTUNITIES"):
            self.assertIn(f"'{tag}' as section", sql)
        self.assertIn("FROM `proj-1.analytics.blended_summary`", sql)
        self.assertIn("INTERVAL 14 DAY", sql)
        self.assertIn("platform IN ('Meta', 'Google', 'Bing')", sql)
        self.assertTrue(sql.endswith("ORDER BY section;\n"))

    def test_row_caps_applied_before_union(self):
        request = report_queries.WeeklyReportRequest.from_params()
        sql = report_queries.build_weekly_report_query(request, self.settings)
        self.assertIn("LIMIT 5", sql)
        for branch in sql.split("UNION ALL")[1:]:
            self.assertNotIn("LIMIT", branch)

    def test_country_list_truncated_to_twenty(self):
        countries = ["US", "AU", "UK"] + [f"C{i}" for i in range(22)]
        request = report_queries.WeeklyReportRequest.from_params(countries=countries)
        self.assertEqual(len(request.countries), 20)
        sql = report_queries.build_weekly_report_query(request, self.settings)
        self.assertIn("'C16'", sql)
        self.assertNotIn("'C17'", sql)

    def test_unknown_range_defaults_to_seven_days(self):
        request = report_queries.WeeklyReportRequest.from_params(date_range="90d")
        self.assertEqual(request.days, 7)


class TestCampaignAnalysis(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()

    def test_name_matching_and_sections(self):
        request = report_queries.CampaignAnalysisRequest.from_params(["Brand", " Promo "])
        sql = report_queries.build_campaign_analysis_query(request, self.settings)
        self.assertIn("LOWER(campaign) LIKE LOWER('%Brand%')", sql)
        self.assertIn("LOWER(campaign) LIKE LOWER('%Promo%')", sql)
        for tag in ("EXECUTIVE_SUMMARY", "PROBLEM_CAMPAIGNS", "TOP_PERFORMERS"):
            self.assertIn(f"'{tag}' as section", sql)
        self.assertNotIn("CREATIVE_ANALYSIS", sql)
        self.assertIn("'tiktok', COUNT(CASE WHEN platform = 'TikTok' THEN 1 END)", sql)

    def test_creatives_section_is_optional(self):
        request = report_queries.CampaignAnalysisRequest.from_params(["Brand"], include_creatives=True)
        sql = report_queries.build_campaign_analysis_query(request, self.settings)
        self.assertIn("'CREATIVE_ANALYSIS' as section", sql)
        self.assertIn("bd.platform = 'Meta'", sql)

    def test_month_over_month_windows(self):
        request = report_queries.CampaignAnalysisRequest.from_params(["Brand"], "month_over_month")
        sql = report_queries.build_campaign_analysis_query(request, self.settings)
        self.assertIn("bd.date >= DATE_SUB(CURRENT_DATE(), INTERVAL 60 DAY) "
                      "AND bd.date < DATE_SUB(CURRENT_DATE(), INTERVAL 30 DAY)", sql)

    def test_no_usable_names_matches_nothing(self):
        request = report_queries.CampaignAnalysisRequest.from_params(["  ", ""])
        sql = report_queries.build_campaign_analysis_query(request, self.settings)
        self.assertIn("AND 1=0", sql)


class TestCreativeAnalysis(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()

    def test_min_spend_clamped(self):
        high = report_queries.CreativeAnalysisRequest.from_params(self.settings, min_spend=99999)
        low = report_queries.CreativeAnalysisRequest.from_params(self.settings, min_spend=10)
        self.assertEqual(high.min_spend, 50000)
        self.assertEqual(low.min_spend, 50)

    def test_sort_order(self):
        request = report_queries.CreativeAnalysisRequest.from_params(self.settings, sort_by="spend")
        sql = report_queries.build_creative_analysis_query(request, self.settings)
        self.assertIn("ROW_NUMBER() OVER (ORDER BY total_spend DESC)", sql)

    def test_unknown_sort_falls_back_to_cpa(self):
        request = report_queries.CreativeAnalysisRequest.from_params(self.settings, sort_by="ctr")
        self.assertEqual(request.sort_by, "cpa")

    def test_sections(self):
        request = report_queries.CreativeAnalysisRequest.from_params(self.settings)
        sql = report_queries.build_creative_analysis_query(request, self.settings)
        for tag in ("CREATIVE_OVERVIEW", "TOP_CONCEPTS", "TOP_INDIVIDUAL_ADS"):
            self.assertIn(f"'{tag}' as section", sql)
        self.assertIn("SUM(bd.spend) >= 300", sql)
        self.assertIn("WHEN total_spend >= 900 AND total_conversions >= 2 THEN 'HIGH'", sql)


class TestRegionalComparison(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()

    def test_country_comparison_with_trends(self):
        request = report_queries.RegionalComparisonRequest.from_params()
        sql = report_queries.build_regional_comparison_query(request, self.settings)
        self.assertIn("'COUNTRY_COMPARISON' as section", sql)
        self.assertIn("'REGIONAL_INSIGHTS' as section", sql)
        self.assertNotIn("'PLATFORM_BY_COUNTRY' as section", sql)
        self.assertIn("previous_period AS (", sql)
        self.assertIn("INTERVAL 28 DAY", sql)

    def test_platform_by_country_without_trends(self):
        request = report_queries.RegionalComparisonRequest.from_params(
            comparison_type="platform_by_country", include_trends=False
        )
        sql = report_queries.build_regional_comparison_query(request, self.settings)
        self.assertIn("'PLATFORM_BY_COUNTRY' as section", sql)
        self.assertNotIn("'COUNTRY_COMPARISON' as section", sql)
        self.assertNotIn("previous_period", sql)
        self.assertIn("'Trend analysis disabled'", sql)


class TestAnomalyDetection(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()

    def test_min_impact_clamped(self):
        request = report_queries.AnomalyDetectionRequest.from_params(self.settings, min_impact_threshold=99999)
        self.assertEqual(request.min_impact_threshold, 50000)
        sql = report_queries.build_anomaly_detection_query(request, self.settings)
        self.assertIn("cp.spend_current >= 50000", sql)
        self.assertNotIn("99999", sql)

    def test_sensitivity_threshold(self):
        request = report_queries.AnomalyDetectionRequest.from_params(self.settings, sensitivity="high")
        sql = report_queries.build_anomaly_detection_query(request, self.settings)
        self.assertIn("ABS(COALESCE(cpa_change_pct, 0)) >= 0.15", sql)
        self.assertIn("ABS(COALESCE(spend_change_pct, 0)) >= 0.3", sql)
        self.assertIn("excess_cost >= 500", sql)

    def test_unknown_sensitivity_defaults_to_medium(self):
        request = report_queries.AnomalyDetectionRequest.from_params(self.settings, sensitivity="extreme")
        self.assertEqual(request.sensitivity, "medium")

    def test_sections_and_caps(self):
        request = report_queries.AnomalyDetectionRequest.from_params(self.settings)
        sql = report_queries.build_anomaly_detection_query(request, self.settings)
        for tag in ("ANOMALY_SUMMARY", "CAMPAIGN_ANOMALIES", "REGIONAL_ANOMALIES"):
            self.assertIn(f"'{tag}' as section", sql)
        self.assertIn("LIMIT 15", sql)
        self.assertIn("LIMIT 10", sql)


class TestImpressionShare(unittest.TestCase):
    def setUp(self):
        self.settings = _settings()

    def test_overview_includes_regional_insights(self):
        request = report_queries.ImpressionShareRequest.from_params(self.settings)
        sql = report_queries.build_impression_share_query(request, self.settings)
        self.assertIn("FROM `proj-1.analytics.impression_share_report`", sql)
        self.assertIn("'ANALYSIS_SUMMARY' as section", sql)
        self.assertIn("'OVERVIEW_RESULTS' as section", sql)
        self.assertIn("'REGIONAL_INSIGHTS' as section", sql)

    def test_budget_focus(self):
        request = report_queries.ImpressionShareRequest.from_params(
            self.settings, analysis_type="budget_opportunities", include_brand_campaigns=False
        )
        sql = report_queries.build_impression_share_query(request, self.settings)
        self.assertIn("'BUDGET_OPPORTUNITIES_RESULTS' as section", sql)
        self.assertNotIn("'REGIONAL_INSIGHTS' as section", sql)
        self.assertIn("ORDER BY additional_budget_needed DESC", sql)
        self.assertIn("COALESCE(is_brand_campaign, FALSE) = FALSE", sql)

    def test_min_spend_clamped(self):
        low = report_queries.ImpressionShareRequest.from_params(self.settings, min_spend_threshold=5)
        high = report_queries.ImpressionShareRequest.from_params(self.settings, min_spend_threshold=99999)
        self.assertEqual(low.min_spend_threshold, 100)
        self.assertEqual(high.min_spend_threshold, 10000)


if __name__ == '__main__':
    unittest.main()
