import unittest

from ads_analytics.query_builder import ReportQuery


class TestReportQuery(unittest.TestCase):
    def _report(self):
        return (
            ReportQuery("Test Report", notes=["Period: 7 days"])
            .stage("base", "SELECT platform, SUM(spend) as spend FROM t GROUP BY platform")
            .stage("capped", "SELECT * FROM base ORDER BY spend DESC LIMIT 5", comment="Top five")
            .section("ZETA", "JSON_OBJECT('n', COUNT(*))", source="base")
            .section("ALPHA", "JSON_OBJECT('rows', ARRAY_AGG(platform))", source="capped")
        )

    def test_render_shape(self):
        sql = self._report().render()
        self.assertTrue(sql.startswith("-- Test Report\n-- Period: 7 days\n\nWITH\n"))
        self.assertIn("base AS (\n  SELECT platform", sql)
        self.assertIn("-- Top five\ncapped AS (", sql)
        self.assertIn("SELECT\n  'ZETA' as section,\n  JSON_OBJECT('n', COUNT(*)) as summary_data\nFROM base", sql)
        self.assertEqual(sql.count("UNION ALL"), 1)
        self.assertTrue(sql.endswith("ORDER BY section;\n"))

    def test_section_without_source(self):
        sql = ReportQuery("T").section("ONLY", "JSON_OBJECT('a', 1)").render()
        self.assertNotIn("WITH", sql)
        self.assertNotIn("FROM", sql)

    def test_section_tags_sorted(self):
        report = self._report()
        self.assertEqual(report.section_tags(), ["ALPHA", "ZETA"])
        self.assertEqual(report.stage_names(), ["base", "capped"])

    def test_render_requires_a_section(self):
        with self.assertRaises(ValueError):
            ReportQuery("Empty").stage("base", "SELECT 1").render()

    def test_limit_inside_union_branch_rejected(self):
        with self.assertRaises(ValueError):
            ReportQuery("T").section("A", "JSON_OBJECT()", source="base LIMIT 5")

    def test_duplicate_and_invalid_names_rejected(self):
        report = ReportQuery("T").stage("base", "SELECT 1")
        with self.assertRaises(ValueError):
            report.stage("base", "SELECT 2")
        with self.assertRaises(ValueError):
            report.stage("bad-name", "SELECT 2")
        with self.assertRaises(ValueError):
            report.section("lower", "JSON_OBJECT()")


if __name__ == '__main__':
    unittest.main()
