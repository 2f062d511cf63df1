import unittest

from ads_analytics.settings import Settings
from ads_analytics.validation import (
    AuthorizationError,
    ValidationError,
    authorize_query,
    clamp,
    clean,
    extract_table_references,
    screen_query,
    validate_raw_query,
)

BLENDED = "proj-1.analytics.blended_summary"
IMPRESSION = "proj-1.analytics.impression_share_report"
AUTHORIZED = (BLENDED, IMPRESSION)


class TestCleaning(unittest.TestCase):
    def test_clean_trims_and_caps_strings(self):
        self.assertEqual(clean("  US  "), "US")
        self.assertEqual(len(clean("x" * 500)), 200)

    def test_clean_truncates_lists_to_twenty(self):
        countries = ["US", "AU", "UK"] + [f"C{i}" for i in range(22)]
        cleaned = clean(countries)
        self.assertEqual(len(countries), 25)
        self.assertEqual(cleaned, countries[:20])

    def test_clean_passes_other_values_through(self):
        self.assertEqual(clean(42), 42)
        self.assertIsNone(clean(None))

    def test_clamp(self):
        self.assertEqual(clamp(99999, 100, 50000), 50000)
        self.assertEqual(clamp(5, 100, 50000), 100)
        self.assertEqual(clamp(750, 100, 50000), 750)


class TestValidateRawQuery(unittest.TestCase):
    def test_non_string_rejected(self):
        with self.assertRaisesRegex(ValidationError, "Query must be a string"):
            validate_raw_query(None)

    def test_too_long_rejected(self):
        with self.assertRaisesRegex(ValidationError, "maximum 10000 characters"):
            validate_raw_query("SELECT " + "x" * 10000)

    def test_stacked_statements_rejected(self):
        for keyword in ("DROP", "alter", "Insert", "UPDATE", "delete", "TRUNCATE"):
            with self.assertRaisesRegex(ValidationError, "dangerous SQL patterns"):
                validate_raw_query(f"SELECT 1; {keyword} TABLE x")

    def test_comments_rejected(self):
        with self.assertRaises(ValidationError):
            validate_raw_query("SELECT 1 -- trailing")
        with self.assertRaises(ValidationError):
            validate_raw_query("SELECT /* hidden */ 1")

    def test_returns_trimmed_query(self):
        self.assertEqual(validate_raw_query("  SELECT 1  "), "SELECT 1")


class TestAuthorizeQuery(unittest.TestCase):
    def test_authorized_table_with_limit_passes(self):
        authorize_query(f"SELECT * FROM `{BLENDED}` LIMIT 10", AUTHORIZED)

    def test_aggregate_without_limit_passes(self):
        authorize_query(f"SELECT platform, SUM(spend) FROM {IMPRESSION} GROUP BY platform", AUTHORIZED)

    def test_unauthorized_table_named_in_error(self):
        with self.assertRaisesRegex(AuthorizationError, "Unauthorized table reference\\(s\\): other.schema.table"):
            authorize_query("SELECT * FROM other.schema.table LIMIT 5", AUTHORIZED)

    def test_lookalike_table_name_rejected(self):
        with self.assertRaises(AuthorizationError):
            authorize_query(f"SELECT * FROM `{BLENDED}_backup` LIMIT 5", AUTHORIZED)

    def test_self_join_rejected(self):
        query = (
            f"SELECT a.campaign FROM `{BLENDED}` a "
            f"JOIN `{BLENDED}` b ON a.campaign_id = b.campaign_id LIMIT 5"
        )
        with self.assertRaisesRegex(AuthorizationError, "JOINs not allowed"):
            authorize_query(query, AUTHORIZED)

    def test_ddl_rejected_before_table_checks(self):
        with self.assertRaisesRegex(AuthorizationError, "DDL/DML operations are not allowed"):
            authorize_query("DELETE FROM other.schema.table WHERE 1=1", AUTHORIZED)

    def test_system_schema_rejected(self):
        with self.assertRaisesRegex(AuthorizationError, "System schema access"):
            authorize_query("SELECT * FROM region-us.INFORMATION_SCHEMA.JOBS LIMIT 5", AUTHORIZED)

    def test_file_operations_rejected(self):
        with self.assertRaisesRegex(AuthorizationError, "File operations"):
            authorize_query(f"EXPORT DATA OPTIONS() AS SELECT * FROM `{BLENDED}` LIMIT 5", AUTHORIZED)

    def test_missing_limit_and_aggregate_rejected(self):
        with self.assertRaisesRegex(AuthorizationError, "LIMIT clause or an aggregate"):
            authorize_query(f"SELECT * FROM `{BLENDED}`", AUTHORIZED)

    def test_missing_table_rejected(self):
        with self.assertRaisesRegex(AuthorizationError, "must reference one of the authorized tables"):
            authorize_query("SELECT 1 LIMIT 1", AUTHORIZED)

    def test_extract_table_references(self):
        refs = extract_table_references(f"SELECT * FROM `{BLENDED}` UNION ALL SELECT * FROM `a`.`b`.`c`")
        self.assertEqual(refs, [BLENDED, "`a`.`b`.`c`"])


class TestScreenQuery(unittest.TestCase):
    def setUp(self):
        self.settings = Settings(blended_summary_table=BLENDED, impression_share_table=IMPRESSION)

    def test_passing_query(self):
        check = screen_query(f"  SELECT * FROM `{BLENDED}` LIMIT 10 ", self.settings)
        self.assertTrue(check.ok)
        self.assertEqual(check.query, f"SELECT * FROM `{BLENDED}` LIMIT 10")

    def test_validation_rejection(self):
        check = screen_query(123, self.settings)
        self.assertFalse(check.ok)
        self.assertEqual(check.rejection.kind, "validation")
        self.assertEqual(check.rejection.reason, "Query must be a string")

    def test_authorization_rejection(self):
        check = screen_query("SELECT * FROM other.schema.table LIMIT 5", self.settings)
        self.assertFalse(check.ok)
        self.assertEqual(check.rejection.kind, "authorization")
        self.assertIsNone(check.query)


if __name__ == '__main__':
    unittest.main()
