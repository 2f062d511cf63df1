# SQL fragment builders for BigQuery: safe literals, filters, ratios and classifications.
import re
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .settings import (
    COMPARISON_PERIODS,
    DATE_RANGES,
    ConfidenceBracket,
    ImpressionShareSettings,
    PerformanceThresholds,
)

# Predicate used when a filter list is empty: match nothing rather than everything
NO_MATCH = "1=0"


def sql_number(value) -> str:
    """Renders a number as a SQL literal without float noise (0.15 * 100 -> 15)."""
    number = round(float(value), 6)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def escape_like_value(value: str) -> str:
    """
    Escapes a value for use inside a LIKE pattern literal.
    Backslashes go first so the escapes added afterwards are not doubled.
    """
    return (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


def quote_literal(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def array_literal(values: Iterable[str]) -> str:
    items = [quote_literal(v) for v in values]
    if not items:
        return "ARRAY<STRING>[]"
    return f"ARRAY[{', '.join(items)}]"


def in_clause(values: Sequence[str], column: str) -> str:
    """Builds `column IN (...)`, or an always-false predicate for an empty list."""
    if not values:
        return NO_MATCH
    return f"{column} IN ({', '.join(quote_literal(v) for v in values)})"


def like_match_any(names: Sequence[str], column: str = "campaign") -> str:
    """Case-insensitive partial match against any of the names."""
    patterns = [escape_like_value(name.strip()) for name in names or [] if name and name.strip()]
    if not patterns:
        return NO_MATCH
    conditions = [f"LOWER({column}) LIKE LOWER('%{p}%')" for p in patterns]
    return f"({' OR '.join(conditions)})"


def days_from_range(date_range: str) -> int:
    return DATE_RANGES.get(date_range, 7)


def comparison_days(comparison_type: str) -> Tuple[int, int]:
    return COMPARISON_PERIODS.get(comparison_type, COMPARISON_PERIODS["week_over_week"])


def _column(name: str, alias: Optional[str]) -> str:
    return f"{alias}.{name}" if alias else name


def date_filter(days: int, alias: Optional[str] = None) -> str:
    """Rows inside the trailing `days` window."""
    return f"{_column('date', alias)} >= DATE_SUB(CURRENT_DATE(), INTERVAL {int(days)} DAY)"


def comparison_date_filter(current_days: int, total_days: int, alias: Optional[str] = None) -> str:
    """Rows older than the current window but inside `total_days`."""
    column = _column("date", alias)
    return (
        f"{column} >= DATE_SUB(CURRENT_DATE(), INTERVAL {int(total_days)} DAY) "
        f"AND {column} < DATE_SUB(CURRENT_DATE(), INTERVAL {int(current_days)} DAY)"
    )


def safe_ratio(numerator: str, denominator: str) -> str:
    return f"SAFE_DIVIDE({numerator}, NULLIF({denominator}, 0))"


def safe_cpa(spend: str = "spend", conversions: str = "conversions") -> str:
    return safe_ratio(spend, conversions)


def safe_ctr(clicks: str = "clicks", impressions: str = "impressions") -> str:
    return f"{safe_ratio(clicks, impressions)} * 100"


def safe_cvr(conversions: str = "conversions", clicks: str = "clicks") -> str:
    return f"{safe_ratio(conversions, clicks)} * 100"


def change_ratio(current: str, previous: str) -> str:
    """(current - previous) / previous, NULL when there is no positive baseline."""
    return (
        f"CASE WHEN {previous} IS NOT NULL AND {previous} > 0 "
        f"THEN ({current} - {previous}) / {previous} ELSE NULL END"
    )


def performance_rating_case(column: str = "cpa", thresholds: PerformanceThresholds = PerformanceThresholds()) -> str:
    return (
        "CASE\n"
        f"    WHEN {column} <= {sql_number(thresholds.excellent)} THEN 'EXCELLENT'\n"
        f"    WHEN {column} <= {sql_number(thresholds.good)} THEN 'GOOD'\n"
        f"    WHEN {column} <= {sql_number(thresholds.acceptable)} THEN 'ACCEPTABLE'\n"
        "    ELSE 'NEEDS_ATTENTION'\n"
        "  END"
    )


def platform_target_case(column: str, targets: Dict[str, float], default: float) -> str:
    whens = " ".join(
        f"WHEN {quote_literal(platform)} THEN {sql_number(target)}"
        for platform, target in targets.items()
    )
    return f"CASE {column} {whens} ELSE {sql_number(default)} END"


def scale_potential_case(column: str, multipliers: Sequence[Tuple[float, float]], otherwise: float) -> str:
    whens = " ".join(
        f"WHEN {column} < {sql_number(bound)} THEN {column} * {sql_number(multiplier)}"
        for bound, multiplier in multipliers
    )
    return f"CASE {whens} ELSE {column} * {sql_number(otherwise)} END"


def confidence_case(spend: str, conversions: str, brackets: Sequence[Tuple[str, ConfidenceBracket]]) -> str:
    """Labels a row with the first bracket whose spend and conversion minimums it meets."""
    whens = "\n".join(
        f"    WHEN {spend} >= {sql_number(b.spend)} AND {conversions} >= {sql_number(b.conversions)} THEN {quote_literal(label)}"
        for label, b in brackets
    )
    return f"CASE\n{whens}\n    ELSE 'INSUFFICIENT'\n  END"


def _pivot_name(platform: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", platform.lower())


def platform_pivot(metric: str, platforms: Sequence[str], precision: int = 2) -> str:
    """Conditional aggregation per platform, avoiding aggregations of aggregations."""
    return ",\n  ".join(
        f"ROUND(SUM(CASE WHEN platform = {quote_literal(p)} THEN {metric} END), {int(precision)}) as {_pivot_name(p)}_{metric}"
        for p in platforms
    )


def platform_cpa_pivot(platforms: Sequence[str]) -> str:
    return ",\n  ".join(
        f"ROUND(SAFE_DIVIDE(SUM(CASE WHEN platform = {quote_literal(p)} THEN spend END), "
        f"SUM(CASE WHEN platform = {quote_literal(p)} THEN conversions END)), 2) as {_pivot_name(p)}_cpa"
        for p in platforms
    )


# --- Impression share classifications ---

def opportunity_type_case(budget_lost: str, rank_lost: str, config: ImpressionShareSettings) -> str:
    budget = f"COALESCE({budget_lost}, 0)"
    rank = f"COALESCE({rank_lost}, 0)"
    return (
        "CASE\n"
        f"    WHEN {budget} >= {sql_number(config.high_budget_lost)} THEN 'BUDGET_OPPORTUNITY'\n"
        f"    WHEN {rank} >= {sql_number(config.high_rank_lost)} THEN 'RANK_OPPORTUNITY'\n"
        f"    WHEN {budget} >= {sql_number(config.actionable_lost_share)} THEN 'BUDGET_IMPROVEMENT'\n"
        f"    WHEN {rank} >= {sql_number(config.actionable_lost_share)} THEN 'RANK_IMPROVEMENT'\n"
        "    ELSE 'OPTIMIZED'\n"
        "  END"
    )


def budget_status_case(utilization: str, config: ImpressionShareSettings) -> str:
    return (
        "CASE\n"
        f"    WHEN {utilization} IS NULL THEN 'UNKNOWN'\n"
        f"    WHEN {utilization} >= {sql_number(config.constrained_utilization)} THEN 'CONSTRAINED'\n"
        f"    WHEN {utilization} >= {sql_number(config.balanced_utilization)} THEN 'BALANCED'\n"
        "    ELSE 'UNDERUTILIZED'\n"
        "  END"
    )


def opportunity_score(budget_lost: str, rank_lost: str, market_size: str, config: ImpressionShareSettings) -> str:
    """Weighted lost share scaled by the order of magnitude of the market."""
    return (
        f"(COALESCE({budget_lost}, 0) * {sql_number(config.budget_weight)} "
        f"+ COALESCE({rank_lost}, 0) * {sql_number(config.rank_weight)}) "
        f"* LOG10(GREATEST(COALESCE({market_size}, 0), 10))"
    )
