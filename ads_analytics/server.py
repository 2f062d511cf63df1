# MCP server exposing the marketing-analytics report tools over stdio.
import logging
from datetime import datetime, timezone
from typing import List, Literal, Optional

from mcp.server.fastmcp import FastMCP

import ads_analytics
from .report_queries import (
    AnomalyDetectionRequest,
    CampaignAnalysisRequest,
    CreativeAnalysisRequest,
    ImpressionShareRequest,
    RegionalComparisonRequest,
    WeeklyReportRequest,
    build_anomaly_detection_query,
    build_campaign_analysis_query,
    build_creative_analysis_query,
    build_impression_share_query,
    build_regional_comparison_query,
    build_weekly_report_query,
)
from .settings import DEFAULT_COUNTRIES, DEFAULT_PLATFORMS, load_settings
from .sql_utils import sql_number
from .validation import screen_query
from .webhook_client import post_query

logger = logging.getLogger("ads_analytics")


def _setup_logging() -> None:
    """Console logging on stderr; stdout carries the MCP stdio protocol. Level from LOG_LEVEL."""
    level = getattr(logging, ads_analytics.LOG_LEVEL.upper(), logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s"))
        logger.addHandler(handler)

    logger.setLevel(level)


_setup_logging()

mcp = FastMCP(ads_analytics.MCP_SERVER_NAME)

SETTINGS = load_settings()

DateRange = Literal["7d", "14d", "30d"]
ComparisonPeriod = Literal["week_over_week", "month_over_month"]
CreativeSort = Literal["cpa", "spend", "conversions"]
ComparisonType = Literal["country", "platform_by_country"]
Sensitivity = Literal["high", "medium", "low"]
ImpressionShareType = Literal["overview", "budget_opportunities", "rank_opportunities", "regional_comparison"]


def _join(values) -> str:
    return ", ".join(values)


def _included(flag: bool) -> str:
    return "included" if flag else "excluded"


def _respond(header: str, query: str, tool_label: str) -> str:
    response = post_query(query, SETTINGS, tool_label)
    if not response.ok:
        return response.text
    return f"{header}\n\nResults:\n{response.text}"


@mcp.tool()
def weekly_performance_report(
    date_range: DateRange = "7d",
    platforms: Optional[List[str]] = None,
    countries: Optional[List[str]] = None,
) -> str:
    """Weekly business intelligence report: platform and regional overview, top issues and scale opportunities.

    Args:
        date_range: Analysis window ("7d", "14d" or "30d")
        platforms: Platforms to include (default Meta, Google, Bing)
        countries: Country codes to include (default US, AU, UK)
    """
    logger.debug("weekly_performance_report called: date_range=%s", date_range)
    try:
        request = WeeklyReportRequest.from_params(
            date_range=date_range,
            platforms=platforms if platforms is not None else DEFAULT_PLATFORMS,
            countries=countries if countries is not None else DEFAULT_COUNTRIES,
        )
        query = build_weekly_report_query(request, SETTINGS)
        header = (
            f"Weekly Performance Report ({request.date_range} analysis)\n"
            f"Platforms: {_join(request.platforms)}\n"
            f"Countries: {_join(request.countries)}"
        )
        return _respond(header, query, "weekly report")
    except Exception as e:
        logger.exception("weekly_performance_report failed")
        return f"Error generating weekly report: {str(e)}"


@mcp.tool()
def campaign_analysis(
    campaign_names: List[str],
    comparison_period: ComparisonPeriod = "week_over_week",
    include_creatives: bool = False,
) -> str:
    """Deep dive into campaigns matching any of the given names, comparing the current and previous period.

    Args:
        campaign_names: Campaign name fragments, matched case-insensitively
        comparison_period: "week_over_week" (7 vs 7 days) or "month_over_month" (30 vs 30 days)
        include_creatives: Add Meta creative performance inside the matched campaigns
    """
    logger.debug("campaign_analysis called: %d names, period=%s", len(campaign_names or []), comparison_period)
    try:
        request = CampaignAnalysisRequest.from_params(campaign_names, comparison_period, include_creatives)
        query = build_campaign_analysis_query(request, SETTINGS)
        header = (
            f"Campaign Analysis ({request.comparison_period})\n"
            f"Search terms: {_join(request.campaign_names)}\n"
            f"Creative analysis: {'Included' if request.include_creatives else 'Not included'}"
        )
        return _respond(header, query, "campaign analysis")
    except Exception as e:
        logger.exception("campaign_analysis failed")
        return f"Error generating campaign analysis: {str(e)}"


@mcp.tool()
def creative_analysis(
    date_range: DateRange = "14d",
    countries: Optional[List[str]] = None,
    min_spend: float = 300,
    sort_by: CreativeSort = "cpa",
) -> str:
    """Meta creative performance by concept and by individual ad.

    Args:
        date_range: Analysis window ("7d", "14d" or "30d")
        countries: Country codes to include (default US, AU, UK)
        min_spend: Minimum spend per ad, clamped to 50..50000
        sort_by: Ranking for individual ads: "cpa", "spend" or "conversions"
    """
    logger.debug("creative_analysis called: date_range=%s sort_by=%s", date_range, sort_by)
    try:
        request = CreativeAnalysisRequest.from_params(
            SETTINGS,
            date_range=date_range,
            countries=countries if countries is not None else DEFAULT_COUNTRIES,
            min_spend=min_spend,
            sort_by=sort_by,
        )
        query = build_creative_analysis_query(request, SETTINGS)
        header = (
            f"Creative Analysis Report ({request.date_range})\n"
            f"Countries: {_join(request.countries)}\n"
            f"Min spend: ${sql_number(request.min_spend)}\n"
            f"Sorted by: {request.sort_by}"
        )
        return _respond(header, query, "creative analysis")
    except Exception as e:
        logger.exception("creative_analysis failed")
        return f"Error analyzing creatives: {str(e)}"


@mcp.tool()
def regional_comparison(
    platforms: Optional[List[str]] = None,
    comparison_type: ComparisonType = "country",
    date_range: DateRange = "14d",
    include_trends: bool = True,
) -> str:
    """Compare performance across countries, or platforms within each country.

    Args:
        platforms: Platforms to include (default Meta, Google)
        comparison_type: "country" or "platform_by_country"
        date_range: Analysis window ("7d", "14d" or "30d")
        include_trends: Compare against the previous equal-length period
    """
    logger.debug("regional_comparison called: type=%s date_range=%s", comparison_type, date_range)
    try:
        request = RegionalComparisonRequest.from_params(
            platforms=platforms if platforms is not None else ("Meta", "Google"),
            comparison_type=comparison_type,
            date_range=date_range,
            include_trends=include_trends,
        )
        query = build_regional_comparison_query(request, SETTINGS)
        header = (
            "Regional Comparison Analysis\n"
            f"Platforms: {_join(request.platforms)}\n"
            f"Comparison: {request.comparison_type}\n"
            f"Period: {request.date_range}\n"
            f"Trends: {_included(request.include_trends)}"
        )
        return _respond(header, query, "regional comparison")
    except Exception as e:
        logger.exception("regional_comparison failed")
        return f"Error comparing regions: {str(e)}"


@mcp.tool()
def anomaly_detection(
    sensitivity: Sensitivity = "medium",
    platforms: Optional[List[str]] = None,
    countries: Optional[List[str]] = None,
    min_impact_threshold: float = 1000,
) -> str:
    """Flag campaigns and regions whose performance shifted between the last 7 days and the 7 before.

    Args:
        sensitivity: "high" (15% change), "medium" (25%) or "low" (50%)
        platforms: Platforms to include (default Meta, Google, Bing)
        countries: Country codes to include (default US, AU, UK)
        min_impact_threshold: Minimum current spend to consider, clamped to 100..50000
    """
    logger.debug("anomaly_detection called: sensitivity=%s", sensitivity)
    try:
        request = AnomalyDetectionRequest.from_params(
            SETTINGS,
            sensitivity=sensitivity,
            platforms=platforms if platforms is not None else DEFAULT_PLATFORMS,
            countries=countries if countries is not None else DEFAULT_COUNTRIES,
            min_impact_threshold=min_impact_threshold,
        )
        query = build_anomaly_detection_query(request, SETTINGS)
        profile = SETTINGS.anomaly.sensitivity_levels[request.sensitivity]
        header = (
            "Anomaly Detection Report\n"
            f"Sensitivity: {request.sensitivity} ({sql_number(profile.change_threshold * 100)}% threshold)\n"
            f"Platforms: {_join(request.platforms)}\n"
            f"Countries: {_join(request.countries)}\n"
            f"Min Impact: ${sql_number(request.min_impact_threshold)}"
        )
        return _respond(header, query, "anomaly detection")
    except Exception as e:
        logger.exception("anomaly_detection failed")
        return f"Error detecting anomalies: {str(e)}"


@mcp.tool()
def impression_share_analysis(
    analysis_type: ImpressionShareType = "overview",
    date_range: DateRange = "14d",
    regions: Optional[List[str]] = None,
    include_brand_campaigns: bool = True,
    min_spend_threshold: float = 500,
) -> str:
    """Google Ads search impression share: budget and rank constrained campaigns and regional visibility.

    Args:
        analysis_type: "overview", "budget_opportunities", "rank_opportunities" or "regional_comparison"
        date_range: Analysis window ("7d", "14d" or "30d")
        regions: Regions to include (default US, AU, UK)
        include_brand_campaigns: Keep brand campaigns in the analysis
        min_spend_threshold: Minimum campaign spend, clamped to 100..10000
    """
    logger.debug("impression_share_analysis called: type=%s", analysis_type)
    try:
        request = ImpressionShareRequest.from_params(
            SETTINGS,
            analysis_type=analysis_type,
            date_range=date_range,
            regions=regions if regions is not None else DEFAULT_COUNTRIES,
            include_brand_campaigns=include_brand_campaigns,
            min_spend_threshold=min_spend_threshold,
        )
        query = build_impression_share_query(request, SETTINGS)
        header = (
            f"Impression Share Analysis Report ({request.analysis_type})\n"
            f"Period: {request.date_range}\n"
            f"Regions: {_join(request.regions)}\n"
            f"Brand campaigns: {_included(request.include_brand_campaigns)}\n"
            f"Min spend: ${sql_number(request.min_spend_threshold)}"
        )
        return _respond(header, query, "impression share analysis")
    except Exception as e:
        logger.exception("impression_share_analysis failed")
        return f"Error analyzing impression share: {str(e)}"


FLEXIBLE_QUERY_GUIDE = f"""
Flexible BigQuery analysis. Fallback only: use it when none of the report tools
(weekly_performance_report, campaign_analysis, creative_analysis, regional_comparison,
anomaly_detection, impression_share_analysis) fits the request, e.g. custom date
ranges, hourly patterns or exploratory queries.

Every query is screened before it runs:
- Only {SETTINGS.blended_summary_ref} or {SETTINGS.impression_share_ref} may be referenced
- No DDL or DML (CREATE, DROP, ALTER, INSERT, UPDATE, DELETE, TRUNCATE)
- No system schemas, file operations, comments or stacked statements
- No JOINs between tables; analyze each table separately
- Include a LIMIT clause or an aggregate (SUM, AVG, MAX, MIN, COUNT)
- At most {SETTINGS.flexible_query.max_query_length} characters

BigQuery errors to avoid:
- Aggregations of aggregations such as MAX(SUM(...))
- Window functions inside aggregates such as SUM(RANK() OVER (...))
- LIMIT on an individual SELECT inside UNION ALL

Safe patterns:
- Conditional aggregation: SUM(CASE WHEN platform = 'Google' THEN spend END)
- Safe division: SAFE_DIVIDE(SUM(spend), SUM(conversions))

Performance data ({SETTINGS.blended_summary_ref}):
account_name STRING, datasource STRING, source STRING, date DATE, campaign STRING,
campaign_id STRING, adset_name STRING, adset_id STRING, ad_name STRING, ad_id STRING,
ad_group_name STRING, ad_group_id STRING, impressions BIGNUMERIC, clicks BIGNUMERIC,
spend BIGNUMERIC, conversions BIGNUMERIC, preview_url STRING, country STRING,
campaign_objective STRING, funnel_stage STRING, targeting_type STRING, product_focus STRING,
platform STRING, ctr_percent BIGNUMERIC, cpc BIGNUMERIC, conversion_rate_percent BIGNUMERIC,
cpa BIGNUMERIC

Impression share data ({SETTINGS.impression_share_ref}):
date DATE, account_name STRING, campaign STRING, campaign_type STRING, region STRING,
campaign_category STRING, funnel_stage STRING, clicks NUMERIC, spend NUMERIC,
conversions NUMERIC, budget_amount NUMERIC, search_impression_share_pct NUMERIC,
search_top_impression_share_pct NUMERIC, search_absolute_top_impression_share_pct NUMERIC,
budget_lost_impression_share_pct NUMERIC, rank_lost_impression_share_pct NUMERIC,
budget_lost_top_impression_share_pct NUMERIC, rank_lost_top_impression_share_pct NUMERIC,
budget_lost_absolute_top_impression_share_pct NUMERIC,
rank_lost_absolute_top_impression_share_pct NUMERIC, market_size_impressions NUMERIC,
search_click_share_pct NUMERIC, content_impression_share_pct NUMERIC,
content_market_size_impressions NUMERIC, avg_cpc NUMERIC, conversion_rate_pct NUMERIC,
cost_per_conversion NUMERIC, budget_utilization_pct NUMERIC,
total_lost_impression_share_pct NUMERIC, actual_impressions NUMERIC,
budget_lost_impressions NUMERIC, rank_lost_impressions NUMERIC, market_position STRING,
performance_diagnosis STRING, is_brand_campaign BOOLEAN, prev_week_impression_share NUMERIC,
wow_impression_share_change NUMERIC, estimated_budget_needed_for_lost_impressions NUMERIC,
estimated_clicks_from_rank_improvement NUMERIC

Example:
SELECT platform, SAFE_DIVIDE(SUM(spend), SUM(conversions)) as cpa, SUM(conversions) as conversions
FROM {SETTINGS.blended_summary_ref}
WHERE date >= DATE_SUB(CURRENT_DATE(), INTERVAL 30 DAY)
GROUP BY platform ORDER BY cpa LIMIT 10

Use date literals in 'YYYY-MM-DD' format. Dates are reported in Melbourne time (AEST/AEDT).

Args:
    query: A single read-only BigQuery SELECT statement
"""


@mcp.tool(description=FLEXIBLE_QUERY_GUIDE)
def flexible_query(query: str) -> str:
    logger.debug("flexible_query called")
    try:
        check = screen_query(query, SETTINGS)
        if not check.ok:
            if check.rejection.kind == "validation":
                return (
                    f"Input Validation Error: {check.rejection.reason}\n\n"
                    "Please ensure your query follows proper SQL syntax and security guidelines."
                )
            return (
                f"Security Error: {check.rejection.reason}\n\n"
                "Query rejected for security reasons. Please use the specialized template tools "
                "or modify your query to comply with security requirements."
            )

        clean_query = check.query
        response = post_query(
            clean_query,
            SETTINGS,
            "flexible query",
            extra_headers={"X-Query-Length": str(len(clean_query))},
            extra_payload={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "validation_passed": True,
            },
        )
        if not response.ok:
            return response.text

        preview_length = SETTINGS.flexible_query.preview_length
        preview = clean_query[:preview_length]
        if len(clean_query) > preview_length:
            preview += "..."
        return (
            "Flexible Query Results\n"
            "Query validation: Passed\n"
            f"Query length: {len(clean_query)} characters\n\n"
            f"--- QUERY ---\n{preview}\n\n"
            f"--- RESULTS ---\n{response.text}"
        )
    except Exception as e:
        logger.exception("flexible_query failed")
        return f"Error executing flexible query: {str(e)}"


def main():
    logger.info("Starting %s MCP server (stdio)", ads_analytics.MCP_SERVER_NAME)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
