# Request types and query assemblers for each marketing-analytics report.
from dataclasses import dataclass
from typing import Sequence, Tuple

from .query_builder import ReportQuery
from .settings import DEFAULT_COUNTRIES, DEFAULT_PLATFORMS, ConfidenceBracket, Settings
from .sql_utils import (
    array_literal,
    budget_status_case,
    change_ratio,
    comparison_date_filter,
    comparison_days,
    confidence_case,
    date_filter,
    days_from_range,
    in_clause,
    like_match_any,
    opportunity_score,
    opportunity_type_case,
    performance_rating_case,
    platform_target_case,
    quote_literal,
    safe_cpa,
    safe_ctr,
    safe_cvr,
    scale_potential_case,
    sql_number,
)
from .validation import clamp, clean


def _strings(values: Sequence[str]) -> Tuple[str, ...]:
    return tuple(v for v in clean(list(values or [])) if isinstance(v, str) and v)


def _target_case(column: str, settings: Settings) -> str:
    return platform_target_case(column, settings.platform_targets, settings.default_target_cpa)


# --- WEEKLY PERFORMANCE REPORT ---

@dataclass(frozen=True)
class WeeklyReportRequest:
    date_range: str = "7d"
    platforms: Tuple[str, ...] = DEFAULT_PLATFORMS
    countries: Tuple[str, ...] = DEFAULT_COUNTRIES

    @classmethod
    def from_params(cls, date_range="7d", platforms=DEFAULT_PLATFORMS, countries=DEFAULT_COUNTRIES):
        return cls(date_range=date_range, platforms=_strings(platforms), countries=_strings(countries))

    @property
    def days(self) -> int:
        return days_from_range(self.date_range)


def build_weekly_report_query(request: WeeklyReportRequest, settings: Settings) -> str:
    """Platform and regional overview plus the top over-target issues and scale opportunities."""
    config = settings.weekly
    target = _target_case("platform", settings)
    scale = scale_potential_case("total_spend", config.scale_multipliers, config.large_scale_multiplier)
    confidence = confidence_case("total_spend", "total_conversions", [
        ("HIGH", config.high_confidence),
        ("MEDIUM", config.medium_confidence),
        ("LOW", config.low_confidence),
    ])

    report = ReportQuery(
        "Weekly Business Intelligence Report",
        notes=[f"Period: {request.date_range} ({request.days} days)"],
    )
    report.stage("base_data", f"""
SELECT
  platform,
  country,
  campaign_objective,
  SUM(spend) as total_spend,
  SUM(conversions) as total_conversions,
  {safe_cpa('SUM(spend)', 'SUM(conversions)')} as blended_cpa,
  COUNT(DISTINCT campaign_id) as campaign_count
FROM {settings.blended_summary_ref}
WHERE
  {date_filter(request.days)}
  AND {in_clause(request.platforms, 'platform')}
  AND {in_clause(request.countries, 'country')}
  AND spend > 0
GROUP BY platform, country, campaign_objective
HAVING
  SUM(spend) >= {sql_number(config.min_spend)}
  AND SUM(conversions) >= {sql_number(config.min_conversions)}
""", comment="Segments with enough volume to be meaningful")

    report.stage("platform_summary", f"""
SELECT
  platform,
  {target} as target_cpa,
  SUM(total_spend) as platform_spend,
  SUM(total_conversions) as platform_conversions,
  {safe_cpa('SUM(total_spend)', 'SUM(total_conversions)')} as platform_cpa,
  SUM(campaign_count) as total_campaigns
FROM base_data
GROUP BY platform
""")

    report.stage("regional_summary", f"""
SELECT
  country,
  SUM(total_spend) as country_spend,
  SUM(total_conversions) as country_conversions,
  {safe_cpa('SUM(total_spend)', 'SUM(total_conversions)')} as country_cpa,
  COUNT(DISTINCT platform) as active_platforms
FROM base_data
GROUP BY country
""")

    report.stage("performance_issues", f"""
SELECT
  'OVER_TARGET' as issue_type,
  CONCAT(platform, ' - ', country, ' - ', COALESCE(campaign_objective, 'Unknown')) as description,
  blended_cpa as current_value,
  {target} as target_value,
  total_spend as financial_impact,
  (blended_cpa - {target}) * total_conversions as excess_cost,
  {confidence} as confidence
FROM base_data
WHERE blended_cpa > {target} * {sql_number(config.over_target_ratio)}
ORDER BY excess_cost DESC
LIMIT {config.max_issues}
""", comment="Segments running well above their platform CPA target")

    report.stage("opportunities", f"""
SELECT
  'STRONG_PERFORMER' as opportunity_type,
  CONCAT(platform, ' - ', country, ' - ', COALESCE(campaign_objective, 'Unknown')) as description,
  blended_cpa as current_value,
  {target} as target_value,
  total_spend as current_spend,
  {scale} as scale_potential,
  {confidence} as confidence
FROM base_data
WHERE blended_cpa <= {target} * {sql_number(config.opportunity_ratio)}
ORDER BY scale_potential DESC
LIMIT {config.max_opportunities}
""", comment="Segments comfortably under target with room to scale")

    report.section("PLATFORM_OVERVIEW", f"""
JSON_OBJECT(
  'analysis_period', '{request.days} days',
  'platforms_analyzed', {array_literal(request.platforms)},
  'countries_analyzed', {array_literal(request.countries)},
  'platform_performance', ARRAY_AGG(JSON_OBJECT(
    'platform', platform,
    'spend', ROUND(platform_spend, 2),
    'conversions', platform_conversions,
    'cpa', ROUND(platform_cpa, 2),
    'target_cpa', target_cpa,
    'vs_target', ROUND(SAFE_DIVIDE(platform_cpa - target_cpa, target_cpa) * 100, 1),
    'campaigns', total_campaigns
  ) ORDER BY platform_spend DESC)
)""", source="platform_summary")

    report.section("REGIONAL_OVERVIEW", """
JSON_OBJECT(
  'regional_performance', ARRAY_AGG(JSON_OBJECT(
    'country', country,
    'spend', ROUND(country_spend, 2),
    'conversions', country_conversions,
    'cpa', ROUND(country_cpa, 2),
    'active_platforms', active_platforms
  ) ORDER BY country_spend DESC)
)""", source="regional_summary")

    report.section("TOP_ISSUES", """
JSON_OBJECT(
  'performance_issues', ARRAY_AGG(JSON_OBJECT(
    'type', issue_type,
    'description', description,
    'current_cpa', ROUND(current_value, 2),
    'target_cpa', target_value,
    'overspend_impact', ROUND(financial_impact, 2),
    'excess_cost', ROUND(excess_cost, 2),
    'confidence', confidence
  ) ORDER BY excess_cost DESC)
)""", source="performance_issues")

    report.section("SCALE_OPPORTUNITIES", """
JSON_OBJECT(
  'opportunities', ARRAY_AGG(JSON_OBJECT(
    'type', opportunity_type,
    'description', description,
    'current_cpa', ROUND(current_value, 2),
    'target_cpa', target_value,
    'current_spend', ROUND(current_spend, 2),
    'additional_spend_potential', ROUND(scale_potential, 2),
    'confidence', confidence
  ) ORDER BY scale_potential DESC)
)""", source="opportunities")

    return report.render()


# --- CAMPAIGN ANALYSIS ---

@dataclass(frozen=True)
class CampaignAnalysisRequest:
    campaign_names: Tuple[str, ...]
    comparison_period: str = "week_over_week"
    include_creatives: bool = False

    @classmethod
    def from_params(cls, campaign_names, comparison_period="week_over_week", include_creatives=False):
        return cls(
            campaign_names=_strings(campaign_names),
            comparison_period=comparison_period,
            include_creatives=bool(include_creatives),
        )

    @property
    def windows(self) -> Tuple[int, int]:
        return comparison_days(self.comparison_period)


def build_campaign_analysis_query(request: CampaignAnalysisRequest, settings: Settings) -> str:
    config = settings.campaign
    current_days, total_days = request.windows
    table = settings.blended_summary_ref
    join = "cm.campaign_id = bd.campaign_id AND cm.platform = bd.platform AND cm.country = bd.country"

    report = ReportQuery(
        "Campaign Deep Dive Analysis",
        notes=[f"Comparison: {request.comparison_period} ({current_days} vs {total_days} days)"],
    )
    report.stage("campaign_matches", f"""
SELECT DISTINCT
  campaign_id,
  campaign,
  platform,
  country
FROM {table}
WHERE
  {date_filter(total_days)}
  AND {like_match_any(request.campaign_names, 'campaign')}
  AND spend > 0
""", comment="Campaigns whose name matches any search term")

    report.stage("current_period_data", f"""
SELECT
  cm.campaign_id,
  cm.campaign,
  cm.platform,
  cm.country,
  SUM(bd.spend) as spend_current,
  SUM(bd.conversions) as conversions_current,
  {safe_cpa('SUM(bd.spend)', 'SUM(bd.conversions)')} as cpa_current,
  {safe_ctr('SUM(bd.clicks)', 'SUM(bd.impressions)')} as ctr_current,
  {safe_cvr('SUM(bd.conversions)', 'SUM(bd.clicks)')} as cvr_current
FROM campaign_matches cm
JOIN {table} bd ON {join}
WHERE {date_filter(current_days, 'bd')}
GROUP BY cm.campaign_id, cm.campaign, cm.platform, cm.country
""")

    report.stage("comparison_period_data", f"""
SELECT
  cm.campaign_id,
  cm.platform,
  cm.country,
  SUM(bd.spend) as spend_comparison,
  SUM(bd.conversions) as conversions_comparison,
  {safe_cpa('SUM(bd.spend)', 'SUM(bd.conversions)')} as cpa_comparison,
  {safe_ctr('SUM(bd.clicks)', 'SUM(bd.impressions)')} as ctr_comparison,
  {safe_cvr('SUM(bd.conversions)', 'SUM(bd.clicks)')} as cvr_comparison
FROM campaign_matches cm
JOIN {table} bd ON {join}
WHERE {comparison_date_filter(current_days, total_days, 'bd')}
GROUP BY cm.campaign_id, cm.platform, cm.country
""")

    report.stage("campaign_performance", f"""
SELECT
  cp.*,
  comp.spend_comparison,
  comp.conversions_comparison,
  comp.cpa_comparison,
  comp.ctr_comparison,
  comp.cvr_comparison,
  ROUND(({change_ratio('cp.cpa_current', 'comp.cpa_comparison')}) * 100, 1) as cpa_change_pct,
  ROUND(({change_ratio('cp.ctr_current', 'comp.ctr_comparison')}) * 100, 1) as ctr_change_pct,
  ROUND(({change_ratio('cp.cvr_current', 'comp.cvr_comparison')}) * 100, 1) as cvr_change_pct,
  {performance_rating_case('cp.cpa_current', settings.performance)} as performance_rating
FROM current_period_data cp
LEFT JOIN comparison_period_data comp
  ON cp.campaign_id = comp.campaign_id
  AND cp.platform = comp.platform
  AND cp.country = comp.country
""", comment="Current vs comparison period with a CPA rating")

    report.stage("problem_campaigns_filtered", f"""
SELECT *
FROM campaign_performance
WHERE performance_rating = 'NEEDS_ATTENTION'
   OR (spend_current > {sql_number(config.problem_spend)} AND cpa_current > {sql_number(config.problem_cpa)})
ORDER BY spend_current DESC
LIMIT {settings.max_results_per_section}
""")

    report.stage("top_performers_filtered", f"""
SELECT *
FROM campaign_performance
WHERE performance_rating IN ('EXCELLENT', 'GOOD')
  AND spend_current >= {sql_number(config.min_spend_for_top)}
ORDER BY spend_current DESC
LIMIT {config.max_top_performers}
""")

    if request.include_creatives:
        creative_cpa = safe_cpa('SUM(bd.spend)', 'SUM(bd.conversions)')
        report.stage("creative_filtered", f"""
SELECT
  bd.ad_name,
  bd.campaign_id,
  SUM(bd.spend) as creative_spend,
  SUM(bd.conversions) as creative_conversions,
  {creative_cpa} as creative_cpa
FROM campaign_matches cm
JOIN {table} bd ON {join}
WHERE {date_filter(current_days, 'bd')}
  AND bd.platform = 'Meta'
  AND bd.ad_name IS NOT NULL
GROUP BY bd.ad_name, bd.campaign_id
HAVING SUM(bd.spend) >= {sql_number(config.creative_min_spend)}
  AND SUM(bd.conversions) >= {sql_number(config.creative_min_conversions)}
ORDER BY creative_cpa ASC
LIMIT {config.max_creatives}
""", comment="Meta creatives inside the matched campaigns")

    platforms = list(settings.platform_targets)
    platform_counts = ",\n    ".join(
        f"'{p.lower()}', COUNT(CASE WHEN platform = {quote_literal(p)} THEN 1 END)" for p in platforms
    )
    report.section("EXECUTIVE_SUMMARY", f"""
JSON_OBJECT(
  'analysis_type', {quote_literal(request.comparison_period)},
  'search_terms', {array_literal(request.campaign_names)},
  'period_days', {current_days},
  'total_campaigns', COUNT(*),
  'total_spend', ROUND(SUM(spend_current), 2),
  'total_conversions', SUM(conversions_current),
  'blended_cpa', ROUND({safe_cpa('SUM(spend_current)', 'SUM(conversions_current)')}, 2),
  'performance_breakdown', JSON_OBJECT(
    'excellent', COUNT(CASE WHEN performance_rating = 'EXCELLENT' THEN 1 END),
    'good', COUNT(CASE WHEN performance_rating = 'GOOD' THEN 1 END),
    'acceptable', COUNT(CASE WHEN performance_rating = 'ACCEPTABLE' THEN 1 END),
    'needs_attention', COUNT(CASE WHEN performance_rating = 'NEEDS_ATTENTION' THEN 1 END)
  ),
  'platform_breakdown', JSON_OBJECT(
    {platform_counts},
    'other', COUNT(CASE WHEN {in_clause(platforms, 'platform')} THEN NULL ELSE 1 END)
  )
)""", source="campaign_performance")

    report.section("PROBLEM_CAMPAIGNS", """
JSON_OBJECT(
  'campaigns_needing_attention', ARRAY_AGG(JSON_OBJECT(
    'campaign_name', SUBSTR(campaign, 1, 80),
    'platform', platform,
    'country', country,
    'current_spend', ROUND(spend_current, 2),
    'current_conversions', conversions_current,
    'current_cpa', ROUND(cpa_current, 2),
    'comparison_cpa', ROUND(COALESCE(cpa_comparison, 0), 2),
    'cpa_change_pct', COALESCE(cpa_change_pct, 0),
    'performance_rating', performance_rating
  ) ORDER BY spend_current DESC)
)""", source="problem_campaigns_filtered", comment="High spend, poor performance")

    report.section("TOP_PERFORMERS", """
JSON_OBJECT(
  'excellent_campaigns', ARRAY_AGG(JSON_OBJECT(
    'campaign_name', SUBSTR(campaign, 1, 80),
    'platform', platform,
    'country', country,
    'spend', ROUND(spend_current, 2),
    'conversions', conversions_current,
    'cpa', ROUND(cpa_current, 2),
    'cpa_change_pct', COALESCE(cpa_change_pct, 0)
  ) ORDER BY spend_current DESC)
)""", source="top_performers_filtered", comment="Scale opportunities")

    if request.include_creatives:
        report.section("CREATIVE_ANALYSIS", """
JSON_OBJECT(
  'note', 'Meta creative performance analysis included',
  'top_creatives', ARRAY_AGG(JSON_OBJECT(
    'ad_name', SUBSTR(ad_name, 1, 100),
    'creative_concept', SUBSTR(SPLIT(ad_name, ' // ')[SAFE_OFFSET(0)], 1, 50),
    'spend', ROUND(creative_spend, 2),
    'conversions', creative_conversions,
    'cpa', ROUND(creative_cpa, 2)
  ) ORDER BY creative_cpa ASC)
)""", source="creative_filtered")

    return report.render()


# --- CREATIVE ANALYSIS ---

CREATIVE_SORT_ORDERS = {
    "cpa": "cpa ASC",
    "spend": "total_spend DESC",
    "conversions": "total_conversions DESC",
}


@dataclass(frozen=True)
class CreativeAnalysisRequest:
    date_range: str = "14d"
    countries: Tuple[str, ...] = DEFAULT_COUNTRIES
    min_spend: float = 300
    sort_by: str = "cpa"

    @classmethod
    def from_params(cls, settings: Settings, date_range="14d", countries=DEFAULT_COUNTRIES,
                    min_spend=None, sort_by="cpa"):
        config = settings.creative
        if min_spend is None:
            min_spend = config.default_min_spend
        return cls(
            date_range=date_range,
            countries=_strings(countries),
            min_spend=clamp(min_spend, *config.min_spend_range),
            sort_by=sort_by if sort_by in CREATIVE_SORT_ORDERS else "cpa",
        )

    @property
    def days(self) -> int:
        return days_from_range(self.date_range)


def _ad_name_part(index: int) -> str:
    return f"TRIM(SPLIT(bd.ad_name, ' // ')[SAFE_OFFSET({index})])"


def build_creative_analysis_query(request: CreativeAnalysisRequest, settings: Settings) -> str:
    """
    Meta creative analysis. Ad names follow `concept // variant // format // creator`,
    so concepts, formats and creators are parsed from the name.
    """
    config = settings.creative
    min_spend = sql_number(request.min_spend)
    ad_confidence = confidence_case("total_spend", "total_conversions", [
        ("HIGH", ConfidenceBracket(request.min_spend * config.high_confidence_multiplier, config.min_conversions)),
        ("MEDIUM", ConfidenceBracket(request.min_spend * config.medium_confidence_multiplier, config.min_conversions)),
    ])

    report = ReportQuery(
        "Meta Creative Performance Analysis",
        notes=[f"Period: {request.date_range} ({request.days} days), sorted by {request.sort_by}"],
    )
    report.stage("creative_data", f"""
SELECT
  bd.ad_id,
  bd.ad_name,
  bd.country,
  COALESCE({_ad_name_part(0)}, 'Unknown_Concept') as creative_concept,
  {_ad_name_part(2)} as creative_format,
  {_ad_name_part(3)} as creative_creator,
  SUM(bd.spend) as total_spend,
  SUM(bd.conversions) as total_conversions,
  {safe_cpa('SUM(bd.spend)', 'SUM(bd.conversions)')} as cpa,
  {safe_ctr('SUM(bd.clicks)', 'SUM(bd.impressions)')} as ctr,
  {safe_cvr('SUM(bd.conversions)', 'SUM(bd.clicks)')} as cvr
FROM {settings.blended_summary_ref} bd
WHERE
  {date_filter(request.days, 'bd')}
  AND bd.platform = 'Meta'
  AND {in_clause(request.countries, 'bd.country')}
  AND bd.spend > 0
GROUP BY bd.ad_id, bd.ad_name, bd.country
HAVING
  SUM(bd.spend) >= {min_spend}
  AND SUM(bd.conversions) >= {sql_number(config.min_conversions)}
""")

    concept_cpa = safe_cpa('SUM(total_spend)', 'SUM(total_conversions)')
    report.stage("concept_summary", f"""
SELECT
  creative_concept,
  COUNT(*) as ad_count,
  SUM(total_spend) as concept_spend,
  SUM(total_conversions) as concept_conversions,
  {concept_cpa} as concept_cpa,
  AVG(ctr) as avg_ctr,
  AVG(cvr) as avg_cvr,
  {performance_rating_case(concept_cpa, settings.performance)} as performance_tier
FROM creative_data
GROUP BY creative_concept
HAVING SUM(total_spend) >= {min_spend} * {sql_number(config.concept_spend_multiplier)}
""", comment="Concepts need more data than single ads")

    report.stage("performance_distribution", """
SELECT
  performance_tier,
  COUNT(*) as concept_count,
  SUM(concept_spend) as tier_spend,
  AVG(concept_cpa) as avg_tier_cpa
FROM concept_summary
GROUP BY performance_tier
""")

    report.stage("top_concepts", f"""
SELECT *
FROM concept_summary
ORDER BY concept_cpa ASC
LIMIT {config.max_concepts}
""")

    report.stage("top_ads", f"""
SELECT
  *,
  {ad_confidence} as confidence,
  ROW_NUMBER() OVER (ORDER BY {CREATIVE_SORT_ORDERS[request.sort_by]}) as performance_rank
FROM creative_data
ORDER BY performance_rank
LIMIT {config.max_ads}
""")

    report.section("CREATIVE_OVERVIEW", f"""
JSON_OBJECT(
  'analysis_period', '{request.days} days',
  'countries_analyzed', {array_literal(request.countries)},
  'min_spend_threshold', {min_spend},
  'sort_criteria', {quote_literal(request.sort_by)},
  'total_creatives_analyzed', (SELECT COUNT(*) FROM creative_data),
  'total_concepts', (SELECT COUNT(*) FROM concept_summary),
  'performance_distribution', ARRAY_AGG(JSON_OBJECT(
    'tier', performance_tier,
    'concept_count', concept_count,
    'total_spend', ROUND(tier_spend, 2),
    'avg_cpa', ROUND(avg_tier_cpa, 2)
  ) ORDER BY avg_tier_cpa ASC)
)""", source="performance_distribution")

    report.section("TOP_CONCEPTS", """
JSON_OBJECT(
  'best_performing_concepts', ARRAY_AGG(JSON_OBJECT(
    'concept', creative_concept,
    'ad_count', ad_count,
    'total_spend', ROUND(concept_spend, 2),
    'conversions', concept_conversions,
    'cpa', ROUND(concept_cpa, 2),
    'avg_ctr', ROUND(avg_ctr, 2),
    'avg_cvr', ROUND(avg_cvr, 2),
    'performance_tier', performance_tier
  ) ORDER BY concept_cpa ASC)
)""", source="top_concepts")

    report.section("TOP_INDIVIDUAL_ADS", """
JSON_OBJECT(
  'top_performers', ARRAY_AGG(JSON_OBJECT(
    'ad_name', ad_name,
    'concept', creative_concept,
    'format', creative_format,
    'creator', creative_creator,
    'country', country,
    'spend', ROUND(total_spend, 2),
    'conversions', total_conversions,
    'cpa', ROUND(cpa, 2),
    'ctr', ROUND(ctr, 2),
    'cvr', ROUND(cvr, 2),
    'confidence', confidence,
    'rank', performance_rank
  ) ORDER BY performance_rank)
)""", source="top_ads")

    return report.render()


# --- REGIONAL COMPARISON ---

@dataclass(frozen=True)
class RegionalComparisonRequest:
    platforms: Tuple[str, ...] = ("Meta", "Google")
    comparison_type: str = "country"
    date_range: str = "14d"
    include_trends: bool = True

    @classmethod
    def from_params(cls, platforms=("Meta", "Google"), comparison_type="country", date_range="14d",
                    include_trends=True):
        return cls(
            platforms=_strings(platforms),
            comparison_type=comparison_type,
            date_range=date_range,
            include_trends=bool(include_trends),
        )

    @property
    def days(self) -> int:
        return days_from_range(self.date_range)


def build_regional_comparison_query(request: RegionalComparisonRequest, settings: Settings) -> str:
    config = settings.regional
    days = request.days
    table = settings.blended_summary_ref
    platform_filter = in_clause(request.platforms, "platform")
    trends = request.include_trends

    report = ReportQuery(
        "Regional Performance Comparison",
        notes=[f"Comparison: {request.comparison_type}, period {request.date_range} ({days} days)"],
    )
    report.stage("current_period", f"""
SELECT
  platform,
  country,
  campaign_objective,
  SUM(spend) as spend_current,
  SUM(conversions) as conversions_current,
  {safe_cpa('SUM(spend)', 'SUM(conversions)')} as cpa_current,
  {safe_ctr('SUM(clicks)', 'SUM(impressions)')} as ctr_current,
  COUNT(DISTINCT campaign_id) as campaign_count_current
FROM {table}
WHERE
  {date_filter(days)}
  AND {platform_filter}
  AND spend > 0
GROUP BY platform, country, campaign_objective
""")

    if trends:
        report.stage("previous_period", f"""
SELECT
  platform,
  country,
  campaign_objective,
  SUM(spend) as spend_previous,
  SUM(conversions) as conversions_previous,
  {safe_cpa('SUM(spend)', 'SUM(conversions)')} as cpa_previous
FROM {table}
WHERE
  {comparison_date_filter(days, days * 2)}
  AND {platform_filter}
  AND spend > 0
GROUP BY platform, country, campaign_objective
""", comment="Equal-length window immediately before the current one")
        trend_columns = f"""pp.spend_previous,
  pp.conversions_previous,
  pp.cpa_previous,
  ROUND(({change_ratio('cp.cpa_current', 'pp.cpa_previous')}) * 100, 1) as cpa_change_pct,"""
        trend_join = """LEFT JOIN previous_period pp
  ON cp.platform = pp.platform
  AND cp.country = pp.country
  AND cp.campaign_objective = pp.campaign_objective"""
    else:
        trend_columns = """CAST(NULL AS NUMERIC) as spend_previous,
  CAST(NULL AS NUMERIC) as conversions_previous,
  CAST(NULL AS FLOAT64) as cpa_previous,
  CAST(NULL AS FLOAT64) as cpa_change_pct,"""
        trend_join = ""

    report.stage("regional_performance", f"""
SELECT
  cp.platform,
  cp.country,
  cp.campaign_objective,
  cp.spend_current,
  cp.conversions_current,
  cp.cpa_current,
  cp.ctr_current,
  cp.campaign_count_current,
  {trend_columns}
  {performance_rating_case('cp.cpa_current', settings.performance)} as performance_rating
FROM current_period cp
{trend_join}
WHERE cp.spend_current >= {sql_number(config.min_segment_spend)}
""")

    report.stage("country_summary", f"""
SELECT
  country,
  SUM(spend_current) as total_spend,
  SUM(conversions_current) as total_conversions,
  {safe_cpa('SUM(spend_current)', 'SUM(conversions_current)')} as blended_cpa,
  AVG(ctr_current) as avg_ctr,
  SUM(campaign_count_current) as total_campaigns,
  COUNT(DISTINCT platform) as active_platforms,
  AVG(cpa_change_pct) as avg_cpa_change,
  COUNT(CASE WHEN performance_rating IN ('EXCELLENT', 'GOOD') THEN 1 END) as strong_segments,
  COUNT(CASE WHEN performance_rating = 'NEEDS_ATTENTION' THEN 1 END) as weak_segments
FROM regional_performance
GROUP BY country
HAVING SUM(spend_current) >= {sql_number(config.min_country_spend)}
""")

    report.stage("country_ranked", f"""
SELECT
  *,
  ROW_NUMBER() OVER (ORDER BY blended_cpa ASC) as efficiency_rank
FROM country_summary
ORDER BY total_spend DESC
LIMIT {settings.max_results_per_section}
""", comment="Rank computed before aggregation into the output section")

    report.stage("platform_country_summary", f"""
SELECT
  platform,
  country,
  SUM(spend_current) as platform_country_spend,
  SUM(conversions_current) as platform_country_conversions,
  {safe_cpa('SUM(spend_current)', 'SUM(conversions_current)')} as platform_country_cpa,
  AVG(ctr_current) as platform_country_ctr,
  AVG(cpa_change_pct) as platform_country_change,
  COUNT(*) as segment_count
FROM regional_performance
GROUP BY platform, country
HAVING SUM(spend_current) >= {sql_number(config.min_platform_country_spend)}
ORDER BY platform_country_spend DESC
LIMIT {settings.max_results_per_section}
""")

    if request.comparison_type == "platform_by_country":
        report.section("PLATFORM_BY_COUNTRY", f"""
JSON_OBJECT(
  'analysis_type', {quote_literal(request.comparison_type)},
  'analysis_note', 'Platform performance breakdown by country',
  'platforms_analyzed', {array_literal(request.platforms)},
  'period', '{request.date_range} ({days} days)',
  'trend_analysis_included', {str(trends).upper()},
  'platform_country_matrix', ARRAY_AGG(JSON_OBJECT(
    'platform', platform,
    'country', country,
    'spend', ROUND(platform_country_spend, 2),
    'conversions', platform_country_conversions,
    'cpa', ROUND(platform_country_cpa, 2),
    'ctr', ROUND(platform_country_ctr, 2),
    'cpa_change_pct', ROUND(COALESCE(platform_country_change, 0), 1),
    'segments_analyzed', segment_count
  ) ORDER BY platform, platform_country_cpa ASC)
)""", source="platform_country_summary")
    else:
        report.section("COUNTRY_COMPARISON", f"""
JSON_OBJECT(
  'analysis_type', {quote_literal(request.comparison_type)},
  'platforms_analyzed', {array_literal(request.platforms)},
  'period', '{request.date_range} ({days} days)',
  'trend_analysis_included', {str(trends).upper()},
  'country_performance', ARRAY_AGG(JSON_OBJECT(
    'country', country,
    'total_spend', ROUND(total_spend, 2),
    'total_conversions', total_conversions,
    'blended_cpa', ROUND(blended_cpa, 2),
    'avg_ctr', ROUND(avg_ctr, 2),
    'total_campaigns', total_campaigns,
    'active_platforms', active_platforms,
    'avg_cpa_change_pct', ROUND(COALESCE(avg_cpa_change, 0), 1),
    'strong_segments', strong_segments,
    'weak_segments', weak_segments,
    'efficiency_rank', efficiency_rank
  ) ORDER BY total_spend DESC)
)""", source="country_ranked")

    if trends:
        most_improved = (
            "(SELECT country FROM country_summary WHERE avg_cpa_change IS NOT NULL "
            "ORDER BY avg_cpa_change ASC LIMIT 1)"
        )
    else:
        most_improved = "'Trend analysis disabled'"

    report.section("REGIONAL_INSIGHTS", f"""
JSON_OBJECT(
  'key_findings', JSON_OBJECT(
    'best_performing_country', (SELECT country FROM country_summary ORDER BY blended_cpa ASC LIMIT 1),
    'highest_spend_country', (SELECT country FROM country_summary ORDER BY total_spend DESC LIMIT 1),
    'most_improved', {most_improved},
    'needs_attention', ARRAY_AGG(
      CASE WHEN weak_segments >= {config.weak_segment_count} THEN country END IGNORE NULLS
    ),
    'total_countries_analyzed', COUNT(*)
  )
)""", source="country_summary")

    return report.render()


# --- ANOMALY DETECTION ---

@dataclass(frozen=True)
class AnomalyDetectionRequest:
    sensitivity: str = "medium"
    platforms: Tuple[str, ...] = DEFAULT_PLATFORMS
    countries: Tuple[str, ...] = DEFAULT_COUNTRIES
    min_impact_threshold: float = 1000

    @classmethod
    def from_params(cls, settings: Settings, sensitivity="medium", platforms=DEFAULT_PLATFORMS,
                    countries=DEFAULT_COUNTRIES, min_impact_threshold=1000):
        if sensitivity not in settings.anomaly.sensitivity_levels:
            sensitivity = "medium"
        return cls(
            sensitivity=sensitivity,
            platforms=_strings(platforms),
            countries=_strings(countries),
            min_impact_threshold=clamp(min_impact_threshold, *settings.anomaly.impact_range),
        )


def build_anomaly_detection_query(request: AnomalyDetectionRequest, settings: Settings) -> str:
    """
    Flags campaigns whose CPA, CTR or CVR moved by at least the sensitivity
    threshold (spend by twice that), or whose excess cost over target passes
    the floor. Confidence comes from spend and conversion volume brackets.
    """
    config = settings.anomaly
    profile = config.sensitivity_levels[request.sensitivity]
    threshold = sql_number(profile.change_threshold)
    spend_threshold = sql_number(profile.change_threshold * 2)
    min_impact = sql_number(request.min_impact_threshold)
    table = settings.blended_summary_ref
    platform_filter = in_clause(request.platforms, "platform")
    country_filter = in_clause(request.countries, "country")
    target = _target_case("cp.platform", settings)
    confidence = confidence_case("cp.spend_current", "cp.conversions_current", [
        ("HIGH", ConfidenceBracket(profile.min_spend * 4, profile.min_conversions * 3)),
        ("MEDIUM", ConfidenceBracket(profile.min_spend * 2, profile.min_conversions * 2)),
        ("LOW", ConfidenceBracket(profile.min_spend, profile.min_conversions)),
    ])
    campaign_score = (
        "CASE WHEN excess_cost > 0 THEN excess_cost "
        "ELSE ABS(COALESCE(cpa_change_pct, 0)) * spend_current END"
    )
    regional_score = (
        "CASE WHEN total_excess_cost > 0 THEN total_excess_cost "
        "ELSE ABS(COALESCE(regional_cpa_change, 0)) * total_spend_current END"
    )

    report = ReportQuery(
        "Anomaly Detection Analysis",
        notes=[f"Sensitivity: {request.sensitivity} ({sql_number(profile.change_threshold * 100)}% threshold)"],
    )

    def period_stage(suffix: str, window: str) -> str:
        return f"""
SELECT
  platform,
  country,
  campaign_objective,
  campaign_id,
  campaign,
  SUM(spend) as spend_{suffix},
  SUM(conversions) as conversions_{suffix},
  {safe_cpa('SUM(spend)', 'SUM(conversions)')} as cpa_{suffix},
  {safe_ctr('SUM(clicks)', 'SUM(impressions)')} as ctr_{suffix},
  {safe_cvr('SUM(conversions)', 'SUM(clicks)')} as cvr_{suffix},
  COUNT(DISTINCT date) as active_days_{suffix}
FROM {table}
WHERE
  {window}
  AND {platform_filter}
  AND {country_filter}
  AND spend > 0
GROUP BY platform, country, campaign_objective, campaign_id, campaign
"""

    report.stage("current_period", period_stage("current", date_filter(config.current_days)),
                 comment=f"Last {config.current_days} days")
    report.stage("comparison_period",
                 period_stage("comparison", comparison_date_filter(config.current_days, config.comparison_days)),
                 comment=f"{config.current_days}-{config.comparison_days} days ago")

    report.stage("campaign_anomalies", f"""
SELECT
  cp.platform,
  cp.country,
  cp.campaign_objective,
  cp.campaign_id,
  cp.campaign,
  cp.spend_current,
  cp.conversions_current,
  cp.cpa_current,
  cp.ctr_current,
  cp.cvr_current,
  comp.spend_comparison,
  comp.conversions_comparison,
  comp.cpa_comparison,
  comp.ctr_comparison,
  comp.cvr_comparison,
  {target} as target_cpa,
  {change_ratio('cp.cpa_current', 'comp.cpa_comparison')} as cpa_change_pct,
  {change_ratio('cp.ctr_current', 'comp.ctr_comparison')} as ctr_change_pct,
  {change_ratio('cp.cvr_current', 'comp.cvr_comparison')} as cvr_change_pct,
  {change_ratio('cp.spend_current', 'comp.spend_comparison')} as spend_change_pct,
  {confidence} as confidence_level,
  CASE
    WHEN cp.cpa_current > {target} THEN (cp.cpa_current - {target}) * cp.conversions_current
    ELSE 0
  END as excess_cost
FROM current_period cp
LEFT JOIN comparison_period comp
  ON cp.campaign_id = comp.campaign_id
  AND cp.platform = comp.platform
  AND cp.country = comp.country
WHERE cp.spend_current >= {min_impact}
""", comment="Campaign-level deltas, confidence and cost over target")

    regional_cpa_current = safe_cpa('SUM(spend_current)', 'SUM(conversions_current)')
    regional_cpa_comparison = safe_cpa('SUM(spend_comparison)', 'SUM(conversions_comparison)')
    report.stage("regional_anomalies", f"""
SELECT
  platform,
  country,
  SUM(spend_current) as total_spend_current,
  SUM(conversions_current) as total_conversions_current,
  {regional_cpa_current} as blended_cpa_current,
  SUM(spend_comparison) as total_spend_comparison,
  SUM(conversions_comparison) as total_conversions_comparison,
  {regional_cpa_comparison} as blended_cpa_comparison,
  {change_ratio(regional_cpa_current, regional_cpa_comparison)} as regional_cpa_change,
  COUNT(*) as campaign_count,
  COUNT(CASE WHEN confidence_level = 'HIGH' THEN 1 END) as high_confidence_campaigns,
  COUNT(CASE WHEN ABS(COALESCE(cpa_change_pct, 0)) >= {threshold} THEN 1 END) as volatile_campaigns,
  SUM(excess_cost) as total_excess_cost
FROM campaign_anomalies
WHERE confidence_level != 'INSUFFICIENT'
GROUP BY platform, country
""")

    report.stage("significant_campaign_anomalies", f"""
SELECT *
FROM campaign_anomalies
WHERE confidence_level != 'INSUFFICIENT'
  AND (
    ABS(COALESCE(cpa_change_pct, 0)) >= {threshold}
    OR ABS(COALESCE(ctr_change_pct, 0)) >= {threshold}
    OR ABS(COALESCE(cvr_change_pct, 0)) >= {threshold}
    OR ABS(COALESCE(spend_change_pct, 0)) >= {spend_threshold}
    OR excess_cost >= {sql_number(config.min_excess_cost)}
  )
ORDER BY {campaign_score} DESC
LIMIT {config.max_campaign_anomalies}
""")

    report.stage("significant_regional_anomalies", f"""
SELECT *
FROM regional_anomalies
WHERE total_spend_current >= {min_impact}
  AND (
    ABS(COALESCE(regional_cpa_change, 0)) >= {threshold}
    OR volatile_campaigns >= {config.min_volatile_campaigns}
    OR total_excess_cost >= {sql_number(config.min_regional_excess_cost)}
  )
ORDER BY {regional_score} DESC
LIMIT {config.max_regional_anomalies}
""")

    report.section("ANOMALY_SUMMARY", f"""
JSON_OBJECT(
  'detection_sensitivity', {quote_literal(request.sensitivity)},
  'change_threshold_pct', {sql_number(profile.change_threshold * 100)},
  'platforms_analyzed', {array_literal(request.platforms)},
  'countries_analyzed', {array_literal(request.countries)},
  'min_impact_threshold', {min_impact},
  'total_campaign_anomalies', (SELECT COUNT(*) FROM significant_campaign_anomalies),
  'total_regional_anomalies', (SELECT COUNT(*) FROM significant_regional_anomalies),
  'total_excess_cost', ROUND((SELECT SUM(excess_cost) FROM significant_campaign_anomalies), 2)
)""")

    report.section("CAMPAIGN_ANOMALIES", f"""
JSON_OBJECT(
  'significant_campaign_changes', ARRAY_AGG(JSON_OBJECT(
    'campaign_name', SUBSTR(campaign, 1, 80),
    'platform', platform,
    'country', country,
    'campaign_objective', campaign_objective,
    'current_spend', ROUND(spend_current, 2),
    'current_conversions', conversions_current,
    'current_cpa', ROUND(cpa_current, 2),
    'target_cpa', target_cpa,
    'cpa_change_pct', ROUND(COALESCE(cpa_change_pct, 0) * 100, 1),
    'ctr_change_pct', ROUND(COALESCE(ctr_change_pct, 0) * 100, 1),
    'cvr_change_pct', ROUND(COALESCE(cvr_change_pct, 0) * 100, 1),
    'spend_change_pct', ROUND(COALESCE(spend_change_pct, 0) * 100, 1),
    'confidence_level', confidence_level,
    'excess_cost', ROUND(excess_cost, 2),
    'anomaly_type', CASE
      WHEN ABS(COALESCE(cpa_change_pct, 0)) >= {threshold} THEN 'CPA_SHIFT'
      WHEN ABS(COALESCE(ctr_change_pct, 0)) >= {threshold} THEN 'CTR_SHIFT'
      WHEN ABS(COALESCE(cvr_change_pct, 0)) >= {threshold} THEN 'CVR_SHIFT'
      WHEN ABS(COALESCE(spend_change_pct, 0)) >= {spend_threshold} THEN 'SPEND_SHIFT'
      WHEN excess_cost >= {sql_number(config.min_excess_cost)} THEN 'COST_OVERRUN'
      ELSE 'MULTIPLE_SIGNALS'
    END
  ) ORDER BY {campaign_score} DESC)
)""", source="significant_campaign_anomalies")

    report.section("REGIONAL_ANOMALIES", f"""
JSON_OBJECT(
  'regional_pattern_changes', ARRAY_AGG(JSON_OBJECT(
    'platform', platform,
    'country', country,
    'total_spend_current', ROUND(total_spend_current, 2),
    'total_conversions_current', total_conversions_current,
    'blended_cpa_current', ROUND(blended_cpa_current, 2),
    'blended_cpa_comparison', ROUND(COALESCE(blended_cpa_comparison, 0), 2),
    'regional_cpa_change_pct', ROUND(COALESCE(regional_cpa_change, 0) * 100, 1),
    'campaign_count', campaign_count,
    'high_confidence_campaigns', high_confidence_campaigns,
    'volatile_campaigns', volatile_campaigns,
    'total_excess_cost', ROUND(total_excess_cost, 2),
    'pattern_type', CASE
      WHEN volatile_campaigns >= campaign_count * 0.5 THEN 'WIDESPREAD_VOLATILITY'
      WHEN ABS(COALESCE(regional_cpa_change, 0)) >= {sql_number(profile.change_threshold * 1.5)} THEN 'MAJOR_SHIFT'
      WHEN total_excess_cost >= {sql_number(config.high_regional_excess_cost)} THEN 'HIGH_COST_IMPACT'
      ELSE 'NOTABLE_CHANGE'
    END
  ) ORDER BY {regional_score} DESC)
)""", source="significant_regional_anomalies")

    return report.render()


# --- IMPRESSION SHARE ANALYSIS ---

IMPRESSION_SHARE_ANALYSIS_TYPES = ("overview", "budget_opportunities", "rank_opportunities", "regional_comparison")


@dataclass(frozen=True)
class ImpressionShareRequest:
    analysis_type: str = "overview"
    date_range: str = "14d"
    regions: Tuple[str, ...] = DEFAULT_COUNTRIES
    include_brand_campaigns: bool = True
    min_spend_threshold: float = 500

    @classmethod
    def from_params(cls, settings: Settings, analysis_type="overview", date_range="14d",
                    regions=DEFAULT_COUNTRIES, include_brand_campaigns=True, min_spend_threshold=500):
        if analysis_type not in IMPRESSION_SHARE_ANALYSIS_TYPES:
            analysis_type = "overview"
        return cls(
            analysis_type=analysis_type,
            date_range=date_range,
            regions=_strings(regions),
            include_brand_campaigns=bool(include_brand_campaigns),
            min_spend_threshold=clamp(min_spend_threshold, *settings.impression_share.min_spend_range),
        )

    @property
    def days(self) -> int:
        return days_from_range(self.date_range)


def _weighted(metric: str, weight: str) -> str:
    return f"SAFE_DIVIDE(SUM({metric} * {weight}), SUM({weight}))"


def build_impression_share_query(request: ImpressionShareRequest, settings: Settings) -> str:
    """Google Ads search visibility: budget- and rank-lost impression share opportunities."""
    config = settings.impression_share
    kind = request.analysis_type
    min_spend = sql_number(request.min_spend_threshold)
    actionable = sql_number(config.actionable_lost_share)
    brand_filter = "1=1" if request.include_brand_campaigns else "COALESCE(is_brand_campaign, FALSE) = FALSE"

    # (filter, rank metric, row cap) per analysis focus
    focus = {
        "budget_opportunities": (
            f"weighted_budget_lost >= {actionable} AND budget_status IN ('CONSTRAINED', 'BALANCED')",
            "additional_budget_needed",
            config.max_budget_constrained,
        ),
        "rank_opportunities": (
            f"weighted_rank_lost >= {actionable} AND opportunity_type IN ('RANK_OPPORTUNITY', 'RANK_IMPROVEMENT')",
            "potential_clicks_from_rank",
            config.max_rank_opportunities,
        ),
        "regional_comparison": (
            f"total_spend >= {min_spend} * 2",
            "opportunity_score",
            config.max_regional_comparisons,
        ),
        "overview": (
            f"total_lost_share >= {sql_number(config.actionable_lost_share / 2)}",
            "opportunity_score",
            config.max_opportunity_campaigns,
        ),
    }
    focus_filter, rank_metric, row_cap = focus[kind]
    high_opportunity = (
        f"total_lost_share >= {sql_number(config.high_budget_lost)} "
        f"OR total_lost_share >= {sql_number(config.high_rank_lost)}"
    )

    report = ReportQuery(
        f"Google Ads Impression Share Analysis - {kind.upper()}",
        notes=[f"Period: {request.date_range} ({request.days} days)"],
    )
    report.stage("base_impression_data", f"""
SELECT
  region,
  campaign,
  campaign_type,
  campaign_category,
  funnel_stage,
  is_brand_campaign,
  SUM(spend) as total_spend,
  SUM(conversions) as total_conversions,
  SUM(clicks) as total_clicks,
  SUM(actual_impressions) as total_impressions,
  SUM(market_size_impressions) as total_market_size,
  {safe_cpa('SUM(spend)', 'SUM(conversions)')} as blended_cpa,
  {_weighted('search_impression_share_pct', 'actual_impressions')} as weighted_impression_share,
  {_weighted('search_top_impression_share_pct', 'actual_impressions')} as weighted_top_impression_share,
  {_weighted('search_absolute_top_impression_share_pct', 'actual_impressions')} as weighted_absolute_top_share,
  {_weighted('budget_lost_impression_share_pct', 'market_size_impressions')} as weighted_budget_lost,
  {_weighted('rank_lost_impression_share_pct', 'market_size_impressions')} as weighted_rank_lost,
  AVG(budget_utilization_pct) as avg_budget_utilization,
  SUM(estimated_budget_needed_for_lost_impressions) as additional_budget_needed,
  SUM(estimated_clicks_from_rank_improvement) as potential_clicks_from_rank,
  AVG(wow_impression_share_change) as avg_wow_change,
  APPROX_TOP_COUNT(market_position, 1)[OFFSET(0)].value as primary_market_position,
  APPROX_TOP_COUNT(performance_diagnosis, 1)[OFFSET(0)].value as primary_diagnosis
FROM {settings.impression_share_ref}
WHERE
  {date_filter(request.days)}
  AND {in_clause(request.regions, 'region')}
  AND {brand_filter}
  AND spend > 0
  AND actual_impressions > {sql_number(config.min_impressions)}
GROUP BY region, campaign, campaign_type, campaign_category, funnel_stage, is_brand_campaign
HAVING
  SUM(spend) >= {min_spend}
  AND SUM(clicks) >= {sql_number(config.min_clicks)}
""", comment="Impression-weighted share and market-weighted lost share per campaign")

    report.stage("performance_classified", f"""
SELECT
  *,
  {opportunity_type_case('weighted_budget_lost', 'weighted_rank_lost', config)} as opportunity_type,
  {budget_status_case('avg_budget_utilization', config)} as budget_status,
  ROUND({opportunity_score('weighted_budget_lost', 'weighted_rank_lost', 'total_market_size', config)}, 1) as opportunity_score,
  COALESCE(weighted_budget_lost, 0) + COALESCE(weighted_rank_lost, 0) as total_lost_share,
  CASE
    WHEN total_market_size > 0 THEN ROUND(total_impressions / total_market_size * 100, 2)
    ELSE NULL
  END as calculated_market_share
FROM base_impression_data
""")

    report.stage("filtered_opportunities", f"""
SELECT
  *,
  ROW_NUMBER() OVER (ORDER BY {rank_metric} DESC) as analysis_rank
FROM performance_classified
WHERE {focus_filter}
""")

    report.stage("limited_opportunities", f"""
SELECT *
FROM filtered_opportunities
WHERE analysis_rank <= {row_cap}
""")

    report.stage("regional_summary", f"""
SELECT
  region,
  COUNT(*) as campaign_count,
  SUM(total_spend) as region_spend,
  SUM(total_conversions) as region_conversions,
  {safe_cpa('SUM(total_spend)', 'SUM(total_conversions)')} as region_cpa,
  {_weighted('weighted_impression_share', 'total_impressions')} as region_impression_share,
  {_weighted('weighted_budget_lost', 'total_market_size')} as region_budget_lost,
  {_weighted('weighted_rank_lost', 'total_market_size')} as region_rank_lost,
  SUM(additional_budget_needed) as total_additional_budget,
  SUM(potential_clicks_from_rank) as total_potential_clicks,
  AVG(opportunity_score) as avg_opportunity_score,
  COUNT(CASE WHEN opportunity_type = 'OPTIMIZED' THEN 1 END) as optimized_campaigns,
  COUNT(CASE WHEN {high_opportunity} THEN 1 END) as high_opportunity_campaigns
FROM limited_opportunities
GROUP BY region
""")

    report.stage("overall_summary", f"""
SELECT
  COUNT(*) as total_campaigns_analyzed,
  SUM(total_spend) as total_spend_analyzed,
  SUM(total_conversions) as total_conversions_analyzed,
  {safe_cpa('SUM(total_spend)', 'SUM(total_conversions)')} as overall_cpa,
  COUNT(CASE WHEN opportunity_type = 'OPTIMIZED' THEN 1 END) as optimized_count,
  COUNT(CASE WHEN {high_opportunity} THEN 1 END) as high_opportunity_count,
  COUNT(CASE WHEN total_lost_share >= {actionable} THEN 1 END) as actionable_opportunity_count,
  COUNT(CASE WHEN opportunity_type = 'BUDGET_OPPORTUNITY' THEN 1 END) as budget_opportunities,
  COUNT(CASE WHEN opportunity_type = 'RANK_OPPORTUNITY' THEN 1 END) as rank_opportunities,
  SUM(additional_budget_needed) as total_budget_opportunity,
  SUM(potential_clicks_from_rank) as total_rank_opportunity,
  AVG(opportunity_score) as average_opportunity_score
FROM limited_opportunities
""")

    report.section("ANALYSIS_SUMMARY", f"""
JSON_OBJECT(
  'analysis_type', {quote_literal(kind)},
  'analysis_period', '{request.date_range} ({request.days} days)',
  'regions_analyzed', {array_literal(request.regions)},
  'include_brand_campaigns', {str(request.include_brand_campaigns).upper()},
  'min_spend_threshold', {min_spend},
  'total_campaigns', total_campaigns_analyzed,
  'total_spend', ROUND(total_spend_analyzed, 2),
  'total_conversions', total_conversions_analyzed,
  'overall_cpa', ROUND(overall_cpa, 2),
  'performance_distribution', JSON_OBJECT(
    'optimized_campaigns', optimized_count,
    'high_opportunity_campaigns', high_opportunity_count,
    'actionable_opportunities', actionable_opportunity_count
  ),
  'opportunity_breakdown', JSON_OBJECT(
    'budget_constrained', budget_opportunities,
    'rank_improvement_needed', rank_opportunities,
    'already_optimized', optimized_count
  ),
  'total_opportunity_value', JSON_OBJECT(
    'additional_budget_needed', ROUND(total_budget_opportunity, 2),
    'potential_clicks_from_rank', total_rank_opportunity,
    'average_opportunity_score', ROUND(average_opportunity_score, 1)
  )
)""", source="overall_summary")

    report.section(f"{kind.upper()}_RESULTS", f"""
JSON_OBJECT(
  'analysis_focus', {quote_literal(kind)},
  'campaigns', ARRAY_AGG(JSON_OBJECT(
    'campaign_name', SUBSTR(campaign, 1, 80),
    'region', region,
    'campaign_type', campaign_type,
    'campaign_category', campaign_category,
    'funnel_stage', funnel_stage,
    'is_brand_campaign', is_brand_campaign,
    'spend', ROUND(total_spend, 2),
    'conversions', total_conversions,
    'cpa', ROUND(blended_cpa, 2),
    'impression_share_pct', ROUND(weighted_impression_share, 1),
    'top_impression_share_pct', ROUND(weighted_top_impression_share, 1),
    'absolute_top_share_pct', ROUND(weighted_absolute_top_share, 1),
    'budget_lost_pct', ROUND(weighted_budget_lost, 1),
    'rank_lost_pct', ROUND(weighted_rank_lost, 1),
    'total_lost_share_pct', ROUND(total_lost_share, 1),
    'budget_utilization_pct', ROUND(avg_budget_utilization, 1),
    'market_share_pct', calculated_market_share,
    'opportunity_type', opportunity_type,
    'budget_status', budget_status,
    'opportunity_score', opportunity_score,
    'market_position', primary_market_position,
    'performance_diagnosis', primary_diagnosis,
    'additional_budget_needed', ROUND(additional_budget_needed, 2),
    'potential_clicks_from_rank', potential_clicks_from_rank,
    'wow_change_pct', ROUND(avg_wow_change, 1)
  ) ORDER BY analysis_rank)
)""", source="limited_opportunities")

    if kind in ("overview", "regional_comparison"):
        report.section("REGIONAL_INSIGHTS", """
JSON_OBJECT(
  'regional_performance', ARRAY_AGG(JSON_OBJECT(
    'region', region,
    'campaign_count', campaign_count,
    'total_spend', ROUND(region_spend, 2),
    'total_conversions', region_conversions,
    'regional_cpa', ROUND(region_cpa, 2),
    'avg_impression_share_pct', ROUND(region_impression_share, 1),
    'budget_lost_pct', ROUND(region_budget_lost, 1),
    'rank_lost_pct', ROUND(region_rank_lost, 1),
    'total_budget_opportunity', ROUND(total_additional_budget, 2),
    'total_potential_clicks', total_potential_clicks,
    'avg_opportunity_score', ROUND(avg_opportunity_score, 1),
    'optimized_campaigns', optimized_campaigns,
    'high_opportunity_campaigns', high_opportunity_campaigns
  ) ORDER BY region_spend DESC)
)""", source="regional_summary")

    return report.render()
