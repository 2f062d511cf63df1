# Immutable thresholds, targets and table identifiers shared by every report tool.
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Pattern, Tuple

import ads_analytics

DATE_RANGES = {"7d": 7, "14d": 14, "30d": 30}

# (current window, total window) in days
COMPARISON_PERIODS = {
    "week_over_week": (7, 14),
    "month_over_month": (30, 60),
}

DEFAULT_COUNTRIES = ("US", "AU", "UK")
DEFAULT_PLATFORMS = ("Meta", "Google", "Bing")

# Regex patterns that reject a raw query outright
DANGEROUS_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r";\s*(DROP|CREATE|ALTER|INSERT|UPDATE|DELETE|TRUNCATE)", re.IGNORECASE),
    re.compile(r"--[^\r\n]*$", re.MULTILINE),
    re.compile(r"/\*[\s\S]*?\*/"),
    re.compile(r"\bxp_cmdshell\b", re.IGNORECASE),
    re.compile(r"\bsp_executesql\b", re.IGNORECASE),
)


@dataclass(frozen=True)
class PerformanceThresholds:
    """CPA breakpoints; anything above `acceptable` needs attention."""
    excellent: float = 25.0
    good: float = 40.0
    acceptable: float = 60.0


@dataclass(frozen=True)
class SensitivityProfile:
    change_threshold: float
    min_spend: float
    min_conversions: float


@dataclass(frozen=True)
class ConfidenceBracket:
    spend: float
    conversions: float


@dataclass(frozen=True)
class AnomalySettings:
    sensitivity_levels: Dict[str, SensitivityProfile] = field(default_factory=lambda: {
        "high": SensitivityProfile(change_threshold=0.15, min_spend=300, min_conversions=3),
        "medium": SensitivityProfile(change_threshold=0.25, min_spend=500, min_conversions=5),
        "low": SensitivityProfile(change_threshold=0.5, min_spend=1000, min_conversions=8),
    })
    current_days: int = 7
    comparison_days: int = 14
    min_excess_cost: float = 500
    min_regional_excess_cost: float = 1000
    high_regional_excess_cost: float = 2000
    max_campaign_anomalies: int = 15
    max_regional_anomalies: int = 10
    min_volatile_campaigns: int = 2
    impact_range: Tuple[float, float] = (100, 50000)


@dataclass(frozen=True)
class WeeklyReportSettings:
    min_spend: float = 500
    min_conversions: float = 5
    over_target_ratio: float = 1.2
    opportunity_ratio: float = 0.8
    max_issues: int = 5
    max_opportunities: int = 5
    # (upper spend bound, multiplier); the last multiplier applies above every bound
    scale_multipliers: Tuple[Tuple[float, float], ...] = ((500, 1.0), (1500, 0.5))
    large_scale_multiplier: float = 0.2
    high_confidence: ConfidenceBracket = ConfidenceBracket(spend=2000, conversions=20)
    medium_confidence: ConfidenceBracket = ConfidenceBracket(spend=500, conversions=8)
    low_confidence: ConfidenceBracket = ConfidenceBracket(spend=100, conversions=3)


@dataclass(frozen=True)
class CampaignAnalysisSettings:
    min_spend_for_top: float = 200
    problem_spend: float = 1000
    problem_cpa: float = 50
    creative_min_spend: float = 100
    creative_min_conversions: float = 2
    max_top_performers: int = 10
    max_creatives: int = 10


@dataclass(frozen=True)
class CreativeAnalysisSettings:
    default_min_spend: float = 300
    min_spend_range: Tuple[float, float] = (50, 50000)
    min_conversions: float = 2
    concept_spend_multiplier: float = 2
    max_concepts: int = 8
    max_ads: int = 10
    high_confidence_multiplier: float = 3
    medium_confidence_multiplier: float = 1


@dataclass(frozen=True)
class RegionalComparisonSettings:
    min_segment_spend: float = 500
    min_country_spend: float = 1000
    min_platform_country_spend: float = 500
    weak_segment_count: int = 2


@dataclass(frozen=True)
class ImpressionShareSettings:
    min_impressions: float = 100
    min_clicks: float = 10
    actionable_lost_share: float = 10
    high_budget_lost: float = 20
    high_rank_lost: float = 30
    constrained_utilization: float = 95
    balanced_utilization: float = 70
    budget_weight: float = 0.6
    rank_weight: float = 0.4
    max_budget_constrained: int = 15
    max_rank_opportunities: int = 15
    max_regional_comparisons: int = 20
    max_opportunity_campaigns: int = 20
    min_spend_range: Tuple[float, float] = (100, 10000)


@dataclass(frozen=True)
class FlexibleQuerySettings:
    max_query_length: int = 10000
    dangerous_patterns: Tuple[Pattern, ...] = DANGEROUS_PATTERNS
    preview_length: int = 500


@dataclass(frozen=True)
class Settings:
    blended_summary_table: str
    impression_share_table: str
    webhook_url: str = ""
    webhook_timeout: float = 300
    user_agent_prefix: str = "MCP-Analytics-Tool"
    platform_targets: Dict[str, float] = field(default_factory=lambda: {
        "Meta": 50.0,
        "Google": 25.0,
        "Bing": 25.0,
        "TikTok": 50.0,
    })
    default_target_cpa: float = 40.0
    max_results_per_section: int = 20
    performance: PerformanceThresholds = field(default_factory=PerformanceThresholds)
    anomaly: AnomalySettings = field(default_factory=AnomalySettings)
    weekly: WeeklyReportSettings = field(default_factory=WeeklyReportSettings)
    campaign: CampaignAnalysisSettings = field(default_factory=CampaignAnalysisSettings)
    creative: CreativeAnalysisSettings = field(default_factory=CreativeAnalysisSettings)
    regional: RegionalComparisonSettings = field(default_factory=RegionalComparisonSettings)
    impression_share: ImpressionShareSettings = field(default_factory=ImpressionShareSettings)
    flexible_query: FlexibleQuerySettings = field(default_factory=FlexibleQuerySettings)

    @property
    def blended_summary_ref(self) -> str:
        return f"`{self.blended_summary_table}`"

    @property
    def impression_share_ref(self) -> str:
        return f"`{self.impression_share_table}`"

    @property
    def authorized_tables(self) -> Tuple[str, str]:
        return (self.blended_summary_table, self.impression_share_table)


def load_settings(webhook_url: Optional[str] = None) -> Settings:
    """
    Builds the Settings used for the lifetime of the process from the
    environment-derived constants in `ads_analytics`.
    """
    dataset = f"{ads_analytics.ANALYTICS_PROJECT_ID}.{ads_analytics.ANALYTICS_DATASET_ID}"
    return Settings(
        blended_summary_table=f"{dataset}.{ads_analytics.BLENDED_SUMMARY_TABLE_ID}",
        impression_share_table=f"{dataset}.{ads_analytics.IMPRESSION_SHARE_TABLE_ID}",
        webhook_url=ads_analytics.WEBHOOK_URL if webhook_url is None else webhook_url,
        webhook_timeout=ads_analytics.WEBHOOK_TIMEOUT_SECONDS,
        user_agent_prefix=ads_analytics.USER_AGENT_PREFIX,
    )
