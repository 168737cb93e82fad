"""
Configuration management and loading.

Handles rate-limit tiers and pipeline settings from YAML.
"""

from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from stray_match.core.pricing import PRICING_TABLE
from stray_match.storage.models import Tier


@dataclass(frozen=True)
class TierQuota:
    """Request quotas for one tier."""
    per_minute: int
    per_hour: int
    per_day: int

    def __post_init__(self):
        """Validate quotas are positive."""
        for name in ("per_minute", "per_hour", "per_day"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    def windows(self) -> List[Tuple[str, timedelta, int]]:
        """(name, duration, limit) in ascending duration."""
        return [
            ("minute", timedelta(minutes=1), self.per_minute),
            ("hour", timedelta(hours=1), self.per_hour),
            ("day", timedelta(days=1), self.per_day),
        ]


DEFAULT_QUOTAS: Dict[Tier, TierQuota] = {
    Tier.FREE: TierQuota(per_minute=2, per_hour=10, per_day=30),
    Tier.SUPPORTER: TierQuota(per_minute=5, per_hour=50, per_day=200),
    Tier.ADMIN: TierQuota(per_minute=20, per_hour=500, per_day=2000),
}


@dataclass(frozen=True)
class RateLimitConfig:
    """Quotas for every tier."""
    tiers: Dict[Tier, TierQuota] = field(default_factory=lambda: dict(DEFAULT_QUOTAS))

    def for_tier(self, tier: Tier) -> TierQuota:
        """Get quotas for a tier, falling back to the defaults."""
        return self.tiers.get(tier, DEFAULT_QUOTAS[tier])


@dataclass(frozen=True)
class MatchingConfig:
    """Candidate search and acceptance settings."""
    confidence_threshold: float = 80.0
    search_radius_km: float = 50.0
    sighting_lookback_days: Optional[int] = 30
    lost_report_lookback_days: Optional[int] = None
    fallback_scan_limit: int = 50
    max_candidates: int = 50
    max_workers: int = 4
    run_timeout_seconds: float = 120.0

    def __post_init__(self):
        if not 0 <= self.confidence_threshold <= 100:
            raise ValueError("confidence_threshold must be between 0 and 100")
        if self.search_radius_km <= 0:
            raise ValueError("search_radius_km must be > 0")
        for name in ("sighting_lookback_days", "lost_report_lookback_days"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0 or null")
        if self.fallback_scan_limit <= 0:
            raise ValueError("fallback_scan_limit must be > 0")
        if not 0 < self.max_candidates <= 50:
            raise ValueError("max_candidates must be between 1 and 50")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if self.run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be > 0")


@dataclass(frozen=True)
class AnalyzerConfig:
    """Vision model settings."""
    model: str = "gpt-4o"
    max_tokens: int = 300
    temperature: float = 0.3
    timeout_seconds: float = 45.0
    image_detail: str = "high"

    def __post_init__(self):
        if self.model not in PRICING_TABLE.prices:
            raise ValueError(f"model must be one of: {sorted(PRICING_TABLE.prices)}")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.image_detail not in ("low", "high", "auto"):
            raise ValueError("image_detail must be one of: ['low', 'high', 'auto']")


@dataclass(frozen=True)
class NotificationConfig:
    """Push relay settings."""
    push_url: Optional[str] = "https://exp.host/--/api/v2/push/send"
    timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


@dataclass(frozen=True)
class PipelineConfig:
    """Complete pipeline configuration."""
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)


def default_config() -> PipelineConfig:
    """Configuration with every default applied."""
    return PipelineConfig()


def load_config(path: str) -> PipelineConfig:
    """Load and validate pipeline configuration from YAML file.

    Every section is optional; omitted sections and keys keep their
    defaults. Unknown keys are rejected so typos never silently fall back
    to a default quota.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated PipelineConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'rate_limits', 'matching', 'analyzer', 'notifications'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return PipelineConfig(
        rate_limits=_parse_rate_limits(raw_config.get('rate_limits')),
        matching=_parse_section(raw_config.get('matching'), MatchingConfig, 'matching'),
        analyzer=_parse_section(raw_config.get('analyzer'), AnalyzerConfig, 'analyzer'),
        notifications=_parse_section(raw_config.get('notifications'), NotificationConfig, 'notifications'),
    )


def _parse_rate_limits(data: Any) -> RateLimitConfig:
    """Parse and validate the ``rate_limits`` section.

    Raises:
        ValueError: If a tier name or quota is invalid
    """
    if data is None:
        return RateLimitConfig()
    if not isinstance(data, dict):
        raise ValueError("'rate_limits' must be a dictionary")

    tiers = dict(DEFAULT_QUOTAS)
    for tier_name, quota_data in data.items():
        try:
            tier = Tier(str(tier_name).lower())
        except ValueError:
            valid_tiers = [tier.value for tier in Tier]
            raise ValueError(f"Unknown tier '{tier_name}', must be one of: {valid_tiers}")

        if not isinstance(quota_data, dict):
            raise ValueError(f"Tier '{tier_name}' must be a dictionary")

        allowed_keys = {'per_minute', 'per_hour', 'per_day'}
        unknown_keys = set(quota_data.keys()) - allowed_keys
        if unknown_keys:
            raise ValueError(f"Unknown keys in rate_limits.{tier_name}: {unknown_keys}")
        missing = allowed_keys - set(quota_data.keys())
        if missing:
            raise ValueError(f"Missing required keys in rate_limits.{tier_name}: {sorted(missing)}")

        for key in allowed_keys:
            value = quota_data[key]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"'{key}' in rate_limits.{tier_name} must be a positive integer")

        tiers[tier] = TierQuota(**quota_data)

    return RateLimitConfig(tiers=tiers)


def _parse_section(data: Any, section_type: type, path: str):
    """Parse a flat section into its dataclass.

    Args:
        data: Raw section data (None keeps the defaults)
        section_type: Dataclass to build
        path: Section name for error messages

    Returns:
        Validated section instance
    """
    if data is None:
        return section_type()
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {f.name for f in fields(section_type)}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    try:
        return section_type(**data)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid {path} configuration: {e}")
