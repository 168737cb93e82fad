"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for pipeline configs.
"""

import os
import tempfile
from unittest.mock import patch

import pytest
import yaml

from stray_match.config.loader import (
    DEFAULT_QUOTAS,
    AnalyzerConfig,
    MatchingConfig,
    PipelineConfig,
    TierQuota,
    default_config,
    load_config,
)
from stray_match.config.settings import Settings, load_settings
from stray_match.storage.models import Tier


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        config_path = self._write_config({
            "rate_limits": {
                "free": {"per_minute": 3, "per_hour": 12, "per_day": 40},
            },
            "matching": {"search_radius_km": 25, "lost_report_lookback_days": 90},
            "analyzer": {"model": "gpt-4o-mini", "timeout_seconds": 30},
            "notifications": {"push_url": None},
        })

        config = load_config(config_path)

        assert config.rate_limits.for_tier(Tier.FREE) == TierQuota(per_minute=3, per_hour=12, per_day=40)
        assert config.rate_limits.for_tier(Tier.SUPPORTER) == DEFAULT_QUOTAS[Tier.SUPPORTER]
        assert config.matching.search_radius_km == 25
        assert config.matching.lost_report_lookback_days == 90
        assert config.matching.confidence_threshold == 80.0
        assert config.analyzer.model == "gpt-4o-mini"
        assert config.analyzer.timeout_seconds == 30
        assert config.notifications.push_url is None

    def test_omitted_sections_use_defaults(self):
        config = load_config(self._write_config({"matching": {"max_workers": 2}}))

        assert config.matching.max_workers == 2
        assert config.rate_limits == default_config().rate_limits
        assert config.analyzer == AnalyzerConfig()

    def test_defaults(self):
        config = default_config()

        assert isinstance(config, PipelineConfig)
        assert config.rate_limits.for_tier(Tier.FREE) == TierQuota(2, 10, 30)
        assert config.rate_limits.for_tier(Tier.SUPPORTER) == TierQuota(5, 50, 200)
        assert config.rate_limits.for_tier(Tier.ADMIN) == TierQuota(20, 500, 2000)
        assert config.matching.sighting_lookback_days == 30
        assert config.matching.lost_report_lookback_days is None
        assert config.analyzer.model == "gpt-4o"
        assert config.notifications.push_url == "https://exp.host/--/api/v2/push/send"

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_empty_file(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, "w").close()
        with pytest.raises(ValueError, match="empty"):
            load_config(path)

    def test_invalid_yaml(self):
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("matching: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_config(path)

    def test_non_mapping_root(self):
        with pytest.raises(ValueError, match="dictionary"):
            load_config(self._write_config(["a", "b"]))

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_config(self._write_config({"matchng": {}}))

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown keys in matching"):
            load_config(self._write_config({"matching": {"radius": 10}}))

    def test_unknown_tier(self):
        with pytest.raises(ValueError, match="Unknown tier 'gold'"):
            load_config(self._write_config({"rate_limits": {"gold": {"per_minute": 1, "per_hour": 1, "per_day": 1}}}))

    def test_incomplete_tier(self):
        with pytest.raises(ValueError, match="Missing required keys"):
            load_config(self._write_config({"rate_limits": {"free": {"per_minute": 1}}}))

    @pytest.mark.parametrize("value", [0, -1, 1.5, True, "10"])
    def test_invalid_quota_values(self, value):
        data = {"rate_limits": {"free": {"per_minute": value, "per_hour": 10, "per_day": 30}}}
        with pytest.raises(ValueError, match="positive integer"):
            load_config(self._write_config(data))

    @pytest.mark.parametrize("section,values", [
        ("matching", {"confidence_threshold": 120}),
        ("matching", {"max_candidates": 51}),
        ("matching", {"sighting_lookback_days": 0}),
        ("analyzer", {"model": "gpt-5-ultra"}),
        ("analyzer", {"image_detail": "medium"}),
        ("notifications", {"timeout_seconds": 0}),
    ])
    def test_invalid_section_values(self, section, values):
        with pytest.raises(ValueError, match=f"Invalid {section} configuration"):
            load_config(self._write_config({section: values}))


class TestDataclassValidation:

    def test_tier_quota_must_be_positive(self):
        with pytest.raises(ValueError, match="per_hour must be > 0"):
            TierQuota(per_minute=1, per_hour=0, per_day=1)

    def test_windows_are_ascending(self):
        durations = [duration for _, duration, _ in TierQuota(2, 10, 30).windows()]
        assert durations == sorted(durations)

    def test_matching_config_caps_fan_out(self):
        with pytest.raises(ValueError, match="max_candidates"):
            MatchingConfig(max_candidates=100)


class TestSettings:

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()

        assert settings.db_path == "stray_match.db"
        assert settings.config_path is None
        assert settings.log_level == "INFO"
        assert settings.push_relay_url is None

    def test_environment_overrides(self):
        env = {
            "STRAY_MATCH_DB_PATH": "/tmp/x.db",
            "STRAY_MATCH_CONFIG": "/etc/stray.yaml",
            "LOG_LEVEL": "DEBUG",
            "PUSH_RELAY_URL": "http://localhost:9000/push",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings()

        assert settings == Settings(
            db_path="/tmp/x.db",
            config_path="/etc/stray.yaml",
            log_level="DEBUG",
            push_relay_url="http://localhost:9000/push",
        )

    def test_push_url_override(self):
        settings = Settings(db_path="x.db", config_path=None, log_level="INFO", push_relay_url="http://relay/push")
        assert settings.pipeline_config().notifications.push_url == "http://relay/push"

    def test_empty_push_url_disables_push(self):
        settings = Settings(db_path="x.db", config_path=None, log_level="INFO", push_relay_url="")
        assert settings.pipeline_config().notifications.push_url is None

    def test_unset_push_url_keeps_config(self):
        settings = Settings(db_path="x.db", config_path=None, log_level="INFO", push_relay_url=None)
        assert settings.pipeline_config() == default_config()
