"""
Environment settings for deployment-specific values.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

from .loader import PipelineConfig, default_config, load_config

load_dotenv()


@dataclass
class Settings:
    """Values that differ per deployment rather than per policy."""
    db_path: str
    config_path: Optional[str]
    log_level: str
    push_relay_url: Optional[str]

    def pipeline_config(self) -> PipelineConfig:
        """Load the YAML config if one is set, else defaults.

        PUSH_RELAY_URL, when set, overrides the configured push URL; an
        empty value disables push entirely.
        """
        config = load_config(self.config_path) if self.config_path else default_config()
        if self.push_relay_url is None:
            return config
        notifications = replace(config.notifications, push_url=self.push_relay_url or None)
        return replace(config, notifications=notifications)


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    return Settings(db_path=os.getenv('STRAY_MATCH_DB_PATH', 'stray_match.db'),
                    config_path=os.getenv('STRAY_MATCH_CONFIG') or None,
                    log_level=os.getenv('LOG_LEVEL', 'INFO'),
                    push_relay_url=os.getenv('PUSH_RELAY_URL'))
