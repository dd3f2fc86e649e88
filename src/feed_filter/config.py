"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

CLASSIFICATION_SYSTEM_PROMPT = """You are a YouTube video classifier. Based on the user's stated preferences, classify each video as SHOW (matches what they want) or HIDE (doesn't match).

Understand semantic meaning, not just keywords:
- "no politics" includes news commentary, economic debates, social issues
- "only lofi" includes chill beats, study music, ambient, jazzhop
- "work related" depends on their field - infer from context

Be decisive. When uncertain, lean toward SHOW (less annoying than hiding wanted content)."""

CLASSIFICATION_USER_PROMPT = """My preference: "{user_prompt}"

Classify these videos (respond with JSON only):
{video_list}

Format: {{"1": "SHOW", "2": "HIDE", ...}}"""

SCHEDULE_SYSTEM_PROMPT = "You extract time schedules from text. Respond with JSON only."

SCHEDULE_USER_PROMPT = """Extract time schedule from: "{user_prompt}"

Return JSON only:
- If schedule found: {{"enabled":true,"days":["mon","tue",...],"startTime":"HH:MM","endTime":"HH:MM"}}
- If no schedule: {{"enabled":false}}

Examples:
- "weekdays 9-5" → {{"enabled":true,"days":["mon","tue","wed","thu","fri"],"startTime":"09:00","endTime":"17:00"}}
- "only lofi" → {{"enabled":false}}"""


@dataclass
class OracleConfig:
    """Completion API settings."""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    max_tokens: int = 500
    temperature: float = 0.1
    timeout: float = 30.0
    max_retries: int = 3
    initial_retry_delay: float = 2.0
    request_delay: float = 0.0


@dataclass
class CacheConfig:
    """Classification cache settings."""
    ttl_hours: float = 24.0
    persist_delay: float = 1.0


@dataclass
class ScheduleConfig:
    """Schedule driver settings."""
    check_interval: float = 60.0


@dataclass
class PathsConfig:
    """Path settings."""
    storage_dir: Path = Path("data")


@dataclass
class StorageConfig:
    """Storage key settings."""
    key_prefix: str = "feedfilter_"


@dataclass
class PromptsConfig:
    """Prompts for the oracle. Literal braces in templates must be doubled."""
    classification: dict = field(default_factory=lambda: {
        "system": CLASSIFICATION_SYSTEM_PROMPT,
        "user": CLASSIFICATION_USER_PROMPT,
    })
    schedule: dict = field(default_factory=lambda: {
        "system": SCHEDULE_SYSTEM_PROMPT,
        "user": SCHEDULE_USER_PROMPT,
    })


@dataclass
class Settings:
    """Application settings."""

    # Secrets (from environment only)
    openai_api_key: str = ""
    log_level: str = "INFO"

    # Config sections
    oracle: OracleConfig = field(default_factory=OracleConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)

    @property
    def storage_dir(self) -> Path:
        return self.paths.storage_dir

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache.ttl_hours * 60 * 60

    @property
    def schedule_check_interval(self) -> float:
        return self.schedule.check_interval


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

    # Apply YAML config
    for section in ("oracle", "cache", "schedule", "storage"):
        if section in config:
            target = getattr(settings, section)
            for key, value in config[section].items():
                setattr(target, key, value)

    if "paths" in config:
        for key, value in config["paths"].items():
            setattr(settings.paths, key, Path(value))

    if "prompts" in config:
        defaults = PromptsConfig()
        settings.prompts = PromptsConfig(
            classification={**defaults.classification, **config["prompts"].get("classification", {})},
            schedule={**defaults.schedule, **config["prompts"].get("schedule", {})},
        )

    return settings
