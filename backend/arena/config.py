"""Configuration management using Pydantic Settings."""

import logging
from datetime import datetime, time, timezone
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class CompetitionConfig(BaseModel):
    """Defaults used to seed the competition row."""

    name: str = "Arena Season 1"
    start_at: datetime = datetime(2025, 12, 16, 1, 0, tzinfo=timezone.utc)
    end_at: datetime = datetime(2026, 12, 15, 9, 0, tzinfo=timezone.utc)
    initial_capital: float = 10_000.0
    fee_rate: float = 0.0015  # 0.15% per side
    min_trade_value: float = 100.0
    max_position_pct: float = 0.30
    is_active: bool = True
    # external_id -> competition mode tag; unlisted agents trade NEW_BASELINE
    agent_modes: dict[str, str] = Field(default_factory=dict)


class SessionConfig(BaseModel):
    """Session orchestration limits and the exchange trading window."""

    budget_seconds: float = 270.0
    provider_timeout_seconds: float = 90.0
    recent_trades_window: int = 10
    candidate_count: int = 20
    competitor_count: int = 3
    exchange_timezone: str = "Asia/Kuala_Lumpur"
    market_open: time = time(9, 0)
    market_close: time = time(17, 0)
    lunch_start: time | None = time(12, 30)
    lunch_end: time | None = time(14, 30)
    trading_days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    gate_dry_runs: bool = False


class RetryConfig(BaseModel):
    """Backoff shape for outbound calls and ledger conflicts."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    multiplier: float = 2.0
    max_delay_seconds: float = 8.0
    jitter: float = 0.1


class QuotesConfig(BaseModel):
    """Quote source parameters."""

    base_url: str = "https://eodhd.com/api"
    exchange_suffix: str = "KLSE"
    timeout_seconds: float = 5.0
    batch_size: int = 10
    batch_delay_seconds: float = 0.1
    max_concurrency: int = 10


class SchedulerConfig(BaseModel):
    """Cron expressions, evaluated in the exchange time zone."""

    session_cron: str = "5 9-16 * * mon-fri"
    snapshot_cron: str = "30 17 * * mon-fri"


class MetricsConfig(BaseModel):
    """Risk statistic parameters."""

    reference_annual_rate: float = 0.0
    trading_days_per_year: int = 252
    sharpe_cap: float = 3.0


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")
    database_url: str = ""

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    deepseek_api_key: str = ""
    google_api_key: str = ""
    xai_api_key: str = ""
    moonshot_api_key: str = ""
    dashscope_api_key: str = ""
    openrouter_api_key: str = ""
    eodhd_api_key: str = ""
    logfire_token: str = ""

    # Shared secret for the session trigger endpoint
    cron_secret: str = ""
    environment: str = "development"

    # Nested configuration sections
    competition: CompetitionConfig = Field(default_factory=CompetitionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    quotes: QuotesConfig = Field(default_factory=QuotesConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def resolved_database_url(self) -> str:
        """Database URL, defaulting to a SQLite file inside the data directory."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'arena.db'}"

    def api_key_for(self, env_name: str) -> str:
        """Look up a provider key by its environment variable name."""
        return getattr(self, env_name.lower(), "") or ""

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m arena init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in [
                "competition",
                "session",
                "retry",
                "quotes",
                "scheduler",
                "metrics",
            ]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
