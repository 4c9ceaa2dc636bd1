# outbreakwatch/config/settings.py
#
# Centralized Application Configuration
# Defines the analytics configuration using Pydantic for validation and type
# safety. Values load from environment variables or a .env file so every
# threshold and weight can be tuned per deployment without code changes.

import logging
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Define Project Root ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent

settings_logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# 1. NESTED CONFIGURATION MODELS
# -----------------------------------------------------------------------------

class AppConfig(BaseModel):
    """Core application metadata and logging settings."""
    name: str = "Outbreak Watch"
    version: str = "1.0.0"
    organization_name: str = "Community Health Monitoring Network"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: str = "%(asctime)s - %(name)s.%(funcName)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    log_to_file: bool = False


class DirectoryConfig(BaseModel):
    """Key directory paths."""
    root: Path = PROJECT_ROOT
    data_sources: Path = PROJECT_ROOT / "data_sources"
    logs: Path = PROJECT_ROOT / "logs"


class RiskConfig(BaseModel):
    """Weights, windows and thresholds of the composite area risk score."""
    growth_weight: float = 0.4
    density_weight: float = 0.3
    severity_weight: float = 0.2
    outbreak_weight: float = 0.1

    # Growth rates at or above this percentage saturate the growth component.
    growth_normalization_max: float = Field(150.0, gt=0)
    # Weekly case count treated as maximal density.
    case_density_max: float = Field(100.0, gt=0)

    current_window_days: int = 7
    previous_window_days: int = 14
    historical_window_days: int = 90

    outbreak_spike_multiplier: float = 2.0
    outbreak_present_score: int = 80
    outbreak_absent_score: int = 20

    low_threshold: int = 40
    high_threshold: int = 70

    persist_min_delta: int = 5
    top_threats_limit: int = 3

    @model_validator(mode='after')
    def check_thresholds(self) -> 'RiskConfig':
        """Risk level thresholds must partition 0-100 in ascending order."""
        if not 0 < self.low_threshold < self.high_threshold <= 100:
            raise ValueError(
                f"Invalid risk thresholds: low={self.low_threshold}, high={self.high_threshold}"
            )
        if self.previous_window_days <= self.current_window_days:
            raise ValueError("previous_window_days must exceed current_window_days")
        return self


class AnomalyConfig(BaseModel):
    """Statistical spike detection parameters."""
    lookback_days: int = 30
    moving_average_window: int = 7
    z_score_threshold: float = 2.0
    flat_series_ratio: float = 1.5
    high_spike_pct: float = 100.0
    low_spike_pct: float = 30.0


class ForecastConfig(BaseModel):
    """Holt double exponential smoothing and intervention simulation."""
    alpha: float = Field(0.3, gt=0, lt=1)
    beta: float = Field(0.2, gt=0, lt=1)
    lookback_days: int = 60
    min_data_points: int = 2

    min_forecast_days: int = 1
    max_forecast_days: int = 30  # exclusive
    default_forecast_days: int = 7

    high_confidence_points: int = 30
    medium_confidence_points: int = 14

    awareness_max_reduction: float = 0.25
    medical_intervention_factor: float = 0.70
    environmental_control_factor: float = 0.75
    min_intervention_factor: float = 0.3
    max_intervention_factor: float = 1.5
    awareness_lever_threshold: float = 50.0
    rapid_trend_threshold: float = 2.0

    @model_validator(mode='after')
    def check_forecast_days(self) -> 'ForecastConfig':
        """The default horizon must itself be an accepted forecast_days value."""
        if not self.min_forecast_days <= self.default_forecast_days < self.max_forecast_days:
            raise ValueError(
                f"default_forecast_days={self.default_forecast_days} outside "
                f"[{self.min_forecast_days}, {self.max_forecast_days})"
            )
        return self


class OverviewConfig(BaseModel):
    """Same-day versus trailing-week area comparison used by the dashboard overview."""
    high_risk_ratio: float = 1.5
    very_high_risk_ratio: float = 2.0
    trending_diseases_limit: int = 10
    significance_level: float = 0.05

# -----------------------------------------------------------------------------
# 2. MAIN SETTINGS CLASS
# -----------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Main settings class for Outbreak Watch.
    Aggregates all configuration models and loads from environment variables,
    e.g. OUTBREAKWATCH_FORECAST__ALPHA=0.4.
    """
    model_config = SettingsConfigDict(
        env_prefix='OUTBREAKWATCH_',
        case_sensitive=False,
        env_nested_delimiter='__',
        env_file=f"{PROJECT_ROOT}/.env",
        extra='ignore'
    )

    app: AppConfig = Field(default_factory=AppConfig)
    directories: DirectoryConfig = Field(default_factory=DirectoryConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    overview: OverviewConfig = Field(default_factory=OverviewConfig)

    case_records_path: Path = PROJECT_ROOT / "data_sources" / "case_records.csv"

    # CSV headers accepted from the reporting front end.
    case_record_column_aliases: Dict[str, str] = {
        "casecount": "case_count",
        "cases": "case_count",
        "reportdate": "report_date",
        "date": "report_date",
        "pincode": "area",
    }


def configure_logging(config: Optional[Settings] = None) -> None:
    """Sets up global logging from the application settings."""
    config = config or settings
    handlers = [logging.StreamHandler()]
    if config.app.log_to_file:
        config.directories.logs.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.directories.logs / "outbreakwatch.log", encoding="utf-8"))
    logging.basicConfig(
        level=config.app.log_level,
        format=config.app.log_format,
        datefmt=config.app.log_date_format,
        handlers=handlers,
        force=True
    )

# -----------------------------------------------------------------------------
# 3. SINGLETON INSTANCE
# -----------------------------------------------------------------------------

try:
    settings = Settings()
    settings_logger.info(
        f"Settings loaded for '{settings.app.name}' v{settings.app.version}. "
        f"LOG_LEVEL={settings.app.log_level}. PROJECT_ROOT='{PROJECT_ROOT}'"
    )
except Exception as e:
    settings_logger.critical(f"FATAL: Could not initialize application settings. Error: {e}", exc_info=True)
    raise
