"""Engine tuning knobs and their validation rules."""

from dataclasses import dataclass
from typing import Optional

from staffplan.platform.config import Settings


@dataclass(frozen=True)
class EngineConfig:
    default_daily_capacity_hours: float = 40.0 / 7.0
    max_range_days: int = 1827
    severity_high_threshold: float = 1.1
    severity_critical_threshold: float = 1.3
    high_utilization_warning: float = 0.8
    overutilized_threshold: float = 1.0
    underutilized_threshold: float = 0.5
    auto_resolve_reason: str = "Automatically resolved by conflict resolver"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EngineConfig":
        if settings is None:
            from staffplan.platform.config import get_settings
            settings = get_settings()
        config = cls(
            default_daily_capacity_hours=settings.DEFAULT_DAILY_CAPACITY_HOURS,
            max_range_days=settings.MAX_ALLOCATION_RANGE_DAYS,
            severity_high_threshold=settings.SEVERITY_HIGH_THRESHOLD,
            severity_critical_threshold=settings.SEVERITY_CRITICAL_THRESHOLD,
            high_utilization_warning=settings.HIGH_UTILIZATION_WARNING,
            overutilized_threshold=settings.OVERUTILIZED_THRESHOLD,
            underutilized_threshold=settings.UNDERUTILIZED_THRESHOLD,
            auto_resolve_reason=settings.AUTO_RESOLVE_REASON,
        )
        validate_engine_config(config)
        return config


def validate_engine_config(config: EngineConfig) -> None:
    if config.default_daily_capacity_hours <= 0:
        raise ValueError("default_daily_capacity_hours must be > 0")
    if config.max_range_days <= 0:
        raise ValueError("max_range_days must be > 0")
    if not 1.0 <= config.severity_high_threshold <= config.severity_critical_threshold:
        raise ValueError(
            "severity thresholds must satisfy 1.0 <= high <= critical"
        )
    if not 0.0 < config.high_utilization_warning <= 1.0:
        raise ValueError("high_utilization_warning must be in (0, 1]")
    if not 0.0 <= config.underutilized_threshold < config.overutilized_threshold:
        raise ValueError(
            "underutilized_threshold must be >= 0 and below overutilized_threshold"
        )
