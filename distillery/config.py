"""
Configuration for the distillation pipeline.

Configuration sources (highest to lowest priority):
1. Explicit keyword input
2. Environment variables (prefix ``DISTILLERY_``, nested delimiter ``__``)
3. Code defaults

Environment variable example:
```bash
export DISTILLERY_STORE__CAPACITY=5000
export DISTILLERY_MONITOR__HIGH_THRESHOLD=0.75
export DISTILLERY_ORCHESTRATOR__CONCURRENCY_POLICY=reject
```

Code example:
```python
from distillery.config import DistilleryConfig

config = DistilleryConfig(store={"capacity": 2000}, bounds={"max_rule_count": 250})
```
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_WEIGHT_TOLERANCE = 1e-6
SECONDS_PER_DAY = 86400.0


def _check_weights(name: str, *weights: float) -> None:
    total = sum(weights)
    if abs(total - 1.0) > _WEIGHT_TOLERANCE:
        raise ValueError(f"{name} weights must sum to 1.0 (got {total:.6f})")


class ScoringConfig(BaseModel):
    """Value scoring weights and retention thresholds."""

    profit_weight: float = Field(default=0.40, ge=0.0, le=1.0)
    frequency_weight: float = Field(default=0.25, ge=0.0, le=1.0)
    recency_weight: float = Field(default=0.15, ge=0.0, le=1.0)
    learning_weight: float = Field(default=0.20, ge=0.0, le=1.0)

    max_age_days: float = Field(default=7.0, gt=0.0)
    profit_ceiling: float = Field(default=1000.0, gt=0.0)
    frequency_log_base: float = Field(default=100.0, gt=1.0)

    keep_full_threshold: float = 0.7
    compress_threshold: float = 0.4
    summarize_threshold: float = 0.2

    candidate_min_value: float = 0.3
    candidate_max_value: float = 0.7
    min_pattern_members: int = Field(default=3, ge=1)

    novel_situation_bonus: float = 0.3
    behavior_change_bonus: float = 0.4
    improvement_bonus: float = 0.3

    @model_validator(mode="after")
    def _validate(self) -> "ScoringConfig":
        _check_weights(
            "scoring",
            self.profit_weight,
            self.frequency_weight,
            self.recency_weight,
            self.learning_weight,
        )
        if not (self.summarize_threshold < self.compress_threshold < self.keep_full_threshold):
            raise ValueError("retention thresholds must be strictly increasing")
        if self.candidate_min_value > self.candidate_max_value:
            raise ValueError("candidate_min_value must not exceed candidate_max_value")
        return self


class StoreConfig(BaseModel):
    """Bounded store capacity, priority heuristic and sampling settings."""

    capacity: int = Field(default=10000, gt=0)
    compaction_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    novelty_window: int = Field(default=1000, gt=0)

    reward_priority_weight: float = 0.5
    novelty_priority_weight: float = 0.3
    transition_priority_weight: float = 0.2
    neutral_priority: float = Field(default=1.0, ge=0.0)

    prioritized: bool = True
    random_seed: Optional[int] = None
    context_bucket_width: float = Field(default=1.0, gt=0.0)

    @model_validator(mode="after")
    def _validate(self) -> "StoreConfig":
        _check_weights(
            "store priority",
            self.reward_priority_weight,
            self.novelty_priority_weight,
            self.transition_priority_weight,
        )
        return self


class CompactionConfig(BaseModel):
    """Rule synthesis settings."""

    confidence_floor: float = Field(default=0.3, ge=0.0, le=1.0)  # advisory, not enforced
    recency_days: float = Field(default=7.0, gt=0.0)
    size_saturation: int = Field(default=10, gt=0)
    size_weight: float = 0.4
    consistency_weight: float = 0.4
    recency_weight: float = 0.2

    @model_validator(mode="after")
    def _validate(self) -> "CompactionConfig":
        _check_weights("confidence", self.size_weight, self.consistency_weight, self.recency_weight)
        return self


class MonitorConfig(BaseModel):
    """Composite complexity weights, normalization ceilings and level thresholds."""

    size_weight: float = 0.30
    depth_weight: float = 0.25
    diversity_weight: float = 0.20
    temporal_weight: float = 0.15
    uncertainty_weight: float = 0.10

    size_ceiling_bytes: int = Field(default=50000, gt=0)
    depth_ceiling: int = Field(default=10, gt=0)
    diversity_ceiling: int = Field(default=20, gt=0)
    span_ceiling_days: float = Field(default=7.0, gt=0.0)

    low_threshold: float = 0.3
    medium_threshold: float = 0.6
    high_threshold: float = 0.8

    history_size: int = Field(default=10, gt=0)

    @model_validator(mode="after")
    def _validate(self) -> "MonitorConfig":
        _check_weights(
            "monitor",
            self.size_weight,
            self.depth_weight,
            self.diversity_weight,
            self.temporal_weight,
            self.uncertainty_weight,
        )
        if not (0.0 < self.low_threshold < self.medium_threshold < self.high_threshold <= 1.0):
            raise ValueError("complexity thresholds must be strictly increasing within (0, 1]")
        return self


class BoundsConfig(BaseModel):
    """Hard admission bounds and learning-rate policy."""

    max_context_size: int = Field(default=100000, gt=0)
    max_pattern_count: int = Field(default=1000, gt=0)
    max_rule_count: int = Field(default=500, gt=0)
    max_retention_days: float = Field(default=30.0, gt=0.0)

    learning_rate_base: float = Field(default=0.1, gt=0.0)
    learning_rate_decay: float = Field(default=0.95, gt=0.0, le=1.0)
    min_efficiency: float = 0.1
    max_efficiency: float = 2.0


class OrchestratorConfig(BaseModel):
    """Distillation cycle policy."""

    emergency_keep_ratio: float = Field(default=0.1, gt=0.0, le=1.0)
    low_value_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    concurrency_policy: str = "queue"
    auto_compact: bool = True
    metrics_history: int = Field(default=100, gt=0)

    @field_validator("concurrency_policy")
    @classmethod
    def _validate_policy(cls, value: str) -> str:
        value = value.lower()
        if value not in ("queue", "reject"):
            raise ValueError("concurrency_policy must be 'queue' or 'reject'")
        return value


class DistilleryConfig(BaseSettings):
    """Top-level configuration assembled from environment and explicit input."""

    model_config = SettingsConfigDict(
        env_prefix="DISTILLERY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    bounds: BoundsConfig = Field(default_factory=BoundsConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    log_level: str = "INFO"


_config: Optional[DistilleryConfig] = None


def get_config(reload: bool = False) -> DistilleryConfig:
    """
    Get the process-wide configuration.

    Args:
        reload: Re-read the environment even if a configuration is cached

    Returns:
        DistilleryConfig instance
    """
    global _config
    if _config is None or reload:
        _config = DistilleryConfig()
        logger.debug(f"Loaded distillery configuration (log_level={_config.log_level})")
    return _config


def reset_config() -> None:
    """Drop the cached configuration (mainly for tests)."""
    global _config
    _config = None


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for applications that do not configure it themselves.

    Args:
        level: Log level name; defaults to the configured ``log_level``
    """
    level_name = (level or get_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
