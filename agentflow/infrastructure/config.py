"""
Engine configuration - defaults shared by every workflow run
"""

from functools import lru_cache
from typing import Optional
import os

from pydantic import BaseModel, Field


class EngineSettings(BaseModel):
    """Engine-wide defaults, overridable per workflow"""
    max_token_limit: int = Field(default=600, gt=0, description="Estimated-token ceiling for workflow memory")
    warning_threshold: float = Field(default=0.8, gt=0, le=1, description="Fraction of the ceiling that triggers memory pressure")
    prune_target_ratio: float = Field(default=0.6, gt=0, le=1, description="Fraction of the ceiling memory is pruned down to")
    default_temperature: float = Field(default=0.1, ge=0, description="Sampling temperature for step generations")
    chars_per_token: int = Field(default=4, gt=0, description="Characters per token for the estimator heuristic")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @classmethod
    def from_env(cls, prefix: str = "AGENTFLOW_") -> "EngineSettings":
        """Build settings from environment variables, falling back to defaults"""

        values = {}
        for name in cls.model_fields:
            raw: Optional[str] = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None:
                values[name] = raw

        # pydantic coerces the raw strings to the declared field types
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Get the process-wide engine settings"""
    return EngineSettings.from_env()
