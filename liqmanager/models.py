"""
Manager-specific configuration models.
"""
from pydantic import BaseModel, Field, model_validator

from liqmanager.utils.env import MIN_WIDTH, MAX_WIDTH, DEADLINE_SECONDS


class ManagerConfig(BaseModel):
    """Settings for a LiquidityManager instance."""
    min_width: int = Field(MIN_WIDTH, ge=0, description="Minimum range width in basis points")
    max_width: int = Field(MAX_WIDTH, ge=0, description="Maximum range width in basis points")
    min_amount: int = Field(1, ge=1, description="Minimum desired deposit per asset")
    deadline_seconds: int = Field(
        DEADLINE_SECONDS, gt=0, description="Validity window attached to each custody call"
    )

    @model_validator(mode='after')
    def validate_width_bounds(self) -> 'ManagerConfig':
        """Ensure min_width <= max_width."""
        if self.min_width > self.max_width:
            raise ValueError("min_width must not exceed max_width")
        return self
