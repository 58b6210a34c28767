"""
RDD engine settings.
"""

from pathlib import Path
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Analysis settings loaded from environment variables (prefix ``RDD_``)."""

    model_config = SettingsConfigDict(
        env_prefix="RDD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Design
    cutpoint: float = Field(default=21.0, description="Threshold of the assignment variable")
    polynomial_order: int = Field(default=1, ge=0, description="Polynomial order of the running variable")
    slope_mode: str = Field(default="separate", description="Slope mode: shared | separate")

    # Inference
    confidence_level: float = Field(default=0.95, gt=0, lt=1, description="Confidence interval coverage")
    cov_type: str = Field(default="nonrobust", description="Covariance type: nonrobust | HC0 | HC1 | HC2 | HC3")
    strict_range: bool = Field(
        default=True,
        description="Fail single fits whose cutpoint lies outside the observed range",
    )

    # Sensitivity checks
    restriction_bandwidth: tuple[float, float] = Field(
        default=(20.0, 22.0),
        description="Inclusive (lower, upper) window for the sample restriction check",
    )
    placebo_trim: int = Field(
        default=1, ge=0, description="Distinct extreme values dropped from the placebo grid"
    )
    placebo_workers: int = Field(default=1, ge=1, description="Threads used by the placebo sweep")

    # Dataset
    running_variable: str = Field(default="agecell", description="Assignment variable column")
    outcomes: list[str] = Field(
        default_factory=lambda: [
            "all", "alcohol", "homicide", "suicide", "mva", "drugs", "external", "externalother",
        ],
        description="Outcome columns analysed by default",
    )
    dataset_file: str = Field(default="mlda.csv", description="Dataset file name under data_dir")
    dataset_url: str = Field(
        default="",
        description="Optional URL to download the dataset from when it is not on disk",
    )
    http_timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    model_ladder_path: str = Field(
        default="config/model_ladder.yaml",
        description="YAML file listing candidate specifications",
    )

    # Directories
    project_root: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent,
        description="Project root directory",
    )
    data_dir: Path = Field(default=Path("data"), description="Data directory")
    output_dir: Path = Field(default=Path("outputs"), description="Output directory")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("slope_mode")
    @classmethod
    def _check_slope_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in ("shared", "separate"):
            raise ValueError(f"slope_mode must be 'shared' or 'separate', got {value!r}")
        return value

    @field_validator("restriction_bandwidth")
    @classmethod
    def _check_window(cls, value: tuple[float, float]) -> tuple[float, float]:
        if value[0] > value[1]:
            raise ValueError(f"restriction_bandwidth lower bound exceeds upper bound: {value}")
        return value

    @property
    def dataset_path(self) -> Path:
        return self.project_root / self.data_dir / self.dataset_file

    @property
    def ladder_path(self) -> Path:
        return self.project_root / self.model_ladder_path


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
