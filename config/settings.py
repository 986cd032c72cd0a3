"""
HIV burden / poverty analysis settings.
"""

from pathlib import Path
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="HIVPOV_",
        extra="ignore",
    )

    # Country selection
    burden_threshold: float = Field(
        default=0.75,
        description="Cumulative share of burden the selected countries must reach",
    )
    reference_year: int | None = Field(
        default=None,
        description="Year used for country selection (None: latest year in the data)",
    )

    # Poverty workbook layout
    poverty_header_rows: int = Field(
        default=2, description="Caption rows above the poverty table"
    )

    # Directories
    project_root: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent,
        description="Project root directory",
    )
    data_dir: Path = Field(default=Path("data"), description="Data directory")
    output_dir: Path = Field(default=Path("outputs"), description="Output directory")

    # Input files (relative to raw_data_dir)
    burden_file: str = Field(
        default="plhiv_estimates.csv", description="Burden estimates CSV"
    )
    poverty_file: str = Field(
        default="mpm_poverty.xlsx", description="Multidimensional poverty workbook"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("burden_threshold")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError(f"burden_threshold must be in (0, 1], got {value}")
        return value

    @property
    def raw_data_dir(self) -> Path:
        return self.data_dir / "raw"

    @property
    def burden_path(self) -> Path:
        return self.project_root / self.raw_data_dir / self.burden_file

    @property
    def poverty_path(self) -> Path:
        return self.project_root / self.raw_data_dir / self.poverty_file


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
