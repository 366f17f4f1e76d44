"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings for robust configuration management.
"""
import logging
from pathlib import Path
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Dict, Optional, Literal, Union

from lagk.core import constants
from lagk.core.types import TimeInterval


class SolverConfig(BaseSettings):
    """Numerical settings shared by all reaches"""

    max_segment_iterations: int = Field(
        constants.MAX_SEGMENT_ITERATIONS, gt=0, le=constants.MAX_SEGMENT_ITERATIONS,
        description="Iteration cap for MCP2K segment routing; may be lowered, not raised"
    )
    convergence_tolerance: float = Field(
        constants.CONVERGENCE_TOLERANCE, gt=0, lt=1,
        description="Relative band for accepting a segment outflow"
    )
    rhs_zero_tolerance: float = Field(
        constants.RHS_ZERO_TOLERANCE, ge=0,
        description="Right-hand sides below this are treated as zero"
    )
    storage_warning_threshold: float = Field(
        constants.STORAGE_WARNING_THRESHOLD,
        description="Recovered storage term below this counts as a divergence warning"
    )
    missing_value: float = Field(constants.MISSING_VALUE, description="Missing data sentinel")
    big_data_value: float = Field(
        constants.BIG_DATA_VALUE, gt=0,
        description="Upper bound used to pad K and storage tables"
    )
    max_storage_segments: int = Field(
        constants.MAX_STORAGE_SEGMENTS, gt=0,
        description="Maximum intermediate points per K-table segment"
    )

    model_config = SettingsConfigDict(env_prefix="LAGK_SOLVER_", case_sensitive=False)


class LoggingConfig(BaseSettings):
    """Configuration for diagnostic logging"""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    log_file: Optional[Path] = None

    model_config = SettingsConfigDict(env_prefix="LAGK_LOG_", case_sensitive=False)


def _check_pairs(name: str, value: Optional[List[List[float]]]) -> Optional[List[List[float]]]:
    if value is None:
        return value
    if len(value) == 0:
        raise ValueError(f"{name} must contain at least one row")
    for row in value:
        if len(row) != 2:
            raise ValueError(f"{name} rows must be [x, y] pairs, got {row}")
    keys = [row[0] for row in value]
    if any(b < a for a, b in zip(keys, keys[1:])):
        raise ValueError(f"{name} first column must be sorted ascending: {keys}")
    return value


class ReachConfig(BaseModel):
    """Configuration of one routing reach"""

    reach_id: str
    interval: str = Field("6Hour", description="Time step of the inflow series")

    # K: either constant or an [outflow, K] table
    k: Optional[float] = Field(None, ge=0, description="Constant K in interval base units")
    k_table: Optional[List[List[float]]] = Field(None, description="[outflow, K] pairs")

    # Lag: either constant or an [inflow, lag] table
    lag: Optional[float] = Field(None, description="Constant lag in interval base units")
    lag_table: Optional[List[List[float]]] = Field(None, description="[inflow, lag] pairs")

    # Transmission loss (receding limb)
    trans_loss_coef: float = Field(0.0, ge=0, description="Transmission loss coefficient")
    trans_loss_level: float = Field(0.0, ge=0, description="Minimum flow for transmission loss")

    # Initial states
    initial_outflow: Optional[float] = None
    initial_storage: Optional[float] = None
    initial_lagged_inflow: Optional[float] = None
    initial_carryover: Optional[List[float]] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v):
        TimeInterval.parse(v)
        return v

    @field_validator("k_table")
    @classmethod
    def validate_k_table(cls, v):
        v = _check_pairs("k_table", v)
        if v is not None and any(row[1] < 0 for row in v):
            raise ValueError("k_table K values must be non-negative")
        return v

    @field_validator("lag_table")
    @classmethod
    def validate_lag_table(cls, v):
        return _check_pairs("lag_table", v)

    @model_validator(mode="after")
    def validate_exclusive(self):
        """Cross-field validation"""
        if self.k is not None and self.k_table is not None:
            raise ValueError("Specify either k or k_table, not both")
        if self.lag is not None and self.lag_table is not None:
            raise ValueError("Specify either lag or lag_table, not both")
        return self

    @property
    def time_interval(self) -> TimeInterval:
        return TimeInterval.parse(self.interval)


class LagKConfig(BaseSettings):
    """Main configuration for Lag and K routing"""

    project_name: str = "lagk"
    solver: SolverConfig = Field(default_factory=SolverConfig)
    log: LoggingConfig = Field(default_factory=LoggingConfig)

    reaches: Dict[str, ReachConfig] = Field(
        default_factory=dict,
        description="Reach definitions keyed by reach id"
    )

    model_config = SettingsConfigDict(
        env_prefix="LAGK_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("reaches", mode="before")
    @classmethod
    def fill_reach_ids(cls, v):
        """Allow reach ids to be omitted inside the mapping"""
        if isinstance(v, dict):
            for reach_id, reach in v.items():
                if isinstance(reach, dict):
                    reach.setdefault("reach_id", reach_id)
        return v

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "LagKConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)

    def get_reach(self, reach_id: str) -> ReachConfig:
        """Get a reach definition"""
        if reach_id not in self.reaches:
            raise KeyError(f"Reach '{reach_id}' not configured; known: {sorted(self.reaches)}")
        return self.reaches[reach_id]


# Global configuration instance
_config: Optional[LagKConfig] = None


def get_config(config_path: Optional[Path] = None) -> LagKConfig:
    """Get or create configuration instance (singleton pattern)"""
    global _config

    if _config is None:
        if config_path and Path(config_path).exists():
            _config = LagKConfig.from_yaml(config_path)
        else:
            # Try to load from environment
            _config = LagKConfig()

    return _config


def set_config(config: Optional[LagKConfig]):
    """Set configuration (useful for testing)"""
    global _config
    _config = config


def setup_logging(config: Optional[LagKConfig] = None):
    """Configure root logging from the log section"""
    log_cfg = (config or get_config()).log
    handlers = [logging.StreamHandler()]
    if log_cfg.log_file is not None:
        log_cfg.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_cfg.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, log_cfg.log_level),
        format=log_cfg.log_format,
        handlers=handlers,
        force=True,
    )
