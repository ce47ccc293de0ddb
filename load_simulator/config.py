import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, validator

logger = logging.getLogger(__name__)

CPU_PROFILES = ("steady", "medium", "heavy", "very_heavy")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CpuSettings(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(default=6.0, gt=0)
    workers: Optional[int] = Field(default=None, gt=0)  # None sizes the pool from the core count
    profile: str = "steady"

    @validator('profile')
    def validate_profile(cls, v):
        if v not in CPU_PROFILES:
            raise ValueError(f"Unknown CPU profile '{v}', expected one of {', '.join(CPU_PROFILES)}")
        return v


class MemorySettings(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(default=12.0, gt=0)
    workers: int = Field(default=2, gt=0)
    max_retention_mb: float = Field(default=400.0, gt=0)
    mb_bytes: int = Field(default=1024 * 1024, ge=1024)


class TrafficSettings(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(default=2.0, gt=0)
    pattern_interval_seconds: float = Field(default=60.0, gt=0)
    workers: int = Field(default=10, gt=0)
    base_url: str = "http://localhost:8080/api/demo"
    timeout: float = Field(default=10.0, gt=0)
    max_tracked_ids: int = Field(default=100, gt=0)

    @validator('base_url')
    def strip_trailing_slash(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError('base_url must be an http(s) URL')
        return v.rstrip('/')


class SimulatorConfig(BaseModel):
    log_level: str = "INFO"
    seed: Optional[int] = None
    cpu: CpuSettings = Field(default_factory=CpuSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    traffic: TrafficSettings = Field(default_factory=TrafficSettings)

    @validator('log_level')
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}")
        return level


def parse_config(raw: Optional[Dict[str, Any]]) -> SimulatorConfig:
    """Build a validated config from a plain mapping, filling in defaults."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration root must be a mapping")
    for section in ('cpu', 'memory', 'traffic'):
        if raw.get(section) is None:
            raw = {**raw, section: {}}
    return SimulatorConfig(**raw)


def load_config(path) -> SimulatorConfig:
    """Load configuration from a YAML file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    config = parse_config(raw)
    logger.debug(f"Loaded configuration from {config_path}")
    return config
