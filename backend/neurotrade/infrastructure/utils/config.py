"""Configuration management for the adaptive strategy engine.

Rules:
- YAML provides the defaults (config/default.yaml).
- Environment variables / .env override YAML for deployment knobs
  (LOG_LEVEL, MEMORY__BACKEND, DATABASE__SQLITE_PATH, OPTIMIZER__WORKERS).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from neurotrade.models.strategy_models import StrategyParams


class EngineConfig(BaseModel):
    """Assets to analyze and how often the feed is polled."""

    symbols: List[str] = Field(default_factory=lambda: ["BTC", "ETH", "SOL", "DOGE", "XRP", "ADA"])
    poll_interval_seconds: float = Field(default=5.0, gt=0, le=3600)
    max_history: int = Field(default=300, ge=50, le=10_000)
    fetch_limit: int = Field(default=100, ge=1, le=1000)
    max_cycles: Optional[int] = Field(default=None, ge=1, description="Stop after N cycles (None = run forever)")

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, v: List[Any]) -> List[str]:
        out = [str(x).strip().upper() for x in v if x and str(x).strip()]
        if not out:
            raise ValueError("symbols must contain at least one asset")
        return out


class StrategyDefaultsConfig(BaseModel):
    """Default StrategyParams used when regime memory has nothing for an asset."""

    rsi_period: int = Field(default=14, ge=2, le=100)
    rsi_overbought: float = Field(default=70, gt=50, lt=100)
    rsi_oversold: float = Field(default=30, gt=0, lt=50)
    rsi_trend_buy_threshold: float = Field(default=45, ge=0, le=100)
    rsi_trend_sell_threshold: float = Field(default=55, ge=0, le=100)
    ema_short: int = Field(default=9, ge=2, le=200)
    ema_long: int = Field(default=21, ge=3, le=500)
    adx_period: int = Field(default=14, ge=2, le=100)
    adx_threshold: float = Field(default=25, ge=0, le=100)
    stop_loss: float = Field(default=0.02, gt=0, lt=1)
    take_profit: float = Field(default=0.04, gt=0, lt=5)

    @model_validator(mode="after")
    def validate_invariants(self) -> "StrategyDefaultsConfig":
        if self.rsi_oversold >= self.rsi_overbought:
            raise ValueError("rsi_oversold must be lower than rsi_overbought")
        if self.ema_short >= self.ema_long:
            raise ValueError("ema_short must be lower than ema_long")
        if self.take_profit <= self.stop_loss:
            raise ValueError("take_profit must be greater than stop_loss")
        return self

    def to_params(self) -> StrategyParams:
        return StrategyParams(**self.model_dump())


class BacktestConfig(BaseModel):
    starting_balance: float = Field(default=10_000.0, gt=0)
    fee_rate: float = Field(default=0.0006, ge=0, lt=0.05)


class OptimizerConfig(BaseModel):
    population_size: int = Field(default=20, ge=2, le=500)
    generations: int = Field(default=10, ge=1, le=500)
    workers: int = Field(default=0, ge=0, le=128, description="Process pool size (0 = evaluate inline)")
    min_candles: int = Field(default=200, ge=50)
    reoptimize_after_seconds: int = Field(default=3600, ge=0)
    seed: Optional[int] = Field(default=None, description="RNG seed for reproducible searches")


class MemoryConfig(BaseModel):
    backend: str = Field(default="memory")
    staleness_seconds: int = Field(default=3600, ge=1)

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if str(v).lower() not in {"memory", "sqlite"}:
            raise ValueError("memory backend must be 'memory' or 'sqlite'")
        return str(v).lower()


class DatabaseConfig(BaseModel):
    sqlite_path: str = Field(default="data/neurotrade.db")


class APIConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1024, le=65535)
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])


class NeuroTradeConfig(BaseSettings):
    """Root configuration. YAML is the base; env vars override it."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")

    engine: EngineConfig = Field(default_factory=EngineConfig)
    strategy: StrategyDefaultsConfig = Field(default_factory=StrategyDefaultsConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(v).upper() not in valid:
            raise ValueError(f"Log level must be one of: {sorted(valid)}")
        return str(v).upper()

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "NeuroTradeConfig":
        """Parse YAML into the model, then apply env overrides on top."""
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        try:
            base = cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Configuration validation error: {e}")

        return _apply_env_overrides(base)


def _apply_env_overrides(base: NeuroTradeConfig) -> NeuroTradeConfig:
    overrides: Dict[str, Any] = {}

    if os.getenv("LOG_LEVEL"):
        overrides["log_level"] = os.environ["LOG_LEVEL"]

    memory_backend = os.getenv("MEMORY__BACKEND")
    if memory_backend:
        overrides.setdefault("memory", base.memory.model_dump())["backend"] = memory_backend

    sqlite_path = os.getenv("DATABASE__SQLITE_PATH")
    if sqlite_path:
        overrides.setdefault("database", base.database.model_dump())["sqlite_path"] = sqlite_path

    workers = os.getenv("OPTIMIZER__WORKERS")
    if workers:
        overrides.setdefault("optimizer", base.optimizer.model_dump())["workers"] = workers

    if not overrides:
        return base
    try:
        return NeuroTradeConfig.model_validate({**base.model_dump(), **overrides})
    except ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}")


def load_config(config_path: Optional[Path] = None) -> NeuroTradeConfig:
    """Load configuration from YAML + .env (env wins)."""
    load_dotenv(dotenv_path=Path(".env"))

    if config_path is None:
        possible_paths = [Path("config/default.yaml"), Path("config/config.yaml"), Path("config.yaml")]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            # No file: run on built-in defaults (env still applies)
            return _apply_env_overrides(NeuroTradeConfig())

    return NeuroTradeConfig.from_yaml(config_path)


_config: Optional[NeuroTradeConfig] = None


def get_config() -> NeuroTradeConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[Path] = None) -> NeuroTradeConfig:
    global _config
    _config = load_config(config_path)
    return _config
