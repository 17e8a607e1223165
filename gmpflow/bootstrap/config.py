"""
bootstrap/config.py - Application configuration

Configuration from defaults, environment variables (GMPFLOW_*) and an
optional JSON file whose values override the environment.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Optional
from pathlib import Path
import os
import json
import logging

from gmpflow.core.enums import ProcessType
from gmpflow.scheduling.generator import DEFAULT_HORIZON_START
from gmpflow.scheduling.moisture import BASE_STAGE_HOURS
from gmpflow.scheduling.scorer import ScoringWeights

logger = logging.getLogger("bootstrap.config")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class LLMConfig:
    """LLM backend configuration."""

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    base_url: Optional[str] = None  # For local LLM (Ollama)
    max_tokens: int = 4096
    temperature: float = 0.2
    timeout_seconds: int = 60
    retry_attempts: int = 2
    retry_delay_ms: int = 1000
    max_requests_per_minute: int = 60

    @classmethod
    def from_env(cls) -> "LLMConfig":
        return cls(
            provider=os.getenv("GMPFLOW_LLM_PROVIDER", "anthropic"),
            model=os.getenv("GMPFLOW_LLM_MODEL", "claude-sonnet-4-20250514"),
            api_key=os.getenv("GMPFLOW_LLM_API_KEY", os.getenv("ANTHROPIC_API_KEY", "")),
            base_url=os.getenv("GMPFLOW_LLM_BASE_URL"),
            max_tokens=int(os.getenv("GMPFLOW_LLM_MAX_TOKENS", "4096")),
            temperature=float(os.getenv("GMPFLOW_LLM_TEMPERATURE", "0.2")),
            timeout_seconds=int(os.getenv("GMPFLOW_LLM_TIMEOUT", "60")),
            retry_attempts=int(os.getenv("GMPFLOW_LLM_RETRY_ATTEMPTS", "2")),
            retry_delay_ms=int(os.getenv("GMPFLOW_LLM_RETRY_DELAY_MS", "1000")),
            max_requests_per_minute=int(os.getenv("GMPFLOW_LLM_RATE_LIMIT", "60")),
        )


@dataclass
class SchedulingConfig:
    """Scheduling rules and provider time budgets."""

    stage_hours: Dict[str, float] = field(
        default_factory=lambda: {p.value: h for p, h in BASE_STAGE_HOURS.items()}
    )
    cleaning_interval_hours: float = 1.0
    horizon_start: str = DEFAULT_HORIZON_START.isoformat()
    perception_timeout_seconds: float = 30.0
    generation_timeout_seconds: float = 120.0
    weight_utilization: float = 0.5
    weight_cleaning: float = 0.3
    weight_deadline: float = 0.2

    @classmethod
    def from_env(cls) -> "SchedulingConfig":
        config = cls(
            cleaning_interval_hours=float(os.getenv("GMPFLOW_CLEANING_INTERVAL_HOURS", "1.0")),
            horizon_start=os.getenv("GMPFLOW_HORIZON_START", DEFAULT_HORIZON_START.isoformat()),
            perception_timeout_seconds=float(os.getenv("GMPFLOW_PERCEPTION_TIMEOUT", "30")),
            generation_timeout_seconds=float(os.getenv("GMPFLOW_GENERATION_TIMEOUT", "120")),
            weight_utilization=float(os.getenv("GMPFLOW_WEIGHT_UTILIZATION", "0.5")),
            weight_cleaning=float(os.getenv("GMPFLOW_WEIGHT_CLEANING", "0.3")),
            weight_deadline=float(os.getenv("GMPFLOW_WEIGHT_DEADLINE", "0.2")),
        )
        for process in ProcessType:
            value = os.getenv(f"GMPFLOW_STAGE_HOURS_{process.name}")
            if value is not None:
                config.stage_hours[process.value] = float(value)
        return config

    @property
    def stage_durations(self) -> Dict[ProcessType, float]:
        durations = dict(BASE_STAGE_HOURS)
        for key, hours in self.stage_hours.items():
            durations[ProcessType(key)] = float(hours)
        return durations

    @property
    def horizon(self) -> datetime:
        return datetime.fromisoformat(self.horizon_start)

    @property
    def weights(self) -> ScoringWeights:
        return ScoringWeights(
            utilization=self.weight_utilization,
            cleaning=self.weight_cleaning,
            deadline=self.weight_deadline,
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=os.getenv("GMPFLOW_LOG_LEVEL", "INFO"),
            format=os.getenv("GMPFLOW_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("GMPFLOW_LOG_FILE"),
            json_logs=_env_bool("GMPFLOW_JSON_LOGS", "false"),
        )


@dataclass
class GMPFlowConfig:
    """Root configuration."""

    environment: str = "development"
    debug: bool = False

    llm: LLMConfig = field(default_factory=LLMConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "GMPFlowConfig":
        return cls(
            environment=os.getenv("GMPFLOW_ENVIRONMENT", "development"),
            debug=_env_bool("GMPFLOW_DEBUG", "false"),
            llm=LLMConfig.from_env(),
            scheduling=SchedulingConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "GMPFlowConfig":
        """Load configuration from a JSON file on top of the environment."""
        path = Path(filepath)
        if not path.exists():
            logger.warning(f"Config file not found: {filepath}, using environment")
            return cls.from_env()

        with open(path) as f:
            data = json.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "GMPFlowConfig":
        config = cls.from_env()

        if "environment" in data:
            config.environment = data["environment"]
        if "debug" in data:
            config.debug = data["debug"]

        for section in ("llm", "scheduling", "logging"):
            target = getattr(config, section)
            known = {f.name for f in fields(target)}
            for key, value in data.get(section, {}).items():
                if key not in known:
                    logger.warning(f"Ignoring unknown config key {section}.{key}")
                    continue
                if key == "stage_hours":
                    target.stage_hours.update({k: float(v) for k, v in value.items()})
                else:
                    setattr(target, key, value)

        return config

    def to_dict(self) -> Dict[str, Any]:
        def section(obj: Any) -> Dict[str, Any]:
            values = {f.name: getattr(obj, f.name) for f in fields(obj)}
            if "api_key" in values and values["api_key"]:
                values["api_key"] = "***"
            return values

        return {
            "environment": self.environment,
            "debug": self.debug,
            "llm": section(self.llm),
            "scheduling": section(self.scheduling),
            "logging": section(self.logging),
        }


_config: Optional[GMPFlowConfig] = None


def load_config(filepath: Optional[str] = None) -> GMPFlowConfig:
    """Load the global configuration from a file or the environment."""
    global _config

    if filepath:
        _config = GMPFlowConfig.from_file(filepath)
    else:
        for default in ("gmpflow.json", "config/gmpflow.json"):
            if Path(default).exists():
                _config = GMPFlowConfig.from_file(default)
                break
        else:
            _config = GMPFlowConfig.from_env()

    return _config


def get_config() -> GMPFlowConfig:
    if _config is None:
        return load_config()
    return _config


def reset_config() -> None:
    global _config
    _config = None
