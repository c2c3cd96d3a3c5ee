from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config_manager import ConfigManager
from .constants import (
    COORDINATOR_PORT, DISPATCHER_PORTS, DISPATCHER_READY_ATTEMPTS,
    DISPATCHER_READY_POLL_SECONDS, FERMAT_ATTEMPT_BUDGET, Kind,
    POLLARD_BOUND_STEP, TRIAL_MAX_SPAN,
)

DEFAULT_CONFIG_FILE = "distfactor.yaml"


class NetworkSettings(BaseModel):
    """Where nodes listen, how they advertise themselves, and send retries."""
    bind_host: str = Field(default="0.0.0.0", description="Address every node binds to")
    advertise_host: str = Field(default="127.0.0.1", description="Host other nodes use to reach us")
    coordinator_host: str = Field(default="127.0.0.1", description="Coordinator address for workers")
    coordinator_port: int = Field(default=COORDINATOR_PORT, ge=1, le=65535)
    dispatcher_ports: Dict[Kind, int] = Field(default_factory=lambda: dict(DISPATCHER_PORTS))
    worker_port: int = Field(default=0, ge=0, le=65535, description="0 binds an ephemeral port")

    request_timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    retry_initial_delay: float = Field(default=0.5, gt=0)
    retry_max_delay: float = Field(default=30.0, gt=0)
    retry_backoff: float = Field(default=2.0, ge=1.0)

    @field_validator("dispatcher_ports")
    @classmethod
    def validate_dispatcher_ports(cls, v):
        missing = [kind.value for kind in Kind if kind not in v]
        if missing:
            raise ValueError(f"dispatcher_ports is missing kinds: {', '.join(missing)}")
        for kind, port in v.items():
            if not 1 <= port <= 65535:
                raise ValueError(f"Invalid port {port} for {kind.value}")
        return v


class SearchSettings(BaseModel):
    trial_max_span: int = Field(default=TRIAL_MAX_SPAN, ge=1)
    fermat_attempt_budget: int = Field(default=FERMAT_ATTEMPT_BUDGET, ge=1)
    pollard_bound_step: int = Field(default=POLLARD_BOUND_STEP, ge=1)
    dispatcher_ready_attempts: int = Field(default=DISPATCHER_READY_ATTEMPTS, ge=1)
    dispatcher_ready_poll_seconds: float = Field(default=DISPATCHER_READY_POLL_SECONDS, gt=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = Field(default=None, description="Optional log file, e.g. data/logs/distfactor.log")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class ResultsSettings(BaseModel):
    enabled: bool = True
    text_file: str = "results.txt"
    json_file: str = "data/results.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DISTFACTOR_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    network: NetworkSettings = Field(default_factory=NetworkSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    results: ResultsSettings = Field(default_factory=ResultsSettings)

    def dispatcher_port(self, kind: Kind) -> int:
        return self.network.dispatcher_ports[kind]


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Build settings from a YAML file (plus its .local.yaml overrides) and the
    environment.

    Without a path, distfactor.yaml in the working directory is used when it
    exists; otherwise only defaults and environment variables apply.
    """
    if config_path is None:
        if not Path(DEFAULT_CONFIG_FILE).exists():
            return Settings()
        config_path = DEFAULT_CONFIG_FILE

    data = ConfigManager().load_config(config_path)
    return Settings(**data)


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
