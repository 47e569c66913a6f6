from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .duration import parse_duration
from .errors import ConfigError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DEVICEBRIDGE_",
        extra="ignore",
    )

    # Driver selection: "enphase" (push-mode meter) or "vlight" (pull-mode light)
    driver: Literal["enphase", "vlight"]

    # Addressing
    name: str = ""
    svc_base_uri: str

    # Sampling, e.g. "30s", "1m30s"
    poll_interval: str

    # Enphase Enlighten credentials
    api_key: str = ""
    user_id: str = ""
    system_name: str = ""
    enphase_api_url: str = "https://api.enphaseenergy.com/api/v2"
    http_timeout_seconds: float = 10.0

    # Bus
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_client_id: Optional[str] = None
    mqtt_qos: int = Field(default=0, ge=0, le=2)

    # Extra service metadata, JSON object in the environment
    metadata: dict[str, str] = Field(default_factory=dict)

    # Local status API
    status_host: str = "127.0.0.1"
    status_port: int = 8080

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("svc_base_uri")
    @classmethod
    def _strip_base_uri(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("svc_base_uri must not be empty")
        return v

    @field_validator("poll_interval")
    @classmethod
    def _check_poll_interval(cls, v: str) -> str:
        seconds = parse_duration(v)
        if seconds <= 0:
            raise ValueError(f"poll_interval must be positive, got {v!r}")
        return v

    @model_validator(mode="after")
    def _check_driver_keys(self) -> "Settings":
        if self.driver == "enphase":
            missing = [
                key
                for key in ("name", "api_key", "user_id", "system_name")
                if not getattr(self, key)
            ]
            if missing:
                raise ValueError(
                    "enphase driver requires: " + ", ".join(missing)
                )
        return self

    @property
    def poll_interval_seconds(self) -> float:
        return parse_duration(self.poll_interval)


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, raising ConfigError if invalid."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(problems) from e
