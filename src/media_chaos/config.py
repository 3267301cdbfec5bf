"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .exceptions import ConfigError
from .presets import SimulationPreset

DEFAULT_CONFIG_PATH = "~/.media-chaos/config.yaml"
PLACEHOLDER_VIDEO_URL = (
    "https://storage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"
)
INVALID_VIDEO_URL = "http://force.error.test/invalid-video-source.mp4"


class EngineConfig(BaseModel):
    test_duration_seconds: float = Field(default=60.0, gt=0)
    progress_interval_seconds: float = Field(default=0.25, gt=0)
    stats_interval_seconds: float = Field(default=1.0, gt=0)
    chaos_interval_seconds: float = Field(default=3.0, gt=0)
    recovery_delay_seconds: float = Field(default=0.5, ge=0)
    invalid_source_url: str = INVALID_VIDEO_URL


class PlayerConfig(BaseModel):
    type: str = "simulated"  # "simulated" | "http"
    # Simulated engine
    startup_latency_seconds: float = 0.8
    bitrate_ladder_bps: list[int] = Field(
        default_factory=lambda: [800_000, 2_000_000, 5_000_000]
    )
    tick_seconds: float = 0.25
    switch_probability: float = Field(default=0.05, ge=0.0, le=1.0)
    stall_probability: float = Field(default=0.01, ge=0.0, le=1.0)
    stall_seconds: float = 1.0
    # HTTP engine
    request_timeout_seconds: float = 10.0
    stall_timeout_seconds: float = 2.0
    chunk_size: int = 64 * 1024
    throughput_window_seconds: float = 3.0


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8095
    auth_token: str = ""  # Bearer token for API access (empty = no auth)


class ClientInfoConfig(BaseModel):
    enabled: bool = True
    url: str = "https://ipapi.co/json/"
    timeout_seconds: float = 5.0


class MediaChaosConfig(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    player: PlayerConfig = Field(default_factory=PlayerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    client_info: ClientInfoConfig = Field(default_factory=ClientInfoConfig)
    default_source_url: str = PLACEHOLDER_VIDEO_URL
    presets: dict[str, SimulationPreset] = Field(default_factory=dict)
    log_level: str = "INFO"


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _config_from_env() -> MediaChaosConfig:
    """Build config from MEDIA_CHAOS_* environment variables.

    Falls back to defaults for anything that is not set.
    """
    engine = EngineConfig()
    duration = os.environ.get("MEDIA_CHAOS_TEST_DURATION", "")
    if duration:
        engine = EngineConfig(test_duration_seconds=float(duration))

    return MediaChaosConfig(
        engine=engine,
        player=PlayerConfig(type=os.environ.get("MEDIA_CHAOS_PLAYER", "simulated")),
        api=ApiConfig(
            host=os.environ.get("MEDIA_CHAOS_API_HOST", "127.0.0.1"),
            port=int(os.environ.get("MEDIA_CHAOS_API_PORT", "8095")),
            auth_token=os.environ.get("MEDIA_CHAOS_API_TOKEN", ""),
        ),
        default_source_url=os.environ.get(
            "MEDIA_CHAOS_SOURCE_URL", PLACEHOLDER_VIDEO_URL
        ),
        log_level=os.environ.get("MEDIA_CHAOS_LOG_LEVEL", "INFO"),
    )


def _resolve_path(path: str | Path | None) -> Path:
    if path is None:
        return Path(DEFAULT_CONFIG_PATH).expanduser()
    return Path(path).expanduser()


def load_config(path: str | Path | None = None) -> MediaChaosConfig:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    path = _resolve_path(path)

    if not path.exists():
        return _config_from_env()

    try:
        raw_text = path.read_text()
        data = yaml.safe_load(_interpolate_env_vars(raw_text))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if data is None:
        return MediaChaosConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return MediaChaosConfig(**data)


def save_config(config: MediaChaosConfig, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    path = _resolve_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json")
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
