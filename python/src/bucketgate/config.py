"""Configuration loading and Pydantic models for BucketGate."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

# Environment variables that override secrets from the YAML file.
ENV_AUTH_BEARER = "BUCKETGATE_AUTH_BEARER"
ENV_SIGNING_KEY = "BUCKETGATE_SIGNING_KEY"


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 9000
    public_url: str = ""
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class AuthConfig(BaseModel):
    """Bearer token and URL-signing secrets."""

    bearer_token: str = ""
    signing_key: str = ""


class StorageConfig(BaseModel):
    """Object storage configuration."""

    local_root: str = "./data/buckets"


class ObservabilityConfig(BaseModel):
    """Metrics and health check toggles."""

    metrics: bool = True
    health_check: bool = True


class BucketGateConfig(BaseModel):
    """Top-level BucketGate configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "host": data.get("host", "0.0.0.0"),
        "port": data.get("port", 9000),
        "public_url": data.get("public_url", ""),
        "log_level": data.get("log_level", "INFO"),
        "log_format": data.get("log_format", "text"),
        "shutdown_timeout": data.get("shutdown_timeout", 30),
    }


def _parse_auth(data: dict[str, Any] | None, environ: dict[str, str]) -> dict[str, Any]:
    """Parse the auth section from YAML data, applying env overrides."""
    data = data or {}
    return {
        "bearer_token": environ.get(ENV_AUTH_BEARER) or data.get("bearer_token", ""),
        "signing_key": environ.get(ENV_SIGNING_KEY) or data.get("signing_key", ""),
    }


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.local.root_dir -> local_root
    """
    if data is None:
        return {}
    result: dict[str, Any] = {}
    local_section = data.get("local")
    if isinstance(local_section, dict):
        result["local_root"] = local_section.get("root_dir", "./data/buckets")
    return result


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {
        "metrics": data.get("metrics", True),
        "health_check": data.get("health_check", True),
    }


def load_config(path: Path, environ: dict[str, str] | None = None) -> BucketGateConfig:
    """Load a BucketGateConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.
        environ: Environment mapping for secret overrides. Defaults to
            ``os.environ``.

    Returns:
        A fully populated BucketGateConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    if environ is None:
        environ = dict(os.environ)

    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return BucketGateConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        auth=AuthConfig(**_parse_auth(raw.get("auth"), environ)),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )


def default_config(environ: dict[str, str] | None = None) -> BucketGateConfig:
    """Return built-in defaults with secrets taken from the environment."""
    if environ is None:
        environ = dict(os.environ)
    return BucketGateConfig(auth=AuthConfig(**_parse_auth(None, environ)))
