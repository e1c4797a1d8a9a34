"""
Configuration: process settings from the environment and the proxy config file.

The config file may be YAML, TOML or JSON. Parsers are tried in that order and
the first one producing a mapping wins.
"""
from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, List, Optional, Tuple, Type

import httpx
import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from metabase_proxy.errors import ConfigError, UnsupportedFormat


DEFAULT_CONFIG_PATH = "metabase-api-proxy.conf"


class AppConfig(BaseSettings):
    metabase_proxy_config: str = DEFAULT_CONFIG_PATH
    # Forces debug logging regardless of the config file
    metabase_proxy_debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()


class ProxySettings(BaseModel):
    """Listener and backend target settings (the `proxy` section)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hostname: str = "localhost"
    address: str = "0.0.0.0"
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    ssl: bool = False
    key_file: str = Field(
        default="privkey.pem",
        validation_alias=AliasChoices("keyFile", "keyfile", "key_file"),
    )
    cert_file: str = Field(
        default="fullchain.pem",
        validation_alias=AliasChoices("certFile", "certfile", "cert_file"),
    )
    target: str
    verify_target: bool = Field(
        default=False,
        validation_alias=AliasChoices("verifyTarget", "verify_target"),
    )

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        try:
            url = httpx.URL(v)
        except httpx.InvalidURL as e:
            raise ValueError(f"invalid URL: {e}")
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError("must be an absolute http(s) URL")
        return v.rstrip("/")


class MetabaseSettings(BaseModel):
    """Backend account settings (the `metabase` section)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_path: str = Field(
        default="/api",
        validation_alias=AliasChoices("apiPath", "api_path"),
    )
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("api_path")
    @classmethod
    def normalize_api_path(cls, v: str) -> str:
        v = "/" + v.strip("/")
        return "" if v == "/" else v


class Config(BaseModel):
    """Validated proxy configuration."""
    debug: bool = False
    proxy: ProxySettings
    metabase: MetabaseSettings


@dataclass
class ParseAttempt:
    """Outcome of one parser: either `data` or `error` is set."""
    format: str
    data: Optional[dict] = None
    error: Optional[str] = None


def _parse_yaml(contents: str) -> Any:
    return yaml.safe_load(contents)


def _parse_toml(contents: str) -> Any:
    return tomllib.loads(contents)


def _parse_json(contents: str) -> Any:
    return json.loads(contents)


PARSERS: List[Tuple[str, Callable[[str], Any], Tuple[Type[Exception], ...]]] = [
    ("YAML", _parse_yaml, (yaml.YAMLError,)),
    ("TOML", _parse_toml, (tomllib.TOMLDecodeError,)),
    ("JSON", _parse_json, (json.JSONDecodeError,)),
]


def _attempt(name: str, parser: Callable[[str], Any], errors: Tuple[Type[Exception], ...], contents: str) -> ParseAttempt:
    try:
        data = parser(contents)
    except errors as e:
        return ParseAttempt(format=name, error=str(e))
    if not isinstance(data, dict):
        return ParseAttempt(format=name, error="document is not a mapping")
    return ParseAttempt(format=name, data=data)


def parse_config(contents: str, path: str = "<string>") -> dict:
    """
    Parse config file contents, trying each supported format in order.
    
    Raises:
        UnsupportedFormat: If no parser produced a mapping
    """
    failures = {}
    for name, parser, errors in PARSERS:
        attempt = _attempt(name, parser, errors, contents)
        if attempt.data is not None:
            return attempt.data
        failures[name] = attempt.error
    raise UnsupportedFormat(path, failures)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def validate_config(data: dict) -> Config:
    """Validate parsed config data, raising ConfigError on failure."""
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Config error: {_format_validation_error(e)}")


def load_config(path: str) -> Config:
    """
    Load and validate the proxy configuration file.
    
    Args:
        path: Path to a YAML, TOML or JSON config file
        
    Returns:
        Validated Config
        
    Raises:
        ConfigError: If the file is missing, unparseable or invalid
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            contents = f.read()
    except (FileNotFoundError, IsADirectoryError):
        raise ConfigError(f"Config file does not exist at '{path}'")
    except OSError as e:
        raise ConfigError(f"Cannot read config file '{path}': {e}")

    return validate_config(parse_config(contents, path))
