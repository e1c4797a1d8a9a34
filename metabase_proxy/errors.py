"""
Error taxonomy for the proxy.

Startup errors (ConfigError, TLSMaterialError) are fatal before the listener
binds. Request errors (AuthError, UpstreamError) become a 500 for that one
request and never stop the process.
"""
from __future__ import annotations


class ProxyError(Exception):
    """Base class for all proxy errors."""


class ConfigError(ProxyError):
    """Configuration is missing or invalid."""


class UnsupportedFormat(ConfigError):
    """Config file could not be parsed by any of the supported formats."""

    def __init__(self, path: str, errors: dict[str, str]):
        self.path = path
        self.errors = errors
        formats = ", ".join(errors)
        super().__init__(f"Config file {path} must be in one of: {formats}")


class TLSMaterialError(ProxyError):
    """TLS is enabled but the key/cert pair cannot be used."""


class AuthError(ProxyError):
    """The backend refused to issue a session."""


class UpstreamError(ProxyError):
    """The backend is unreachable or answered with an unexpected status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
