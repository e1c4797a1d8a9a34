"""
TLS service - reads and validates the listener's key/cert pair at startup.
"""
from __future__ import annotations

import os
import ssl
from dataclasses import dataclass

from metabase_proxy.config import ProxySettings
from metabase_proxy.errors import TLSMaterialError


@dataclass(frozen=True)
class TLSMaterial:
    """Key and certificate for the TLS listener, already read from disk."""
    key_file: str
    cert_file: str
    key: str
    cert: str


def _read_pem(path: str, kind: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            contents = f.read()
    except OSError as e:
        raise TLSMaterialError(f"proxy.{kind}File not readable at '{path}': {e}")
    if "-----BEGIN" not in contents:
        raise TLSMaterialError(f"proxy.{kind}File at '{path}' is not PEM encoded")
    return contents


def load_tls_material(proxy: ProxySettings) -> TLSMaterial:
    """
    Read the key/cert pair and check that they belong together.
    
    Raises:
        TLSMaterialError: If either file is unreadable or the pair is invalid
    """
    key_file = os.path.abspath(proxy.key_file)
    cert_file = os.path.abspath(proxy.cert_file)
    key = _read_pem(key_file, "key")
    cert = _read_pem(cert_file, "cert")

    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except ssl.SSLError as e:
        raise TLSMaterialError(f"Invalid TLS key/cert pair: {e}")

    return TLSMaterial(key_file=key_file, cert_file=cert_file, key=key, cert=cert)
