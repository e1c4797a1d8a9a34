"""
Tests for configuration loading - format detection, defaults and validation.
"""
import json

import pytest

from metabase_proxy.config import get_config, load_config, parse_config, validate_config
from metabase_proxy.errors import ConfigError, UnsupportedFormat
from tests.conftest import BACKEND


VALID = {
    "proxy": {"target": BACKEND},
    "metabase": {"email": "a@b.com", "password": "secret"},
}


class TestParseConfig:

    def test_yaml(self):
        contents = "proxy:\n  target: http://backend.local:3000\n"
        assert parse_config(contents) == {"proxy": {"target": BACKEND}}

    def test_toml(self):
        contents = '[proxy]\ntarget = "http://backend.local:3000"\nport = 8080\n'
        assert parse_config(contents) == {"proxy": {"target": BACKEND, "port": 8080}}

    def test_json(self):
        assert parse_config(json.dumps(VALID)) == VALID

    def test_unsupported(self):
        with pytest.raises(UnsupportedFormat) as exc_info:
            parse_config("just some text", "proxy.conf")
        
        assert list(exc_info.value.errors) == ["YAML", "TOML", "JSON"]
        assert "proxy.conf" in str(exc_info.value)

    def test_unsupported_is_config_error(self):
        with pytest.raises(ConfigError):
            parse_config("[unterminated")


class TestValidateConfig:

    def test_defaults(self):
        config = validate_config(VALID)
        
        assert config.debug is False
        assert config.proxy.hostname == "localhost"
        assert config.proxy.address == "0.0.0.0"
        assert config.proxy.port is None
        assert config.proxy.ssl is False
        assert config.proxy.key_file == "privkey.pem"
        assert config.proxy.cert_file == "fullchain.pem"
        assert config.proxy.verify_target is False
        assert config.metabase.api_path == "/api"

    @pytest.mark.parametrize("key", ["keyFile", "keyfile", "key_file"])
    def test_key_file_aliases(self, key):
        data = {**VALID, "proxy": {"target": BACKEND, key: "/tls/key.pem"}}
        assert validate_config(data).proxy.key_file == "/tls/key.pem"

    def test_target_trailing_slash_removed(self):
        data = {**VALID, "proxy": {"target": f"{BACKEND}/"}}
        assert validate_config(data).proxy.target == BACKEND

    @pytest.mark.parametrize("target", ["backend.local:3000", "ftp://backend.local", "not a url"])
    def test_invalid_target(self, target):
        with pytest.raises(ConfigError, match="proxy.target"):
            validate_config({**VALID, "proxy": {"target": target}})

    def test_missing_target(self):
        with pytest.raises(ConfigError, match="proxy.target"):
            validate_config({**VALID, "proxy": {}})

    def test_missing_credentials(self):
        with pytest.raises(ConfigError, match="metabase.password"):
            validate_config({**VALID, "metabase": {"email": "a@b.com"}})

    def test_empty_password(self):
        with pytest.raises(ConfigError):
            validate_config({**VALID, "metabase": {"email": "a@b.com", "password": ""}})

    @pytest.mark.parametrize("api_path, expected", [("api", "/api"), ("/api/", "/api"), ("/", "")])
    def test_api_path_normalized(self, api_path, expected):
        data = {**VALID, "metabase": {**VALID["metabase"], "apiPath": api_path}}
        assert validate_config(data).metabase.api_path == expected

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_range(self, port):
        with pytest.raises(ConfigError):
            validate_config({**VALID, "proxy": {"target": BACKEND, "port": port}})


class TestLoadConfig:

    def test_load_yaml_file(self, temp_config_file):
        config = load_config(temp_config_file)
        
        assert config.proxy.target == BACKEND
        assert config.proxy.port == 8080
        assert config.metabase.email == "a@b.com"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="does not exist"):
            load_config(str(tmp_path / "missing.conf"))

    def test_directory(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path))


class TestAppConfig:

    def test_reads_environment(self, mock_env, temp_config_file):
        assert get_config().metabase_proxy_config == temp_config_file

    def test_debug_flag(self, mock_env, monkeypatch):
        monkeypatch.setenv("METABASE_PROXY_DEBUG", "true")
        get_config.cache_clear()
        
        assert get_config().metabase_proxy_debug is True
