"""
Configuration loading tests
"""
import os
from unittest.mock import patch

import pytest

from cert_updater.config_loader import (
    API_TOKEN_ENV_VAR,
    CertificatePaths,
    Config,
    ConfigurationError,
    FastlyConfig,
    load_certificate_paths,
    load_settings,
    parse_renewal_conf,
    resolve_api_token,
    validate_renewal_window,
)


RENEWAL_CONF = """\
# renew_before_expiry = 30 days
version = 2.11.0
archive_dir = /etc/letsencrypt/archive/example.org
cert = /etc/letsencrypt/live/example.org/cert.pem
privkey = /etc/letsencrypt/live/example.org/privkey.pem
chain = /etc/letsencrypt/live/example.org/chain.pem
fullchain = /etc/letsencrypt/live/example.org/fullchain.pem

# Options used in the renewal process
[renewalparams]
account = 0123456789abcdef
authenticator = webroot
"""


class TestParseRenewalConf:
    """Renewal configuration parsing tests"""

    def test_parses_four_paths(self):
        paths = parse_renewal_conf(RENEWAL_CONF)

        assert paths == CertificatePaths(
            cert="/etc/letsencrypt/live/example.org/cert.pem",
            chain="/etc/letsencrypt/live/example.org/chain.pem",
            fullchain="/etc/letsencrypt/live/example.org/fullchain.pem",
            privkey="/etc/letsencrypt/live/example.org/privkey.pem",
        )

    def test_crlf_line_endings(self):
        paths = parse_renewal_conf(RENEWAL_CONF.replace("\n", "\r\n"))
        assert paths.cert == "/etc/letsencrypt/live/example.org/cert.pem"
        assert paths.fullchain == "/etc/letsencrypt/live/example.org/fullchain.pem"

    def test_cert_and_fullchain_not_confused(self):
        text = "fullchain = /a/fullchain.pem\ncert = /a/cert.pem\nchain = /a/chain.pem\nprivkey = /a/privkey.pem\n"
        paths = parse_renewal_conf(text)
        assert paths.cert == "/a/cert.pem"
        assert paths.fullchain == "/a/fullchain.pem"

    def test_keys_inside_sections_ignored(self):
        text = "cert = /a/cert.pem\nchain = /a/chain.pem\nfullchain = /a/fullchain.pem\n[renewalparams]\nprivkey = /b/privkey.pem\n"
        with pytest.raises(ConfigurationError, match="privkey"):
            parse_renewal_conf(text)

    def test_missing_keys(self):
        with pytest.raises(ConfigurationError, match="chain, privkey"):
            parse_renewal_conf("cert = /a/cert.pem\nfullchain = /a/fullchain.pem\n")

    def test_empty_value(self):
        text = "cert =\nchain = /a/chain.pem\nfullchain = /a/fullchain.pem\nprivkey = /a/privkey.pem\n"
        with pytest.raises(ConfigurationError, match="cert"):
            parse_renewal_conf(text)


class TestLoadCertificatePaths:
    """load_certificate_paths() tests"""

    def test_loads_file(self, tmp_path):
        conf = tmp_path / "example.org.conf"
        conf.write_text(RENEWAL_CONF)

        paths = load_certificate_paths(str(conf))
        assert paths.privkey == "/etc/letsencrypt/live/example.org/privkey.pem"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="renewal config path"):
            load_certificate_paths(str(tmp_path / "missing.conf"))


class TestLoadSettings:
    """YAML settings tests"""

    def test_defaults_without_file(self):
        config = load_settings(None)

        assert config.settings.renewal_window_days == 30
        assert config.settings.dry_run is False
        assert config.fastly.api_url == "https://api.fastly.com"
        assert config.fastly.api_token is None

    def test_full_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "settings:\n"
            "  renewal_window_days: 14\n"
            "  dry_run: true\n"
            "fastly:\n"
            "  api_url: https://api.example.test\n"
            "  api_token: secret\n"
            "  timeout: 5\n"
        )

        config = load_settings(str(path))

        assert config.settings.renewal_window_days == 14
        assert config.settings.dry_run is True
        assert config.fastly == FastlyConfig(
            api_url="https://api.example.test",
            api_token="secret",
            timeout=5,
        )

    @patch.dict(os.environ, {"FASTLY_TEST_TOKEN": "from-env"})
    def test_env_var_expansion(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("fastly:\n  api_token: ${FASTLY_TEST_TOKEN}\n")

        assert load_settings(str(path)).fastly.api_token == "from-env"

    def test_unset_env_var_means_no_token(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("fastly:\n  api_token: ${FASTLY_TOKEN_THAT_IS_NOT_SET}\n")

        assert load_settings(str(path)).fastly.api_token is None

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yml"
        path.write_text("")

        assert load_settings(str(path)) == Config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_wrong_extension(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{}")
        with pytest.raises(ConfigurationError, match="must be YAML"):
            load_settings(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("settings: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(str(path))

    def test_non_https_api_url(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("fastly:\n  api_url: http://api.fastly.com\n")
        with pytest.raises(ConfigurationError, match="https"):
            load_settings(str(path))

    @pytest.mark.parametrize("value", [0, 91, "30", True])
    def test_invalid_renewal_window(self, tmp_path, value):
        path = tmp_path / "settings.yaml"
        path.write_text(f"settings:\n  renewal_window_days: {value!r}\n")
        with pytest.raises(ConfigurationError, match="renewal_window_days"):
            load_settings(str(path))


class TestResolveApiToken:
    """API token precedence tests"""

    @patch.dict(os.environ, {API_TOKEN_ENV_VAR: "env-token"})
    def test_cli_wins(self):
        config = Config(fastly=FastlyConfig(api_token="file-token"))
        assert resolve_api_token("cli-token", config) == "cli-token"

    @patch.dict(os.environ, {API_TOKEN_ENV_VAR: "env-token"})
    def test_settings_before_env(self):
        config = Config(fastly=FastlyConfig(api_token="file-token"))
        assert resolve_api_token(None, config) == "file-token"

    @patch.dict(os.environ, {API_TOKEN_ENV_VAR: "env-token"})
    def test_env_fallback(self):
        assert resolve_api_token(None, Config()) == "env-token"

    def test_missing_everywhere(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError, match=API_TOKEN_ENV_VAR):
                resolve_api_token(None, Config())


class TestValidateRenewalWindow:
    def test_bounds(self):
        validate_renewal_window(1)
        validate_renewal_window(90)
        with pytest.raises(ConfigurationError):
            validate_renewal_window(0)
