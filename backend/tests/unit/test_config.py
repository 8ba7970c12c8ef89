"""Unit tests for configuration loading."""

import textwrap

import pytest

from cont3xt.config import Settings, load_settings, read_ini
from cont3xt.exceptions import ConfigError
from cont3xt.indicators import IndicatorType


pytestmark = pytest.mark.unit


@pytest.fixture
def write_ini(tmp_path):
    def _write(content: str):
        path = tmp_path / "cont3xt.ini"
        path.write_text(textwrap.dedent(content))
        return path

    return _write


class TestLoadSettings:
    """Tests for reading the INI file."""

    def test_defaults(self, write_ini):
        settings = load_settings(write_ini("[cont3xt]\n"))

        assert settings.cont3xt.port == 3218
        assert settings.cont3xt.user_name_header == "anonymous"
        assert settings.cont3xt.max_concurrent_fetches == 16
        assert settings.cache.type == "memory"
        assert settings.cache.cache_size == 100000
        assert settings.integrations == {}

    def test_sections(self, write_ini):
        path = write_ini(
            """
            [cont3xt]
            elasticsearch = http://es1:9200, http://es2:9200
            password_secret = hunter2
            anonymous_roles = cont3xtUser
            log_level = debug

            [cache]
            type = redis
            cache_timeout = 600

            [integration:pdns]
            url = https://pdns.example/{itype}/{indicator}
            itypes = ip, domain
            timeout = 2.5
            rate_limit = 30
            secret_setting = apiKey
            """
        )
        settings = load_settings(path)

        assert settings.cont3xt.elasticsearch == ["http://es1:9200", "http://es2:9200"]
        assert settings.cont3xt.password_secret == "hunter2"
        assert settings.cont3xt.anonymous_roles == ["cont3xtUser"]
        assert settings.cont3xt.log_level == "DEBUG"
        assert settings.cache.type == "redis"
        assert settings.cache.cache_timeout == 600

        pdns = settings.integrations["pdns"]
        assert pdns.itypes == [IndicatorType.IP, IndicatorType.DOMAIN]
        assert pdns.timeout == 2.5
        assert pdns.rate_limit == 30
        assert pdns.secret_setting == "apiKey"

    def test_percent_in_values(self, write_ini):
        path = write_ini(
            """
            [integration:search]
            url = https://search.example/?q={indicator}&fmt=%%json
            itypes = text
            """
        )
        assert load_settings(path).integrations["search"].url.endswith("%%json")

    def test_environment_overrides_file(self, write_ini, monkeypatch):
        monkeypatch.setenv("CONT3XT_CONT3XT__PORT", "8443")
        settings = load_settings(write_ini("[cont3xt]\nport = 3218\n"))
        assert settings.cont3xt.port == 8443

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(tmp_path / "missing.ini")

    def test_malformed_file(self, write_ini):
        with pytest.raises(ConfigError):
            read_ini(write_ini("no section header\n"))

    @pytest.mark.parametrize(
        "content",
        [
            "[cont3xt]\nport = not-a-number\n",
            "[cache]\ntype = memcached\n",
            "[integration:x]\nitypes = ip\n",
            "[integration:x]\nurl = https://x/{indicator}\nitypes = asn\n",
            "[integration:x]\nurl = https://x/{indicator}\nitypes = ip\nmethod = DELETE\n",
        ],
    )
    def test_invalid_values(self, write_ini, content):
        with pytest.raises(ConfigError):
            load_settings(write_ini(content))

    def test_unnamed_integration_section(self, write_ini):
        with pytest.raises(ConfigError):
            load_settings(write_ini("[integration:]\nurl = x\nitypes = ip\n"))

    def test_settings_frozen(self):
        settings = Settings()
        with pytest.raises(Exception):
            settings.cache = None

    def test_tls_enabled(self, write_ini):
        settings = load_settings(
            write_ini("[cont3xt]\nkey_file = /k.pem\ncert_file = /c.pem\n")
        )
        assert settings.cont3xt.tls_enabled


class TestKeySpellings:
    """Tests for camelCase keys and unknown keys."""

    def test_camel_case_keys(self, write_ini):
        path = write_ini(
            """
            [cont3xt]
            passwordSecret = s3cret
            userNameHeader = x-user
            elasticsearchAPIKey = abc123
            usersElasticsearch = http://users:9200
            webBasePath = /cont3xt/
            keyFile = /k.pem
            certFile = /c.pem

            [cache]
            cacheSize = 5
            cacheTimeout = 90
            redisURL = redis://cache:6379

            [integration:pdns]
            url = https://pdns.example/{indicator}
            itypes = ip
            rateLimit = 12
            secretSetting = apiKey
            """
        )
        settings = load_settings(path)

        assert settings.cont3xt.password_secret == "s3cret"
        assert settings.cont3xt.user_name_header == "x-user"
        assert settings.cont3xt.elasticsearch_api_key == "abc123"
        assert settings.cont3xt.users_elasticsearch == ["http://users:9200"]
        assert settings.cont3xt.web_base_path == "/cont3xt/"
        assert settings.cont3xt.tls_enabled
        assert settings.cache.cache_size == 5
        assert settings.cache.cache_timeout == 90
        assert settings.cache.redis_url == "redis://cache:6379"
        assert settings.integrations["pdns"].rate_limit == 12
        assert settings.integrations["pdns"].secret_setting == "apiKey"

    @pytest.mark.parametrize(
        "content",
        [
            "[cont3xt]\npasswordSecrett = typo\n",
            "[cache]\nsize = 5\n",
            "[integration:x]\nurl = https://x/{indicator}\nitypes = ip\nratelimit_per_hour = 3\n",
        ],
    )
    def test_unknown_keys_rejected(self, write_ini, content):
        with pytest.raises(ConfigError):
            load_settings(write_ini(content))

    def test_same_setting_twice_rejected(self, write_ini):
        with pytest.raises(ConfigError, match="password_secret"):
            read_ini(write_ini("[cont3xt]\npasswordSecret = a\npassword_secret = b\n"))
