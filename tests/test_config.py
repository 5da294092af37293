"""
Tests for settings loading and validation.
"""

from pathlib import Path

import pytest

from feedsync.config import build_settings, load_settings, resolve_config
from feedsync.config.loader import normalise_store_url
from feedsync.exceptions import ConfigurationError


class TestDefaults:
    def test_empty_environment(self, tmp_path):
        settings = load_settings(tmp_path, environ={})

        assert settings.transfer.protocol == "ftp"
        assert settings.transfer.port == 21
        assert settings.transfer.remote_dir == "/"
        assert settings.transfer.extension == ".csv"
        assert settings.transfer.max_attempts == 10
        assert settings.dispatch.batch_size == 10
        assert settings.dispatch.inter_batch_delay_s == 1.0
        assert settings.dispatch.parallel is True
        assert settings.dispatch.dry_run is False
        assert settings.schedule.cron == "0 2 * * *"
        assert settings.schedule.timezone == "UTC"
        assert settings.download_dir == Path("./downloads")
        assert settings.keep_files_days == 7

    def test_sftp_default_port(self):
        assert build_settings({"FTP_PROTOCOL": "SFTP"}).transfer.port == 22

    def test_unknown_protocol(self):
        with pytest.raises(ConfigurationError, match="FTP_PROTOCOL"):
            build_settings({"FTP_PROTOCOL": "scp"})


class TestCoercion:
    """Tests for value conversion."""

    def test_batch_delay_is_milliseconds(self):
        assert build_settings({"SHOPIFY_BATCH_DELAY": "250"}).dispatch.inter_batch_delay_s == 0.25

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("YES", True), ("false", False), ("off", False)])
    def test_bools(self, raw, expected):
        assert build_settings({"SHOPIFY_DRY_RUN": raw}).dispatch.dry_run is expected

    def test_bad_bool(self):
        with pytest.raises(ConfigurationError, match="SHOPIFY_DRY_RUN"):
            build_settings({"SHOPIFY_DRY_RUN": "maybe"})

    def test_bad_int(self):
        with pytest.raises(ConfigurationError, match="SHOPIFY_BATCH_SIZE"):
            build_settings({"SHOPIFY_BATCH_SIZE": "ten"})

    def test_batch_size_minimum(self):
        with pytest.raises(ConfigurationError, match=">= 1"):
            build_settings({"SHOPIFY_BATCH_SIZE": "0"})

    def test_extension_gets_dot(self):
        assert build_settings({"FEED_EXTENSION": "TXT"}).transfer.extension == ".txt"


class TestStoreUrl:
    @pytest.mark.parametrize(
        "raw",
        ["mystore", "mystore.com", "mystore.myshopify.com", "http://mystore.myshopify.com/", "https://mystore.myshopify.com"],
    )
    def test_normalised(self, raw):
        assert normalise_store_url(raw) == "https://mystore.myshopify.com"

    def test_empty(self):
        assert normalise_store_url("  ") == ""

    def test_base_url(self):
        settings = build_settings({"SHOPIFY_STORE_URL": "mystore", "SHOPIFY_API_VERSION": "2024-01"})
        assert settings.catalog.base_url == "https://mystore.myshopify.com/admin/api/2024-01"


class TestConfigFile:
    """Tests for feedsync.yaml handling."""

    def test_file_then_environment(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("FTP_HOST: files.example.com\nSHOPIFY_BATCH_SIZE: 25\nLOG_LEVEL: debug\n")

        settings = load_settings(tmp_path, environ={"SHOPIFY_BATCH_SIZE": "50", "FTP_USER": ""})

        assert settings.transfer.host == "files.example.com"
        assert settings.dispatch.batch_size == 50
        assert settings.transfer.username is None
        assert settings.logging.level == "DEBUG"

    def test_lowercase_keys_accepted(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("ftp_host: files.example.com\n")
        assert load_settings(tmp_path, environ={}).transfer.host == "files.example.com"

    def test_placeholders_substituted(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("SHOPIFY_ACCESS_TOKEN: ${TOKEN}\nFTP_PASSWORD: ${MISSING}\n")

        settings = load_settings(tmp_path, environ={"TOKEN": "shpat_abc"})

        assert settings.catalog.access_token == "shpat_abc"
        assert settings.transfer.password == "${MISSING}"

    def test_unknown_key(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("FTP_HOST: x\nBOGUS: 1\n")
        with pytest.raises(ConfigurationError, match="BOGUS"):
            load_settings(tmp_path, environ={})

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("FTP_HOST: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Error parsing"):
            load_settings(tmp_path, environ={})

    def test_not_a_mapping(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(tmp_path, environ={})

    def test_explicit_file_must_exist(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(config_file=tmp_path / "nope.yaml", environ={})


class TestEnvFile:
    """Tests for variables read from a .env file in the project directory."""

    def test_values_read(self, tmp_path):
        (tmp_path / ".env").write_text("FTP_HOST=files.example.com\nFTP_PASSWORD=\"hunter2\"\n# comment\n")

        settings = load_settings(tmp_path, environ={})

        assert settings.transfer.host == "files.example.com"
        assert settings.transfer.password == "hunter2"

    def test_environment_wins(self, tmp_path):
        (tmp_path / ".env").write_text("SHOPIFY_BATCH_SIZE=25\n")
        assert load_settings(tmp_path, environ={"SHOPIFY_BATCH_SIZE": "50"}).dispatch.batch_size == 50

    def test_placeholders_resolved_from_env_file(self, tmp_path):
        (tmp_path / "feedsync.yaml").write_text("SHOPIFY_ACCESS_TOKEN: ${TOKEN}\n")
        (tmp_path / ".env").write_text("TOKEN=shpat_abc\n")

        assert load_settings(tmp_path, environ={}).catalog.access_token == "shpat_abc"

    def test_key_without_value_ignored(self, tmp_path):
        (tmp_path / ".env").write_text("FTP_HOST\n")
        assert load_settings(tmp_path, environ={}).transfer.host == ""


class TestResolveConfig:
    def test_nested(self):
        data = {"a": "${X}", "b": ["${X}-1", 2], "c": {"d": "plain"}}
        assert resolve_config(data, {"X": "v"}) == {"a": "v", "b": ["v-1", 2], "c": {"d": "plain"}}


class TestRedacted:
    def test_secrets_masked(self):
        settings = build_settings({"FTP_PASSWORD": "hunter2", "SHOPIFY_ACCESS_TOKEN": "shpat_abc", "FTP_USER": "me"})
        data = settings.redacted()

        assert data["transfer"]["password"] == "****"
        assert data["catalog"]["access_token"] == "****"
        assert data["transfer"]["username"] == "me"
        assert data["download_dir"] == "downloads"
