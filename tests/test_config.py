# tests/test_config.py
"""
Configuration Tests
===================

Defaults per environment, file and environment variable sources, validation
and logging setup.
"""

import json
import logging

import pytest
import yaml

from studiodash.config import (
    AppSettings, CacheSettings, ConfigurationLoader, ConfigurationManager, DatabaseSettings,
    Environment, LoggingSettings, LogLevel, ModuleSettings, RetrySettings, get_settings, setup_logging
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Run with none of the configuration variables set and the working
    directory in an empty temp dir.

    Every variable is registered with monkeypatch, so values loaded from a
    .env file during the test are removed afterwards.
    """
    for env_var in ConfigurationLoader.ENV_MAPPINGS:
        monkeypatch.setenv(env_var, "")
        monkeypatch.delenv(env_var)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def testing_env(clean_env):
    clean_env.setenv("STUDIODASH_ENV", "testing")
    return clean_env


class TestDefaults:

    def test_testing_environment(self, testing_env):
        settings = ConfigurationLoader().load_configuration()

        assert settings.environment == Environment.TESTING
        assert settings.database.url == "sqlite:///:memory:"
        assert settings.database.is_memory
        assert settings.retry.initial_delay == 0.01
        assert settings.retry.max_retries == 3
        assert settings.cache.default_timeout == 60
        assert settings.cache.repository_timeout == 300
        assert settings.cache.single_flight is False
        assert settings.logging.level == LogLevel.WARNING
        assert settings.logging.console_enabled is False
        assert settings.modules.disabled == []

    def test_development_environment(self, clean_env):
        settings = ConfigurationLoader().load_configuration()

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.debug is True
        assert settings.database.url == "sqlite:///studiodash_dev.db"
        assert settings.logging.level == LogLevel.DEBUG

    def test_dataclass_defaults_are_valid(self):
        settings = AppSettings()

        assert settings.is_valid()
        assert settings.get_validation_summary() == "Configuration is valid"


class TestEnvironmentVariables:

    def test_overrides(self, testing_env):
        testing_env.setenv("CACHE_REPOSITORY_TTL", "120")
        testing_env.setenv("CACHE_SINGLE_FLIGHT", "yes")
        testing_env.setenv("CACHE_ENABLED", "false")
        testing_env.setenv("DB_MAX_RETRIES", "5")
        testing_env.setenv("DB_RETRY_INITIAL_DELAY", "0.25")
        testing_env.setenv("STUDIODASH_DISABLED_MODULES", "files, calendar,")
        testing_env.setenv("LOG_LEVEL", "error")

        settings = ConfigurationLoader().load_configuration()

        assert settings.cache.repository_timeout == 120
        assert settings.cache.single_flight is True
        assert settings.cache.enabled is False
        assert settings.retry.max_retries == 5
        assert settings.retry.initial_delay == 0.25
        assert settings.modules.disabled == ["files", "calendar"]
        assert settings.logging.level == LogLevel.ERROR

    def test_log_file_enables_file_logging(self, testing_env, tmp_path):
        testing_env.setenv("LOG_FILE", str(tmp_path / "studio.log"))

        settings = ConfigurationLoader().load_configuration()

        assert settings.logging.file_enabled is True
        assert settings.logging.file_path == str(tmp_path / "studio.log")

    def test_invalid_number_is_ignored(self, testing_env, caplog):
        testing_env.setenv("DB_MAX_RETRIES", "many")

        with caplog.at_level(logging.WARNING, logger="studiodash.config"):
            settings = ConfigurationLoader().load_configuration()

        assert settings.retry.max_retries == 3
        assert "Invalid value for DB_MAX_RETRIES" in caplog.text

    def test_env_file(self, testing_env, tmp_path):
        env_file = tmp_path / "studio.env"
        env_file.write_text("CACHE_DEFAULT_TTL=15\nDATABASE_URL=sqlite:///from-env-file.db\n")

        settings = ConfigurationLoader().load_configuration(env_file=str(env_file))

        assert settings.cache.default_timeout == 15
        assert settings.database.url == "sqlite:///from-env-file.db"


class TestConfigFiles:

    def test_yaml_file(self, testing_env, tmp_path):
        config_file = tmp_path / "custom.yml"
        config_file.write_text(yaml.safe_dump({
            "app_name": "Visual Harmonics",
            "cache": {"repository_timeout": 90},
            "modules": {"disabled": ["brainstorm"]},
        }))

        settings = ConfigurationLoader().load_configuration(str(config_file))

        assert settings.app_name == "Visual Harmonics"
        assert settings.cache.repository_timeout == 90
        assert settings.cache.default_timeout == 60
        assert settings.modules.disabled == ["brainstorm"]
        # File values merge over the environment defaults
        assert settings.database.url == "sqlite:///:memory:"

    def test_environment_variables_beat_file(self, testing_env, tmp_path):
        config_file = tmp_path / "custom.json"
        config_file.write_text(json.dumps({"cache": {"repository_timeout": 90}}))
        testing_env.setenv("CACHE_REPOSITORY_TTL", "30")

        settings = ConfigurationLoader().load_configuration(str(config_file))

        assert settings.cache.repository_timeout == 30

    def test_file_discovered_in_working_directory(self, testing_env, tmp_path, monkeypatch):
        (tmp_path / "studiodash.yml").write_text("retry:\n  max_retries: 7\n")
        monkeypatch.setattr("studiodash.config.DEFAULT_CONFIG_PATHS", [tmp_path])

        settings = ConfigurationLoader().load_configuration()

        assert settings.retry.max_retries == 7

    def test_missing_file(self, testing_env, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigurationLoader().load_configuration(str(tmp_path / "missing.yml"))

    def test_unknown_key_is_rejected(self, testing_env, tmp_path):
        config_file = tmp_path / "custom.yml"
        config_file.write_text("cache:\n  size_limit: 100\n")

        with pytest.raises(ValueError, match="Invalid configuration data"):
            ConfigurationLoader().load_configuration(str(config_file))


class TestValidation:

    def test_component_errors_are_prefixed(self):
        settings = AppSettings(
            cache=CacheSettings(default_timeout=0),
            retry=RetrySettings(max_retries=0),
            database=DatabaseSettings(url="studiodash.db"),
        )

        fields = [error.field for error in settings.validate_configuration()]

        assert fields == ["database.url", "cache.default_timeout", "retry.max_retries"]
        assert not settings.is_valid()
        assert "3 error(s)" in settings.get_validation_summary()

    def test_non_positive_retry_delay(self):
        errors = AppSettings(retry=RetrySettings(initial_delay=0)).validate_configuration()

        assert [error.field for error in errors] == ["retry.initial_delay"]

    def test_blank_module_id(self):
        errors = AppSettings(modules=ModuleSettings(disabled=["files", " "])).validate_configuration()

        assert [error.field for error in errors] == ["modules.disabled[1]"]

    def test_production_rules(self):
        settings = AppSettings(
            environment=Environment.PRODUCTION,
            debug=True,
            database=DatabaseSettings(url="sqlite:///:memory:"),
        )

        fields = [error.field for error in settings.validate_configuration()]

        assert fields == ["debug", "database.url"]


class TestConfigurationManager:

    def test_singleton(self):
        assert ConfigurationManager() is ConfigurationManager()

    def test_load_and_get(self, testing_env):
        config = ConfigurationManager().load_config()

        assert get_settings() is config
        assert ConfigurationManager().to_dict()["environment"] == "testing"
        assert "Environment: testing" in ConfigurationManager().get_config_summary()

    def test_get_config_loads_on_first_use(self, testing_env):
        assert get_settings().environment == Environment.TESTING

    def test_invalid_configuration_raises(self, testing_env):
        testing_env.setenv("DB_MAX_RETRIES", "0")

        with pytest.raises(ValueError, match="retry.max_retries"):
            ConfigurationManager().load_config()

    def test_validation_can_be_skipped(self, testing_env):
        testing_env.setenv("DB_MAX_RETRIES", "0")

        config = ConfigurationManager().load_config(validate=False)

        assert config.retry.max_retries == 0


class TestSetupLogging:

    def test_console_and_file_handlers(self, tmp_path):
        root = logging.getLogger()
        previous_level = root.level
        log_file = tmp_path / "logs" / "studiodash.log"
        settings = LoggingSettings(
            level=LogLevel.DEBUG,
            file_enabled=True,
            file_path=str(log_file),
            logger_levels={"sqlalchemy.engine": "WARNING"},
        )

        try:
            setup_logging(settings)
            setup_logging(settings)

            ours = [h for h in root.handlers if getattr(h, "_studiodash", False)]
            assert len(ours) == 2
            assert root.level == logging.DEBUG
            assert log_file.parent.is_dir()
            assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

            logging.getLogger("studiodash.test").info("written to file")
            for handler in ours:
                handler.flush()
            assert "written to file" in log_file.read_text()
        finally:
            setup_logging(LoggingSettings(console_enabled=False))
            root.setLevel(previous_level)

        assert not [h for h in root.handlers if getattr(h, "_studiodash", False)]
