# Test suite for settings, model tables and logging setup

import logging

import pytest

from accesslint_core.config import PricingTable, Settings
from accesslint_core.exceptions import ConfigError, ProviderError
from accesslint_core.utils.logger import PACKAGE_LOGGER, setup_logging

ENV_VARS = (
    "LOG_LEVEL",
    "DEFAULT_PROVIDER",
    "DEFAULT_MODEL",
    "RETRY_MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "CONTEXT_AGGRESSIVENESS",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "AZURE_OPENAI_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    """Environment-backed settings validation"""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.default_provider == "anthropic"
        assert settings.context_aggressiveness == "moderate"
        assert settings.rate_limit_tokens_per_minute == 30_000
        assert settings.api_key_for("anthropic") is None
        assert settings.retry_max_retries is None
        assert settings.model_for("anthropic") == "claude-sonnet-4-20250514"

    def test_model_for_other_providers(self):
        settings = Settings(_env_file=None, default_model="claude-3-5-haiku-20241022")
        assert settings.model_for("anthropic") == "claude-3-5-haiku-20241022"
        assert settings.model_for("gemini") == "gemini-pro"
        assert settings.model_for("azure_openai") == "gpt-4o"

        gemini = Settings(_env_file=None, default_provider="gemini", default_model="gemini-1.5-pro")
        assert gemini.model_for("gemini") == "gemini-1.5-pro"
        assert gemini.model_for("anthropic") == "claude-sonnet-4-20250514"

    def test_values_normalised(self):
        settings = Settings(
            _env_file=None,
            log_level="debug",
            default_provider=" Gemini ",
            context_aggressiveness="AGGRESSIVE",
        )
        assert settings.log_level == "DEBUG"
        assert settings.default_provider == "gemini"
        assert settings.context_aggressiveness == "aggressive"

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "secret-key")
        settings = Settings(_env_file=None)
        assert settings.api_key_for("gemini") == "secret-key"
        assert settings.api_key_for("nope") is None
        assert "secret-key" not in repr(settings)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"log_level": "LOUD"},
            {"default_provider": "bogus"},
            {"context_aggressiveness": "reckless"},
            {"rate_limit_tokens_per_minute": 0},
            {"rate_limit_requests_per_minute": -1},
            {"rate_limit_burst_threshold": 1.5},
            {"retry_max_retries": -1},
            {"retry_base_delay": -0.5},
            {"max_tool_mistakes": 0},
            {"usage_retention_days": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            Settings(_env_file=None, **overrides)


class TestPricingTable:
    """Static price lookups"""

    def test_default_model_must_be_priced(self):
        with pytest.raises(ConfigError):
            PricingTable(prices={"anthropic": {}}, default_models={"anthropic": "missing"})

    def test_rates(self):
        table = PricingTable()
        assert table.rates_for("anthropic", "claude-3-opus-20240229") == (15.0, 75.0)
        assert table.rates_for("nobody", "x") is None
        assert table.cost(0, 1_000_000, "claude-3-opus-20240229", "anthropic") == pytest.approx(75.0)


class TestLogging:
    """Package logger setup"""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        handlers = list(package_logger.handlers)
        level = package_logger.level
        yield
        for handler in list(package_logger.handlers):
            if handler not in handlers:
                package_logger.removeHandler(handler)
                handler.close()
        package_logger.setLevel(level)

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging("debug")
        package_logger = setup_logging("debug")
        marked = [h for h in package_logger.handlers if getattr(h, "_accesslint_handler", False)]
        assert len(marked) == 1
        assert package_logger.level == logging.DEBUG

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "core.log"
        package_logger = setup_logging(logging.INFO, log_file=log_file)
        logging.getLogger(f"{PACKAGE_LOGGER}.tests").info("hello from tests")
        for handler in package_logger.handlers:
            handler.flush()
        assert "hello from tests" in log_file.read_text(encoding="utf-8")


class TestExceptionContract:
    """Base error contract"""

    def test_provider_details(self):
        error = ProviderError("boom", provider_name="gemini", model_name="gemini-pro")
        assert error.details == {"provider_name": "gemini", "model_name": "gemini-pro"}
        assert error.user_hint == "An internal error occurred."
