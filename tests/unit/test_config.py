import pytest
from pydantic import ValidationError

from touchbase.config import ConfigurationError, Settings
from touchbase.features.daily_check.domain.models import BatchConfig


def test_batch_defaults_match_settings_defaults():
    config = BatchConfig.from_settings(Settings(_env_file=None))

    assert config == BatchConfig()
    assert config.batch_size == 20
    assert config.delay_between_batches_ms == 5000
    assert config.delay_between_contacts_ms == 1000
    assert config.max_contacts_per_run == 100
    assert config.retry_attempts == 3
    assert config.retry_delay_ms == 2000
    assert config.max_retry_delay_ms == 30000
    assert config.backoff_multiplier == 2.0
    assert config.rate_limit_status_codes == frozenset({429, 503})


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "7")
    monkeypatch.setenv("RATE_LIMIT_STATUS_CODES", "429, 502,503")

    config = BatchConfig.from_settings(Settings(_env_file=None))

    assert config.batch_size == 7
    assert config.rate_limit_status_codes == frozenset({429, 502, 503})


def test_invalid_status_codes_are_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, RATE_LIMIT_STATUS_CODES="429,slow")


@pytest.mark.parametrize(
    "overrides",
    [
        {"batch_size": 0},
        {"retry_attempts": 0},
        {"backoff_multiplier": 0.5},
        {"delay_between_batches_ms": -1},
        {"max_contacts_per_run": -1},
    ],
)
def test_batch_config_rejects_invalid_values(overrides):
    with pytest.raises(ValueError):
        BatchConfig(**overrides)


def test_require_lists_every_missing_setting():
    config = Settings(_env_file=None, SUPABASE_DB_URL=None, GROQ_API_KEY=None)

    with pytest.raises(ConfigurationError) as exc_info:
        config.require("SUPABASE_DB_URL", "GROQ_API_KEY")

    assert exc_info.value.missing == ["SUPABASE_DB_URL", "GROQ_API_KEY"]


def test_development_pool_is_small():
    config = Settings(_env_file=None, environment="development").get_db_pool_config()

    assert config["max_size"] == 3
