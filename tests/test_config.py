import pytest

from config import DEFAULT_MODEL, QueueConfig, Settings, TokenProcessingConfig


def test_defaults_from_empty_env():
    settings = Settings.from_env({})
    assert settings.tokens == TokenProcessingConfig(100_000, 20_000, 3)
    assert settings.queue == QueueConfig(25, 500, 1.0)
    assert settings.model == DEFAULT_MODEL
    assert settings.anthropic_api_key is None
    assert settings.github_token is None
    assert settings.database_url == "sqlite:///repo_ingest.db"


def test_values_read_from_env():
    settings = Settings.from_env({
        "PROCESSOR_CHAR_LIMIT": "5000",
        "TOKEN_PROCESSING_REDUCE_CHAR_PER_RETRY": "1000",
        "TOKEN_PROCESSING_MAX_RETRIES": "4",
        "QUEUE_MAX_SIZE": "2",
        "RATE_LIMIT_FLOOR": "50",
        "RATE_LIMIT_BUFFER_SECS": "2.5",
        "ANTHROPIC_API_KEY": "sk-test",
        "GITHUB_TOKEN": "ghp_x",
        "SUMMARY_CONCURRENCY": "3",
        "DATABASE_URL": "sqlite://",
    })
    assert settings.tokens == TokenProcessingConfig(5000, 1000, 4)
    assert settings.queue == QueueConfig(2, 50, 2.5)
    assert settings.anthropic_api_key == "sk-test"
    assert settings.github_token == "ghp_x"
    assert settings.concurrency == 3
    assert settings.database_url == "sqlite://"


def test_blank_values_fall_back_to_defaults():
    tokens = TokenProcessingConfig.from_env({"PROCESSOR_CHAR_LIMIT": "  "})
    assert tokens.character_limit == 100_000


def test_non_numeric_value_is_rejected():
    with pytest.raises(ValueError, match="PROCESSOR_CHAR_LIMIT"):
        TokenProcessingConfig.from_env({"PROCESSOR_CHAR_LIMIT": "lots"})


def test_limit_must_exceed_reduction_step():
    with pytest.raises(ValueError, match="greater than"):
        TokenProcessingConfig(character_limit=100, reduce_char_per_retry=100)


def test_max_retries_must_be_positive():
    with pytest.raises(ValueError):
        TokenProcessingConfig(max_retries=0)
