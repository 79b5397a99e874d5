"""Tests for configuration module."""

import pytest

from paper_digest.config import ModelConfig, PipelineConfig, Settings, validate_config


def test_settings_defaults():
    """Test settings defaults and environment overrides."""
    settings = Settings()

    assert settings.mock is True
    assert settings.log_level == "DEBUG"
    assert settings.min_score == 10
    assert settings.max_items_per_batch == 50
    assert settings.max_tokens_per_batch == 8000
    assert settings.oracle_concurrency == 5
    assert settings.apply_no_match_penalty is False


def test_settings_min_score_validation():
    with pytest.raises(ValueError, match="min_score must be between 0 and 100"):
        Settings(min_score=120)


def test_settings_batch_limit_validation():
    with pytest.raises(ValueError, match="Batch limits must be at least 1"):
        Settings(max_items_per_batch=0)


def test_settings_cooldown_validation():
    with pytest.raises(ValueError, match="cannot be negative"):
        Settings(batch_cooldown_seconds=-1)


def test_settings_log_level_normalized(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert Settings().log_level == "WARNING"

    with pytest.raises(ValueError, match="Unknown log level"):
        Settings(log_level="chatty")


def test_model_config_loading():
    """Test model configuration loading."""
    config = ModelConfig()

    scorer = config.get_llm_route("scorer")
    assert scorer.primary == "gpt-4o-mini"
    assert "gemini-2.5-flash" in scorer.fallback

    model_settings = config.get_model_settings()
    assert model_settings.temperature == 0.1
    assert model_settings.retry_attempts == 3

    defaults = config.get_default_keywords()
    assert "organoid" in defaults.keywords
    assert defaults.penalty_keywords == []


def test_model_config_unknown_route():
    with pytest.raises(ValueError, match="not found"):
        ModelConfig().get_llm_route("translator")


def test_model_config_missing_file(temp_dir):
    with pytest.raises(FileNotFoundError):
        ModelConfig(temp_dir / "missing.yaml")


def test_model_config_custom_file(temp_dir):
    path = temp_dir / "models.yaml"
    path.write_text(
        "scorer:\n  primary: gemini-2.5-flash\n"
        "default_keywords:\n  keywords: [aorta]\n  penalty_keywords: [mouse]\n"
    )
    config = ModelConfig(path)

    assert config.get_llm_route("scorer").fallback == []
    assert config.get_default_keywords().penalty_keywords == ["mouse"]
    assert config.get_model_settings().max_tokens == 8192


def test_pipeline_config_from_settings_uses_default_keywords():
    config = PipelineConfig.from_settings(Settings(min_score=25))

    assert "Aortic Disease" in config.keywords
    assert config.min_score == 25
    assert config.penalty_keywords == []


def test_pipeline_config_overrides():
    config = PipelineConfig.from_settings(
        Settings(),
        keywords=["organoid"],
        penalty_keywords=["zebrafish"],
        min_score=40,
        oracle_concurrency=None,
    )

    assert config.keywords == ["organoid"]
    assert config.penalty_keywords == ["zebrafish"]
    assert config.min_score == 40
    assert config.oracle_concurrency == 5


def test_config_validation():
    assert validate_config(Settings()) is True


def test_config_validation_missing_api_key():
    settings = Settings(mock=False, openai_api_key=None, google_ai_api_key=None)
    assert validate_config(settings) is False

    settings = Settings(mock=False, openai_api_key="sk-test")
    assert validate_config(settings) is True
