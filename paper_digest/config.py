"""Configuration management for the paper alert digest."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODELS_PATH = Path(__file__).parent / "models.yaml"


class LLMRoute(BaseModel):
    """LLM model routing configuration."""
    primary: str
    fallback: list[str] = Field(default_factory=list)


class ModelSettings(BaseModel):
    """LLM model-specific settings."""
    temperature: float = 0.1
    max_tokens: int = 8192
    timeout_seconds: int = 60
    retry_attempts: int = 3


class KeywordLists(BaseModel):
    """Default interest and penalty keyword lists."""
    keywords: list[str] = Field(default_factory=list)
    penalty_keywords: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Main application settings."""

    # ── LLM Configuration ──────────────────────────────────────────────────
    llm_model_override: str | None = Field(
        None, description="Override for the LLM model"
    )
    openai_api_key: str | None = Field(None, description="OpenAI API key (primary)")
    google_ai_api_key: str | None = Field(None, description="Google AI (Gemini) API key (fallback)")
    llm: ModelSettings = Field(default_factory=ModelSettings, description="LLM settings")

    # ── Operational Mode ───────────────────────────────────────────────────
    mock: bool = Field(False, description="Use the deterministic mock oracle")

    # ── Pipeline Settings ──────────────────────────────────────────────────
    min_score: int = Field(10, description="Papers scoring below this are discarded")
    max_items_per_batch: int = Field(50, description="Maximum articles per oracle batch")
    max_tokens_per_batch: int = Field(8000, description="Token budget per oracle batch")
    oracle_concurrency: int = Field(5, description="Batches dispatched concurrently")
    batch_cooldown_seconds: float = Field(2.0, description="Pause between batch windows")
    apply_no_match_penalty: bool = Field(
        False, description="Subtract 20 when no keyword matches (preprints exempt)"
    )

    # ── Logging ────────────────────────────────────────────────────────────
    log_level: str = Field("INFO", description="Log level")
    json_logging: bool = Field(False, description="Enable JSON logging")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("min_score")
    @classmethod
    def validate_min_score(cls, v: int) -> int:
        """Validate the minimum score is within the score range."""
        if not 0 <= v <= 100:
            raise ValueError("min_score must be between 0 and 100")
        return v

    @field_validator("max_items_per_batch", "max_tokens_per_batch", "oracle_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate batch limits are positive."""
        if v < 1:
            raise ValueError("Batch limits must be at least 1")
        return v

    @field_validator("batch_cooldown_seconds")
    @classmethod
    def validate_cooldown(cls, v: float) -> float:
        if v < 0:
            raise ValueError("batch_cooldown_seconds cannot be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class ModelConfig:
    """Model configuration loader."""

    def __init__(self, config_path: str | Path = DEFAULT_MODELS_PATH):
        self.config_path = Path(config_path)
        self._config: dict[str, Any] = {}
        self.load_config()

    def load_config(self) -> None:
        """Load model configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Model config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            self._config = yaml.safe_load(f) or {}

    def get_llm_route(self, route_name: str) -> LLMRoute:
        """Get LLM route configuration."""
        if route_name not in self._config:
            raise ValueError(f"LLM route '{route_name}' not found in config")

        return LLMRoute(**self._config[route_name])

    def get_model_settings(self) -> ModelSettings:
        """Get model settings."""
        return ModelSettings(**self._config.get("model_settings", {}))

    def get_default_keywords(self) -> KeywordLists:
        """Get the keyword lists used when the caller supplies none."""
        return KeywordLists(**self._config.get("default_keywords", {}))


@dataclass
class PipelineConfig:
    """Per-run inputs supplied by the caller."""
    keywords: list[str]
    penalty_keywords: list[str] = field(default_factory=list)
    min_score: int = 10
    max_items_per_batch: int = 50
    max_tokens_per_batch: int = 8000
    oracle_concurrency: int = 5
    batch_cooldown_seconds: float = 2.0
    apply_no_match_penalty: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        keywords: list[str] | None = None,
        penalty_keywords: list[str] | None = None,
        **overrides: Any,
    ) -> "PipelineConfig":
        """Build a run config from settings, falling back to the default keywords."""
        if not keywords:
            defaults = get_model_config().get_default_keywords()
            keywords = defaults.keywords
            if penalty_keywords is None:
                penalty_keywords = defaults.penalty_keywords

        values: dict[str, Any] = {
            "keywords": list(keywords),
            "penalty_keywords": list(penalty_keywords or []),
            "min_score": settings.min_score,
            "max_items_per_batch": settings.max_items_per_batch,
            "max_tokens_per_batch": settings.max_tokens_per_batch,
            "oracle_concurrency": settings.oracle_concurrency,
            "batch_cooldown_seconds": settings.batch_cooldown_seconds,
            "apply_no_match_penalty": settings.apply_no_match_penalty,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# Global instances
settings = Settings()
model_config = ModelConfig()

# Populate settings with model config
settings.llm = model_config.get_model_settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def get_model_config() -> ModelConfig:
    """Get model configuration."""
    return model_config


def validate_config(settings: Settings) -> bool:
    """Validate configuration completeness."""
    from .logging import get_logger

    try:
        if not settings.mock and not settings.google_ai_api_key and not settings.openai_api_key:
            raise ValueError("Either GOOGLE_AI_API_KEY or OPENAI_API_KEY is required when not in mock mode")

        model_config = get_model_config()
        model_config.get_llm_route("scorer")
        model_config.get_llm_route("summarizer")

        return True

    except ValueError as e:
        get_logger(__name__).error("config_validation_failed", error=str(e))
        return False
