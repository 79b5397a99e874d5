"""Async OpenAI LLM client with Gemini fallback and classified retry."""

import asyncio
import time
from typing import Any

from google import genai
from openai import AsyncOpenAI
from pydantic import BaseModel

from ..config import LLMRoute, ModelSettings, get_model_config, get_settings
from ..errors import AuthenticationError, OracleError, classify_oracle_error
from ..logging import get_logger
from ..utils import retry_async

logger = get_logger(__name__)

# OpenAI API model mapping
OPENAI_MODELS = {
    "gpt-4o": "gpt-4o",
    "gpt-4o-mini": "gpt-4o-mini",
    "gpt-4.1": "gpt-4.1",
    "gpt-4.1-mini": "gpt-4.1-mini",
}

# Gemini API model mapping (fallback support)
GEMINI_MODELS = {
    "gemini-2.5-flash": "gemini-2.5-flash",
    "gemini-2.5-pro": "gemini-2.5-pro",
}


class ChatMessage(BaseModel):
    """Chat message for LLM interaction."""
    role: str
    content: str


class LLMResponse(BaseModel):
    """LLM response wrapper."""
    content: str
    model: str
    usage: dict[str, Any] | None = None
    response_time: float | None = None


class LLMError(OracleError):
    """LLM client misconfiguration or unusable response."""


class LLMClient:
    """Async OpenAI client with Gemini fallback and retry capabilities."""

    def __init__(self, route_name: str):
        """Initialize LLM client.

        Args:
            route_name: Name of the LLM route configuration
        """
        self.route_name = route_name
        self.settings = get_settings()
        self.model_config = get_model_config()

        try:
            self.route: LLMRoute = self.model_config.get_llm_route(route_name)
            self.model_settings: ModelSettings = self.model_config.get_model_settings()
        except ValueError as e:
            logger.error("Failed to load LLM route", route=route_name, error=str(e))
            raise LLMError(f"Invalid LLM route: {route_name}") from e

        if self.settings.openai_api_key:
            self._openai_client = AsyncOpenAI(api_key=self.settings.openai_api_key)
            logger.info("OpenAI client initialized")
        else:
            self._openai_client = None
            logger.warning("OpenAI API key not found")

        if self.settings.google_ai_api_key:
            self._gemini_client = genai.Client(api_key=self.settings.google_ai_api_key)
            logger.info("Gemini client initialized as fallback")
        else:
            self._gemini_client = None
            logger.warning("Google AI API key not found")

        if not self._openai_client and not self._gemini_client:
            raise AuthenticationError("Neither OpenAI nor Google AI API keys are available")

    def _is_openai_model(self, model: str) -> bool:
        return model in OPENAI_MODELS

    def _is_gemini_model(self, model: str) -> bool:
        return model in GEMINI_MODELS

    async def _make_openai_request(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Make request to OpenAI API."""
        if not self._openai_client:
            raise LLMError("OpenAI client not initialized")

        start_time = time.time()
        openai_model = OPENAI_MODELS.get(model, model)
        request: dict[str, Any] = {
            "model": openai_model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
            "temperature": temperature if temperature is not None else self.model_settings.temperature,
            "max_tokens": max_tokens or self.model_settings.max_tokens,
            "timeout": self.model_settings.timeout_seconds,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await self._openai_client.chat.completions.create(**request)
            content = response.choices[0].message.content
            if not content:
                raise LLMError("Empty response content from OpenAI")
        except Exception as e:
            error = classify_oracle_error(e)
            logger.error("OpenAI API error", model=openai_model, kind=error.kind, error=str(e))
            raise error from e

        response_time = time.time() - start_time
        logger.info("OpenAI API request successful", model=openai_model, response_time=response_time)

        return LLMResponse(
            content=content,
            model=openai_model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            } if response.usage else None,
            response_time=response_time
        )

    async def _make_gemini_request(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Make request to Gemini API."""
        if not self._gemini_client:
            raise LLMError("Gemini client not initialized")

        start_time = time.time()
        gemini_model = GEMINI_MODELS.get(model, model)
        gemini_messages = self._convert_to_gemini_format(messages)

        generation_config: dict[str, Any] = {
            "temperature": temperature if temperature is not None else self.model_settings.temperature,
            "max_output_tokens": max_tokens or self.model_settings.max_tokens,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        try:
            # The SDK call is blocking; keep it off the event loop
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(
                None,
                lambda: self._gemini_client.models.generate_content(
                    model=gemini_model,
                    contents=gemini_messages,
                    config=generation_config
                )
            )
            content = getattr(response, "text", None)
            if not content or not content.strip():
                raise LLMError("Empty response content from Gemini")
        except Exception as e:
            error = classify_oracle_error(e)
            logger.error("Gemini API error", model=gemini_model, kind=error.kind, error=str(e))
            raise error from e

        response_time = time.time() - start_time
        logger.info("Gemini API request successful", model=gemini_model, response_time=response_time)

        return LLMResponse(content=content, model=gemini_model, response_time=response_time)

    async def _make_request(
        self,
        model: str,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Route request to appropriate API based on model type."""
        if self._is_gemini_model(model) and self._gemini_client:
            return await self._make_gemini_request(model, messages, temperature, max_tokens, json_mode)
        if self._openai_client:
            return await self._make_openai_request(model, messages, temperature, max_tokens, json_mode)
        if self._gemini_client and not self._is_openai_model(model):
            return await self._make_gemini_request(model, messages, temperature, max_tokens, json_mode)
        raise LLMError(f"No available client for model {model}")

    def _convert_to_gemini_format(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Convert chat messages to Gemini contents.

        Gemini has no system role: system text is prepended to the first
        user message, and assistant turns become ``model`` turns.
        """
        gemini_contents: list[dict[str, Any]] = []
        system_prompt = "".join(msg.content + "\n\n" for msg in messages if msg.role == "system")

        for msg in messages:
            if msg.role == "user":
                content = msg.content
                if system_prompt and not gemini_contents:
                    content = system_prompt + content
                gemini_contents.append({"role": "user", "parts": [{"text": content}]})
            elif msg.role == "assistant":
                gemini_contents.append({"role": "model", "parts": [{"text": msg.content}]})

        if not gemini_contents and system_prompt:
            gemini_contents.append({"role": "user", "parts": [{"text": system_prompt.strip()}]})

        return gemini_contents

    def _normalize_messages(
        self,
        messages: list[ChatMessage] | list[dict[str, str]] | str
    ) -> list[ChatMessage]:
        """Normalize messages to ChatMessage format."""
        if isinstance(messages, str):
            return [ChatMessage(role="user", content=messages)]

        normalized = []
        for msg in messages:
            if isinstance(msg, ChatMessage):
                normalized.append(msg)
            elif isinstance(msg, dict) and "role" in msg and "content" in msg:
                normalized.append(ChatMessage(role=msg["role"], content=msg["content"]))
            else:
                raise LLMError(f"Invalid message format: {msg!r}")
        return normalized

    async def chat(
        self,
        messages: list[ChatMessage] | list[dict[str, str]] | str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send chat messages with per-model retry and fallback across the route.

        Authentication failures abort immediately; any other classified
        failure moves on to the next model once retries are exhausted.

        Raises:
            OracleError: classified error of the last model tried
        """
        normalized_messages = self._normalize_messages(messages)
        if not normalized_messages:
            raise LLMError("No messages provided")

        if self.settings.llm_model_override:
            models_to_try = [self.settings.llm_model_override]
            logger.info("Using model override", model=self.settings.llm_model_override)
        else:
            models_to_try = [self.route.primary] + self.route.fallback

        last_error: OracleError | None = None
        for model in models_to_try:
            async def make_request(model: str = model) -> LLMResponse:
                return await self._make_request(
                    model=model,
                    messages=normalized_messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode,
                )

            try:
                response = await retry_async(
                    make_request,
                    max_attempts=self.model_settings.retry_attempts,
                )
            except AuthenticationError:
                raise
            except OracleError as e:
                last_error = e
                logger.warning("Model failed after retries", route=self.route_name, model=model, error=str(e))
                continue

            logger.info(
                "LLM request successful",
                route=self.route_name,
                model=model,
                response_time=response.response_time
            )
            return response

        logger.error("All models failed", route=self.route_name, last_error=str(last_error) if last_error else None)
        raise last_error or LLMError(f"All models failed for route '{self.route_name}'")


class MockLLMClient(LLMClient):
    """Mock LLM client for testing and offline runs."""

    def __init__(self, route_name: str):
        self.route_name = route_name
        # No parent init: mock mode needs no API keys

    async def chat(
        self,
        messages: list[ChatMessage] | list[dict[str, str]] | str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Deterministic echo of the last message."""
        if isinstance(messages, str):
            last = messages
        elif messages:
            last_message = messages[-1]
            last = last_message.content if isinstance(last_message, ChatMessage) else last_message.get("content", "")
        else:
            last = ""

        return LLMResponse(
            content=f"Mock response to: {last[:50]}...",
            model="mock-model",
            usage={"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
            response_time=0.0
        )


def create_llm_client(route_name: str, mock: bool = False) -> LLMClient:
    """Factory function to create LLM client.

    Args:
        route_name: LLM route name
        mock: Whether to use mock client

    Returns:
        LLM client instance
    """
    if mock:
        return MockLLMClient(route_name)
    return LLMClient(route_name)
