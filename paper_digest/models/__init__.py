"""LLM client and scoring oracle adapters."""

from .llm_client import ChatMessage, LLMClient, LLMResponse, MockLLMClient, create_llm_client
from .oracle import LLMScoringOracle, MockScoringOracle, ScoringOracle, create_oracle

__all__ = [
    "ChatMessage",
    "LLMClient",
    "LLMResponse",
    "LLMScoringOracle",
    "MockLLMClient",
    "MockScoringOracle",
    "ScoringOracle",
    "create_llm_client",
    "create_oracle",
]
