"""
LLM Manager for handling different chat model providers.
"""

import logging
import os
import re
from typing import Dict, Any, List, Optional, Sequence
from abc import ABC, abstractmethod
from dataclasses import dataclass

import anthropic
from openai import AsyncOpenAI

from ..errors import ConfigError, ServiceError
from ..rag.models import Role, Turn

logger = logging.getLogger(__name__)


def resolve_env_vars(value: str) -> str:
    """Resolve environment variables in string values like ${VAR_NAME}."""
    if isinstance(value, str) and "${" in value:
        # Replace ${VAR_NAME} with environment variable value
        def replace_env_var(match):
            var_name = match.group(1)
            return os.getenv(var_name, match.group(0))

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, value)
    return value


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: str
    model: str
    temperature: float = 0.1
    max_tokens: int = 2000
    api_key: Optional[str] = None

    def __post_init__(self):
        """Resolve environment variables after initialization."""
        if self.api_key:
            self.api_key = resolve_env_vars(self.api_key)
            # An unresolved reference means the variable is not set
            if self.api_key.startswith("${"):
                self.api_key = None


class LLMProvider(ABC):
    """Abstract base class for chat model providers.

    Providers are stateless: every call receives the full conversation.
    """

    @abstractmethod
    async def generate(self, history: Sequence[Turn], system_instruction: str, **kwargs) -> str:
        """Generate the next model turn for the given conversation."""
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI provider implementation."""

    ROLE_MAP = {Role.USER: "user", Role.MODEL: "assistant"}

    def __init__(self, config: LLMConfig):
        self.config = config
        self.api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ConfigError("OpenAI API key not found")

        self.client = AsyncOpenAI(api_key=self.api_key)

    def _make_messages(self, history: Sequence[Turn], system_instruction: str) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_instruction}]
        messages.extend(
            {"role": self.ROLE_MAP[turn.role], "content": turn.text}
            for turn in history
        )
        return messages

    async def generate(self, history: Sequence[Turn], system_instruction: str, **kwargs) -> str:
        """Generate text using OpenAI."""
        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=self._make_messages(history, system_instruction),
            max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
            temperature=kwargs.get("temperature", self.config.temperature)
        )
        if not response.choices:
            raise ValueError("OpenAI response contained no choices")
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    """Anthropic provider implementation."""

    ROLE_MAP = {Role.USER: "user", Role.MODEL: "assistant"}

    def __init__(self, config: LLMConfig):
        self.config = config
        self.api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ConfigError("Anthropic API key not found")

        self.client = anthropic.AsyncAnthropic(api_key=self.api_key)

    async def generate(self, history: Sequence[Turn], system_instruction: str, **kwargs) -> str:
        """Generate text using Anthropic."""
        response = await self.client.messages.create(
            model=self.config.model,
            max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
            temperature=kwargs.get("temperature", self.config.temperature),
            system=system_instruction,
            messages=[
                {"role": self.ROLE_MAP[turn.role], "content": turn.text}
                for turn in history
            ]
        )
        text_blocks = [block.text for block in response.content if getattr(block, "type", "text") == "text"]
        if not text_blocks:
            raise ValueError("Anthropic response contained no text blocks")
        return "".join(text_blocks)


PROVIDERS = {
    "openai": (OpenAIProvider, "gpt-4o-mini"),
    "anthropic": (AnthropicProvider, "claude-3-5-sonnet-20241022"),
}


class LLMManager:
    """Manager for handling different LLM providers."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.providers: Dict[str, LLMProvider] = {}
        self._initialize_providers()
        self.default_provider = self.config.get("default_provider") or next(iter(self.providers))
        if self.default_provider not in self.providers:
            raise ConfigError(f"Default provider {self.default_provider} is not configured")

    def _initialize_providers(self):
        """Initialize the configured LLM providers."""
        for name, settings in self.config.items():
            if name not in PROVIDERS:
                continue
            provider_cls, default_model = PROVIDERS[name]
            settings = settings or {}
            llm_config = LLMConfig(
                provider=name,
                model=settings.get("model", default_model),
                temperature=settings.get("temperature", 0.1),
                max_tokens=settings.get("max_tokens", 2000),
                api_key=settings.get("api_key")
            )
            try:
                self.providers[name] = provider_cls(llm_config)
            except ConfigError as e:
                if name == self.config.get("default_provider"):
                    raise
                logger.warning(f"Skipping {name} provider: {e}")
                continue
            logger.info(f"{name} provider initialized with model {llm_config.model}")

        if not self.providers:
            raise ConfigError("No LLM providers could be initialized")

    async def generate(
        self,
        history: Sequence[Turn],
        system_instruction: str,
        stage: str = "generate",
        provider: Optional[str] = None,
        **kwargs
    ) -> str:
        """
        Generate text using the specified or default provider.

        Args:
            history: Full conversation to send, oldest turn first
            system_instruction: System prompt for this call
            stage: Pipeline stage name reported on failure
            provider: Provider name, defaults to the configured default

        Returns:
            The stripped model reply

        Raises:
            ServiceError: If the provider call fails or returns no text
        """
        provider_name = provider or self.default_provider

        if provider_name not in self.providers:
            raise ConfigError(f"Provider {provider_name} not available")

        try:
            text = await self.providers[provider_name].generate(history, system_instruction, **kwargs)
        except Exception as e:
            logger.error(f"{provider_name} generation error during {stage}: {e}")
            raise ServiceError(stage, str(e), cause=e) from e

        text = (text or "").strip()
        if not text:
            raise ServiceError(stage, f"{provider_name} returned an empty response")
        return text

    def get_available_providers(self) -> List[str]:
        """Get list of available providers."""
        return list(self.providers.keys())
