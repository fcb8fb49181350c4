"""LLM providers for the AI flow gateway.

This module provides an abstract interface for LLM providers and a concrete
implementation for hosted chat completion APIs that speak the OpenAI wire
format (Gemini, OpenAI, local MLX servers, ...).

Credentials are bound to provider instances. A caller-supplied API key gets a
fresh provider for that call only, so concurrent requests with different keys
never share credential state.
"""

import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from . import config
from .exceptions import LLMError

# Some reasoning models wrap their scratchpad in <think> tags
THINKING_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)


# ============================================================================
# Abstract LLM Provider Interface
# ============================================================================


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    To add a new provider, create a new class implementing this interface.
    """

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_content: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> str:
        """Generate a response from the LLM.

        Args:
            system_prompt: The system instructions for the LLM
            user_content: The rendered flow prompt
            max_tokens: Maximum tokens in the response
            temperature: Sampling temperature (0.0-1.0)
            json_output: Ask the model for a JSON object response

        Returns:
            The generated text response

        Raises:
            LLMError: If generation fails
        """
        pass


# ============================================================================
# Hosted Chat Completions Implementation
# ============================================================================


def _error_detail(response: httpx.Response) -> str:
    """Extract the vendor error message from an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()

    # Gemini wraps errors in a one-element list
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        error = data.get("error", data)
        if isinstance(error, dict):
            parts = [str(error.get("message", "")), str(error.get("status", ""))]
            return " ".join(part for part in parts if part).strip()
        return str(error)
    return str(data)


class ChatCompletionsProvider(LLMProvider):
    """LLM provider for OpenAI-compatible chat completion endpoints.

    Default configuration targets Gemini through its OpenAI-compatible API.
    """

    def __init__(
        self,
        url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.url = url or config.LLM_URL
        self.model = model or config.LLM_MODEL
        self.api_key = api_key if api_key is not None else config.LLM_API_KEY
        self.timeout = timeout or config.LLM_TIMEOUT

    async def generate(
        self,
        system_prompt: str,
        user_content: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> str:
        """Generate a response from the configured endpoint."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_output:
            body["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, headers=headers, json=body)
                response.raise_for_status()
                data = response.json()
                text = data["choices"][0]["message"]["content"] or ""
                return THINKING_PATTERN.sub("", text).strip()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            raise LLMError(
                f"LLM request failed with status {e.response.status_code}: {detail}"
            ) from e
        except httpx.RequestError as e:
            raise LLMError(f"LLM request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise LLMError(f"Invalid LLM response format: {e}") from e


# ============================================================================
# Provider Access
# ============================================================================

_default_provider: LLMProvider | None = None


def get_provider(api_key: str | None = None) -> LLMProvider:
    """Return the provider to use for a single flow invocation.

    Args:
        api_key: Optional caller-supplied key. When non-empty, a new provider
                 bound to that key is returned and never cached.
    """
    global _default_provider
    if api_key:
        return ChatCompletionsProvider(api_key=api_key)
    if _default_provider is None:
        _default_provider = ChatCompletionsProvider()
    return _default_provider


def set_default_provider(provider: LLMProvider | None) -> None:
    """Replace the process-wide default provider (None resets it)."""
    global _default_provider
    _default_provider = provider
