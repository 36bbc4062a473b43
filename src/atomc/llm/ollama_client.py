"""
Clients for local LLM servers.

:class:`OllamaClient` talks to Ollama's ``/api/generate`` endpoint and
:class:`LlamaCppClient` to the OpenAI-compatible
``/v1/chat/completions`` endpoint served by llama.cpp. Both return the
raw completion text; turning it into a commit plan is the job of
:mod:`atomc.llm.plan_generator`.

Connection failures and non-200 responses raise :class:`LLMError`,
timeouts raise :class:`LLMTimeoutError`, and unexpected payloads raise
:class:`LLMParseError`.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests

from atomc.config.loader import RUNTIME_LLAMA_CPP, ResolvedConfig


logger = logging.getLogger(__name__)
# Attach a null handler to avoid errors when the root logger is missing a
# stream. Messages will still propagate to the root logger if configured.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class LLMError(Exception):
    """Raised when communication with the LLM server fails."""

    pass


class LLMTimeoutError(LLMError):
    """Raised when the LLM server does not answer within the timeout."""

    pass


class LLMParseError(LLMError):
    """Raised when the LLM output cannot be turned into the expected shape."""

    def __init__(self, message: str, violations: Optional[list] = None) -> None:
        super().__init__(message)
        self.violations = violations or []


def strip_thinking_tags(text: str) -> str:
    """Remove thinking process tags from LLM responses.

    Reasoning models wrap their deliberation in tags such as ``<think>``
    or ``<reasoning>``. These blocks are dropped so only the answer is
    left.

    Examples
    --------
    >>> strip_thinking_tags("<think>reasoning...</think>{}")
    '{}'
    """
    thinking_patterns = [
        r"<think>.*?</think>",
        r"<thinking>.*?</thinking>",
        r"<thought>.*?</thought>",
        r"<reasoning>.*?</reasoning>",
    ]
    result = text
    for pattern in thinking_patterns:
        result = re.sub(pattern, "", result, flags=re.DOTALL | re.IGNORECASE)
    return result.strip()


def _post_json(url: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    logger.debug("Sending request to LLM at %s (model=%s)", url, payload.get("model"))
    try:
        response = requests.post(url, json=payload, timeout=timeout)
    except requests.Timeout as exc:
        logger.error("LLM request to %s timed out after %ss", url, timeout)
        raise LLMTimeoutError(f"LLM request timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        logger.error("Failed to connect to LLM: %s", exc)
        raise LLMError(str(exc)) from exc
    if response.status_code != 200:
        logger.error("LLM returned non-200 status %s: %s", response.status_code, response.text)
        raise LLMError(f"LLM returned status {response.status_code}: {response.text}")
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError) as exc:
        logger.error("Failed to parse LLM response: %s", exc)
        raise LLMParseError("Failed to parse LLM response") from exc
    if not isinstance(data, dict):
        raise LLMParseError("Unexpected response structure from LLM")
    return data


@dataclass
class OllamaClient:
    """Client for an Ollama server.

    Parameters
    ----------
    base_url : str
        Server URL including the port, e.g. ``"http://localhost:11434"``.
    model : str
        Name of the model to use for generation.
    request_timeout : float, optional
        Timeout in seconds for HTTP requests.
    max_tokens : int, optional
        Passed as ``options.num_predict`` when set.
    temperature : float, optional
        Passed as ``options.temperature`` when set.
    """

    base_url: str
    model: str
    request_timeout: float = 60.0
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def _endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/generate"

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Generate a completion for ``prompt`` and return its text."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
        }
        if system:
            payload["system"] = system
        options: Dict[str, Any] = {}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.max_tokens is not None:
            options["num_predict"] = self.max_tokens
        if options:
            payload["options"] = options

        data = _post_json(self._endpoint(), payload, self.request_timeout)
        if data.get("error"):
            raise LLMError(str(data["error"]))
        if isinstance(data.get("response"), str):
            return strip_thinking_tags(data["response"])
        if isinstance(data.get("message"), dict):
            return strip_thinking_tags(data["message"].get("content", ""))
        raise LLMParseError("Unexpected response structure from LLM")


@dataclass
class LlamaCppClient:
    """Client for a llama.cpp server's chat completions endpoint."""

    base_url: str
    model: str
    request_timeout: float = 60.0
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def _endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/v1/chat/completions"

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens

        data = _post_json(self._endpoint(), payload, self.request_timeout)
        error = data.get("error")
        if error:
            if isinstance(error, dict) and "message" in error:
                raise LLMError(str(error["message"]))
            raise LLMError(str(error))
        try:
            choice = data["choices"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMParseError("missing chat completion content") from exc
        message = choice.get("message") if isinstance(choice, dict) else None
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return strip_thinking_tags(message["content"])
        if isinstance(choice, dict) and isinstance(choice.get("text"), str):
            return strip_thinking_tags(choice["text"])
        raise LLMParseError("missing chat completion content")


LLMClient = Union[OllamaClient, LlamaCppClient]


def client_for_config(config: ResolvedConfig) -> LLMClient:
    """Build the client matching ``config.runtime``."""
    client_cls = LlamaCppClient if config.runtime == RUNTIME_LLAMA_CPP else OllamaClient
    return client_cls(
        base_url=config.ollama_url,
        model=config.model,
        request_timeout=float(config.llm_timeout_secs),
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
