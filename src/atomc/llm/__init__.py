"""
Local LLM integration.

:mod:`atomc.llm.ollama_client` holds the HTTP clients for Ollama and
llama.cpp, and :mod:`atomc.llm.plan_generator` builds prompts and parses
the model's reply into a commit plan.
"""

from .ollama_client import (  # noqa: F401
    LlamaCppClient,
    LLMError,
    LLMParseError,
    LLMTimeoutError,
    OllamaClient,
    client_for_config,
)
from .plan_generator import PlanGenerator, Prompt, PromptContext, parse_commit_plan  # noqa: F401
