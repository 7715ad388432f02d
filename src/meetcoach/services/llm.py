"""LLM provider access via the LiteLLM Router.

LLMService owns one Router with two model groups:
- "reasoning": Claude Sonnet 4, with GPT-4o as fallback deployment
- "fast": Claude 3.5 Haiku / GPT-4o-mini for cheap calls

A deployment is registered only when its provider key is configured. With no
keys at all the router is None and completion() raises RuntimeError; the
structured-extraction callers (scorer, notes) still resolve a model name
through resolve_model() and let litellm read provider keys from the
environment.
"""

from __future__ import annotations

import structlog
from litellm import Router

from src.meetcoach.config import Settings

logger = structlog.get_logger(__name__)

# (group, settings attribute holding the provider key, litellm model)
MODEL_DEPLOYMENTS: list[tuple[str, str, str]] = [
    ("reasoning", "ANTHROPIC_API_KEY", "anthropic/claude-sonnet-4-20250514"),
    ("fast", "ANTHROPIC_API_KEY", "anthropic/claude-3-5-haiku-20241022"),
    ("reasoning", "OPENAI_API_KEY", "openai/gpt-4o"),
    ("fast", "OPENAI_API_KEY", "openai/gpt-4o-mini"),
]


def build_model_list(settings: Settings) -> list[dict]:
    """Router deployments for every provider key present in ``settings``."""
    model_list = []
    for group, key_attr, model in MODEL_DEPLOYMENTS:
        api_key = getattr(settings, key_attr)
        if api_key:
            model_list.append({
                "model_name": group,
                "litellm_params": {"model": model, "api_key": api_key},
            })
    return model_list


class LLMService:
    """Router-backed completions for the pipeline's LLM callers.

    Args:
        settings: Provider keys, timeout and retry budget.
    """

    def __init__(self, settings: Settings) -> None:
        model_list = build_model_list(settings)
        if not model_list:
            logger.warning("llm.no_api_keys")
            self.router = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )
        logger.info(
            "llm.router_ready",
            deployments=[m["litellm_params"]["model"] for m in model_list],
        )

    def resolve_model(self, group: str) -> str | None:
        """First deployment's litellm model name in ``group``, if any."""
        if self.router is None:
            return None
        for m in self.router.model_list:
            if m.get("model_name") == group:
                return m["litellm_params"]["model"]
        return None

    async def completion(
        self,
        messages: list[dict],
        model: str = "reasoning",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        json_mode: bool = False,
        metadata: dict | None = None,
    ) -> dict:
        """Execute a completion call through the router.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model group name ("reasoning" or "fast").
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0-2).
            json_mode: Ask the provider for a JSON object response.
            metadata: Passed through to litellm callbacks.

        Returns:
            Dict with content, model, and usage.

        Raises:
            RuntimeError: If no LLM API keys are configured.
        """
        if not self.router:
            raise RuntimeError("No LLM API keys configured")

        extra: dict = {}
        if json_mode:
            extra["response_format"] = {"type": "json_object"}

        response = await self.router.acompletion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            metadata=metadata or {},
            **extra,
        )

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return {
            "content": response.choices[0].message.content,
            "model": response.model,
            "usage": usage,
        }
