# helpdesk/providers/openai.py
# OpenAI GPT API-Integration: Chat Completions API via async httpx
from __future__ import annotations

import os
from typing import Any

import httpx
from pydantic import Field

from ..models import ConversationHistory
from .base import (
    DEFAULT_SYSTEM_PROMPT,
    AdapterConfig,
    BackendReply,
    BaseProvider,
    first_item,
    structured_turns,
    usage_int,
)

OPENAI_API_BASE = "https://api.openai.com/v1"


class OpenAIConfig(AdapterConfig):
    model: str = "gpt-4"
    max_tokens: int = Field(default=1000, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class OpenAIProvider(BaseProvider[OpenAIConfig]):
    """
    OpenAI GPT-Anbieter.
    Standardmodell: gpt-4
    API: OpenAI Chat Completions (strukturierte Turns mit führendem System-Prompt)
    """

    display_name = "OpenAI"

    def __init__(
        self,
        api_key: str | None = None,
        config: OpenAIConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config or OpenAIConfig(), client)
        self._api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")

    def has_credentials(self) -> bool:
        return bool(self._api_key)

    def missing_credentials_text(self) -> str:
        return "[OpenAI API key not set. Please set OPENAI_API_KEY in your environment]"

    def model_name(self, config: OpenAIConfig) -> str:
        return config.model

    def _headers(self) -> dict[str, str]:
        """Bearer-Token-Header für OpenAI API."""
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def build_request(
        self, message: str, history: ConversationHistory, config: OpenAIConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        messages = [{"role": "system", "content": config.system_prompt}]
        messages.extend(structured_turns(history))
        messages.append({"role": "user", "content": message})

        # GPT-5+ erfordert max_completion_tokens statt max_tokens
        token_param = "max_completion_tokens" if config.model.startswith("gpt-5") else "max_tokens"

        payload = {
            "model": config.model,
            "messages": messages,
            token_param: config.max_tokens,
            "temperature": config.temperature,
        }
        return f"{OPENAI_API_BASE}/chat/completions", self._headers(), payload

    def parse_reply(self, data: Any, message: str, history: ConversationHistory) -> BackendReply:
        return parse_chat_completion(data)


def parse_chat_completion(data: dict[str, Any]) -> BackendReply:
    """Chat-Completions-Antwortformat (OpenAI und Azure identisch) lesen."""
    choice = first_item(data.get("choices")) or {}
    usage = data.get("usage")
    return BackendReply(
        text=(choice.get("message") or {}).get("content"),
        prompt_tokens=usage_int(usage, "prompt_tokens"),
        completion_tokens=usage_int(usage, "completion_tokens"),
        total_tokens=usage_int(usage, "total_tokens"),
    )
