# helpdesk/providers/claude.py
# Anthropic Claude API-Integration: Messages API via async httpx
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
    usage_int,
)

ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


class ClaudeConfig(AdapterConfig):
    model: str = "claude-3-sonnet-20240229"
    max_tokens: int = Field(default=1000, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class ClaudeProvider(BaseProvider[ClaudeConfig]):
    """
    Anthropic Claude-Anbieter.
    API: Anthropic Messages API (kein SDK: direktes httpx für maximale Kontrolle)
    System-Prompt wird als separater 'system'-Parameter übergeben.
    """

    display_name = "Anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        config: ClaudeConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config or ClaudeConfig(), client)
        self._api_key = api_key if api_key is not None else os.getenv("ANTHROPIC_API_KEY", "")

    def has_credentials(self) -> bool:
        return bool(self._api_key)

    def missing_credentials_text(self) -> str:
        return "[Anthropic API key not set. Please set ANTHROPIC_API_KEY in your environment]"

    def model_name(self, config: ClaudeConfig) -> str:
        return config.model

    def no_response_text(self) -> str:
        return "[No response from Claude]"

    def _headers(self) -> dict[str, str]:
        """Authentifizierungs-Header für Anthropic Messages API."""
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _convert_history(
        self, history: ConversationHistory, system_prompt: str
    ) -> tuple[str, list[dict[str, str]]]:
        """
        System-Turns aus der Historie an den System-Prompt anhängen,
        user/assistant-Turns 1:1 übernehmen (Messages API kennt keine system-Rolle).
        """
        system_parts = [system_prompt]
        converted: list[dict[str, str]] = []
        for turn in history.turns:
            if turn.role == "system":
                system_parts.append(turn.content)
            else:
                converted.append({"role": turn.role, "content": turn.content})
        return "\n\n".join(p for p in system_parts if p), converted

    def build_request(
        self, message: str, history: ConversationHistory, config: ClaudeConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        system_prompt, messages = self._convert_history(history, config.system_prompt)
        messages.append({"role": "user", "content": message})

        payload: dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": messages,
        }
        if system_prompt:
            payload["system"] = system_prompt
        return f"{ANTHROPIC_API_BASE}/messages", self._headers(), payload

    def parse_reply(self, data: Any, message: str, history: ConversationHistory) -> BackendReply:
        block = first_item(data.get("content")) or {}
        usage = data.get("usage")
        input_tokens = usage_int(usage, "input_tokens")
        output_tokens = usage_int(usage, "output_tokens")
        total = (
            input_tokens + output_tokens
            if input_tokens is not None and output_tokens is not None
            else None
        )
        # Anthropic input/output → neutrale prompt/completion-Felder
        return BackendReply(
            text=block.get("text"),
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=total,
        )
