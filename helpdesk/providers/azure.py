# helpdesk/providers/azure.py
# Azure OpenAI-Integration: Deployment-basierte Chat Completions via async httpx
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
    structured_turns,
)
from .openai import parse_chat_completion

AZURE_API_VERSION = "2023-03-15-preview"
AZURE_MODEL_LABEL = "azure-openai"


class AzureConfig(AdapterConfig):
    max_tokens: int = Field(default=512, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    api_version: str = AZURE_API_VERSION


class AzureOpenAIProvider(BaseProvider[AzureConfig]):
    """
    Azure OpenAI-Anbieter.
    Benötigt drei Angaben: API-Key, Endpoint-URL und Deployment-Name.
    Das Modell ergibt sich aus dem Deployment: kein model-Feld im Body.
    """

    display_name = "Azure OpenAI"

    def __init__(
        self,
        api_key: str | None = None,
        endpoint: str | None = None,
        deployment: str | None = None,
        config: AzureConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config or AzureConfig(), client)
        self._api_key = api_key if api_key is not None else os.getenv("AZURE_OPENAI_API_KEY", "")
        self._endpoint = (
            endpoint if endpoint is not None else os.getenv("AZURE_OPENAI_ENDPOINT", "")
        )
        self._deployment = (
            deployment if deployment is not None else os.getenv("AZURE_OPENAI_DEPLOYMENT", "")
        )

    def has_credentials(self) -> bool:
        return bool(self._api_key and self._endpoint and self._deployment)

    def missing_credentials_text(self) -> str:
        return (
            "[Azure OpenAI credentials not set. Please set AZURE_OPENAI_API_KEY, "
            "AZURE_OPENAI_ENDPOINT, and AZURE_OPENAI_DEPLOYMENT in your environment]"
        )

    def model_name(self, config: AzureConfig) -> str:
        return AZURE_MODEL_LABEL

    def build_request(
        self, message: str, history: ConversationHistory, config: AzureConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        # Endpoint mit oder ohne abschließenden Slash akzeptieren
        base = self._endpoint.rstrip("/")
        url = (
            f"{base}/openai/deployments/{self._deployment}/chat/completions"
            f"?api-version={config.api_version}"
        )
        headers = {"api-key": self._api_key, "Content-Type": "application/json"}

        messages = [{"role": "system", "content": config.system_prompt}]
        messages.extend(structured_turns(history))
        messages.append({"role": "user", "content": message})

        payload = {
            "messages": messages,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        return url, headers, payload

    def parse_reply(self, data: Any, message: str, history: ConversationHistory) -> BackendReply:
        return parse_chat_completion(data)
