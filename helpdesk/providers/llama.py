# helpdesk/providers/llama.py
# Llama-2-Chat über HuggingFace Inference API: flacher Prompt statt strukturierter Turns
from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Any

import httpx
from pydantic import Field

from ..models import AvailabilityStatus, ConversationHistory
from .base import (
    PROBE_TIMEOUT_SEC,
    AdapterConfig,
    BackendReply,
    BaseProvider,
    first_item,
    usage_int,
)

logger = logging.getLogger(__name__)

HF_API_BASE = "https://api-inference.huggingface.co/models"

# Llama-2-Chat Turn-Begrenzer
BOS = "<s>"
EOS = "</s>"
INST_OPEN = "[INST]"
INST_CLOSE = "[/INST]"
SYS_OPEN = "<<SYS>>\n"
SYS_CLOSE = "\n<</SYS>>\n\n"

_SPECIAL_TOKENS = re.compile(r"</?s>|\[/?INST\]|<</?SYS>>")
# Vorangestellter [INST]-Block ohne exaktes Prompt-Echo
_LEADING_INST = re.compile(r"^\s*(?:<s>)?\s*\[INST\].*?\[/INST\]", re.DOTALL)
# Ende der eigentlichen Antwort: alles danach ist ein erfundener Folge-Turn
_TURN_END = re.compile(r"</s>|\[INST\]")


def _strip_markers(text: str) -> str:
    """Turn-Begrenzer aus Nutzertext entfernen (Prompt-Struktur bleibt intakt)."""
    return _SPECIAL_TOKENS.sub("", text)


class LlamaConfig(AdapterConfig):
    model: str = "meta-llama/Llama-2-7b-chat-hf"
    max_new_tokens: int = Field(default=2048, ge=1)
    top_p: float = Field(default=0.9, gt=0.0, le=1.0)
    do_sample: bool = True
    return_full_text: bool = False


def format_prompt(history: ConversationHistory, message: str) -> str:
    """
    Historie + neue Nachricht als Llama-2-Chat-Prompt serialisieren.

    Jeder Austausch steht in einem eigenen <s>[INST] ... [/INST] ... </s>-Block;
    die neue Nachricht schließt den letzten [INST]-Block ab. Aufeinanderfolgende
    user-Turns landen zeilenweise im selben Block, system-Turns als <<SYS>>-Abschnitt.
    """
    parts = [f"{BOS}{INST_OPEN} "]
    pending_user = False
    for turn in history.turns:
        content = _strip_markers(turn.content)
        if turn.role == "user":
            if pending_user:
                parts.append("\n")
            parts.append(content)
            pending_user = True
        elif turn.role == "assistant":
            parts.append(f" {INST_CLOSE} {content} {EOS}{BOS}{INST_OPEN} ")
            pending_user = False
        else:
            parts.append(f"{SYS_OPEN}{content}{SYS_CLOSE}")
    if pending_user:
        parts.append("\n")
    parts.append(f"{_strip_markers(message)} {INST_CLOSE}")
    return "".join(parts)


def parse_response(raw: str, prompt: str | None = None) -> str:
    """
    Rohe Generierung bereinigen: wiederholten Prompt (oder einen führenden
    [INST]-Block) entfernen, beim ersten </s> bzw. [INST] abschneiden, dann
    restliche Spezial-Token entfernen.
    """
    text = raw
    if prompt and text.startswith(prompt):
        text = text[len(prompt):]
    else:
        text = _LEADING_INST.sub("", text, count=1)
    end = _TURN_END.search(text)
    if end:
        text = text[: end.start()]
    return _SPECIAL_TOKENS.sub("", text).strip()


class LlamaProvider(BaseProvider[LlamaConfig]):
    """
    Llama-Anbieter (HuggingFace Inference API).
    Backend akzeptiert nur einen flachen Prompt-String: keine Turn-Objekte.
    Probe prüft den Modell-Metadaten-Endpunkt statt eine Generierung auszulösen.
    """

    display_name = "HuggingFace"

    def __init__(
        self,
        api_key: str | None = None,
        config: LlamaConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config or LlamaConfig(), client)
        self._api_key = api_key if api_key is not None else os.getenv("HF_API_KEY", "")

    def has_credentials(self) -> bool:
        return bool(self._api_key)

    def missing_credentials_text(self) -> str:
        return "[HuggingFace API key not set. Please set HF_API_KEY in your environment]"

    def model_name(self, config: LlamaConfig) -> str:
        return config.model

    def no_response_text(self) -> str:
        return "[No response received from model]"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def build_request(
        self, message: str, history: ConversationHistory, config: LlamaConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        payload = {
            "inputs": format_prompt(history, message),
            "parameters": {
                "max_new_tokens": config.max_new_tokens,
                "temperature": config.temperature,
                "top_p": config.top_p,
                "do_sample": config.do_sample,
                "return_full_text": config.return_full_text,
            },
        }
        return f"{HF_API_BASE}/{config.model}", self._headers(), payload

    def parse_reply(self, data: Any, message: str, history: ConversationHistory) -> BackendReply:
        # Erwartet: [{"generated_text": "...", "generated_tokens": N}]
        generation = first_item(data)
        if not isinstance(generation, dict):
            return BackendReply()

        raw = generation.get("generated_text") or ""
        return BackendReply(
            text=parse_response(raw, format_prompt(history, message)),
            completion_tokens=usage_int(generation, "generated_tokens"),
            raw_response=raw,
        )

    async def probe(self) -> AvailabilityStatus:
        """Direkte Existenzprüfung gegen den Modell-Endpunkt (keine Generierung)."""
        model = self.model_name(self._config)
        if not self.has_credentials():
            return AvailabilityStatus(
                available=False, model=model, error=self.missing_credentials_text()
            )
        try:
            if self._client is None:
                await self.initialize()
            resp = await asyncio.wait_for(
                self._client.get(
                    f"{HF_API_BASE}/{model}",
                    headers={"Authorization": f"Bearer {self._api_key}"},
                ),
                timeout=PROBE_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError:
            logger.warning("HuggingFace-Probe nach %.0fs abgebrochen", PROBE_TIMEOUT_SEC)
            return AvailabilityStatus(
                available=False, model=model, error=f"Timeout nach {PROBE_TIMEOUT_SEC:.0f}s"
            )
        except Exception as exc:
            logger.warning("HuggingFace-Probe fehlgeschlagen: %s", exc)
            return AvailabilityStatus(available=False, model=model, error=str(exc))

        if resp.is_success:
            return AvailabilityStatus(available=True, model=model)
        return AvailabilityStatus(available=False, model=model, error=f"HTTP {resp.status_code}")
