# tests/test_providers.py
# Pytest-Suite für alle Provider-Adapter: Fehlerklassen, Anfrageformat, Antwortabbildung
# Alle externen HTTP-Aufrufe werden mit respx gemockt
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from pydantic import ValidationError

from helpdesk.models import ConversationHistory, ErrorKind, Turn
from helpdesk.providers.azure import AzureOpenAIProvider
from helpdesk.providers.claude import ClaudeProvider
from helpdesk.providers.llama import LlamaProvider
from helpdesk.providers.openai import OpenAIProvider

AZURE_ENDPOINT = "https://contoso.openai.azure.com/"
AZURE_URL = (
    "https://contoso.openai.azure.com/openai/deployments/support-gpt/chat/completions"
    "?api-version=2023-03-15-preview"
)
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
CLAUDE_URL = "https://api.anthropic.com/v1/messages"
LLAMA_URL = "https://api-inference.huggingface.co/models/meta-llama/Llama-2-7b-chat-hf"


# ─── Hilfsfunktionen ────────────────────────────────────────────────────────


def make_adapter(provider_id: str, client: httpx.AsyncClient, with_credentials: bool = True):
    """Adapter mit expliziten (oder leeren) Zugangsdaten erstellen."""
    key = "test-key" if with_credentials else ""
    if provider_id == "azure":
        return AzureOpenAIProvider(
            api_key=key,
            endpoint=AZURE_ENDPOINT if with_credentials else "",
            deployment="support-gpt" if with_credentials else "",
            client=client,
        )
    if provider_id == "openai":
        return OpenAIProvider(api_key=key, client=client)
    if provider_id == "claude":
        return ClaudeProvider(api_key=key, client=client)
    return LlamaProvider(api_key=key, client=client)


PROVIDER_URLS = {
    "azure": AZURE_URL,
    "openai": OPENAI_URL,
    "claude": CLAUDE_URL,
    "llama": LLAMA_URL,
}

ALL_PROVIDERS = list(PROVIDER_URLS)


def sent_json(route: respx.Route) -> dict:
    return json.loads(route.calls.last.request.content)


# ─── Gemeinsame Eigenschaften aller Adapter ─────────────────────────────────


class TestCommonContract:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_id", ALL_PROVIDERS)
    async def test_missing_credentials_issues_no_network_call(self, provider_id, http_client):
        """Fehlende Zugangsdaten → MISSING_CREDENTIALS, kein HTTP-Aufruf."""
        adapter = make_adapter(provider_id, http_client, with_credentials=False)
        with respx.mock(assert_all_called=False) as mock:
            catch_all = mock.route().mock(return_value=httpx.Response(200, json={}))
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.MISSING_CREDENTIALS
        assert result.text
        assert result.http_status is None
        assert not catch_all.called

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_id", ALL_PROVIDERS)
    async def test_non_2xx_is_api_error_with_status(self, provider_id, http_client):
        """Nicht-2xx → API_ERROR, http_status übernommen, Body im Text."""
        adapter = make_adapter(provider_id, http_client)
        with respx.mock:
            respx.post(PROVIDER_URLS[provider_id]).mock(
                return_value=httpx.Response(503, text="model overloaded")
            )
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.API_ERROR
        assert result.http_status == 503
        assert "503" in result.text
        assert "model overloaded" in result.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_id", ALL_PROVIDERS)
    async def test_transport_failure_is_network_error(self, provider_id, http_client):
        """Verbindungsfehler → NETWORK_ERROR mit Fehlermeldung im Text (keine Exception)."""
        adapter = make_adapter(provider_id, http_client)
        with respx.mock:
            respx.post(PROVIDER_URLS[provider_id]).mock(
                side_effect=httpx.ConnectError("connection refused")
            )
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.NETWORK_ERROR
        assert "connection refused" in result.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_id", ALL_PROVIDERS)
    async def test_malformed_body_is_network_error(self, provider_id, http_client):
        adapter = make_adapter(provider_id, http_client)
        with respx.mock:
            respx.post(PROVIDER_URLS[provider_id]).mock(
                return_value=httpx.Response(200, text="<html>gateway</html>")
            )
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.NETWORK_ERROR
        assert result.text.startswith("[Network or processing error:")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_id", ALL_PROVIDERS)
    async def test_exactly_one_call_per_respond(self, provider_id, http_client):
        """Kein impliziter Retry: auch nicht bei 5xx."""
        adapter = make_adapter(provider_id, http_client)
        with respx.mock:
            route = respx.post(PROVIDER_URLS[provider_id]).mock(
                return_value=httpx.Response(500, text="boom")
            )
            await adapter.respond("hello", ConversationHistory())

        assert route.call_count == 1


# ─── OpenAI ──────────────────────────────────────────────────────────────────


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_structured_request_with_leading_system_prompt(self, http_client, sample_history):
        adapter = make_adapter("openai", http_client)
        with respx.mock:
            route = respx.post(OPENAI_URL).mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "choices": [{"message": {"role": "assistant", "content": "Try this."}}],
                        "usage": {"prompt_tokens": 30, "completion_tokens": 5, "total_tokens": 35},
                    },
                )
            )
            result = await adapter.respond("Still nothing.", sample_history)

        body = sent_json(route)
        assert body["model"] == "gpt-4"
        assert body["max_tokens"] == 1000
        assert [m["role"] for m in body["messages"]] == ["system", "user", "assistant", "user"]
        assert body["messages"][0]["content"] == "You are a helpful tech support assistant."
        assert body["messages"][-1]["content"] == "Still nothing."
        assert route.calls.last.request.headers["Authorization"] == "Bearer test-key"

        assert result.ok
        assert result.text == "Try this."
        assert result.metadata.model == "gpt-4"
        assert result.metadata.prompt_tokens == 30
        assert result.metadata.completion_tokens == 5
        assert result.metadata.total_tokens == 35

    @pytest.mark.asyncio
    async def test_empty_choices_is_no_response_placeholder(self, http_client):
        adapter = make_adapter("openai", http_client)
        with respx.mock:
            respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, json={"choices": []}))
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.NO_RESPONSE
        assert result.text == "[No response from OpenAI]"

    @pytest.mark.asyncio
    async def test_update_config_applies_to_next_call(self, http_client):
        adapter = make_adapter("openai", http_client)
        adapter.update_config({"max_tokens": 64, "temperature": 0.2})

        with respx.mock:
            route = respx.post(OPENAI_URL).mock(
                return_value=httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})
            )
            await adapter.respond("hello", ConversationHistory())

        body = sent_json(route)
        assert body["max_tokens"] == 64
        assert body["temperature"] == 0.2
        # Nicht übergebene Felder bleiben erhalten
        assert body["model"] == "gpt-4"

    def test_update_config_rejects_unknown_field(self, http_client):
        adapter = make_adapter("openai", http_client)
        with pytest.raises(ValidationError):
            adapter.update_config({"presence_penalty_typo": 1})
        assert adapter.config.max_tokens == 1000

    def test_update_config_rejects_invalid_temperature(self, http_client):
        adapter = make_adapter("openai", http_client)
        with pytest.raises(ValidationError):
            adapter.update_config({"temperature": 5.0})
        assert adapter.config.temperature == 0.7

    def test_credentials_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")
        assert OpenAIProvider().has_credentials() is True

    @pytest.mark.asyncio
    async def test_default_probe_maps_success_to_available(self, http_client):
        adapter = make_adapter("openai", http_client)
        with respx.mock:
            route = respx.post(OPENAI_URL).mock(
                return_value=httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})
            )
            status = await adapter.probe()

        assert status.available is True
        assert status.model == "gpt-4"
        assert status.error is None
        assert sent_json(route)["messages"][-1]["content"] == "test"

    @pytest.mark.asyncio
    async def test_default_probe_maps_failure_to_unavailable(self, http_client):
        adapter = make_adapter("openai", http_client)
        with respx.mock:
            respx.post(OPENAI_URL).mock(return_value=httpx.Response(401, text="invalid key"))
            status = await adapter.probe()

        assert status.available is False
        assert "401" in status.error

    @pytest.mark.asyncio
    async def test_probe_without_credentials_is_unavailable(self, http_client):
        status = await make_adapter("openai", http_client, with_credentials=False).probe()
        assert status.available is False
        assert "OPENAI_API_KEY" in status.error


# ─── Azure OpenAI ────────────────────────────────────────────────────────────


class TestAzureOpenAIProvider:
    @pytest.mark.asyncio
    async def test_deployment_url_and_api_key_header(self, http_client, sample_history):
        adapter = make_adapter("azure", http_client)
        with respx.mock:
            route = respx.post(AZURE_URL).mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "choices": [{"message": {"content": "Reset the adapter."}}],
                        "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
                    },
                )
            )
            result = await adapter.respond("What next?", sample_history)

        request = route.calls.last.request
        assert request.headers["api-key"] == "test-key"
        body = json.loads(request.content)
        assert "model" not in body
        assert body["max_tokens"] == 512
        assert body["messages"][0]["role"] == "system"
        assert len(body["messages"]) == 4

        assert result.text == "Reset the adapter."
        assert result.metadata.model == "azure-openai"
        assert result.metadata.total_tokens == 16

    def test_partial_credentials_count_as_missing(self, http_client):
        adapter = AzureOpenAIProvider(
            api_key="k", endpoint=AZURE_ENDPOINT, deployment="", client=http_client
        )
        assert adapter.has_credentials() is False


# ─── Claude ──────────────────────────────────────────────────────────────────


class TestClaudeProvider:
    @pytest.mark.asyncio
    async def test_system_prompt_as_parameter_and_neutral_usage(self, http_client, sample_history):
        adapter = make_adapter("claude", http_client)
        with respx.mock:
            route = respx.post(CLAUDE_URL).mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "content": [{"type": "text", "text": "Check the driver."}],
                        "usage": {"input_tokens": 40, "output_tokens": 8},
                    },
                )
            )
            result = await adapter.respond("Any other idea?", sample_history)

        request = route.calls.last.request
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["system"] == "You are a helpful tech support assistant."
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]

        # input/output → prompt/completion, Summe als total
        assert result.metadata.prompt_tokens == 40
        assert result.metadata.completion_tokens == 8
        assert result.metadata.total_tokens == 48
        assert result.text == "Check the driver."

    @pytest.mark.asyncio
    async def test_system_turns_move_into_system_parameter(self, http_client):
        adapter = make_adapter("claude", http_client)
        history = ConversationHistory(
            turns=(
                Turn(role="system", content="User is on macOS."),
                Turn(role="user", content="hi"),
            )
        )
        with respx.mock:
            route = respx.post(CLAUDE_URL).mock(
                return_value=httpx.Response(200, json={"content": [{"text": "hello"}]})
            )
            result = await adapter.respond("help", history)

        body = sent_json(route)
        assert "User is on macOS." in body["system"]
        assert all(m["role"] != "system" for m in body["messages"])
        assert result.metadata.total_tokens is None

    @pytest.mark.asyncio
    async def test_empty_content_is_no_response(self, http_client):
        adapter = make_adapter("claude", http_client)
        with respx.mock:
            respx.post(CLAUDE_URL).mock(return_value=httpx.Response(200, json={"content": []}))
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.NO_RESPONSE
        assert result.text == "[No response from Claude]"


# ─── Llama (HuggingFace) ─────────────────────────────────────────────────────


class TestLlamaProvider:
    @pytest.mark.asyncio
    async def test_templated_prompt_and_cleaned_reply(self, http_client):
        adapter = make_adapter("llama", http_client)
        history = ConversationHistory.from_messages(
            [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]
        )
        prompt = "<s>[INST] a [/INST] b </s><s>[INST] c [/INST]"
        with respx.mock:
            route = respx.post(LLAMA_URL).mock(
                return_value=httpx.Response(
                    200, json=[{"generated_text": prompt + " answer </s>", "generated_tokens": 3}]
                )
            )
            result = await adapter.respond("c", history)

        body = sent_json(route)
        assert body["inputs"] == prompt
        assert body["parameters"] == {
            "max_new_tokens": 2048,
            "temperature": 0.7,
            "top_p": 0.9,
            "do_sample": True,
            "return_full_text": False,
        }
        assert result.ok
        assert result.text == "answer"
        assert result.metadata.completion_tokens == 3
        assert result.metadata.raw_response == prompt + " answer </s>"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [[], {"error": "loading"}, [{"generated_text": ""}]])
    async def test_empty_generation_is_no_response(self, http_client, payload):
        adapter = make_adapter("llama", http_client)
        with respx.mock:
            respx.post(LLAMA_URL).mock(return_value=httpx.Response(200, json=payload))
            result = await adapter.respond("hello", ConversationHistory())

        assert result.error_kind == ErrorKind.NO_RESPONSE
        assert result.text == "[No response received from model]"

    @pytest.mark.asyncio
    async def test_probe_checks_model_endpoint_without_generation(self, http_client):
        adapter = make_adapter("llama", http_client)
        with respx.mock(assert_all_called=False) as mock:
            get_route = mock.get(LLAMA_URL).mock(return_value=httpx.Response(200, json={}))
            post_route = mock.post(LLAMA_URL).mock(return_value=httpx.Response(200, json=[]))
            status = await adapter.probe()

        assert status.available is True
        assert status.model == "meta-llama/Llama-2-7b-chat-hf"
        assert get_route.called
        assert not post_route.called

    @pytest.mark.asyncio
    async def test_probe_reports_http_status(self, http_client):
        adapter = make_adapter("llama", http_client)
        with respx.mock:
            respx.get(LLAMA_URL).mock(return_value=httpx.Response(404))
            status = await adapter.probe()

        assert status.available is False
        assert status.error == "HTTP 404"

    @pytest.mark.asyncio
    async def test_probe_swallows_transport_failure(self, http_client):
        adapter = make_adapter("llama", http_client)
        with respx.mock:
            respx.get(LLAMA_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
            status = await adapter.probe()

        assert status.available is False
        assert "timed out" in status.error

    @pytest.mark.asyncio
    async def test_probe_has_overall_deadline(self, monkeypatch):
        """Ein hängender GET wird nach der Gesamtfrist abgebrochen, nicht pro Phase."""
        monkeypatch.setattr("helpdesk.providers.llama.PROBE_TIMEOUT_SEC", 0.05)

        async def hanging_get(*args, **kwargs):
            await asyncio.sleep(5)

        client = MagicMock(spec=httpx.AsyncClient)
        client.get = AsyncMock(side_effect=hanging_get)
        adapter = LlamaProvider(api_key="test-key", client=client)

        status = await asyncio.wait_for(adapter.probe(), timeout=1)

        assert status.available is False
        assert status.error.startswith("Timeout nach")
        client.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_probe_without_credentials(self, http_client):
        status = await make_adapter("llama", http_client, with_credentials=False).probe()
        assert status.available is False
        assert "HF_API_KEY" in status.error
