# tests/conftest.py
# Pytest-Konfiguration und gemeinsame Fixtures
import httpx
import pytest
import pytest_asyncio

from helpdesk.models import ConversationHistory, Turn

CREDENTIAL_ENV_VARS = (
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_DEPLOYMENT",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "HF_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_credentials(monkeypatch):
    """Echte Zugangsdaten aus der Umgebung dürfen Tests nie beeinflussen."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_history():
    """Kurze Support-Konversation (user → assistant)."""
    return ConversationHistory(
        turns=(
            Turn(role="user", content="My laptop won't connect to Wi-Fi."),
            Turn(role="assistant", content="Have you tried restarting the router?"),
        )
    )


@pytest_asyncio.fixture
async def http_client():
    """Geteilter httpx-Client: respx fängt alle Aufrufe auf Transportebene ab."""
    async with httpx.AsyncClient() as client:
        yield client
