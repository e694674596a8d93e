# helpdesk/main.py
# FastAPI-Hauptanwendung: Chat-, Status- und Ticket-Endpunkte, WebSocket, Lifecycle
from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import ValidationError

from .availability import AvailabilityProber
from .mcp_server import mcp as mcp_server
from .mcp_server import set_services
from .metrics import get_metrics_response
from .models import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ModelStatusResponse,
    Ticket,
    TicketCreate,
    TicketStatusUpdate,
)
from .providers import ProviderRegistry
from .router import Dispatcher
from .tickets import EscalationBuilder, InvalidTicketInput, TicketStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "./helpdesk.db")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# MCP-App auf Modul-Ebene erstellen: Lifespan wird im lifespan-Context gestartet
# path="/" notwendig: FastAPI strippt den /mcp-Prefix, Sub-App muss Route bei / haben
mcp_http_app = mcp_server.http_app(path="/")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Anwendungs-Lifecycle: Startup-Initialisierung und Shutdown-Bereinigung."""
    async with mcp_http_app.lifespan(mcp_http_app):
        # Statische Komposition: Provider werden genau einmal registriert
        registry = ProviderRegistry()
        await registry.initialize()

        ticket_store = TicketStore(DATABASE_URL)
        await ticket_store.initialize()

        app.state.registry = registry
        app.state.dispatcher = Dispatcher(registry)
        app.state.prober = AvailabilityProber(registry)
        app.state.tickets = ticket_store
        app.state.escalation = EscalationBuilder(ticket_store)

        set_services(app.state.dispatcher, app.state.prober, app.state.escalation)

        logger.info("✅ Support-Chat-Gateway gestartet (Provider: %s)", ", ".join(registry.ids()))
        yield

        # Shutdown: HTTP-Clients ordnungsgemäß schließen
        await registry.shutdown()
        logger.info("Support-Chat-Gateway heruntergefahren")


app = FastAPI(
    title="Tech Support Chat Gateway",
    description="Chat über austauschbare LLM-Backends mit Eskalation an Support-Tickets",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# MCP-Server unter /mcp mounten (Streamable HTTP Transport)
app.mount("/mcp", mcp_http_app)


@app.get("/metrics", include_in_schema=False, tags=["Monitoring"])
async def prometheus_metrics() -> Response:
    """Prometheus-Metriken im Textformat (für Scraping durch Prometheus-Server)."""
    data, content_type = get_metrics_response()
    return Response(content=data, media_type=content_type)


@app.get("/health", response_model=HealthResponse, tags=["Monitoring"])
async def health_check(request: Request) -> HealthResponse:
    """Gateway läuft; registrierte Provider ohne Probe auflisten."""
    return HealthResponse(status="healthy", providers=request.app.state.registry.ids())


@app.post("/chat", response_model=ChatResponse, tags=["Chat"])
async def chat(request: Request, payload: ChatRequest) -> ChatResponse:
    """
    Nachricht an das gewählte Backend weiterleiten.

    Fehler (fehlende Zugangsdaten, API-Fehler, unbekannter Provider) kommen als
    Daten im Feld 'error' zurück: der Antworttext ist immer anzeigbar.
    """
    result = await request.app.state.dispatcher.invoke(
        payload.use, payload.message, payload.history()
    )
    return ChatResponse.from_result(result)


@app.get("/models/status", response_model=ModelStatusResponse, tags=["Chat"])
async def models_status(request: Request) -> ModelStatusResponse:
    """Alle Provider parallel proben und Verfügbarkeit zurückgeben."""
    statuses = await request.app.state.prober.probe_all()
    return ModelStatusResponse(models=statuses)


@app.patch("/models/{provider_id}/config", tags=["Admin"])
async def update_model_config(
    request: Request, provider_id: str, changes: dict[str, Any]
) -> dict[str, Any]:
    """
    Generierungsparameter eines Adapters zur Laufzeit ändern (flaches Merge).
    Gilt ab dem nächsten Aufruf; laufende Aufrufe behalten ihren Stand.
    """
    adapter = request.app.state.registry.get(provider_id)
    if adapter is None:
        raise HTTPException(status_code=404, detail=f"Unbekannter Provider: {provider_id}")
    try:
        config = adapter.update_config(changes)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
    return config.model_dump()


@app.post("/ticket", tags=["Tickets"])
async def create_ticket(request: Request, payload: TicketCreate) -> dict[str, Any]:
    """Konversation eskalieren: Transkript anhängen und Ticket anlegen."""
    try:
        ticket_id = await request.app.state.escalation.escalate(
            payload.issue, payload.user, payload.priority, payload.history()
        )
    except InvalidTicketInput as exc:
        raise HTTPException(
            status_code=400,
            detail={"error": exc.error_kind.value, "message": str(exc)},
        ) from exc
    return {"ticketId": ticket_id, "success": True}


@app.get("/tickets", tags=["Tickets"])
async def list_tickets(request: Request) -> dict[str, list[Ticket]]:
    return {"tickets": await request.app.state.tickets.list_all()}


@app.get("/tickets/{ticket_id}", response_model=Ticket, tags=["Tickets"])
async def get_ticket(request: Request, ticket_id: str) -> Ticket:
    ticket = await request.app.state.tickets.get(ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@app.put("/tickets/{ticket_id}/status", tags=["Tickets"])
async def update_ticket_status(
    request: Request, ticket_id: str, payload: TicketStatusUpdate
) -> dict[str, Any]:
    updated = await request.app.state.tickets.update_status(ticket_id, payload.status)
    if not updated:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return {"success": True, "message": "Ticket status updated"}


@app.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    """
    Push-Variante von POST /chat.

    Client sendet {message, model, conversationHistory}; Server antwortet mit
    {"event": "typing-start"} und danach {"event": "message-response", ...}.
    """
    await websocket.accept()
    dispatcher: Dispatcher = websocket.app.state.dispatcher
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise ValueError("JSON-Objekt erwartet")
                payload = ChatRequest.model_validate(
                    {**data, "use": data.get("model", data.get("use", "azure"))}
                )
            except ValueError as exc:
                # JSONDecodeError und ValidationError sind beide ValueError
                await websocket.send_json(
                    {"event": "message-error", "error": "Failed to process message",
                     "details": str(exc)}
                )
                continue

            await websocket.send_json({"event": "typing-start"})
            result = await dispatcher.invoke(payload.use, payload.message, payload.history())
            await websocket.send_json(
                {"event": "message-response",
                 **ChatResponse.from_result(result).model_dump(mode="json")}
            )
    except WebSocketDisconnect:
        logger.info("WebSocket-Client getrennt")
