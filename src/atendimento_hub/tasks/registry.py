"""Registro dos tipos de tarefa da fila e suas políticas de tentativas."""
from __future__ import annotations
from ..core.settings import Settings
from ..services.ingestion import ingest
from ..services.notifications import publish_event
from .delivery import run_delivery_task, on_delivery_exhausted
from .queue import TaskSpec, INGEST_INBOUND, DELIVER_MESSAGE, PUBLISH_EVENT

def run_ingest_task(payload: dict, attempt: int):
    return ingest(payload["channel_id"], payload.get("message") or {}, payload.get("contacts"))

def run_publish_task(payload: dict, attempt: int):
    return publish_event(payload["event_id"], attempt)

def build_registry(settings: Settings) -> dict[str, TaskSpec]:
    return {
        INGEST_INBOUND: TaskSpec(run_ingest_task, settings.max_ingest_attempts),
        DELIVER_MESSAGE: TaskSpec(run_delivery_task, settings.max_delivery_attempts, on_delivery_exhausted),
        PUBLISH_EVENT: TaskSpec(run_publish_task, settings.max_publish_attempts),
    }
