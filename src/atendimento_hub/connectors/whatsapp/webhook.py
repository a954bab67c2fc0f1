"""Roteamento do envelope do webhook da Meta: uma tarefa de ingestão por mensagem.

Recibos de status (sent/delivered/read/failed) só ficam registrados em metadata da mensagem
de saída; o estado de entrega é responsabilidade exclusiva da tarefa de entrega.
"""
from __future__ import annotations
from sqlalchemy import select
from kink import di
from ...core.db import utcnow, from_epoch
from ...core.logging import get_logger
from ...repo.models import Channel, Message
from ...tasks.queue import enqueue, INGEST_INBOUND

log = get_logger()

WHATSAPP_OBJECT = "whatsapp_business_account"

def find_channel(s, phone_number_id: str) -> Channel | None:
    return s.execute(
        select(Channel).where(Channel.type == "whatsapp", Channel.external_id == phone_number_id)
    ).scalars().first()

def route_webhook(payload: dict) -> dict:
    """Distribui mensagens em tarefas e registra recibos. Retorna contadores."""
    if (payload or {}).get("object") != WHATSAPP_OBJECT:
        log.warning("webhook_invalid_object", object=(payload or {}).get("object"))
        return {"accepted": False, "reason": "invalid-object"}

    counts = {"messages": 0, "statuses": 0}
    Session = di["session_factory"]
    with Session() as s, s.begin():
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                field = change.get("field")
                value = change.get("value") or {}
                if field == "messages":
                    _route_messages(s, value, counts)
                elif field == "message_template_status_update":
                    log.info("template_status_update", template=value.get("message_template_name"),
                             status=value.get("message_template_status"))
                else:
                    log.info("webhook_field_ignored", field=field)
    log.info("webhook_routed", **counts)
    return {"accepted": True, **counts}

def _route_messages(s, value: dict, counts: dict) -> None:
    phone_number_id = (value.get("metadata") or {}).get("phone_number_id")
    if not phone_number_id:
        log.warning("webhook_missing_phone_number_id")
        return
    channel = find_channel(s, phone_number_id)
    if channel is None:
        log.warning("webhook_channel_not_found", phone_number_id=phone_number_id)
        return
    contacts = value.get("contacts") or []
    for message in value.get("messages") or []:
        enqueue(s, INGEST_INBOUND, {"channel_id": channel.id, "message": message, "contacts": contacts})
        counts["messages"] += 1
    for status in value.get("statuses") or []:
        if _apply_status(s, channel, status):
            counts["statuses"] += 1

def _apply_status(s, channel: Channel, status: dict) -> bool:
    external_id, status_type = status.get("id"), status.get("status")
    if not external_id or not status_type:
        return False
    message = s.execute(select(Message).where(Message.external_id == external_id)).scalars().first()
    if message is None:
        return False
    at = from_epoch(status.get("timestamp")) or utcnow()
    extra = {"provider_status": status_type, "provider_status_at": at.isoformat()}
    if status.get("errors"):
        extra["provider_errors"] = status["errors"]
    message.meta = {**(message.meta or {}), **extra}
    log.info("provider_status_recorded", message_id=message.id, status=status_type, channel_id=channel.id)
    return True
