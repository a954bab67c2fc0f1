"""Outbox de eventos de domínio: gravação transacional e publicação por tarefa."""
from __future__ import annotations
from kink import di
from ..core.db import utcnow
from ..core.logging import get_logger
from ..domain.types import SenderType
from ..repo.models import Channel, Customer, Conversation, Message, OutboxEvent
from ..tasks.queue import enqueue, PUBLISH_EVENT

log = get_logger()

MESSAGE_RECEIVED = "message.received"

def message_received_payload(channel: Channel, customer: Customer, conversation: Conversation, message: Message) -> dict:
    """Dados transmitidos aos consumidores em tempo real."""
    return {
        "message": {
            "id": message.id,
            "external_id": message.external_id,
            "content": message.content,
            "sender_type": message.sender_type,
            "type": message.type,
            "attachments": message.attachments,
            "created_at": message.created_at.isoformat() if message.created_at else None,
        },
        "conversation": {
            "id": conversation.id,
            "status": conversation.status,
            "channel": {"id": channel.id, "type": channel.type},
            "customer": {"id": customer.id, "name": customer.name, "phone": customer.phone},
        },
        "timestamp": utcnow().isoformat(),
    }

def record_message_received(s, channel: Channel, customer: Customer, conversation: Conversation, message: Message) -> OutboxEvent | None:
    """Grava o evento na transação corrente e enfileira sua publicação. Só mensagens de cliente."""
    if message.sender_type != SenderType.CUSTOMER.value:
        return None
    ev = OutboxEvent(
        company_id=channel.company_id,
        conversation_id=conversation.id,
        type=MESSAGE_RECEIVED,
        payload=message_received_payload(channel, customer, conversation, message),
        status="pending",
        attempts=0,
    )
    s.add(ev)
    s.flush()
    enqueue(s, PUBLISH_EVENT, {"event_id": ev.id})
    return ev

def broadcast_channels(ev: OutboxEvent) -> list[str]:
    return [f"company.{ev.company_id}", f"conversation.{ev.conversation_id}"]

def publish_event(event_id: int, attempt: int = 1) -> bool:
    """Publica um OutboxEvent pendente. Retorna False se já publicado ou inexistente."""
    Session = di["session_factory"]
    with Session() as s:
        with s.begin():
            ev = s.get(OutboxEvent, event_id)
            if ev is None or ev.status == "published":
                return False
            channels, event, payload = broadcast_channels(ev), ev.type, dict(ev.payload or {})
        try:
            di["broadcaster"].publish(channels, event, payload)
        except Exception as e:
            with s.begin():
                ev = s.get(OutboxEvent, event_id, populate_existing=True)
                ev.status = "failed"
                ev.attempts = (ev.attempts or 0) + 1
            log.error("outbox_publish_failed", event_id=event_id, attempt=attempt, error=str(e))
            raise
        with s.begin():
            ev = s.get(OutboxEvent, event_id, populate_existing=True)
            ev.status = "published"
            ev.attempts = (ev.attempts or 0) + 1
            ev.published_at = utcnow()
    log.info("outbox_published", event_id=event_id, event=event)
    return True
