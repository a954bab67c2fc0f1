"""Pipeline de ingestão de mensagens recebidas (uma unidade por mensagem do webhook).

Dedup por external_id garante efeito exactly-once sobre a entrega at-least-once do provedor.
Identidade, normalização, persistência e registro do evento acontecem numa única transação;
qualquer erro nessa fase desfaz tudo e sobe para a política de retentativa da fila.
"""
from __future__ import annotations
from enum import Enum
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from kink import di
from ..connectors.whatsapp.cloud_api_adapter import WhatsAppCloudAdapter
from ..core.db import utcnow, from_epoch
from ..core.logging import get_logger
from ..domain.types import MessageStatus, SenderType
from ..repo.models import Channel, Message
from .content import normalize
from .identity import resolve
from .notifications import record_message_received

log = get_logger()

class IngestResult(str, Enum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    DISCARDED = "discarded"

class _DuplicateMessage(Exception):
    pass

def message_exists(s, external_id: str) -> bool:
    return s.execute(select(Message.id).where(Message.external_id == external_id).limit(1)).scalar() is not None

def ingest(channel_id: int, raw: dict, contacts: list[dict] | None = None) -> IngestResult:
    """Processa uma mensagem recebida. Idempotente por external_id."""
    raw = raw or {}
    provider_id = raw.get("id")
    sender = raw.get("from")
    if not provider_id or not sender:
        log.warning("inbound_discarded", channel_id=channel_id, reason="missing id or sender", message_data=raw)
        return IngestResult.DISCARDED

    Session = di["session_factory"]
    with Session() as s:
        try:
            with s.begin():
                channel = s.get(Channel, channel_id)
                if channel is None:
                    log.warning("inbound_discarded", channel_id=channel_id, reason="channel not found", message_id=provider_id)
                    return IngestResult.DISCARDED
                if message_exists(s, provider_id):
                    log.info("inbound_duplicate", message_id=provider_id, channel_id=channel_id)
                    return IngestResult.DUPLICATE

                customer, conversation = resolve(s, channel, sender, contacts)
                normalized = normalize(raw)
                message = Message(
                    conversation_id=conversation.id,
                    external_id=provider_id,
                    sender_type=SenderType.CUSTOMER.value,
                    content=normalized.content,
                    type=normalized.type.value,
                    attachments=normalized.attachments_json(),
                    payload=raw,
                    status=MessageStatus.RECEIVED.value,
                    meta={},
                    created_at=from_epoch(raw.get("timestamp")) or utcnow(),
                )
                try:
                    with s.begin_nested():
                        s.add(message)
                except IntegrityError as e:
                    raise _DuplicateMessage() from e
                record_message_received(s, channel, customer, conversation, message)
        except _DuplicateMessage as e:
            # corrida com outro worker: só é duplicata se a outra linha existe de fato
            with s.begin():
                if not message_exists(s, provider_id):
                    raise e.__cause__
            log.info("inbound_duplicate", message_id=provider_id, channel_id=channel_id, race=True)
            return IngestResult.DUPLICATE
        except Exception as e:
            log.error("inbound_failed", channel_id=channel_id, message_id=provider_id, error=str(e))
            raise

    mark_as_read(channel, provider_id)
    log.info(
        "inbound_stored", message_id=provider_id, id=message.id, customer_id=customer.id,
        conversation_id=conversation.id, channel_id=channel_id, type=message.type,
    )
    return IngestResult.STORED

def mark_as_read(channel: Channel, provider_message_id: str) -> bool:
    """Confirmação de leitura best-effort: falha só gera log, nunca derruba a ingestão."""
    try:
        res = di[WhatsAppCloudAdapter].mark_as_read(channel, provider_message_id)
    except Exception as e:
        log.warning("read_receipt_failed", message_id=provider_message_id, channel_id=channel.id, error=str(e))
        return False
    if not res.ok:
        log.warning("read_receipt_failed", message_id=provider_message_id, channel_id=channel.id,
                    error=res.error.model_dump() if res.error else None)
        return False
    log.debug("read_receipt_sent", message_id=provider_message_id, channel_id=channel.id)
    return True
