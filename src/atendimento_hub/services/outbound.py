"""Ações de domínio de saída: enfileirar envio e cancelar fora de banda."""
from __future__ import annotations
from kink import di
from ..connectors.whatsapp.encoding import encode
from ..core.db import utcnow
from ..core.logging import get_logger
from ..core.settings import Settings
from ..domain.errors import ChannelMismatch
from ..domain.types import MessageStatus, SenderType, transition
from ..repo.models import Channel, Conversation, Message
from ..tasks.queue import enqueue, DELIVER_MESSAGE

log = get_logger()

def enqueue_outbound_message(
    conversation_id: int,
    content: str = "",
    message_type: str = "text",
    sender_type: str = SenderType.AGENT.value,
    attachments: list[dict] | None = None,
    metadata: dict | None = None,
) -> int:
    """Cria Message(pending) e enfileira sua entrega na mesma transação.

    Valida a codificação antes de persistir: FatalDeliveryError sobe sem criar nada.
    """
    if SenderType(sender_type) is SenderType.CUSTOMER:
        raise ValueError("Outbound messages cannot have sender_type=customer")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValueError("metadata must be an object")
    message = Message(
        conversation_id=conversation_id,
        sender_type=sender_type,
        content=content or "",
        type=message_type,
        attachments=attachments or None,
        meta=dict(metadata or {}),
        status=MessageStatus.PENDING.value,
    )
    encode(message, di[Settings].default_template_language)

    Session = di["session_factory"]
    with Session() as s, s.begin():
        conversation = s.get(Conversation, conversation_id)
        if conversation is None:
            raise LookupError(f"Conversation {conversation_id} not found")
        channel = s.get(Channel, conversation.channel_id)
        if channel.type != "whatsapp":
            raise ChannelMismatch(channel.type)
        s.add(message)
        s.flush()
        message_id = message.id
        enqueue(s, DELIVER_MESSAGE, {"message_id": message_id})
    log.info("outbound_enqueued", message_id=message_id, conversation_id=conversation_id, type=message_type)
    return message_id

def cancel_message(message_id: int, reason: str = "cancelled") -> bool:
    """Marca mensagem não terminal como failed_permanently; tarefas atrasadas viram no-op."""
    Session = di["session_factory"]
    with Session() as s, s.begin():
        message = s.get(Message, message_id, with_for_update=True)
        if message is None or message.status not in (MessageStatus.PENDING.value, MessageStatus.FAILED.value):
            return False
        message.meta = {**(message.meta or {}), "cancelled_at": utcnow().isoformat(), "cancel_reason": reason}
        transition(message, MessageStatus.FAILED_PERMANENTLY)
    log.info("outbound_cancelled", message_id=message_id, reason=reason)
    return True
