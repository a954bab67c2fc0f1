"""Tipos do domínio de mensagens e a máquina de estados de entrega."""
from __future__ import annotations
from enum import Enum
from .errors import InvalidStatusTransition

class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    VOICE = "voice"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACTS = "contacts"
    INTERACTIVE = "interactive"
    TEMPLATE = "template"

MEDIA_TYPES = frozenset({MessageType.IMAGE, MessageType.DOCUMENT, MessageType.AUDIO, MessageType.VIDEO})

class SenderType(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"

class ConversationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"

class MessageStatus(str, Enum):
    """Estados de entrega. Mensagens de entrada nascem em RECEIVED (terminal)."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    FAILED_PERMANENTLY = "failed_permanently"
    RECEIVED = "received"

TERMINAL_STATUSES = frozenset({MessageStatus.SENT, MessageStatus.FAILED_PERMANENTLY, MessageStatus.RECEIVED})

ALLOWED_TRANSITIONS: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.PENDING: frozenset({MessageStatus.SENT, MessageStatus.FAILED, MessageStatus.FAILED_PERMANENTLY}),
    # failed -> pending só via retentativa agendada
    MessageStatus.FAILED: frozenset({MessageStatus.PENDING, MessageStatus.FAILED_PERMANENTLY}),
    MessageStatus.SENT: frozenset(),
    MessageStatus.FAILED_PERMANENTLY: frozenset(),
    MessageStatus.RECEIVED: frozenset(),
}

def can_transition(current: MessageStatus | str | None, target: MessageStatus | str) -> bool:
    """Retorna se a transição current -> target é permitida.

    None representa mensagem ainda não persistida: só pode nascer PENDING ou RECEIVED.
    """
    target = MessageStatus(target)
    if current is None:
        return target in (MessageStatus.PENDING, MessageStatus.RECEIVED)
    return target in ALLOWED_TRANSITIONS[MessageStatus(current)]

def transition(message, target: MessageStatus) -> None:
    """Aplica a transição de status no objeto ou levanta InvalidStatusTransition."""
    if not can_transition(message.status, target):
        raise InvalidStatusTransition(message.status, target)
    message.status = MessageStatus(target).value

def parse_message_type(value: str | None) -> MessageType | None:
    """Converte string do provedor em MessageType; None se fora do enum."""
    try:
        return MessageType(value or MessageType.TEXT.value)
    except ValueError:
        return None
