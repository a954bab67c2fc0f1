"""Tarefa de entrega de mensagens de saída: máquina de estados e decisão de retentativa.

pending -> sent | failed | failed_permanently; failed -> pending (retentativa agendada) |
failed_permanently. sent e failed_permanently são terminais.

A chamada de rede acontece fora de transação; antes de gravar o resultado a mensagem é relida
com lock, então um cancelamento concorrente nunca é sobrescrito.
"""
from __future__ import annotations
from enum import Enum
from kink import di
from ..connectors.whatsapp.cloud_api_adapter import WhatsAppCloudAdapter
from ..connectors.whatsapp.encoding import encode, encoder_for
from ..core.db import utcnow
from ..core.logging import get_logger
from ..core.settings import Settings
from ..domain.errors import ChannelMismatch, FatalDeliveryError, RetryTask, UnsupportedMessageType
from ..domain.types import MessageStatus, transition
from ..ports.interfaces import EntregaDTO, ProviderErrorDTO
from ..repo.models import Channel, Conversation, Customer, Message

log = get_logger()

WHATSAPP = "whatsapp"

class DeliveryDecision(str, Enum):
    SENT = "sent"
    RETRY = "retry"
    GIVE_UP = "give_up"

def classify_outcome(result: EntregaDTO, attempt: int, max_attempts: int) -> DeliveryDecision:
    """Decide o próximo passo a partir do resultado do provedor, sem tocar no transporte."""
    if result.ok:
        return DeliveryDecision.SENT
    if result.error and result.error.retryable and attempt < max_attempts:
        return DeliveryDecision.RETRY
    return DeliveryDecision.GIVE_UP

def _merge_meta(message: Message, extra: dict) -> None:
    message.meta = {**(message.meta or {}), **extra}

def _lock(s, message_id: int) -> Message | None:
    return s.get(Message, message_id, with_for_update=True, populate_existing=True)

def _record_unclassified(s, message_id: int, attempt: int, error: Exception) -> None:
    """Grava o erro e marca failed numa transação nova; a anterior já foi desfeita."""
    with s.begin():
        message = _lock(s, message_id)
        if message is not None and message.status == MessageStatus.PENDING.value:
            _merge_meta(message, {"error_message": str(error), "failed_at": utcnow().isoformat(), "attempt": attempt})
            transition(message, MessageStatus.FAILED)
    log.error("delivery_unclassified_error", message_id=message_id, attempt=attempt, error=repr(error))

def deliver(message_id: int, attempt: int = 1) -> MessageStatus | None:
    """Executa uma tentativa de envio. Levanta RetryTask para retentativa classificada
    e propaga exceções não classificadas para o backoff da fila."""
    settings: Settings = di[Settings]
    Session = di["session_factory"]
    with Session() as s:
        try:
            with s.begin():
                message = _lock(s, message_id)
                if message is None:
                    log.warning("delivery_message_missing", message_id=message_id)
                    return None
                if message.status != MessageStatus.PENDING.value:
                    log.info("delivery_skipped", message_id=message_id, status=message.status)
                    return MessageStatus(message.status)
                conversation = s.get(Conversation, message.conversation_id)
                channel = s.get(Channel, conversation.channel_id)
                customer = s.get(Customer, conversation.customer_id)
                try:
                    if channel.type != WHATSAPP:
                        raise ChannelMismatch(channel.type)
                    if encoder_for(message.type) is None:
                        raise UnsupportedMessageType(message.type)
                    request = encode(message, settings.default_template_language)
                except FatalDeliveryError as e:
                    _merge_meta(message, {"error_message": str(e), "failed_at": utcnow().isoformat(), "attempt": attempt})
                    transition(message, MessageStatus.FAILED_PERMANENTLY)
                    log.error("delivery_fatal", message_id=message_id, type=message.type, error=str(e))
                    return MessageStatus.FAILED_PERMANENTLY
        except Exception as e:
            _record_unclassified(s, message_id, attempt, e)
            raise

        try:
            result = di[WhatsAppCloudAdapter].send(channel, customer.phone, request)
        except Exception as e:
            _record_unclassified(s, message_id, attempt, e)
            raise

        decision = classify_outcome(result, attempt, settings.max_delivery_attempts)
        error = result.error or ProviderErrorDTO(message="Unknown provider error")
        with s.begin():
            message = _lock(s, message_id)
            if message.status != MessageStatus.PENDING.value:
                # cancelada durante o envio: mantém o estado terminal e só audita a resposta
                _merge_meta(message, {"late_api_response": result.response if result.ok else error.model_dump()})
                log.warning("delivery_result_after_cancel", message_id=message_id, status=message.status, ok=result.ok)
                return MessageStatus(message.status)
            if decision is DeliveryDecision.SENT:
                message.external_id = result.provider_message_id
                message.sent_at = utcnow()
                _merge_meta(message, {
                    "api_response": result.response,
                    "sent_timestamp": (result.response or {}).get("timestamp") or message.sent_at.isoformat(),
                })
                transition(message, MessageStatus.SENT)
            else:
                _merge_meta(message, {
                    "error_code": error.code,
                    "error_type": error.type,
                    "error_message": error.message,
                    "failed_at": utcnow().isoformat(),
                    "attempt": attempt,
                })
                transition(message, MessageStatus.FAILED)
                if decision is DeliveryDecision.GIVE_UP:
                    transition(message, MessageStatus.FAILED_PERMANENTLY)
            final_status = MessageStatus(message.status)

    if decision is DeliveryDecision.SENT:
        log.info("delivery_sent", message_id=message_id, external_id=result.provider_message_id,
                 channel_id=channel.id, attempt=attempt)
    elif decision is DeliveryDecision.RETRY:
        delay = error.retry_after or settings.default_retry_after_s
        log.warning("delivery_retry_scheduled", message_id=message_id, attempt=attempt, delay_s=delay,
                    error_code=error.code, error_type=error.type)
        raise RetryTask(delay, error.message)
    else:
        log.error("delivery_failed_permanently", message_id=message_id, attempt=attempt,
                  error_code=error.code, error_type=error.type, retryable=error.retryable)
    return final_status

def reset_for_retry(message_id: int) -> bool:
    """failed -> pending antes de uma retentativa agendada. Mensagens terminais ficam como estão."""
    Session = di["session_factory"]
    with Session() as s, s.begin():
        message = _lock(s, message_id)
        if message is None or message.status != MessageStatus.FAILED.value:
            return False
        transition(message, MessageStatus.PENDING)
    log.info("delivery_reset_for_retry", message_id=message_id)
    return True

def run_delivery_task(payload: dict, attempt: int) -> MessageStatus | None:
    """Handler da fila para DELIVER_MESSAGE."""
    message_id = payload["message_id"]
    if attempt > 1:
        reset_for_retry(message_id)
    return deliver(message_id, attempt)

def on_delivery_exhausted(payload: dict, attempt: int, exc: Exception) -> None:
    """Tentativas esgotadas com erros não classificados: força failed_permanently."""
    Session = di["session_factory"]
    with Session() as s, s.begin():
        message = _lock(s, payload["message_id"])
        if message is None or message.status not in (MessageStatus.PENDING.value, MessageStatus.FAILED.value):
            return
        _merge_meta(message, {
            "final_error": str(exc),
            "failed_permanently_at": utcnow().isoformat(),
            "total_attempts": attempt,
        })
        transition(message, MessageStatus.FAILED_PERMANENTLY)
    log.error("delivery_attempts_exhausted", message_id=payload["message_id"], total_attempts=attempt, error=str(exc))
