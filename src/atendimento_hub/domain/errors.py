"""Taxonomia de erros do pipeline de entrega.

- FatalDeliveryError: configuração inválida (canal errado, tipo não suportado, campo obrigatório
  ausente ou malformado). Nunca reprocessa.
- Erro classificado do provedor: é um valor (ProviderErrorDTO em ports.interfaces), não exceção.
- RetryTask: pede à fila um reagendamento com atraso explícito.
- Qualquer outra exceção é "não classificada" e segue o backoff genérico da fila.
"""
from __future__ import annotations

class FatalDeliveryError(ValueError):
    """Erro de configuração; a mensagem vai direto para failed_permanently."""

class UnsupportedMessageType(FatalDeliveryError):
    def __init__(self, message_type: str | None):
        super().__init__(f"Unsupported message type: {message_type}")
        self.message_type = message_type

class ChannelMismatch(FatalDeliveryError):
    def __init__(self, channel_type: str | None):
        super().__init__(f"Message channel is not WhatsApp: {channel_type}")
        self.channel_type = channel_type

class MissingFieldError(FatalDeliveryError):
    def __init__(self, message_type: str, field: str):
        super().__init__(f"{field} is required for {message_type} messages")
        self.message_type = message_type
        self.field = field

class InvalidFieldError(FatalDeliveryError):
    def __init__(self, message_type: str, field: str):
        super().__init__(f"{field} is invalid for {message_type} messages")
        self.message_type = message_type
        self.field = field

class RetryTask(Exception):
    """Sinaliza reagendamento da tarefa após `delay_s` segundos."""
    def __init__(self, delay_s: int, reason: str | None = None):
        super().__init__(reason or f"retry in {delay_s}s")
        self.delay_s = delay_s

class InvalidStatusTransition(RuntimeError):
    def __init__(self, current, target):
        super().__init__(f"Invalid status transition: {getattr(current, 'value', current)} -> {getattr(target, 'value', target)}")
        self.current = current
        self.target = target
