"""Portas hexagonais (interfaces) e DTOs."""
from __future__ import annotations
from typing import Any, Protocol
from pydantic import BaseModel

class AttachmentDTO(BaseModel):
    """Anexo canônico de mídia. `checksum` guarda o sha256 que a Graph API informa para o arquivo."""
    type: str
    media_id: str | None = None
    mime_type: str | None = None
    checksum: str | None = None
    filename: str | None = None
    caption: str | None = None

class ProviderErrorDTO(BaseModel):
    """Erro classificado do provedor: decide retentativa sem depender do transporte."""
    code: int | None = None
    http_status: int | None = None
    type: str | None = None
    message: str = ""
    details: str | None = None
    retryable: bool = False
    retry_after: int | None = None

class EntregaDTO(BaseModel):
    """Resultado padronizado de uma chamada ao provedor."""
    ok: bool
    provider_message_id: str | None = None
    response: dict[str, Any] | None = None
    error: ProviderErrorDTO | None = None

class EgressPort(Protocol):
    def send(self, channel, to: str, request) -> EntregaDTO: ...

class AckPort(Protocol):
    def mark_as_read(self, channel, provider_message_id: str) -> EntregaDTO: ...

class BroadcastPort(Protocol):
    def publish(self, channels: list[str], event: str, payload: dict) -> None: ...
