"""Normalização do payload de mensagem do provedor em conteúdo canônico (função pura)."""
from __future__ import annotations
from pydantic import BaseModel
from ..domain.types import MessageType, MEDIA_TYPES, parse_message_type
from ..ports.interfaces import AttachmentDTO

PLACEHOLDERS = {
    MessageType.IMAGE: "[Image]",
    MessageType.DOCUMENT: "[Document]",
    MessageType.AUDIO: "[Audio]",
    MessageType.VIDEO: "[Video]",
    MessageType.VOICE: "[Voice note]",
    MessageType.STICKER: "[Sticker]",
    MessageType.LOCATION: "[Location]",
    MessageType.CONTACTS: "[Contact]",
    MessageType.INTERACTIVE: "[Interactive message]",
}
UNSUPPORTED = "[Unsupported message]"

class NormalizedContent(BaseModel):
    content: str
    type: MessageType
    attachments: list[AttachmentDTO] | None = None

    def attachments_json(self) -> list[dict] | None:
        return [a.model_dump() for a in self.attachments] if self.attachments else None

def _has(value) -> bool:
    return value is not None and value != ""

def format_location(location: dict | None) -> str:
    """Formata localização; placeholder quando faltam coordenadas."""
    location = location or {}
    lat, lon = location.get("latitude"), location.get("longitude")
    if not (_has(lat) and _has(lon)):
        return PLACEHOLDERS[MessageType.LOCATION]
    text = f"[Location] {lat}, {lon}"
    if location.get("name"):
        text += f" - {location['name']}"
    if location.get("address"):
        text += f" ({location['address']})"
    return text

def interactive_content(interactive: dict | None) -> str:
    interactive = interactive or {}
    kind = interactive.get("type")
    if kind == "button_reply":
        return (interactive.get("button_reply") or {}).get("title") or "[Button pressed]"
    if kind == "list_reply":
        return (interactive.get("list_reply") or {}).get("title") or "[Option selected]"
    return PLACEHOLDERS[MessageType.INTERACTIVE]

def extract_content(raw: dict, mt: MessageType | None) -> str:
    if mt is None:
        return UNSUPPORTED
    body = raw.get(mt.value)
    body = body if isinstance(body, dict) else {}
    if mt is MessageType.TEXT:
        return body.get("body") or ""
    if mt in (MessageType.IMAGE, MessageType.VIDEO):
        return body.get("caption") or PLACEHOLDERS[mt]
    if mt is MessageType.DOCUMENT:
        return body.get("filename") or PLACEHOLDERS[mt]
    if mt is MessageType.LOCATION:
        return format_location(body)
    if mt is MessageType.INTERACTIVE:
        return interactive_content(body)
    return PLACEHOLDERS.get(mt, UNSUPPORTED)

def extract_attachments(raw: dict, mt: MessageType | None) -> list[AttachmentDTO] | None:
    """Um anexo para mídia com dados; senão None (nunca lista vazia)."""
    if mt not in MEDIA_TYPES:
        return None
    media = raw.get(mt.value)
    if not isinstance(media, dict) or not media:
        return None
    return [AttachmentDTO(
        type=mt.value,
        media_id=media.get("id"),
        mime_type=media.get("mime_type"),
        checksum=media.get("sha256"),
        filename=media.get("filename"),
        caption=media.get("caption"),
    )]

def normalize(raw: dict) -> NormalizedContent:
    """Mapeia o payload do webhook para (content, type, attachments). Não levanta exceção."""
    raw = raw if isinstance(raw, dict) else {}
    mt = parse_message_type(raw.get("type"))
    return NormalizedContent(
        content=extract_content(raw, mt),
        type=mt or MessageType.TEXT,
        attachments=extract_attachments(raw, mt),
    )
