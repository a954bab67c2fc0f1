"""Codificação de mensagens de saída em requisições da Graph API (uma variante por tipo).

Cada tipo suportado tem um encoder que valida os campos obrigatórios e devolve um
ProviderRequest (união discriminada por `kind`). Campo obrigatório ausente levanta
MissingFieldError e campo malformado InvalidFieldError, ambos antes de qualquer chamada
ao provedor.
"""
from __future__ import annotations
import re
from typing import Annotated, Callable, Literal, Union
from pydantic import BaseModel, Field, ValidationError
from ...domain.errors import InvalidFieldError, MissingFieldError, UnsupportedMessageType
from ...domain.types import MessageType, MEDIA_TYPES, parse_message_type

NON_PHONE_CHARS = re.compile(r"[^\d+]")

def format_phone(phone: str) -> str:
    """Remove caracteres não numéricos (exceto +) e garante o prefixo +."""
    cleaned = NON_PHONE_CHARS.sub("", phone or "")
    return cleaned if cleaned.startswith("+") else f"+{cleaned}"

def _envelope(to: str, type_: str, body: dict) -> dict:
    return {"messaging_product": "whatsapp", "to": format_phone(to), "type": type_, type_: body}

class TextRequest(BaseModel):
    kind: Literal["text"] = "text"
    body: str
    preview_url: bool = True

    def to_payload(self, to: str) -> dict:
        return _envelope(to, "text", {"body": self.body, "preview_url": self.preview_url})

class TemplateRequest(BaseModel):
    kind: Literal["template"] = "template"
    name: str
    language_code: str
    parameters: list[str] = Field(default_factory=list)

    def to_payload(self, to: str) -> dict:
        components = []
        if self.parameters:
            components.append({
                "type": "body",
                "parameters": [{"type": "text", "text": p} for p in self.parameters],
            })
        return _envelope(to, "template", {
            "name": self.name,
            "language": {"code": self.language_code},
            "components": components,
        })

class MediaRequest(BaseModel):
    kind: Literal["media"] = "media"
    media_type: Literal["image", "document", "audio", "video"]
    media_id: str
    caption: str | None = None
    filename: str | None = None

    def to_payload(self, to: str) -> dict:
        media: dict = {"id": self.media_id}
        # caption só vale para imagem/vídeo; filename só para documento
        if self.media_type in ("image", "video") and self.caption:
            media["caption"] = self.caption
        if self.media_type == "document" and self.filename:
            media["filename"] = self.filename
        return _envelope(to, self.media_type, media)

ProviderRequest = Annotated[Union[TextRequest, TemplateRequest, MediaRequest], Field(discriminator="kind")]

TRUE_FLAGS = frozenset({"true", "1", "yes", "on"})
FALSE_FLAGS = frozenset({"false", "0", "no", "off"})

def _flag(value, default: bool, message_type: str, field: str) -> bool:
    """Aceita bool, 0/1 e as formas textuais usuais; qualquer outra coisa é campo inválido."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in TRUE_FLAGS:
            return True
        if v in FALSE_FLAGS:
            return False
    raise InvalidFieldError(message_type, field)

def encode_text(message, *, default_language: str) -> TextRequest:
    meta = message.meta or {}
    return TextRequest(
        body=message.content or "",
        preview_url=_flag(meta.get("preview_url"), True, MessageType.TEXT.value, "preview_url"),
    )

def encode_template(message, *, default_language: str) -> TemplateRequest:
    meta = message.meta or {}
    name = meta.get("template_name")
    if not name:
        raise MissingFieldError(MessageType.TEMPLATE.value, "template_name")
    if not isinstance(name, str):
        raise InvalidFieldError(MessageType.TEMPLATE.value, "template_name")
    language = meta.get("language_code") or default_language
    if not isinstance(language, str):
        raise InvalidFieldError(MessageType.TEMPLATE.value, "language_code")
    parameters = meta.get("parameters") or []
    if not isinstance(parameters, list):
        raise InvalidFieldError(MessageType.TEMPLATE.value, "parameters")
    return TemplateRequest(name=name, language_code=language, parameters=[str(p) for p in parameters])

def encode_media(message, *, default_language: str) -> MediaRequest:
    attachments = message.attachments or []
    if not attachments:
        raise MissingFieldError(message.type, "attachments")
    if not isinstance(attachments, list) or not isinstance(attachments[0], dict):
        raise InvalidFieldError(message.type, "attachments")
    first = attachments[0]
    media_id = first.get("media_id")
    if not media_id:
        raise MissingFieldError(message.type, "media_id")
    # ids da Graph API chegam como string numérica; int é aceito e normalizado
    if isinstance(media_id, bool) or not isinstance(media_id, (str, int)):
        raise InvalidFieldError(message.type, "media_id")
    caption = first.get("caption") or message.content or None
    filename = first.get("filename")
    if caption is not None and not isinstance(caption, str):
        raise InvalidFieldError(message.type, "caption")
    if filename is not None and not isinstance(filename, str):
        raise InvalidFieldError(message.type, "filename")
    return MediaRequest(media_type=message.type, media_id=str(media_id), caption=caption, filename=filename)

ENCODERS: dict[MessageType, Callable] = {
    MessageType.TEXT: encode_text,
    MessageType.TEMPLATE: encode_template,
    **{t: encode_media for t in MEDIA_TYPES},
}

def encoder_for(message_type: str | None) -> Callable | None:
    """Retorna o encoder do tipo ou None se o tipo não é enviável."""
    mt = parse_message_type(message_type)
    return ENCODERS.get(mt) if mt else None

def encode(message, default_language: str = "es") -> TextRequest | TemplateRequest | MediaRequest:
    """Mapeia a mensagem canônica para a requisição do provedor (função pura)."""
    encoder = encoder_for(message.type)
    if encoder is None:
        raise UnsupportedMessageType(message.type)
    try:
        return encoder(message, default_language=default_language)
    except ValidationError as e:
        loc = e.errors()[0]["loc"] if e.errors() else ()
        raise InvalidFieldError(message.type, ".".join(map(str, loc)) or "payload") from e
