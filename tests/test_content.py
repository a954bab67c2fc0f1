"""Normalização do payload recebido em (content, type, attachments)."""
import pytest

from atendimento_hub.domain.types import MessageType
from atendimento_hub.services.content import normalize


def test_text_message_keeps_body():
    n = normalize({"type": "text", "text": {"body": "hola"}})
    assert n.content == "hola"
    assert n.type is MessageType.TEXT
    assert n.attachments is None


def test_missing_type_defaults_to_text():
    n = normalize({"text": {"body": "sem tipo"}})
    assert n.type is MessageType.TEXT
    assert n.content == "sem tipo"


def test_image_with_caption_builds_single_attachment():
    n = normalize({
        "type": "image",
        "image": {"id": "MEDIA1", "mime_type": "image/jpeg", "sha256": "abc", "caption": "menu"},
    })
    assert n.content == "menu"
    assert n.type is MessageType.IMAGE
    assert len(n.attachments) == 1
    att = n.attachments[0]
    assert (att.type, att.media_id, att.mime_type, att.checksum, att.caption) == ("image", "MEDIA1", "image/jpeg", "abc", "menu")
    assert n.attachments_json()[0]["media_id"] == "MEDIA1"
    assert n.attachments_json()[0]["checksum"] == "abc"


def test_document_uses_filename_as_content():
    n = normalize({"type": "document", "document": {"id": "D1", "filename": "nota.pdf"}})
    assert n.content == "nota.pdf"
    assert n.attachments[0].filename == "nota.pdf"


@pytest.mark.parametrize("kind, placeholder", [
    ("image", "[Image]"),
    ("document", "[Document]"),
    ("audio", "[Audio]"),
    ("video", "[Video]"),
])
def test_media_without_caption_uses_placeholder(kind, placeholder):
    n = normalize({"type": kind, kind: {"id": "M"}})
    assert n.content == placeholder
    assert n.attachments[0].media_id == "M"


def test_media_without_body_has_no_attachments():
    n = normalize({"type": "audio"})
    assert n.content == "[Audio]"
    assert n.attachments is None


@pytest.mark.parametrize("kind, placeholder", [
    ("voice", "[Voice note]"),
    ("sticker", "[Sticker]"),
    ("contacts", "[Contact]"),
])
def test_non_media_kinds_map_to_placeholders(kind, placeholder):
    n = normalize({"type": kind, kind: {"id": "X"}})
    assert n.content == placeholder
    assert n.type.value == kind
    assert n.attachments is None


def test_location_with_name_and_address():
    n = normalize({"type": "location", "location": {
        "latitude": -23.5, "longitude": -46.6, "name": "Loja", "address": "Rua A, 10",
    }})
    assert n.content == "[Location] -23.5, -46.6 - Loja (Rua A, 10)"
    assert n.type is MessageType.LOCATION


def test_location_without_coordinates_is_placeholder():
    assert normalize({"type": "location", "location": {"name": "Loja"}}).content == "[Location]"


def test_interactive_button_and_list_replies():
    button = normalize({"type": "interactive", "interactive": {"type": "button_reply", "button_reply": {"title": "Sim"}}})
    listed = normalize({"type": "interactive", "interactive": {"type": "list_reply", "list_reply": {"title": "Opção 2"}}})
    empty_button = normalize({"type": "interactive", "interactive": {"type": "button_reply"}})
    other = normalize({"type": "interactive", "interactive": {"type": "nfm_reply"}})
    assert button.content == "Sim"
    assert listed.content == "Opção 2"
    assert empty_button.content == "[Button pressed]"
    assert other.content == "[Interactive message]"


def test_unknown_kind_is_stored_as_unsupported_text():
    n = normalize({"type": "reaction", "reaction": {"emoji": "👍"}})
    assert n.content == "[Unsupported message]"
    assert n.type is MessageType.TEXT
    assert n.attachments is None


def test_malformed_bodies_never_raise():
    assert normalize({"type": "text", "text": "not-a-dict"}).content == ""
    assert normalize({"type": "image", "image": []}).attachments is None
    assert normalize(None).type is MessageType.TEXT
