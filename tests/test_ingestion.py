"""Ingestão de mensagens recebidas: dedup, identidade, evento de notificação e leitura."""
import pytest
from sqlalchemy import func, select

from atendimento_hub.repo.models import Customer, Conversation, Message, OutboxEvent, QueuedTask
from atendimento_hub.services import ingestion
from atendimento_hub.services.ingestion import IngestResult, ingest
from atendimento_hub.tasks.queue import PUBLISH_EVENT


def inbound(id="wamid.IN1", sender="5511999", **extra):
    return {"id": id, "from": sender, "timestamp": "1700000000", "type": "text", "text": {"body": "hola"}, **extra}


def count(s, model):
    return s.execute(select(func.count()).select_from(model)).scalar()


def test_first_message_creates_customer_conversation_and_message(session_factory, channel, fake_whatsapp):
    contacts = [{"wa_id": "5511999", "profile": {"name": "Bruno"}}]
    assert ingest(channel.id, inbound(), contacts) is IngestResult.STORED

    with session_factory() as s:
        customer = s.execute(select(Customer)).scalar_one()
        conversation = s.execute(select(Conversation)).scalar_one()
        message = s.execute(select(Message)).scalar_one()
        event = s.execute(select(OutboxEvent)).scalar_one()
        publish_tasks = s.execute(select(QueuedTask).where(QueuedTask.kind == PUBLISH_EVENT)).scalars().all()

    assert customer.name == "Bruno"
    assert conversation.customer_id == customer.id
    assert conversation.status == "open"
    assert message.external_id == "wamid.IN1"
    assert message.sender_type == "customer"
    assert message.status == "received"
    assert message.content == "hola"
    assert message.payload["id"] == "wamid.IN1"
    assert message.created_at.year == 2023
    assert event.type == "message.received"
    assert event.payload["message"]["id"] == message.id
    assert event.payload["conversation"]["customer"]["phone"] == "5511999"
    assert [t.payload for t in publish_tasks] == [{"event_id": event.id}]
    assert fake_whatsapp.read == ["wamid.IN1"]


def test_redelivery_is_a_no_op(session_factory, channel, fake_whatsapp):
    assert ingest(channel.id, inbound()) is IngestResult.STORED
    assert ingest(channel.id, inbound()) is IngestResult.DUPLICATE

    with session_factory() as s:
        assert count(s, Message) == 1
        assert count(s, Customer) == 1
        assert count(s, Conversation) == 1
        assert count(s, OutboxEvent) == 1
    assert fake_whatsapp.read == ["wamid.IN1"]


def test_second_message_reuses_conversation(session_factory, channel):
    ingest(channel.id, inbound("wamid.A"))
    ingest(channel.id, inbound("wamid.B", type="image", image={"id": "M1", "mime_type": "image/png"}))

    with session_factory() as s:
        rows = s.execute(select(Message).order_by(Message.id)).scalars().all()
        assert count(s, Conversation) == 1
    assert {m.conversation_id for m in rows} == {rows[0].conversation_id}
    assert rows[1].type == "image"
    assert rows[1].content == "[Image]"
    assert rows[1].attachments[0]["media_id"] == "M1"


@pytest.mark.parametrize("raw", [
    {"from": "5511999", "type": "text"},
    {"id": "wamid.X", "type": "text"},
    {},
])
def test_missing_id_or_sender_is_discarded(session_factory, channel, raw):
    assert ingest(channel.id, raw) is IngestResult.DISCARDED
    with session_factory() as s:
        assert count(s, Message) == 0


def test_unknown_channel_is_discarded(session_factory, channel):
    assert ingest(channel.id + 100, inbound()) is IngestResult.DISCARDED
    with session_factory() as s:
        assert count(s, Customer) == 0


def test_invalid_timestamp_falls_back_to_now(session_factory, channel):
    ingest(channel.id, inbound(timestamp="not-a-number"))
    with session_factory() as s:
        assert s.execute(select(Message)).scalar_one().created_at is not None


def test_insert_race_resolves_as_duplicate(session_factory, channel, monkeypatch):
    assert ingest(channel.id, inbound()) is IngestResult.STORED

    real_exists = ingestion.message_exists
    calls = []

    def racing_exists(s, external_id):
        # primeira checagem não vê a linha gravada pelo outro worker
        calls.append(external_id)
        return False if len(calls) == 1 else real_exists(s, external_id)

    monkeypatch.setattr(ingestion, "message_exists", racing_exists)
    assert ingest(channel.id, inbound()) is IngestResult.DUPLICATE

    with session_factory() as s:
        assert count(s, Message) == 1
        assert count(s, OutboxEvent) == 1


def test_read_receipt_failure_does_not_fail_ingestion(session_factory, channel, fake_whatsapp):
    fake_whatsapp.read_error = RuntimeError("graph down")
    assert ingest(channel.id, inbound()) is IngestResult.STORED
    with session_factory() as s:
        assert count(s, Message) == 1


def test_failure_after_identity_rolls_back_everything(session_factory, channel, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("db hiccup")

    monkeypatch.setattr(ingestion, "record_message_received", boom)
    with pytest.raises(RuntimeError):
        ingest(channel.id, inbound())

    with session_factory() as s:
        assert count(s, Customer) == 0
        assert count(s, Conversation) == 0
        assert count(s, Message) == 0


def test_notification_is_published_once(session_factory, channel, fake_broadcaster, run_queue):
    ingest(channel.id, inbound())
    ingest(channel.id, inbound())
    run_queue()

    assert len(fake_broadcaster.published) == 1
    channels, event, payload = fake_broadcaster.published[0]
    assert event == "message.received"
    assert channels[0] == f"company.{channel.company_id}"
    assert channels[1].startswith("conversation.")
    assert payload["message"]["content"] == "hola"
    with session_factory() as s:
        ev = s.execute(select(OutboxEvent)).scalar_one()
    assert ev.status == "published"
    assert ev.attempts == 1
    assert ev.published_at is not None


def test_failed_publish_is_retried(session_factory, channel, fake_broadcaster, run_queue):
    ingest(channel.id, inbound())
    fake_broadcaster.error = RuntimeError("socket closed")
    run_queue(max_rounds=1)

    with session_factory() as s:
        ev = s.execute(select(OutboxEvent)).scalar_one()
        task = s.execute(select(QueuedTask).where(QueuedTask.kind == PUBLISH_EVENT)).scalar_one()
    assert ev.status == "failed"
    assert task.status == "queued"
    assert "socket closed" in task.last_error

    fake_broadcaster.error = None
    run_queue()
    with session_factory() as s:
        ev = s.execute(select(OutboxEvent)).scalar_one()
    assert ev.status == "published"
    assert ev.attempts == 2
    assert len(fake_broadcaster.published) == 1


def test_new_sender_text_event(session_factory, channel):
    raw = {"id": "wamid.1", "from": "+15551234", "type": "text", "text": {"body": "Hi"}}
    assert ingest(channel.id, raw) is IngestResult.STORED
    assert ingest(channel.id, raw) is IngestResult.DUPLICATE

    with session_factory() as s:
        customer = s.execute(select(Customer)).scalar_one()
        conversation = s.execute(select(Conversation)).scalar_one()
        message = s.execute(select(Message)).scalar_one()
    assert customer.phone == "+15551234"
    assert conversation.status == "open"
    assert (message.content, message.type, message.sender_type) == ("Hi", "text", "customer")
