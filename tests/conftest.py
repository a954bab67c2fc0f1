"""Fixtures compartilhadas: SQLite em arquivo, container kink com provedor e broadcaster falsos."""
from datetime import timedelta

import pytest
from kink import di
from sqlalchemy import update

from atendimento_hub.connectors.whatsapp.cloud_api_adapter import WhatsAppCloudAdapter
from atendimento_hub.core.db import build_engine, create_session_factory, utcnow
from atendimento_hub.core.settings import Settings
from atendimento_hub.ports.interfaces import EntregaDTO
from atendimento_hub.repo.models import Base, Channel, Customer, Conversation, QueuedTask
from atendimento_hub.tasks.queue import run_once
from atendimento_hub.tasks.registry import build_registry


class FakeWhatsApp:
    """Provedor falso: registra chamadas e devolve resultados programados em ordem."""

    def __init__(self):
        self.sent = []
        self.read = []
        self.send_results = []
        self.read_error = None

    def send(self, channel, to, request):
        self.sent.append((to, request))
        if self.send_results:
            result = self.send_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        provider_id = f"wamid.out.{len(self.sent)}"
        return EntregaDTO(
            ok=True,
            provider_message_id=provider_id,
            response={"message_id": provider_id, "status": "sent", "recipient": to, "timestamp": "2026-01-01T00:00:00"},
        )

    def mark_as_read(self, channel, provider_message_id):
        self.read.append(provider_message_id)
        if self.read_error:
            raise self.read_error
        return EntregaDTO(ok=True, response={"success": True})

    def verify_signature(self, body_bytes, header_signature):
        return WhatsAppCloudAdapter(di[Settings]).verify_signature(body_bytes, header_signature)


class FakeBroadcaster:
    def __init__(self):
        self.published = []
        self.error = None

    def publish(self, channels, event, payload):
        if self.error:
            raise self.error
        self.published.append((channels, event, payload))


@pytest.fixture(scope="session")
def engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return build_engine(f"sqlite:///{db_path}")


@pytest.fixture(scope="session")
def session_factory(engine):
    return create_session_factory(engine=engine)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        app_secret="app-secret",
        verify_token="verify-me",
        retry_backoff_s=[10, 30, 60, 300, 900],
    )


@pytest.fixture
def fake_whatsapp():
    return FakeWhatsApp()


@pytest.fixture
def fake_broadcaster():
    return FakeBroadcaster()


@pytest.fixture(autouse=True)
def container(engine, session_factory, settings, fake_whatsapp, fake_broadcaster):
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    di[Settings] = settings
    di["session_factory"] = lambda _di: session_factory
    di[WhatsAppCloudAdapter] = fake_whatsapp
    di["broadcaster"] = fake_broadcaster
    di["task_registry"] = build_registry(settings)
    yield di


@pytest.fixture
def channel(session_factory):
    with session_factory() as s, s.begin():
        ch = Channel(company_id=7, name="Atendimento", type="whatsapp", external_id="1099",
                     config={"access_token": "tok"})
        s.add(ch)
    return ch


@pytest.fixture
def conversation(session_factory, channel):
    with session_factory() as s, s.begin():
        customer = Customer(company_id=channel.company_id, name="Ana", phone="+15550001", external_id="+15550001")
        s.add(customer)
        s.flush()
        conv = Conversation(channel_id=channel.id, customer_id=customer.id, status="open")
        s.add(conv)
    return conv


def drain(session_factory, max_rounds: int = 50) -> int:
    """Roda a fila até esvaziar, antecipando tarefas agendadas para o futuro."""
    total = 0
    for _ in range(max_rounds):
        with session_factory() as s, s.begin():
            s.execute(
                update(QueuedTask)
                .where(QueuedTask.status == "queued")
                .values(available_at=utcnow() - timedelta(seconds=1))
            )
        processed = run_once()
        if not processed:
            break
        total += processed
    return total


@pytest.fixture
def run_queue(session_factory):
    return lambda max_rounds=50: drain(session_factory, max_rounds)
