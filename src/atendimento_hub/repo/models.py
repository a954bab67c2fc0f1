"""Modelos SQLAlchemy: Channel/Customer/Conversation/Message + Outbox de eventos + fila de tarefas."""
from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Integer, JSON, Text, UniqueConstraint, Index, ForeignKey, TIMESTAMP, text
from datetime import datetime
from ..core.db import utcnow

class Base(DeclarativeBase):
    """Base declarativa."""
    pass

class Channel(Base):
    """Canal de mensageria de uma empresa. external_id = phone_number_id na Meta."""
    __tablename__ = "channels"
    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(120), default="")
    type: Mapped[str] = mapped_column(String(32), default="whatsapp")
    external_id: Mapped[str | None] = mapped_column(String(64), index=True)
    config: Mapped[dict] = mapped_column(JSON, default=dict)

class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer)
    name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str] = mapped_column(String(32))
    external_id: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    __table_args__ = (
        UniqueConstraint("company_id", "phone", name="uq_customer_company_phone"),
    )

class Conversation(Base):
    __tablename__ = "conversations"
    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int] = mapped_column(ForeignKey("channels.id"))
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"))
    status: Mapped[str] = mapped_column(String(16), default="open")  # open|closed
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    __table_args__ = (
        # no máximo uma conversa aberta por (canal, cliente)
        Index(
            "uq_conversation_open", "channel_id", "customer_id", unique=True,
            postgresql_where=text("status = 'open'"), sqlite_where=text("status = 'open'"),
        ),
    )

class Message(Base):
    __tablename__ = "messages"
    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(ForeignKey("conversations.id"), index=True)
    external_id: Mapped[str | None] = mapped_column(String(128), unique=True)
    sender_type: Mapped[str] = mapped_column(String(16))  # customer|agent|system
    content: Mapped[str] = mapped_column(Text, default="")
    type: Mapped[str] = mapped_column(String(16), default="text")
    attachments: Mapped[list | None] = mapped_column(JSON)
    payload: Mapped[dict | None] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(24), default="pending")  # pending|sent|failed|failed_permanently|received
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    sent_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))

class OutboxEvent(Base):
    """Evento de domínio gravado na mesma transação da mensagem; publicado por tarefa."""
    __tablename__ = "outbox_events"
    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer)
    conversation_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending|published|failed
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    published_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))

class QueuedTask(Base):
    """Fila durável de tarefas (execução at-least-once)."""
    __tablename__ = "queued_tasks"
    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(32))
    payload: Mapped[dict] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(16), default="queued")  # queued|running|done|dead_letter
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    available_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    locked_until: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))
    __table_args__ = (
        Index("ix_queued_tasks_due", "status", "available_at"),
    )
