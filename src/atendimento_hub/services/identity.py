"""Resolução de identidade: Customer + Conversation aberta a partir do remetente.

Roda na transação do chamador. Cada criação vai num SAVEPOINT; violação das constraints
únicas significa que outro worker criou antes: recarrega e usa o registro dele.
"""
from __future__ import annotations
from typing import Callable, TypeVar
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from ..core.logging import get_logger
from ..domain.types import ConversationStatus
from ..repo.models import Channel, Customer, Conversation

log = get_logger()

T = TypeVar("T")

def find_contact_name(contacts: list[dict] | None, phone: str) -> str | None:
    """Nome de perfil do contato cujo wa_id é o remetente, se veio no lote do webhook."""
    for contact in contacts or []:
        if contact.get("wa_id") == phone:
            return (contact.get("profile") or {}).get("name")
    return None

def find_customer(s, company_id: int, phone: str) -> Customer | None:
    return s.execute(
        select(Customer).where(Customer.company_id == company_id, Customer.phone == phone)
    ).scalars().first()

def find_open_conversation(s, channel_id: int, customer_id: int) -> Conversation | None:
    return s.execute(
        select(Conversation).where(
            Conversation.channel_id == channel_id,
            Conversation.customer_id == customer_id,
            Conversation.status == ConversationStatus.OPEN.value,
        )
    ).scalars().first()

def _create_or_reload(s, obj: T, reload: Callable[[], T | None]) -> T:
    try:
        with s.begin_nested():
            s.add(obj)
    except IntegrityError:
        existing = reload()
        if existing is None:
            raise
        log.info("identity_conflict_reloaded", model=type(obj).__name__, id=existing.id)
        return existing
    return obj

def resolve_customer(s, channel: Channel, phone: str, contacts: list[dict] | None = None) -> Customer:
    customer = find_customer(s, channel.company_id, phone)
    if customer:
        return customer
    customer = _create_or_reload(
        s,
        Customer(company_id=channel.company_id, name=find_contact_name(contacts, phone), phone=phone, external_id=phone),
        lambda: find_customer(s, channel.company_id, phone),
    )
    log.info("customer_resolved", customer_id=customer.id, company_id=channel.company_id)
    return customer

def resolve_conversation(s, channel: Channel, customer: Customer) -> Conversation:
    conversation = find_open_conversation(s, channel.id, customer.id)
    if conversation:
        return conversation
    conversation = _create_or_reload(
        s,
        Conversation(channel_id=channel.id, customer_id=customer.id, status=ConversationStatus.OPEN.value),
        lambda: find_open_conversation(s, channel.id, customer.id),
    )
    log.info("conversation_opened", conversation_id=conversation.id, channel_id=channel.id, customer_id=customer.id)
    return conversation

def resolve(s, channel: Channel, sender: str, contacts: list[dict] | None = None) -> tuple[Customer, Conversation]:
    """Busca ou cria (Customer, Conversation aberta) para o remetente no canal."""
    customer = resolve_customer(s, channel, sender, contacts)
    return customer, resolve_conversation(s, channel, customer)
