"""Fila durável sobre a tabela queued_tasks, com lease, retentativa e dead letter.

Execução at-least-once: uma tarefa reivindicada recebe um lease (locked_until); se o worker
morrer, o lease expira e outra instância reivindica de novo. Os handlers precisam ser
idempotentes (dedup na ingestão, guarda de status na entrega).
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable
from sqlalchemy import select, or_, and_
from kink import di
from ..core.db import utcnow
from ..core.logging import get_logger
from ..core.settings import Settings
from ..domain.errors import RetryTask
from ..repo.models import QueuedTask

log = get_logger()

INGEST_INBOUND = "ingest_inbound"
DELIVER_MESSAGE = "deliver_message"
PUBLISH_EVENT = "publish_event"

@dataclass(frozen=True)
class TaskSpec:
    """Handler de um tipo de tarefa e sua política de retentativa genérica."""
    handler: Callable[[dict, int], object]
    max_attempts: int
    on_exhausted: Callable[[dict, int, Exception], None] | None = None

@dataclass(frozen=True)
class ClaimedTask:
    id: int
    kind: str
    payload: dict
    attempt: int

def backoff_for(attempt: int, schedule: list[int] | None = None) -> int:
    """Atraso (s) após a tentativa `attempt`; repete o último valor além do fim da escala."""
    schedule = schedule or di[Settings].retry_backoff_s
    idx = min(max(attempt, 1), len(schedule)) - 1
    return schedule[idx]

def enqueue(s, kind: str, payload: dict, delay_s: int = 0) -> QueuedTask:
    """Enfileira tarefa na sessão do chamador (entra no mesmo commit)."""
    task = QueuedTask(kind=kind, payload=payload, status="queued", attempts=0,
                      available_at=utcnow() + timedelta(seconds=delay_s))
    s.add(task)
    s.flush()
    log.info("task_enqueued", task_id=task.id, kind=kind, delay_s=delay_s)
    return task

def claim_due(limit: int | None = None) -> list[ClaimedTask]:
    """Reivindica até `limit` tarefas vencidas (ou com lease expirado) e incrementa attempts."""
    settings: Settings = di[Settings]
    Session = di["session_factory"]
    now = utcnow()
    with Session() as s, s.begin():
        rows = s.execute(
            select(QueuedTask)
            .where(or_(
                and_(QueuedTask.status == "queued", QueuedTask.available_at <= now),
                and_(QueuedTask.status == "running", QueuedTask.locked_until < now),
            ))
            .order_by(QueuedTask.available_at, QueuedTask.id)
            .limit(limit or settings.worker_batch_size)
            .with_for_update(skip_locked=True)
        ).scalars().all()
        claimed = []
        for t in rows:
            t.status = "running"
            t.attempts += 1
            t.locked_until = now + timedelta(seconds=settings.task_lease_s)
            claimed.append(ClaimedTask(id=t.id, kind=t.kind, payload=dict(t.payload or {}), attempt=t.attempts))
    return claimed

def _finish(task_id: int, **values) -> None:
    Session = di["session_factory"]
    with Session() as s, s.begin():
        t = s.get(QueuedTask, task_id)
        for k, v in values.items():
            setattr(t, k, v)

def complete(task_id: int) -> None:
    _finish(task_id, status="done", locked_until=None, finished_at=utcnow())

def reschedule(task_id: int, delay_s: int, error: str | None = None) -> None:
    _finish(task_id, status="queued", locked_until=None, last_error=error,
            available_at=utcnow() + timedelta(seconds=delay_s))

def dead_letter(task_id: int, error: str) -> None:
    _finish(task_id, status="dead_letter", locked_until=None, last_error=error, finished_at=utcnow())

def run_task(task: ClaimedTask, registry: dict[str, TaskSpec] | None = None) -> str:
    """Executa uma tarefa reivindicada e aplica a política de retentativa. Retorna o status final."""
    registry = registry or di["task_registry"]
    spec = registry.get(task.kind)
    if spec is None:
        dead_letter(task.id, f"unknown task kind: {task.kind}")
        log.error("task_unknown_kind", task_id=task.id, kind=task.kind)
        return "dead_letter"
    try:
        spec.handler(task.payload, task.attempt)
    except RetryTask as e:
        reschedule(task.id, e.delay_s, str(e))
        log.info("task_retry_requested", task_id=task.id, kind=task.kind, attempt=task.attempt, delay_s=e.delay_s)
        return "queued"
    except Exception as e:
        if task.attempt < spec.max_attempts:
            delay = backoff_for(task.attempt)
            reschedule(task.id, delay, repr(e))
            log.warning("task_retry", task_id=task.id, kind=task.kind, attempt=task.attempt, delay_s=delay, error=repr(e))
            return "queued"
        dead_letter(task.id, repr(e))
        log.error("task_dead_letter", task_id=task.id, kind=task.kind, attempt=task.attempt, error=repr(e))
        if spec.on_exhausted:
            spec.on_exhausted(task.payload, task.attempt, e)
        return "dead_letter"
    complete(task.id)
    return "done"

def run_once(limit: int | None = None) -> int:
    """Processa um lote de tarefas vencidas e retorna quantas foram executadas."""
    tasks = claim_due(limit)
    for task in tasks:
        run_task(task)
    return len(tasks)
