"""Worker de fila: processa lotes de tarefas vencidas até ser interrompido."""
from __future__ import annotations
import time
from kink import di
from ..core.di import bootstrap_di
from ..core.logging import get_logger, set_trace_id
from ..core.settings import Settings
from .queue import run_once

log = get_logger()

def run_forever(max_loops: int | None = None) -> None:
    """Loop de polling; dorme apenas quando o lote veio vazio."""
    settings: Settings = di[Settings]
    loops = 0
    while max_loops is None or loops < max_loops:
        loops += 1
        set_trace_id()
        try:
            processed = run_once()
        except Exception:
            # falha de infraestrutura (ex.: banco fora); o worker segue vivo
            log.exception("worker_loop_error")
            processed = 0
        if not processed:
            time.sleep(settings.worker_poll_interval_s)

def main() -> None:
    bootstrap_di()
    log.info("worker_started")
    try:
        run_forever()
    except KeyboardInterrupt:
        log.info("worker_stopped")

if __name__ == "__main__":
    main()
