"""Publicação de eventos em tempo real via HTTP (Pusher/Soketi-like)."""
from __future__ import annotations
import httpx
from kink import di
from ..core.logging import get_logger
from ..core.settings import Settings

log = get_logger()

class HttpBroadcaster:
    """POST {channels, name, data} em broadcast_url; sem URL configurada, apenas registra em log."""
    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None):
        self.s = settings or di[Settings]
        self.transport = transport

    def publish(self, channels: list[str], event: str, payload: dict) -> None:
        if not self.s.broadcast_url:
            log.info("broadcast_skipped", event=event, channels=channels)
            return
        headers = {"Authorization": f"Bearer {self.s.broadcast_token}"} if self.s.broadcast_token else {}
        with httpx.Client(timeout=self.s.http_timeout_s, transport=self.transport) as cli:
            r = cli.post(self.s.broadcast_url, json={"channels": channels, "name": event, "data": payload}, headers=headers)
            r.raise_for_status()
        log.info("broadcast_published", event=event, channels=channels)
