"""Adapter oficial do WhatsApp Cloud API para envio, confirmação de leitura e assinatura do webhook."""
from __future__ import annotations
import hmac, hashlib
import httpx
from kink import di
from ...core.db import utcnow
from ...core.logging import get_logger, redact
from ...core.settings import Settings
from ...ports.interfaces import EntregaDTO, ProviderErrorDTO
from .encoding import ProviderRequest

log = get_logger()

RETRYABLE_HTTP_STATUS = frozenset({429, 500, 502, 503, 504})
RETRYABLE_ERROR_TYPES = frozenset({"rate_limit_error", "temporary_error", "connection_error"})

def default_retry_after(http_status: int | None) -> int:
    """Espera sugerida quando o provedor não informa Retry-After."""
    if http_status == 429:
        return 60
    if http_status in (500, 502, 503, 504):
        return 30
    return 10

def classify_http_error(http_status: int, body: dict | None, retry_after_header: str | None = None) -> ProviderErrorDTO:
    """Converte resposta de erro da Graph API em ProviderErrorDTO classificado."""
    err = (body or {}).get("error") or {}
    err_type = err.get("type")
    if http_status == 429 and not err_type:
        err_type = "rate_limit_error"
    try:
        retry_after = int(retry_after_header) if retry_after_header else None
    except ValueError:
        retry_after = None
    return ProviderErrorDTO(
        code=err.get("code"),
        http_status=http_status,
        type=err_type,
        message=err.get("message") or "Unknown WhatsApp API error",
        details=err.get("error_user_title") or err.get("error_user_msg"),
        retryable=http_status in RETRYABLE_HTTP_STATUS or err_type in RETRYABLE_ERROR_TYPES,
        retry_after=retry_after if retry_after is not None else default_retry_after(http_status),
    )

def connection_error(exc: Exception) -> ProviderErrorDTO:
    """Timeout/erro de transporte: sempre recuperável."""
    return ProviderErrorDTO(
        type="connection_error",
        message=f"WhatsApp API connection error: {exc}",
        retryable=True,
        retry_after=default_retry_after(None),
    )

class WhatsAppCloudAdapter:
    """Adapter para WhatsApp Cloud API (credenciais lidas do Channel.config)."""
    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None):
        self.s = settings or di[Settings]
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=f"{self.s.graph_api_base_url.rstrip('/')}/{self.s.graph_api_version}",
            timeout=self.s.http_timeout_s,
            transport=self.transport,
        )

    # --- Ingress helpers ---
    def verify_signature(self, body_bytes: bytes, header_signature: str | None) -> bool:
        """Valida assinatura HMAC enviada pela Meta via X-Hub-Signature-256."""
        if not header_signature or not self.s.app_secret:
            return False
        try:
            algo, signature = header_signature.split("=", 1)
            if algo.lower() != "sha256":
                return False
        except ValueError:
            return False
        mac = hmac.new(self.s.app_secret.encode(), msg=body_bytes, digestmod=hashlib.sha256)
        return hmac.compare_digest(mac.hexdigest(), signature)

    # --- Egress ---
    def send(self, channel, to: str, request: ProviderRequest) -> EntregaDTO:
        """Envia a requisição codificada e normaliza a resposta."""
        payload = request.to_payload(to)
        res = self._post(channel, payload)
        if not res.ok:
            return res
        j = res.response or {}
        provider_id = (j.get("messages") or [{}])[0].get("id")
        return EntregaDTO(
            ok=True,
            provider_message_id=provider_id,
            response={
                "message_id": provider_id,
                "status": "sent",
                "recipient": payload["to"],
                "timestamp": utcnow().isoformat(),
            },
        )

    def mark_as_read(self, channel, provider_message_id: str) -> EntregaDTO:
        """Confirma leitura de uma mensagem recebida."""
        return self._post(channel, {
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": provider_message_id,
        })

    def _post(self, channel, payload: dict) -> EntregaDTO:
        config = channel.config or {}
        token = config.get("access_token")
        phone_number_id = config.get("phone_number_id") or channel.external_id
        if not token:
            return EntregaDTO(ok=False, error=ProviderErrorDTO(
                http_status=401, type="authentication_error",
                message="Access token not configured for the channel",
            ))
        if not phone_number_id:
            return EntregaDTO(ok=False, error=ProviderErrorDTO(
                type="configuration_error", message="Phone Number ID not configured for the channel",
            ))
        path = f"/{phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {token}"}
        try:
            with self._client() as cli:
                r = cli.post(path, json=payload, headers=headers)
        except httpx.HTTPError as e:
            log.warning("whatsapp_api_unreachable", channel_id=channel.id, path=path, error=str(e))
            return EntregaDTO(ok=False, error=connection_error(e))

        j = {}
        if "application/json" in r.headers.get("content-type", ""):
            j = r.json()
        if r.status_code // 100 == 2:
            log.info("whatsapp_api_ok", channel_id=channel.id, path=path, status_code=r.status_code)
            return EntregaDTO(ok=True, response=j)
        err = classify_http_error(r.status_code, j, r.headers.get("retry-after"))
        log.error(
            "whatsapp_api_error", channel_id=channel.id, company_id=channel.company_id, path=path,
            status_code=r.status_code, payload=redact(payload), error=err.model_dump(),
        )
        return EntregaDTO(ok=False, error=err)
