"""API Flask: webhook Meta (verificação + recebimento) e ações de envio/cancelamento."""
from __future__ import annotations
from flask import Flask, request, jsonify
from kink import di
from ..core.di import bootstrap_di
from ..core.logging import set_trace_id, get_logger
from ..core.settings import Settings
from ..connectors.whatsapp.cloud_api_adapter import WhatsAppCloudAdapter
from ..connectors.whatsapp.webhook import route_webhook
from ..domain.errors import FatalDeliveryError
from ..services.outbound import enqueue_outbound_message, cancel_message

log = get_logger()

def create_app(bootstrap: bool = True) -> Flask:
    """Cria a app. Com bootstrap=False usa o container já montado (testes)."""
    if bootstrap:
        bootstrap_di()
    app = Flask(__name__)

    @app.before_request
    def _trace():
        set_trace_id(request.headers.get("X-Trace-Id"))

    @app.get("/healthz")
    def healthz():
        """Health check básico."""
        return {"ok": True}

    @app.get("/webhook/meta")
    def verify():
        """Verificação do webhook: retorna hub.challenge ao validar VERIFY_TOKEN."""
        s = di[Settings]
        if not s.verify_token:
            log.error("webhook_verify_token_missing")
            return {"error": "Webhook verification token not configured"}, 500
        if request.args.get("hub.mode") == "subscribe" and request.args.get("hub.verify_token") == s.verify_token:
            log.info("webhook_verified")
            return request.args.get("hub.challenge", ""), 200
        log.warning("webhook_verify_failed", mode=request.args.get("hub.mode"))
        return "forbidden", 403

    @app.post("/webhook/meta")
    def webhook():
        """Recebe o envelope, valida assinatura e enfileira a ingestão de cada mensagem."""
        adapter: WhatsAppCloudAdapter = di[WhatsAppCloudAdapter]
        if not adapter.verify_signature(request.get_data(), request.headers.get("X-Hub-Signature-256")):
            log.warning("webhook_bad_signature", ip=request.remote_addr)
            return {"error": "Invalid signature"}, 403
        payload = request.get_json(force=True, silent=True) or {}
        result = route_webhook(payload)
        if not result.get("accepted"):
            return jsonify(result), 400
        return jsonify(result)

    @app.post("/conversations/<int:conversation_id>/messages")
    def send_message(conversation_id: int):
        """Cria mensagem pending e enfileira a entrega."""
        body = request.get_json(force=True, silent=True) or {}
        try:
            message_id = enqueue_outbound_message(
                conversation_id,
                content=body.get("content", ""),
                message_type=body.get("type", "text"),
                sender_type=body.get("sender_type", "agent"),
                attachments=body.get("attachments"),
                metadata=body.get("metadata"),
            )
        except LookupError as e:
            return {"error": str(e)}, 404
        except (FatalDeliveryError, ValueError) as e:
            return {"error": str(e)}, 422
        return {"message_id": message_id, "status": "pending"}, 202

    @app.post("/messages/<int:message_id>/cancel")
    def cancel(message_id: int):
        """Cancela mensagem ainda não terminal."""
        if not cancel_message(message_id, reason=(request.get_json(silent=True) or {}).get("reason", "cancelled")):
            return {"cancelled": False}, 409
        return {"cancelled": True}

    return app
