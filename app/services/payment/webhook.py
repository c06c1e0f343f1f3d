from dataclasses import dataclass
from enum import Enum
import hashlib
import hmac
import json
import logging
from typing import Optional, Tuple

from app.core.exceptions.checkout import GatewayError, OrderNotFound, WebhookPayloadError, WebhookSignatureError
from app.helpers.payment.validators import is_valid_order_id
from app.services.payment.reconciler import PaymentReconciler, ReconcileResult

PAYMENT_ACTIONS = ("payment.created", "payment.updated")


class WebhookOutcome(str, Enum):
    RECONCILED = "reconciled"
    IGNORED = "ignored"
    ORDER_NOT_FOUND = "order_not_found"
    GATEWAY_ERROR = "gateway_error"
    INVALID_REFERENCE = "invalid_reference"


@dataclass
class WebhookResult:
    outcome: WebhookOutcome
    reconcile: Optional[ReconcileResult] = None

    @property
    def changed(self) -> bool:
        return self.reconcile is not None and self.reconcile.changed


def parse_signature_header(header: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Extrai (ts, v1) de um cabeçalho 'ts=...,v1=...'."""
    ts = v1 = None
    for part in (header or "").split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key, value = key.strip(), value.strip()
        if key == "ts":
            ts = value
        elif key == "v1":
            v1 = value
    return ts, v1


def build_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


def sign_manifest(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


def verify_signature(
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: str,
    secret: Optional[str],
) -> bool:
    if not signature_header or not request_id:
        logging.warning("WEBHOOK >>> Cabeçalhos de assinatura ausentes")
        return False
    if not secret:
        logging.warning("WEBHOOK >>> MERCADO_PAGO_WEBHOOK_SECRET não configurado")
        return False

    ts, v1 = parse_signature_header(signature_header)
    if not ts or not v1:
        logging.warning("WEBHOOK >>> Formato de assinatura inválido")
        return False

    # O Mercado Pago assina o data.id em minúsculas
    expected = sign_manifest(secret, build_manifest(data_id.lower(), request_id, ts))
    return hmac.compare_digest(expected, v1.lower())


class WebhookHandler:
    def __init__(
        self,
        reconciler: PaymentReconciler,
        gateway,
        secret: Optional[str],
        enforce_signature: bool = True,
    ):
        self.reconciler = reconciler
        self.gateway = gateway
        self.secret = secret
        self.enforce_signature = enforce_signature

    def handle(self, raw_body: bytes, signature_header: Optional[str], request_id: Optional[str]) -> WebhookResult:
        try:
            body = json.loads(raw_body or b"")
        except (ValueError, UnicodeDecodeError) as e:
            logging.error(f"WEBHOOK >>> Corpo inválido - {e}")
            raise WebhookPayloadError() from e
        if not isinstance(body, dict):
            raise WebhookPayloadError()

        logging.info(f"WEBHOOK >>> Notificação recebida: type={body.get('type')} action={body.get('action')}")

        if body.get("type") != "payment" and body.get("action") not in PAYMENT_ACTIONS:
            return WebhookResult(WebhookOutcome.IGNORED)

        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        payment_id = data.get("id")
        if not payment_id:
            logging.info("WEBHOOK >>> Notificação sem data.id")
            return WebhookResult(WebhookOutcome.IGNORED)
        payment_id = str(payment_id)

        if verify_signature(signature_header, request_id, payment_id, self.secret):
            logging.info(f"WEBHOOK >>> Assinatura verificada para o pagamento {payment_id}")
        elif self.enforce_signature:
            logging.warning(f"WEBHOOK >>> Assinatura inválida para o pagamento {payment_id}, notificação recusada")
            raise WebhookSignatureError()
        else:
            logging.warning(f"WEBHOOK >>> Assinatura inválida para o pagamento {payment_id}, processando mesmo assim")

        try:
            payment = self.gateway.get_payment(payment_id)
        except GatewayError:
            logging.error(f"WEBHOOK >>> Não foi possível consultar o pagamento {payment_id}")
            return WebhookResult(WebhookOutcome.GATEWAY_ERROR)

        order_id = payment.external_reference
        if not order_id or not is_valid_order_id(order_id):
            logging.warning(f"WEBHOOK >>> Pagamento {payment_id} sem external_reference válido: {order_id!r}")
            return WebhookResult(WebhookOutcome.INVALID_REFERENCE)

        try:
            result = self.reconciler.reconcile(order_id, payment.status, payment_id=payment.payment_id)
        except OrderNotFound:
            logging.error(f"WEBHOOK >>> Pedido {order_id} do pagamento {payment_id} não existe nesta base")
            return WebhookResult(WebhookOutcome.ORDER_NOT_FOUND)

        return WebhookResult(WebhookOutcome.RECONCILED, result)
