from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

import mercadopago
from mercadopago.config import RequestOptions

from app.configuration.settings import Configuration
from app.core.exceptions.checkout import GatewayError

configuration = Configuration()

sdk = mercadopago.SDK(configuration.mercado_pago_access_token or "")


def parse_processor_datetime(value: Optional[str]) -> Optional[datetime]:
    """Datas ISO do Mercado Pago (ex.: 2026-10-18T12:30:00.000-03:00) em UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logging.warning(f"MERCADO PAGO >>> Data em formato inesperado: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class GatewayPayment:
    """Visão normalizada de um pagamento do Mercado Pago."""

    payment_id: str
    status: str
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    date_of_expiration: Optional[datetime] = None

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "GatewayPayment":
        if not response.get("id") or not response.get("status"):
            raise GatewayError("Resposta inválida do Mercado Pago")

        poi = response.get("point_of_interaction") or {}
        transaction_data = poi.get("transaction_data") or {}
        return cls(
            payment_id=str(response["id"]),
            status=str(response["status"]),
            status_detail=response.get("status_detail"),
            external_reference=response.get("external_reference"),
            qr_code=transaction_data.get("qr_code"),
            qr_code_base64=transaction_data.get("qr_code_base64"),
            date_of_expiration=parse_processor_datetime(response.get("date_of_expiration")),
        )


def _safe_error_detail(response: Any) -> Optional[str]:
    # Só repassa mensagens curtas do processador, nunca o corpo bruto
    if not isinstance(response, dict):
        return None
    cause = response.get("cause")
    if isinstance(cause, list) and cause and isinstance(cause[0], dict) and cause[0].get("description"):
        return str(cause[0]["description"])[:200]
    if response.get("message"):
        return str(response["message"])[:200]
    return None


class MercadoPagoGateway:
    def __init__(self, client=None):
        self.client = client or sdk

    def _unwrap(self, result: Any, action: str) -> Dict[str, Any]:
        if not isinstance(result, dict):
            raise GatewayError(f"Resposta inválida do Mercado Pago ao {action}")

        http_status = result.get("status")
        response = result.get("response")
        if not isinstance(http_status, int) or not 200 <= http_status < 300:
            detail = _safe_error_detail(response)
            logging.error(f"MERCADO PAGO >>> Falha ao {action}: HTTP {http_status} - {detail}")
            raise GatewayError(status_detail=detail)
        if not isinstance(response, dict):
            raise GatewayError(f"Resposta inválida do Mercado Pago ao {action}")
        return response

    def create_payment(self, body: Dict[str, Any], idempotency_key: str) -> GatewayPayment:
        request_options = RequestOptions(custom_headers={"x-idempotency-key": idempotency_key})
        try:
            result = self.client.payment().create(body, request_options)
        except Exception as e:
            logging.error(f"MERCADO PAGO >>> Erro de comunicação ao criar pagamento - {e}")
            raise GatewayError() from e

        response = self._unwrap(result, "criar pagamento")
        payment = GatewayPayment.from_response(response)
        logging.info(f"MERCADO PAGO >>> Pagamento {payment.payment_id} criado com status {payment.status}")
        return payment

    def get_payment(self, payment_id: str) -> GatewayPayment:
        try:
            result = self.client.payment().get(payment_id)
        except Exception as e:
            logging.error(f"MERCADO PAGO >>> Erro ao buscar pagamento {payment_id} - {e}")
            raise GatewayError() from e

        return GatewayPayment.from_response(self._unwrap(result, "buscar pagamento"))

    def find_by_external_reference(self, external_reference: str) -> Optional[GatewayPayment]:
        """Pagamento mais recente vinculado ao pedido, se existir."""
        try:
            result = self.client.payment().search(filters={
                "external_reference": external_reference,
                "sort": "date_created",
                "criteria": "desc",
            })
        except Exception as e:
            logging.error(f"MERCADO PAGO >>> Erro ao pesquisar pagamentos de {external_reference} - {e}")
            raise GatewayError() from e

        response = self._unwrap(result, "pesquisar pagamentos")
        results = response.get("results") or []
        if not results:
            return None
        return GatewayPayment.from_response(results[0])


def get_payment_gateway() -> MercadoPagoGateway:
    return MercadoPagoGateway()
