from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Dict, Optional, Tuple

from app.enums.order_status import OrderStatus
from app.enums.payment_method import PaymentMethod
from app.enums.payment_status import PaymentStatus
from app.core.exceptions.checkout import GatewayError, OrderNotFound
from app.helpers.payment.validators import ensure_order_id
from app.models.order.order import Order
from app.services.order.order_store import OrderStore


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"        # Houve escrita no pedido
    UNCHANGED = "unchanged"    # Mesmo par de status, nada a gravar
    TERMINAL = "terminal"      # Pedido já pago, entrada descartada
    IGNORED = "ignored"        # Status desconhecido ou pagamento substituído


@dataclass(frozen=True)
class StatusSnapshot:
    """Único dado de pagamento que volta para o navegador."""

    order_id: str
    payment_status: PaymentStatus
    order_status: OrderStatus


@dataclass(frozen=True)
class ReconcileResult:
    snapshot: StatusSnapshot
    outcome: ReconcileOutcome

    @property
    def changed(self) -> bool:
        return self.outcome == ReconcileOutcome.APPLIED


_PENDING_PROCESSOR_STATUSES = ("pending", "in_process", "authorized")

PROCESSOR_STATUS_MAP: Dict[str, Tuple[PaymentStatus, OrderStatus]] = {
    "approved": (PaymentStatus.PAID, OrderStatus.CONFIRMED),
    "rejected": (PaymentStatus.REJECTED, OrderStatus.CANCELLED),
    "cancelled": (PaymentStatus.CANCELLED, OrderStatus.CANCELLED),
    "refunded": (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
    "charged_back": (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
}


def map_processor_status(
    processor_status: str,
    payment_method: PaymentMethod,
) -> Optional[Tuple[PaymentStatus, OrderStatus]]:
    """Traduz o status do Mercado Pago para (payment_status, status) do pedido."""
    normalized = (processor_status or "").strip().lower()
    if normalized in _PENDING_PROCESSOR_STATUSES:
        if payment_method == PaymentMethod.CARD:
            return PaymentStatus.PROCESSING, OrderStatus.PENDING
        return PaymentStatus.AWAITING_PAYMENT, OrderStatus.PENDING
    return PROCESSOR_STATUS_MAP.get(normalized)


def snapshot_of(order: Order) -> StatusSnapshot:
    return StatusSnapshot(order_id=order.id, payment_status=order.payment_status, order_status=order.status)


class PaymentReconciler:
    def __init__(self, store: OrderStore, gateway=None):
        self.store = store
        self.gateway = gateway

    def reconcile(
        self,
        order_id: str,
        processor_status: str,
        payment_id: Optional[str] = None,
        payment_fields: Optional[Dict[str, Any]] = None,
        rebind: bool = False,
    ) -> ReconcileResult:
        """
        Aplica um status do processador ao pedido.

        rebind=True é usado apenas por quem acabou de criar o pagamento
        (novo PIX após expiração) e substitui o payment_id gravado.
        """
        ensure_order_id(order_id)

        order = self.store.get_by_id(order_id, for_update=True)
        if not order:
            raise OrderNotFound()

        current = snapshot_of(order)

        if order.payment_status == PaymentStatus.PAID:
            logging.info(f"PAGAMENTO >>> Pedido {order_id} já pago, status '{processor_status}' descartado")
            return ReconcileResult(current, ReconcileOutcome.TERMINAL)

        if payment_id and order.payment_id and order.payment_id != payment_id and not rebind:
            logging.warning(
                f"PAGAMENTO >>> Pedido {order_id} vinculado a {order.payment_id}, "
                f"notificação do pagamento {payment_id} ignorada"
            )
            return ReconcileResult(current, ReconcileOutcome.IGNORED)

        mapped = map_processor_status(processor_status, order.payment_method)
        if mapped is None:
            logging.warning(f"PAGAMENTO >>> Status desconhecido '{processor_status}' para o pedido {order_id}")
            return ReconcileResult(current, ReconcileOutcome.IGNORED)

        payment_status, order_status = mapped
        fields: Dict[str, Any] = dict(payment_fields or {})
        if payment_id and payment_id != order.payment_id:
            fields["payment_id"] = payment_id
        if payment_status != order.payment_status:
            fields["payment_status"] = payment_status
        if order_status != order.status:
            fields["status"] = order_status

        if not fields:
            logging.debug(f"PAGAMENTO >>> Pedido {order_id} sem mudança ({payment_status.value}/{order_status.value})")
            return ReconcileResult(current, ReconcileOutcome.UNCHANGED)

        order = self.store.update(order_id, **fields)
        logging.info(
            f"PAGAMENTO >>> Pedido {order_id}: {current.payment_status.value}/{current.order_status.value} "
            f"-> {order.payment_status.value}/{order.status.value}"
        )
        return ReconcileResult(snapshot_of(order), ReconcileOutcome.APPLIED)

    def refresh_from_gateway(self, order_id: str) -> ReconcileResult:
        """Consulta o processador e reconcilia; sem payment_id devolve o estado salvo."""
        ensure_order_id(order_id)

        order = self.store.get_by_id(order_id)
        if not order:
            raise OrderNotFound()

        if not order.payment_id or order.payment_status == PaymentStatus.PAID:
            return ReconcileResult(snapshot_of(order), ReconcileOutcome.UNCHANGED)

        if self.gateway is None:
            raise GatewayError("Processador de pagamento não configurado")

        payment = self.gateway.get_payment(order.payment_id)
        return self.reconcile(order_id, payment.status, payment_id=payment.payment_id)
