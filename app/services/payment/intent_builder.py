from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.configuration.settings import Configuration
from app.core.exceptions.checkout import (
    AlreadyPaid,
    AmountMismatch,
    GatewayError,
    InvalidPaymentRequest,
    OrderNotFound,
    PaymentMethodMismatch,
)
from app.enums.order_status import OrderStatus
from app.enums.payment_method import PaymentMethod
from app.enums.payment_status import PaymentStatus
from app.helpers.order.formatters import format_currency, format_local_datetime
from app.helpers.payment.validators import (
    amounts_match,
    ensure_amount,
    ensure_order_id,
    normalize_document,
    sanitize_description,
    split_payer_name,
)
from app.models.order.order import Order
from app.services.order.order_store import OrderStore
from app.services.payment.reconciler import PaymentReconciler, map_processor_status

configuration = Configuration()


@dataclass
class PayerInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    document: Optional[str] = None
    document_type: str = "CPF"


@dataclass
class CardDetails:
    token: str
    payment_method_id: str
    installments: int = 1


@dataclass
class PixPayment:
    payment_id: str
    qr_payload: str
    qr_image_base64: Optional[str]
    expiration_timestamp: Optional[str]


@dataclass
class CardPayment:
    payment_id: str
    status: str
    status_detail: Optional[str]
    payment_status: PaymentStatus
    order_status: OrderStatus


def idempotency_key_for(order_id: str, method: PaymentMethod) -> str:
    # PIX e cartão usam chaves distintas para não colidirem no processador
    if method == PaymentMethod.CARD:
        return f"{order_id}-card"
    return order_id


class PaymentIntentBuilder:
    def __init__(
        self,
        store: OrderStore,
        gateway,
        reconciler: Optional[PaymentReconciler] = None,
        settings: Optional[Configuration] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.reconciler = reconciler or PaymentReconciler(store, gateway)
        self.settings = settings or configuration

    def create_pix_payment(
        self,
        order_id: str,
        requested_amount: Optional[float] = None,
        payer: Optional[PayerInfo] = None,
        description: Optional[str] = None,
    ) -> PixPayment:
        return self.create_payment_intent(order_id, requested_amount, PaymentMethod.PIX, payer or PayerInfo(), description=description)

    def create_card_payment(
        self,
        order_id: str,
        card: CardDetails,
        payer: PayerInfo,
        requested_amount: Optional[float] = None,
        description: Optional[str] = None,
    ) -> CardPayment:
        return self.create_payment_intent(order_id, requested_amount, PaymentMethod.CARD, payer, card=card, description=description)

    def create_payment_intent(
        self,
        order_id: str,
        requested_amount: Optional[float],
        method: PaymentMethod,
        payer: PayerInfo,
        card: Optional[CardDetails] = None,
        description: Optional[str] = None,
    ):
        # Validações de borda: nada aqui toca o banco ou o processador
        ensure_order_id(order_id)
        if requested_amount is not None:
            requested_amount = ensure_amount(requested_amount, self.settings.payment_max_amount)

        document = None
        if method == PaymentMethod.CARD:
            if card is None or not card.token or not card.payment_method_id:
                raise InvalidPaymentRequest()
            if not 1 <= card.installments <= 12:
                raise InvalidPaymentRequest("Número de parcelas inválido")
            document = normalize_document(payer.document)

        order = self.store.get_by_id(order_id)
        if not order:
            raise OrderNotFound()

        if order.payment_status == PaymentStatus.PAID:
            logging.warning(f"PAGAMENTO [CONFLITO] >>> Nova cobrança para o pedido já pago {order_id} ({method.value})")
            raise AlreadyPaid()

        if requested_amount is not None and not amounts_match(order.total, requested_amount):
            logging.warning(
                f"PAGAMENTO [CONFLITO] >>> Valor divergente no pedido {order_id}: "
                f"total={order.total:.2f}, solicitado={requested_amount:.2f}"
            )
            raise AmountMismatch()

        if order.payment_method != method:
            logging.warning(
                f"PAGAMENTO [CONFLITO] >>> Pedido {order_id} criado para {order.payment_method.value}, "
                f"tentativa com {method.value}"
            )
            raise PaymentMethodMismatch()

        if method == PaymentMethod.PIX:
            reusable = self._reusable_pix(order)
            if reusable:
                logging.info(f"PAGAMENTO >>> Reaproveitando QR Code ainda válido do pedido {order_id}")
                return reusable
            return self._create_pix(order, payer, description)

        return self._create_card(order, payer, card, document, description)

    def _description(self, order: Order, description: Optional[str]) -> str:
        fallback = f"Pedido {self.settings.store_name} #{order.code} - {format_currency(order.total)}"
        return sanitize_description(description, fallback)

    def _reusable_pix(self, order: Order) -> Optional[PixPayment]:
        expiration = order.pix_expiration_utc
        if (
            order.payment_id
            and order.payment_status == PaymentStatus.AWAITING_PAYMENT
            and order.pix_qr_code
            and expiration
            and expiration > datetime.now(timezone.utc)
        ):
            return PixPayment(
                payment_id=order.payment_id,
                qr_payload=order.pix_qr_code,
                qr_image_base64=order.pix_qr_code_base64,
                expiration_timestamp=expiration.isoformat(),
            )
        return None

    def _create_pix(self, order: Order, payer: PayerInfo, description: Optional[str]) -> PixPayment:
        expiration = datetime.now(timezone.utc) + timedelta(minutes=self.settings.pix_expiration_minutes)
        first_name, _ = split_payer_name(payer.name or order.customer_name)

        body = {
            "transaction_amount": round(order.total, 2),
            "description": self._description(order, description),
            "payment_method_id": "pix",
            "payer": {
                "email": payer.email or order.customer_email or f"cliente_{order.code}@doceentrega.com",
                "first_name": first_name,
            },
            "date_of_expiration": expiration.isoformat(timespec="milliseconds"),
            "external_reference": order.id,
        }
        logging.info(f"PAGAMENTO >>> Criando PIX para o pedido {order.id} ({format_currency(order.total)})")

        payment = self.gateway.create_payment(body, idempotency_key_for(order.id, PaymentMethod.PIX))
        if not payment.qr_code:
            logging.error(f"PAGAMENTO >>> Mercado Pago não retornou QR Code para o pagamento {payment.payment_id}")
            raise GatewayError("Dados PIX não retornados pelo Mercado Pago")

        # Numa chave de idempotência repetida o Mercado Pago devolve o pagamento
        # original, com a validade original
        if payment.date_of_expiration:
            expiration = payment.date_of_expiration
        if expiration <= datetime.now(timezone.utc):
            logging.warning(f"PAGAMENTO >>> Mercado Pago devolveu o PIX {payment.payment_id} já expirado para o pedido {order.id}")
        logging.info(f"PAGAMENTO >>> QR Code do pagamento {payment.payment_id} válido até {format_local_datetime(expiration)}")

        self._persist(order.id, payment.status, payment.payment_id, {
            "pix_qr_code": payment.qr_code,
            "pix_qr_code_base64": payment.qr_code_base64,
            "pix_expiration": expiration,
        })

        return PixPayment(
            payment_id=payment.payment_id,
            qr_payload=payment.qr_code,
            qr_image_base64=payment.qr_code_base64,
            expiration_timestamp=expiration.isoformat(),
        )

    def _create_card(
        self,
        order: Order,
        payer: PayerInfo,
        card: CardDetails,
        document: str,
        description: Optional[str],
    ) -> CardPayment:
        first_name, last_name = split_payer_name(payer.name or order.customer_name)

        body = {
            "transaction_amount": round(order.total, 2),
            "description": self._description(order, description),
            "token": card.token,
            "installments": card.installments,
            "payment_method_id": card.payment_method_id,
            "payer": {
                "email": payer.email or order.customer_email,
                "first_name": first_name,
                "last_name": last_name or "Sobrenome",
                "identification": {
                    "type": payer.document_type or "CPF",
                    "number": document,
                },
            },
            "external_reference": order.id,
            "statement_descriptor": self.settings.store_name.upper()[:13],
        }
        logging.info(f"PAGAMENTO >>> Criando pagamento com cartão para o pedido {order.id} ({card.installments}x)")

        payment = self.gateway.create_payment(body, idempotency_key_for(order.id, PaymentMethod.CARD))
        snapshot = self._persist(order.id, payment.status, payment.payment_id)

        if snapshot is None:
            # Persistência falhou: devolve o que o processador informou
            payment_status, order_status = map_processor_status(payment.status, PaymentMethod.CARD) or (
                PaymentStatus.PROCESSING, OrderStatus.PENDING
            )
        else:
            payment_status, order_status = snapshot.payment_status, snapshot.order_status

        return CardPayment(
            payment_id=payment.payment_id,
            status=payment.status,
            status_detail=payment.status_detail,
            payment_status=payment_status,
            order_status=order_status,
        )

    def _persist(
        self,
        order_id: str,
        processor_status: str,
        payment_id: str,
        payment_fields: Optional[Dict[str, Any]] = None,
    ):
        """
        Grava o vínculo pedido/pagamento pelo reconciliador.

        O pagamento já existe no Mercado Pago nesse ponto; se a gravação
        falhar todas as tentativas o vínculo é refeito depois pelo webhook
        ou pela varredura, via external_reference.
        """
        attempts = max(1, self.settings.payment_persist_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return self.reconciler.reconcile(
                    order_id, processor_status, payment_id=payment_id, payment_fields=payment_fields, rebind=True
                ).snapshot
            except SQLAlchemyError as e:
                self.store.session.rollback()
                logging.warning(
                    f"PAGAMENTO >>> Falha ao gravar pagamento {payment_id} no pedido {order_id} "
                    f"(tentativa {attempt}/{attempts}) - {e}"
                )
        logging.error(
            f"PAGAMENTO >>> Pagamento {payment_id} criado mas não gravado no pedido {order_id}; "
            f"aguardando webhook/varredura para vincular"
        )
        return None
