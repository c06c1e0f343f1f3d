import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.configuration.settings import Configuration
from app.core.exceptions.checkout import CheckoutError, GatewayError
from app.database.connection import get_session
from app.integration.mercadopago import get_payment_gateway
from app.schemas.payment import (
    CardPaymentRequest,
    CardPaymentResponse,
    PaymentStatusRequest,
    PaymentStatusResponse,
    PixPaymentRequest,
    PixPaymentResponse,
    WebhookAck,
)
from app.services.order.order_store import OrderStore
from app.services.payment.intent_builder import CardDetails, PayerInfo, PaymentIntentBuilder
from app.services.payment.reconciler import PaymentReconciler, StatusSnapshot, snapshot_of
from app.services.payment.webhook import WebhookHandler
from app.tasks.websockets.ws_manager import order_ws_manager, payment_ws_manager

configuration = Configuration()
db_session = get_session


async def broadcast_status(snapshot: StatusSnapshot):
    message = {
        "type": "payment_status",
        "order_id": snapshot.order_id,
        "payment_status": snapshot.payment_status.value,
        "order_status": snapshot.order_status.value,
    }
    await payment_ws_manager.broadcast(message, snapshot.order_id)
    await order_ws_manager.broadcast({**message, "type": "order_updated"})


def _status_response(snapshot: StatusSnapshot) -> PaymentStatusResponse:
    return PaymentStatusResponse(
        order_id=snapshot.order_id,
        payment_status=snapshot.payment_status,
        order_status=snapshot.order_status,
    )


class PaymentRouter(APIRouter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.add_api_route("/payment/pix", self.create_pix_payment, methods=["POST"], response_model=PixPaymentResponse)
        self.add_api_route("/payment/card", self.create_card_payment, methods=["POST"], response_model=CardPaymentResponse)
        self.add_api_route("/payment/status", self.check_payment_status, methods=["POST"], response_model=PaymentStatusResponse)
        self.add_api_route("/payment/webhook", self.handle_webhook, methods=["POST"], response_model=WebhookAck)
        self.add_api_route("/webhook", self.handle_webhook, methods=["POST"], include_in_schema=False)

    async def create_pix_payment(
        self,
        data: PixPaymentRequest,
        session: Session = Depends(db_session),
        gateway=Depends(get_payment_gateway),
    ):
        builder = PaymentIntentBuilder(OrderStore(session), gateway)
        try:
            pix = await run_in_threadpool(
                builder.create_pix_payment,
                data.order_id,
                requested_amount=data.amount,
                payer=PayerInfo(name=data.payer_name, email=data.payer_email),
                description=data.description,
            )
        except CheckoutError:
            raise
        except Exception as e:
            logging.error(f"PAGAMENTO >>> Erro ao gerar PIX: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail="Erro ao processar PIX")

        order = await run_in_threadpool(OrderStore(session).get_by_id, data.order_id)
        if order:
            await broadcast_status(snapshot_of(order))

        return PixPaymentResponse(
            payment_id=pix.payment_id,
            qr_payload=pix.qr_payload,
            qr_image_base64=pix.qr_image_base64,
            expiration_timestamp=pix.expiration_timestamp,
        )

    async def create_card_payment(
        self,
        data: CardPaymentRequest,
        session: Session = Depends(db_session),
        gateway=Depends(get_payment_gateway),
    ):
        builder = PaymentIntentBuilder(OrderStore(session), gateway)
        try:
            card = await run_in_threadpool(
                builder.create_card_payment,
                data.order_id,
                card=CardDetails(
                    token=data.token,
                    payment_method_id=data.payment_method_id,
                    installments=data.installments,
                ),
                payer=PayerInfo(
                    name=data.payer_name,
                    email=data.payer_email,
                    document=data.payer_document,
                    document_type=data.payer_document_type,
                ),
                requested_amount=data.amount,
                description=data.description,
            )
        except CheckoutError:
            raise
        except Exception as e:
            logging.error(f"PAGAMENTO >>> Erro ao processar cartão: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail="Erro ao processar pagamento")

        await broadcast_status(StatusSnapshot(data.order_id, card.payment_status, card.order_status))

        return CardPaymentResponse(
            payment_id=card.payment_id,
            status=card.status,
            status_detail=card.status_detail,
            payment_status=card.payment_status,
            order_status=card.order_status,
        )

    async def check_payment_status(
        self,
        data: PaymentStatusRequest,
        session: Session = Depends(db_session),
        gateway=Depends(get_payment_gateway),
    ):
        store = OrderStore(session)
        reconciler = PaymentReconciler(store, gateway)
        try:
            result = await run_in_threadpool(reconciler.refresh_from_gateway, data.order_id)
        except GatewayError:
            # Processador indisponível: devolve o último estado conhecido
            logging.warning(f"PAGAMENTO >>> Consulta ao Mercado Pago falhou para o pedido {data.order_id}")
            order = await run_in_threadpool(store.get_by_id, data.order_id)
            return _status_response(snapshot_of(order))

        if result.changed:
            await broadcast_status(result.snapshot)
        return _status_response(result.snapshot)

    async def handle_webhook(
        self,
        request: Request,
        session: Session = Depends(db_session),
        gateway=Depends(get_payment_gateway),
    ):
        raw_body = await request.body()
        handler = WebhookHandler(
            PaymentReconciler(OrderStore(session), gateway),
            gateway,
            secret=configuration.mercado_pago_webhook_secret,
            enforce_signature=configuration.webhook_signature_enforced,
        )

        try:
            result = await run_in_threadpool(
                handler.handle,
                raw_body,
                request.headers.get("x-signature"),
                request.headers.get("x-request-id"),
            )
        except CheckoutError:
            raise
        except Exception as e:
            # Erro interno: confirma o recebimento para evitar reenvios em massa
            session.rollback()
            logging.error(f"WEBHOOK >>> Erro interno -> {e}", exc_info=True)
            return JSONResponse(content={"received": True})

        if result.changed:
            await broadcast_status(result.reconcile.snapshot)

        return JSONResponse(content={"received": True})
