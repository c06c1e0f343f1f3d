import logging
from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from app.core.exceptions.checkout import OrderNotFound
from app.database.connection import get_session
from app.enums.order_status import OrderStatus
from app.enums.payment_status import PaymentStatus
from app.helpers.order.formatters import format_currency
from app.helpers.payment.validators import ensure_order_id
from app.models.order.order import Order
from app.schemas.order import OrderCreate, OrderRead
from app.services.order.order_store import OrderStore
from app.tasks.websockets.ws_manager import order_ws_manager

db_session = get_session


class OrderRouter(APIRouter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.add_api_route("/orders/", self.create_order, methods=["POST"], response_model=OrderRead, status_code=status.HTTP_201_CREATED)
        self.add_api_route("/orders/{order_id}", self.get_order, methods=["GET"], response_model=OrderRead)

    async def create_order(self, order_request: OrderCreate, session: Session = Depends(db_session)):
        order = Order(
            items=[item.model_dump() for item in order_request.items],
            subtotal=round(order_request.subtotal, 2),
            delivery_fee=round(order_request.delivery_fee, 2),
            discount=round(order_request.discount, 2),
            total=round(order_request.total, 2),
            customer_name=order_request.customer_name,
            customer_phone=order_request.customer_phone,
            customer_email=order_request.customer_email,
            delivery_address=order_request.delivery_address.model_dump(),
            payment_method=order_request.payment_method,
            payment_status=PaymentStatus.PENDING,
            status=OrderStatus.PENDING,
        )
        order = await run_in_threadpool(OrderStore(session).insert, order)
        logging.info(f"PEDIDO >>> Novo pedido #{order.code} de {format_currency(order.total)} ({order.payment_method.value})")

        order_read = OrderRead.model_validate(order)
        await order_ws_manager.broadcast({
            "type": "new_order",
            "order": order_read.model_dump(mode="json")
        })

        return order_read

    def get_order(self, order_id: str, session: Session = Depends(db_session)):
        ensure_order_id(order_id)
        order = OrderStore(session).get_by_id(order_id)
        if not order:
            raise OrderNotFound()
        return OrderRead.model_validate(order)
