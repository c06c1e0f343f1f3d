from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.auth.auth import AdminAuth
from app.core.exceptions.checkout import OrderNotFound
from app.database.connection import get_session
from app.enums.order_status import OrderStatus
from app.enums.payment_status import PaymentStatus
from app.helpers.payment.validators import ensure_order_id
from app.schemas.order import AdminOrderRead
from app.services.order.order_store import OrderStore

db_session = get_session
get_current_admin = AdminAuth().get_current_admin


class AdminRouter(APIRouter):
    """Consulta de pedidos para o painel; alterações de status não passam por aqui."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.add_api_route("/admin/orders", self.list_orders, methods=["GET"], response_model=List[AdminOrderRead])
        self.add_api_route("/admin/orders/{order_id}", self.get_order, methods=["GET"], response_model=AdminOrderRead)

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        limit: int = Query(default=50, ge=1, le=200),
        current_admin: dict = Depends(get_current_admin),
        session: Session = Depends(db_session),
    ):
        orders = OrderStore(session).list_orders(status=status, payment_status=payment_status, limit=limit)
        return [AdminOrderRead.model_validate(order) for order in orders]

    def get_order(
        self,
        order_id: str,
        current_admin: dict = Depends(get_current_admin),
        session: Session = Depends(db_session),
    ):
        ensure_order_id(order_id)
        order = OrderStore(session).get_by_id(order_id)
        if not order:
            raise OrderNotFound()
        return AdminOrderRead.model_validate(order)
