from datetime import datetime, timezone
import logging
from typing import List, Optional
from sqlmodel import Session, select

from app.core.exceptions.checkout import OrderNotFound
from app.enums.order_status import OrderStatus
from app.enums.payment_status import PaymentStatus
from app.models.order.order import Order


class OrderStore:
    """
    Acesso persistente aos pedidos.

    Toda escrita é um commit de uma única linha; leituras para
    reconciliação podem travar a linha (SELECT ... FOR UPDATE) quando o
    banco suporta.
    """

    def __init__(self, session: Session):
        self.session = session

    def insert(self, order: Order) -> Order:
        self.session.add(order)
        self.session.commit()
        self.session.refresh(order)
        logging.info(f"PEDIDO >>> Pedido {order.id} criado (#{order.code})")
        return order

    def get_by_id(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        statement = select(Order).where(Order.id == order_id)
        if for_update:
            # Relê a linha do banco mesmo se a sessão já tiver o pedido em memória
            statement = statement.with_for_update().execution_options(populate_existing=True)
        return self.session.exec(statement).first()

    def update(self, order_id: str, **fields) -> Order:
        order = self.session.get(Order, order_id)
        if not order:
            raise OrderNotFound()

        for field, value in fields.items():
            setattr(order, field, value)
        order.updated_at = datetime.now(timezone.utc)

        try:
            self.session.add(order)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(order)
        return order

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        limit: int = 50,
    ) -> List[Order]:
        statement = select(Order)
        if status:
            statement = statement.where(Order.status == status)
        if payment_status:
            statement = statement.where(Order.payment_status == payment_status)
        statement = statement.order_by(Order.created_at.desc()).limit(limit)
        return list(self.session.exec(statement).all())

    def list_awaiting_confirmation(self) -> List[Order]:
        """Pedidos com pagamento criado mas ainda sem desfecho."""
        statement = select(Order).where(
            Order.payment_id.is_not(None),
            Order.payment_status.in_([PaymentStatus.AWAITING_PAYMENT, PaymentStatus.PROCESSING]),
        )
        return list(self.session.exec(statement).all())

    def list_unbound(self, created_before: datetime, created_after: datetime) -> List[Order]:
        """Pedidos pendentes sem payment_id gravado, dentro da janela informada."""
        statement = select(Order).where(
            Order.payment_id.is_(None),
            Order.payment_status == PaymentStatus.PENDING,
            Order.created_at < created_before,
            Order.created_at > created_after,
        )
        return list(self.session.exec(statement).all())
