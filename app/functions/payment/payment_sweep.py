from datetime import datetime, timedelta, timezone
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.exceptions.checkout import CheckoutError
from app.database.connection import engine
from app.integration.mercadopago import MercadoPagoGateway
from app.services.order.order_store import OrderStore
from app.services.payment.reconciler import PaymentReconciler

# Pedidos sem payment_id mais novos que isso ainda podem estar no meio da criação
UNBOUND_GRACE_MINUTES = 2
UNBOUND_LOOKBACK_HOURS = 24


def reconcile_pending_payments(gateway=None, session_factory=None):
    """
    Varredura periódica dos pagamentos sem desfecho.

    Cobre notificações perdidas do webhook e pedidos cujo payment_id não
    chegou a ser gravado depois da criação do pagamento.
    """
    gateway = gateway or MercadoPagoGateway()
    session_factory = session_factory or (lambda: Session(engine))
    now = datetime.now(timezone.utc)

    refreshed = healed = failed = 0

    with session_factory() as session:
        store = OrderStore(session)
        reconciler = PaymentReconciler(store, gateway)

        # Os ids são lidos antes: um rollback expira os objetos carregados
        for order_id in [order.id for order in store.list_awaiting_confirmation()]:
            try:
                result = reconciler.refresh_from_gateway(order_id)
                if result.changed:
                    refreshed += 1
            except CheckoutError as e:
                failed += 1
                logging.warning(f"PAGAMENTO >>> Varredura falhou para o pedido {order_id} - {e}")
            except SQLAlchemyError as e:
                session.rollback()
                failed += 1
                logging.error(f"PAGAMENTO >>> Erro de banco na varredura do pedido {order_id} - {e}")

        unbound = store.list_unbound(
            created_before=now - timedelta(minutes=UNBOUND_GRACE_MINUTES),
            created_after=now - timedelta(hours=UNBOUND_LOOKBACK_HOURS),
        )
        for order_id in [order.id for order in unbound]:
            try:
                payment = gateway.find_by_external_reference(order_id)
                if payment is None:
                    continue
                result = reconciler.reconcile(order_id, payment.status, payment_id=payment.payment_id)
                if result.changed:
                    healed += 1
                    logging.info(f"PAGAMENTO >>> Pedido {order_id} religado ao pagamento {payment.payment_id}")
            except CheckoutError as e:
                failed += 1
                logging.warning(f"PAGAMENTO >>> Não foi possível religar o pedido {order_id} - {e}")
            except SQLAlchemyError as e:
                session.rollback()
                failed += 1
                logging.error(f"PAGAMENTO >>> Erro de banco ao religar o pedido {order_id} - {e}")

    logging.info(
        f"PAGAMENTO >>> Varredura concluída: {refreshed} atualizados, {healed} religados, {failed} falhas"
    )
    return {"refreshed": refreshed, "healed": healed, "failed": failed}
