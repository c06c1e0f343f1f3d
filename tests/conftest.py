import os

# Ambiente de teste definido antes de qualquer import do app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["MERCADO_PAGO_WEBHOOK_SECRET"] = "test-secret"
os.environ["MERCADO_PAGO_ACCESS_TOKEN_TEST"] = "TEST-0000"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"

import asyncio
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from app.core.exceptions.checkout import GatewayError
from app.database.connection import engine
from app.enums.order_status import OrderStatus
from app.enums.payment_method import PaymentMethod
from app.enums.payment_status import PaymentStatus
from app.integration.mercadopago import GatewayPayment, get_payment_gateway, parse_processor_datetime
from app.main import app as fastapi_app
from app.models.order.order import Order
from app.services.order.order_store import OrderStore


def _on_event_loop():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class FakeGateway:
    """
    Mercado Pago em memória, registrando cada chamada.

    Como o processador real, uma chave de idempotência repetida devolve o
    pagamento já criado para ela.
    """

    def __init__(self):
        self.created = []
        self.fetched = []
        self.searched = []
        self.payments = {}
        self.next_status = "pending"
        self.next_status_detail = None
        self.fail_create = False
        self.fail_get = False
        self.on_create = None
        self.by_key = {}
        self.calls_on_event_loop = []
        self._counter = 1000

    def create_payment(self, body, idempotency_key):
        self.created.append((body, idempotency_key))
        self.calls_on_event_loop.append(_on_event_loop())
        if self.fail_create:
            raise GatewayError(status_detail="cc_rejected_bad_filled_security_code")
        if self.on_create is not None:
            self.on_create(body)
        if idempotency_key in self.by_key:
            return self.payments[self.by_key[idempotency_key]]
        self._counter += 1
        is_pix = body.get("payment_method_id") == "pix"
        payment = GatewayPayment(
            payment_id=str(self._counter),
            status=self.next_status,
            status_detail=self.next_status_detail,
            external_reference=body.get("external_reference"),
            qr_code="00020126580014br.gov.bcb.pix" if is_pix else None,
            qr_code_base64="iVBORw0KGgo=" if is_pix else None,
            date_of_expiration=parse_processor_datetime(body.get("date_of_expiration")),
        )
        self.payments[payment.payment_id] = payment
        self.by_key[idempotency_key] = payment.payment_id
        return payment

    def get_payment(self, payment_id):
        self.fetched.append(payment_id)
        self.calls_on_event_loop.append(_on_event_loop())
        if self.fail_get or payment_id not in self.payments:
            raise GatewayError()
        return self.payments[payment_id]

    def find_by_external_reference(self, external_reference):
        self.searched.append(external_reference)
        matches = [p for p in self.payments.values() if p.external_reference == external_reference]
        return matches[-1] if matches else None

    def set_payment(self, payment_id, status, external_reference):
        self.payments[payment_id] = GatewayPayment(
            payment_id=payment_id,
            status=status,
            external_reference=external_reference,
        )

    @property
    def call_count(self):
        return len(self.created) + len(self.fetched) + len(self.searched)


@pytest.fixture(autouse=True)
def setup_db():
    SQLModel.metadata.create_all(engine)
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return OrderStore(session)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    fastapi_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_order():
    def _make_order(
        total=59.90,
        payment_method=PaymentMethod.PIX,
        payment_status=PaymentStatus.PENDING,
        status=OrderStatus.PENDING,
        payment_id=None,
        created_at=None,
        **fields,
    ):
        order = Order(
            items=[{"product_id": "bolo-cenoura", "name": "Bolo de cenoura", "quantity": 1, "size": None, "extras": [], "price": total}],
            subtotal=total,
            total=total,
            customer_name="Maria Souza",
            customer_phone="(21) 99999-0000",
            customer_email="maria@example.com",
            delivery_address={
                "zip_code": "20000-000",
                "street": "Rua das Flores",
                "number": "10",
                "complement": None,
                "neighborhood": "Centro",
                "city": "Rio de Janeiro",
                "state": "RJ",
            },
            payment_method=payment_method,
            payment_status=payment_status,
            status=status,
            payment_id=payment_id,
            created_at=created_at or datetime.now(timezone.utc),
            **fields,
        )
        with Session(engine) as session:
            session.add(order)
            session.commit()
            session.refresh(order)
            session.expunge(order)
        return order

    return _make_order


@pytest.fixture
def fetch_order():
    def _fetch(order_id):
        with Session(engine) as session:
            order = session.get(Order, order_id)
            if order:
                session.expunge(order)
            return order

    return _fetch


@pytest.fixture
def update_elsewhere():
    """Altera o pedido por outra sessão, como um webhook concorrente faria."""
    def _update(order_id, **fields):
        with Session(engine) as other:
            order = other.get(Order, order_id)
            for field, value in fields.items():
                setattr(order, field, value)
            other.add(order)
            other.commit()

    return _update
