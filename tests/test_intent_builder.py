from datetime import datetime, timedelta, timezone
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from app.core.exceptions.checkout import (
    AlreadyPaid,
    AmountMismatch,
    GatewayError,
    InvalidAmount,
    InvalidDocument,
    InvalidOrderId,
    InvalidPaymentRequest,
    OrderNotFound,
    PaymentMethodMismatch,
)
from app.database.connection import engine
from app.enums.order_status import OrderStatus
from app.enums.payment_method import PaymentMethod
from app.enums.payment_status import PaymentStatus
from app.services.payment.intent_builder import (
    CardDetails,
    PayerInfo,
    PaymentIntentBuilder,
    idempotency_key_for,
)
from app.services.order.order_store import OrderStore
from app.services.payment.reconciler import PaymentReconciler

VISA = CardDetails(token="tok_abc", payment_method_id="visa", installments=1)
PAYER = PayerInfo(name="Maria Souza", email="maria@example.com", document="123.456.789-09")


@pytest.fixture
def builder(store, gateway):
    return PaymentIntentBuilder(store, gateway)


def test_pix_charges_stored_total_and_persists_qr(builder, gateway, make_order, fetch_order):
    order = make_order(total=59.90)

    pix = builder.create_pix_payment(order.id, requested_amount=59.90)

    body, key = gateway.created[0]
    assert body["transaction_amount"] == 59.90
    assert body["external_reference"] == order.id
    assert body["payment_method_id"] == "pix"
    assert key == order.id
    assert pix.qr_payload.startswith("000201")

    saved = fetch_order(order.id)
    assert saved.payment_id == pix.payment_id
    assert saved.payment_status == PaymentStatus.AWAITING_PAYMENT
    assert saved.status == OrderStatus.PENDING
    assert saved.pix_qr_code == pix.qr_payload
    assert saved.pix_expiration_utc > datetime.now(timezone.utc)


def test_tampered_amount_is_refused_before_charging(builder, gateway, make_order, fetch_order):
    order = make_order(total=59.90)

    with pytest.raises(AmountMismatch):
        builder.create_pix_payment(order.id, requested_amount=0.01)

    assert gateway.created == []
    assert fetch_order(order.id).payment_status == PaymentStatus.PENDING


@pytest.mark.parametrize("requested", [59.911, 59.914])
def test_gap_just_above_one_cent_is_refused(builder, gateway, make_order, requested):
    order = make_order(total=59.90)

    with pytest.raises(AmountMismatch):
        builder.create_pix_payment(order.id, requested_amount=requested)

    assert gateway.created == []


def test_amount_is_optional(builder, gateway, make_order):
    order = make_order(total=120.00)

    builder.create_pix_payment(order.id)

    assert gateway.created[0][0]["transaction_amount"] == 120.00


def test_paid_order_cannot_be_charged_again(builder, gateway, make_order):
    order = make_order(payment_status=PaymentStatus.PAID, status=OrderStatus.CONFIRMED, payment_id="1")

    with pytest.raises(AlreadyPaid):
        builder.create_pix_payment(order.id)
    assert gateway.created == []


def test_method_must_match_order(builder, gateway, make_order):
    order = make_order(payment_method=PaymentMethod.CARD)

    with pytest.raises(PaymentMethodMismatch):
        builder.create_pix_payment(order.id)
    assert gateway.created == []


@pytest.mark.parametrize("order_id", ["abc", "", "../../etc/passwd", "1 OR 1=1"])
def test_invalid_identifier_touches_nothing(builder, gateway, store, mocker, order_id):
    get_by_id = mocker.spy(store, "get_by_id")

    with pytest.raises(InvalidOrderId):
        builder.create_pix_payment(order_id)

    assert get_by_id.call_count == 0
    assert gateway.call_count == 0


def test_invalid_amount_touches_nothing(builder, gateway, store, mocker, make_order):
    order = make_order()
    get_by_id = mocker.spy(store, "get_by_id")

    with pytest.raises(InvalidAmount):
        builder.create_pix_payment(order.id, requested_amount=-5)

    assert get_by_id.call_count == 0
    assert gateway.call_count == 0


def test_unknown_order(builder, gateway):
    with pytest.raises(OrderNotFound):
        builder.create_pix_payment(str(uuid.uuid4()))
    assert gateway.created == []


def test_unexpired_pix_is_reused(builder, gateway, make_order):
    order = make_order(
        payment_id="321",
        payment_status=PaymentStatus.AWAITING_PAYMENT,
        pix_qr_code="00020126-existing",
        pix_qr_code_base64="img",
        pix_expiration=datetime.now(timezone.utc) + timedelta(minutes=10),
    )

    pix = builder.create_pix_payment(order.id)

    assert pix.payment_id == "321"
    assert pix.qr_payload == "00020126-existing"
    assert gateway.created == []


def test_expired_pix_creates_new_charge(builder, gateway, make_order):
    order = make_order(
        payment_id="321",
        payment_status=PaymentStatus.AWAITING_PAYMENT,
        pix_qr_code="00020126-old",
        pix_expiration=datetime.now(timezone.utc) - timedelta(minutes=1),
    )

    builder.create_pix_payment(order.id)

    assert len(gateway.created) == 1


def test_card_approved_confirms_order(builder, gateway, make_order, fetch_order):
    order = make_order(payment_method=PaymentMethod.CARD, total=80.00)
    gateway.next_status = "approved"
    gateway.next_status_detail = "accredited"

    card = builder.create_card_payment(order.id, card=VISA, payer=PAYER, requested_amount=80.00)

    body, key = gateway.created[0]
    assert key == f"{order.id}-card"
    assert body["payer"]["identification"] == {"type": "CPF", "number": "12345678909"}
    assert body["payer"]["last_name"] == "Souza"
    assert body["token"] == "tok_abc"
    assert card.status_detail == "accredited"
    assert card.payment_status == PaymentStatus.PAID
    assert card.order_status == OrderStatus.CONFIRMED
    assert fetch_order(order.id).status == OrderStatus.CONFIRMED


def test_card_in_process_stays_processing(builder, gateway, make_order):
    order = make_order(payment_method=PaymentMethod.CARD)
    gateway.next_status = "in_process"

    card = builder.create_card_payment(order.id, card=VISA, payer=PAYER)

    assert card.payment_status == PaymentStatus.PROCESSING
    assert card.order_status == OrderStatus.PENDING


def test_card_requires_token_and_document_before_lookup(builder, gateway, store, mocker, make_order):
    order = make_order(payment_method=PaymentMethod.CARD)
    get_by_id = mocker.spy(store, "get_by_id")

    with pytest.raises(InvalidPaymentRequest):
        builder.create_card_payment(order.id, card=CardDetails(token="", payment_method_id="visa"), payer=PAYER)
    with pytest.raises(InvalidPaymentRequest):
        builder.create_card_payment(order.id, card=CardDetails(token="tok", payment_method_id="visa", installments=13), payer=PAYER)
    with pytest.raises(InvalidDocument):
        builder.create_card_payment(order.id, card=VISA, payer=PayerInfo(name="Maria", document="123"))

    assert get_by_id.call_count == 0
    assert gateway.call_count == 0


def test_processor_failure_leaves_order_pending(builder, gateway, make_order, fetch_order):
    order = make_order(payment_method=PaymentMethod.CARD)
    gateway.fail_create = True

    with pytest.raises(GatewayError) as error:
        builder.create_card_payment(order.id, card=VISA, payer=PAYER)

    assert error.value.status_detail == "cc_rejected_bad_filled_security_code"
    assert fetch_order(order.id).payment_status == PaymentStatus.PENDING


def test_persist_failure_still_returns_payment(store, gateway, make_order, fetch_order, mocker):
    order = make_order()
    reconciler = PaymentReconciler(store, gateway)
    mocker.patch.object(reconciler, "reconcile", side_effect=OperationalError("UPDATE", {}, Exception("db down")))
    builder = PaymentIntentBuilder(store, gateway, reconciler=reconciler)

    pix = builder.create_pix_payment(order.id)

    assert pix.payment_id
    assert reconciler.reconcile.call_count == 3
    assert fetch_order(order.id).payment_id is None


def test_idempotency_keys_differ_per_method():
    order_id = str(uuid.uuid4())
    assert idempotency_key_for(order_id, PaymentMethod.PIX) == order_id
    assert idempotency_key_for(order_id, PaymentMethod.CARD) == f"{order_id}-card"


def test_retry_sends_same_idempotency_key(builder, gateway, make_order):
    order = make_order(payment_method=PaymentMethod.CARD)
    gateway.next_status = "in_process"

    builder.create_card_payment(order.id, card=VISA, payer=PAYER)
    builder.create_card_payment(order.id, card=VISA, payer=PAYER)

    assert gateway.created[0][1] == gateway.created[1][1]


def test_new_pix_after_expiration_replaces_payment(builder, gateway, make_order, fetch_order):
    order = make_order(
        payment_id="321",
        payment_status=PaymentStatus.AWAITING_PAYMENT,
        pix_qr_code="00020126-old",
        pix_expiration=datetime.now(timezone.utc) - timedelta(minutes=1),
    )

    pix = builder.create_pix_payment(order.id)

    saved = fetch_order(order.id)
    assert saved.payment_id == pix.payment_id != "321"
    assert saved.pix_qr_code == pix.qr_payload


def test_order_paid_during_creation_is_not_reverted(builder, gateway, make_order, fetch_order, update_elsewhere):
    order = make_order()
    gateway.on_create = lambda body: update_elsewhere(
        order.id, payment_status=PaymentStatus.PAID, status=OrderStatus.CONFIRMED
    )

    builder.create_pix_payment(order.id)

    saved = fetch_order(order.id)
    assert saved.payment_status == PaymentStatus.PAID
    assert saved.status == OrderStatus.CONFIRMED


def test_replayed_pix_keeps_processor_expiration(builder, gateway, make_order, fetch_order, update_elsewhere):
    order = make_order()
    first = builder.create_pix_payment(order.id)

    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    gateway.payments[first.payment_id].date_of_expiration = past
    update_elsewhere(order.id, pix_expiration=past)

    # Nova requisição, nova sessão
    with Session(engine) as other:
        second = PaymentIntentBuilder(OrderStore(other), gateway).create_pix_payment(order.id)

    assert len(gateway.created) == 2
    assert gateway.created[0][1] == gateway.created[1][1]
    assert second.payment_id == first.payment_id
    assert second.expiration_timestamp == past.isoformat()
    assert fetch_order(order.id).pix_expiration_utc < datetime.now(timezone.utc)


def test_pix_expiration_comes_from_processor(builder, gateway, make_order, fetch_order):
    order = make_order()

    pix = builder.create_pix_payment(order.id)

    sent = gateway.created[0][0]["date_of_expiration"]
    assert pix.expiration_timestamp == gateway.payments[pix.payment_id].date_of_expiration.isoformat()
    assert fetch_order(order.id).pix_expiration_utc.isoformat(timespec="milliseconds") == sent
