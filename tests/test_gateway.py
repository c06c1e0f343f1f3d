from datetime import datetime, timezone

import pytest

from app.core.exceptions.checkout import GatewayError
from app.integration.mercadopago import GatewayPayment, MercadoPagoGateway

PIX_RESPONSE = {
    "id": 123456,
    "status": "pending",
    "status_detail": "pending_waiting_transfer",
    "external_reference": "0b6f3f0e-7c1f-4c55-9f0e-2f5d2c0f9a11",
    "point_of_interaction": {
        "transaction_data": {"qr_code": "00020126580014br.gov.bcb.pix", "qr_code_base64": "iVBORw0KGgo="}
    },
}


@pytest.fixture
def sdk(mocker):
    return mocker.Mock()


def test_create_payment_sends_idempotency_key(sdk):
    sdk.payment.return_value.create.return_value = {"status": 201, "response": PIX_RESPONSE}

    payment = MercadoPagoGateway(client=sdk).create_payment({"transaction_amount": 10.0}, "order-key")

    body, request_options = sdk.payment.return_value.create.call_args.args
    assert body == {"transaction_amount": 10.0}
    assert request_options.custom_headers == {"x-idempotency-key": "order-key"}
    assert payment.payment_id == "123456"
    assert payment.qr_code.startswith("000201")
    assert payment.external_reference == PIX_RESPONSE["external_reference"]


def test_processor_error_exposes_only_short_detail(sdk):
    sdk.payment.return_value.create.return_value = {
        "status": 400,
        "response": {"message": "bad request", "cause": [{"code": 3034, "description": "Invalid card_number_validation"}]},
    }

    with pytest.raises(GatewayError) as error:
        MercadoPagoGateway(client=sdk).create_payment({}, "key")

    assert error.value.status_detail == "Invalid card_number_validation"


def test_network_failure_becomes_gateway_error(sdk):
    sdk.payment.return_value.get.side_effect = ConnectionError("reset")

    with pytest.raises(GatewayError):
        MercadoPagoGateway(client=sdk).get_payment("1")


def test_response_without_status_is_rejected():
    with pytest.raises(GatewayError):
        GatewayPayment.from_response({"id": 1})


def test_expiration_is_read_in_utc():
    payment = GatewayPayment.from_response({**PIX_RESPONSE, "date_of_expiration": "2026-05-10T14:30:00.000-04:00"})

    assert payment.date_of_expiration == datetime(2026, 5, 10, 18, 30, tzinfo=timezone.utc)
    assert GatewayPayment.from_response({**PIX_RESPONSE, "date_of_expiration": "amanhã"}).date_of_expiration is None


def test_find_by_external_reference_returns_latest(sdk):
    sdk.payment.return_value.search.return_value = {
        "status": 200,
        "response": {"results": [{"id": 2, "status": "approved", "external_reference": "abc"}, {"id": 1, "status": "rejected"}]},
    }

    payment = MercadoPagoGateway(client=sdk).find_by_external_reference("abc")

    filters = sdk.payment.return_value.search.call_args.kwargs["filters"]
    assert filters["external_reference"] == "abc"
    assert filters["criteria"] == "desc"
    assert payment.payment_id == "2"
    assert payment.status == "approved"


def test_find_by_external_reference_without_results(sdk):
    sdk.payment.return_value.search.return_value = {"status": 200, "response": {"results": []}}

    assert MercadoPagoGateway(client=sdk).find_by_external_reference("abc") is None
