from typing import Optional

from app.core.exceptions.app_exception import AppHttpException


class CheckoutError(Exception):
    """Erro de domínio do checkout, convertido em resposta HTTP na borda."""

    status_code = 500
    detail = "Erro interno"
    solution: Optional[str] = None

    def __init__(self, detail: Optional[str] = None, solution: Optional[str] = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail
        if solution:
            self.solution = solution

    def to_http_exception(self) -> AppHttpException:
        return AppHttpException(status_code=self.status_code, detail=self.detail, solution=self.solution)


# --- Validação (400) ---
class ValidationFailed(CheckoutError):
    status_code = 400
    detail = "Dados inválidos"


class InvalidOrderId(ValidationFailed):
    detail = "Formato de orderId inválido"


class InvalidAmount(ValidationFailed):
    detail = "Valor inválido"


class InvalidDocument(ValidationFailed):
    detail = "CPF inválido"
    solution = "Informe os 11 dígitos do CPF do titular do cartão"


class InvalidPaymentRequest(ValidationFailed):
    detail = "Campos obrigatórios faltando"


# --- Conflito (409) ---
class PaymentConflict(CheckoutError):
    status_code = 409
    detail = "Conflito no pagamento"


class AlreadyPaid(PaymentConflict):
    detail = "Este pedido já foi pago"


class AmountMismatch(PaymentConflict):
    detail = "Valor não corresponde ao pedido"
    solution = "Recarregue o pedido e tente novamente"


class PaymentMethodMismatch(PaymentConflict):
    detail = "Método de pagamento diferente do escolhido no pedido"


# --- Não encontrado (404) ---
class OrderNotFound(CheckoutError):
    status_code = 404
    detail = "Pedido não encontrado"


# --- Processador de pagamento (502) ---
class GatewayError(CheckoutError):
    status_code = 502
    detail = "Não foi possível processar o pagamento"

    def __init__(self, detail: Optional[str] = None, status_detail: Optional[str] = None):
        super().__init__(detail)
        self.status_detail = status_detail

    def to_http_exception(self) -> AppHttpException:
        errors = {"status_detail": self.status_detail} if self.status_detail else None
        return AppHttpException(status_code=self.status_code, detail=self.detail, errors=errors)


# --- Webhook ---
class WebhookSignatureError(CheckoutError):
    status_code = 401
    detail = "Assinatura do webhook inválida"


class WebhookPayloadError(CheckoutError):
    status_code = 500
    detail = "Corpo do webhook inválido"
