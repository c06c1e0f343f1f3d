# app/schemas/payment.py
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.enums.order_status import OrderStatus
from app.enums.payment_status import PaymentStatus


class CamelModel(BaseModel):
    # O front envia e recebe camelCase (orderId, paymentStatus...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PixPaymentRequest(CamelModel):
    order_id: str
    amount: Optional[float] = None  # Apenas conferido contra o total do pedido
    description: Optional[str] = None
    payer_email: Optional[str] = None
    payer_name: Optional[str] = None


class CardPaymentRequest(CamelModel):
    order_id: str
    amount: Optional[float] = None
    description: Optional[str] = None
    # Campos do cartão conferidos no serviço, que responde 400 quando faltam
    token: Optional[str] = None  # Token do cartão, gerado no frontend
    payment_method_id: Optional[str] = None  # "visa", "master", etc.
    installments: int = 1
    payer_email: Optional[str] = None
    payer_name: Optional[str] = None
    payer_document: Optional[str] = None  # CPF do pagador
    payer_document_type: str = "CPF"


class PaymentStatusRequest(CamelModel):
    order_id: str


class PaymentStatusResponse(CamelModel):
    order_id: str
    payment_status: PaymentStatus
    order_status: OrderStatus


class PixPaymentResponse(CamelModel):
    payment_id: str
    qr_payload: str
    qr_image_base64: Optional[str] = None
    expiration_timestamp: Optional[str] = None


class CardPaymentResponse(CamelModel):
    payment_id: str
    status: str
    status_detail: Optional[str] = None
    payment_status: PaymentStatus
    order_status: OrderStatus


class WebhookAck(BaseModel):
    received: bool = True
