from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from app.enums.order_status import OrderStatus
from app.enums.payment_method import PaymentMethod
from app.enums.payment_status import PaymentStatus
from app.configuration.settings import Configuration
from app.helpers.payment.validators import amounts_match, only_digits

configuration = Configuration()


# --- ENDEREÇO DE ENTREGA ---
class DeliveryAddress(BaseModel):
    zip_code: str = Field(..., validation_alias=AliasChoices("zip_code", "cep"))
    street: str = Field(..., min_length=1)
    number: str = Field(..., min_length=1)
    complement: Optional[str] = None
    neighborhood: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2, max_length=2)

    @field_validator('zip_code')
    @classmethod
    def validate_zip_code(cls, v: str) -> str:
        cleaned = only_digits(v)
        if len(cleaned) != 8:
            raise ValueError("CEP deve conter exatamente 8 dígitos")
        return f"{cleaned[:5]}-{cleaned[5:]}"  # Formata com hífen

    @field_validator('state')
    @classmethod
    def validate_state(cls, v: str) -> str:
        return v.upper()


# --- ORDER ITEM ---
class OrderItemCreate(BaseModel):
    product_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=120)
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    extras: List[str] = Field(default_factory=list)
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Total da linha (quantidade x preço + adicionais)")


# --- ORDER CREATE ---
class OrderCreate(BaseModel):
    items: List[OrderItemCreate]
    subtotal: float = Field(..., ge=0, allow_inf_nan=False)
    delivery_fee: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    discount: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    total: float = Field(..., allow_inf_nan=False)
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = Field(default=None, max_length=255)
    delivery_address: DeliveryAddress
    payment_method: PaymentMethod = PaymentMethod.PIX

    @field_validator('items')
    @classmethod
    def validate_items(cls, v: List[OrderItemCreate]) -> List[OrderItemCreate]:
        if not v:
            raise ValueError("Carrinho vazio")
        return v

    @field_validator('customer_name')
    @classmethod
    def validate_customer_name(cls, v: str) -> str:
        name = v.strip()
        if len(name) < 2:
            raise ValueError("Nome é obrigatório")
        return name[:100]

    @field_validator('customer_phone')
    @classmethod
    def validate_customer_phone(cls, v: str) -> str:
        if len(only_digits(v)) < 10:
            raise ValueError("Telefone inválido")
        return v.strip()[:20]

    @field_validator('customer_email')
    @classmethod
    def strip_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode='after')
    def validate_totals(self):
        if self.total <= 0 or self.total > configuration.payment_max_amount:
            raise ValueError("Total inválido")
        items_total = sum(item.price for item in self.items)
        if not amounts_match(items_total, self.subtotal):
            raise ValueError("Subtotal não corresponde aos itens do pedido")
        expected = self.subtotal + self.delivery_fee - self.discount
        if not amounts_match(expected, self.total):
            raise ValueError("Total não corresponde a subtotal + entrega - desconto")
        return self


# --- ORDER READ ---
class OrderItemRead(BaseModel):
    product_id: str
    name: str
    quantity: int
    size: Optional[str] = None
    extras: List[str] = Field(default_factory=list)
    price: float


class OrderRead(BaseModel):
    id: str
    code: str
    items: List[OrderItemRead]
    subtotal: float
    delivery_fee: float
    discount: float
    total: float
    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    delivery_address: DeliveryAddress
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    status: OrderStatus
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class AdminOrderRead(OrderRead):
    payment_id: Optional[str]
    pix_expiration: Optional[datetime]
