from datetime import datetime, timezone
import hashlib
from typing import Any, Dict, List, Optional
import uuid
from sqlmodel import Field, SQLModel
from sqlalchemy import JSON, Column, Enum

from app.enums.order_status import OrderStatus
from app.enums.payment_method import PaymentMethod
from app.enums.payment_status import PaymentStatus

ORDER_CODE_HASH_LENGTH = 10

def generate_order_id() -> str:
    return str(uuid.uuid4())

def generate_order_code() -> str:
    timestamp = datetime.now(timezone.utc).isoformat()
    raw = f"{timestamp}-{uuid.uuid4()}"
    return hashlib.sha256(raw.encode()).hexdigest()[:ORDER_CODE_HASH_LENGTH]

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

class Order(SQLModel, table=True):
    __tablename__ = "tb_order"

    id: str = Field(default_factory=generate_order_id, primary_key=True, max_length=36)
    code: str = Field(default_factory=generate_order_code, index=True, unique=True)

    # Snapshot dos itens no momento da compra
    items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    subtotal: float = Field(default=0.0)
    delivery_fee: float = Field(default=0.0)
    discount: float = Field(default=0.0)
    total: float = Field(default=0.0)

    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None

    delivery_address: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    payment_method: PaymentMethod = Field(default=PaymentMethod.PIX, sa_column=Column(Enum(PaymentMethod), nullable=False))
    payment_id: Optional[str] = Field(default=None, index=True)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, sa_column=Column(Enum(PaymentStatus), nullable=False))
    status: OrderStatus = Field(default=OrderStatus.PENDING, sa_column=Column(Enum(OrderStatus), nullable=False))

    pix_qr_code: Optional[str] = Field(default=None)
    pix_qr_code_base64: Optional[str] = Field(default=None)
    pix_expiration: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def pix_expiration_utc(self) -> Optional[datetime]:
        return _as_utc(self.pix_expiration)
