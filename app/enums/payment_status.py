from enum import Enum

class PaymentStatus(str, Enum):
    PENDING = "pending"                    # Pedido criado, nenhum pagamento iniciado
    AWAITING_PAYMENT = "awaiting_payment"  # QR Code PIX gerado, aguardando o cliente
    PROCESSING = "processing"              # Cartão em análise
    PAID = "paid"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Status em que o acompanhamento do pagamento pelo cliente pode parar
FINAL_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.REJECTED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})
