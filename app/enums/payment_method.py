from enum import Enum

class PaymentMethod(str, Enum):
    PIX = "pix"
    CARD = "card"
