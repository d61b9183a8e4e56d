# core/payment_method.py
from enum import Enum


class PaymentMethod(str, Enum):
    """
    Payment methods a ledger entry may carry. Values are the pt-BR labels
    stored with each transaction.
    """

    PIX = "Pix"
    BOLETO = "Boleto"
    DEBITO = "Débito"
    CREDITO = "Crédito"
    DINHEIRO = "Dinheiro"
    OUTRO = "Outro"

    def is_card(self) -> bool:
        return self in {PaymentMethod.CREDITO, PaymentMethod.DEBITO}
