# FILE: services/payment_methods.py
"""
Payment method canonicalization.

Maps whatever the classifier wrote ("PIX", "Cartão Master parcelado",
"dinheiro vivo", "no débito") onto the closed PaymentMethod set.
Total function: every string, including "", yields exactly one value.
"""

import re
import unicodedata
from typing import Optional

from core.payment_method import PaymentMethod

# Card brands spoken in place of "crédito" ("passei no visa")
CARD_BRANDS = [
    "visa", "master", "mastercard", "elo", "amex", "american express",
    "hipercard", "hiper", "diners", "cabal", "sorocred",
]

_brand_re = re.compile(r"\b(?:" + "|".join(re.escape(b) for b in CARD_BRANDS) + r")\b")

# First match wins; order matters ("cartao de debito" must not fall to the card fallback)
_RULES = [
    (PaymentMethod.PIX, ("pix",)),
    (PaymentMethod.BOLETO, ("boleto",)),
    (PaymentMethod.DEBITO, ("debito",)),
    (PaymentMethod.CREDITO, ("credito", "parcelado")),
    (PaymentMethod.DINHEIRO, ("dinheiro", "especie", "nota")),
]


def fold_text(text: str) -> str:
    """Lowercase and strip diacritics: 'Cartão de Crédito' -> 'cartao de credito'."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def normalize_payment_method(descriptor: Optional[str]) -> PaymentMethod:
    if not descriptor:
        return PaymentMethod.OUTRO

    text = fold_text(descriptor)
    if not text:
        return PaymentMethod.OUTRO

    for method, tokens in _RULES:
        if any(tok in text for tok in tokens):
            return method
        # Brands sit with "credito" but need word boundaries ("elo" in "cabelo")
        if method is PaymentMethod.CREDITO and _brand_re.search(text):
            return method

    # Bare "cartão"/"card" defaults to credit
    if "cartao" in text or "card" in text:
        return PaymentMethod.CREDITO

    return PaymentMethod.OUTRO
