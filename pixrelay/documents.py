"""Buyer document (CPF) and phone normalization for gateway payloads."""
import random
import re
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

FALLBACK_PHONE = "5511987654321"

_NON_DIGITS = re.compile(r"\D")
_REPEATED = re.compile(r"^(.)\1+$")


def only_digits(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


def _check_digit(digits: str) -> int:
    weight = len(digits) + 1
    total = sum(int(d) * (weight - i) for i, d in enumerate(digits))
    rest = total % 11
    return 0 if rest < 2 else 11 - rest


def is_valid_cpf(cpf: str) -> bool:
    cpf = only_digits(cpf)
    if len(cpf) != 11 or _REPEATED.match(cpf):
        return False
    first = _check_digit(cpf[:9])
    second = _check_digit(cpf[:9] + str(first))
    return cpf[9:] == f"{first}{second}"


def generate_cpf(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    while True:
        base = "".join(str(rng.randint(0, 9)) for _ in range(9))
        first = _check_digit(base)
        cpf = f"{base}{first}{_check_digit(base + str(first))}"
        # Repeated digits pass the checksum but gateways reject them
        if not _REPEATED.match(cpf):
            return cpf


def normalize_document(document: Optional[str]) -> str:
    cpf = only_digits(document)
    if not cpf:
        cpf = generate_cpf()
        logger.warning("document_missing_generated", document=cpf)
    elif len(cpf) == 11 and _REPEATED.match(cpf):
        cpf = generate_cpf()
        logger.warning("document_repeated_replaced", document=cpf)
    return cpf


def normalize_phone(phone: Optional[str]) -> str:
    digits = only_digits(phone)
    if digits and not digits.startswith("55"):
        if len(digits) == 9:
            digits = f"5511{digits}"
        elif len(digits) in (10, 11):
            digits = f"55{digits}"
    if len(digits) < 12:
        digits = FALLBACK_PHONE
    return digits[:13]
