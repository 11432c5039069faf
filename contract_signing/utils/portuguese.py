"""Brazilian Portuguese text processing utilities"""

import re
import unicodedata
from datetime import date, datetime
from typing import Optional

MONTHS = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def fold_accents(text: str) -> str:
    """Lowercase and strip diacritics, e.g. "Procuração" -> "procuracao"."""
    decomposed = unicodedata.normalize("NFD", text.casefold())
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def clean_text(text: str) -> str:
    """Clean text by removing extra whitespace"""
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def long_date(value: date) -> str:
    """Date in legal long form: "5 de março de 2026"."""
    return f"{value.day} de {MONTHS[value.month - 1]} de {value.year}"


def short_date(value: date) -> str:
    """Date as dd/mm/yyyy"""
    return value.strftime("%d/%m/%Y")


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y %H:%M:%S")


def only_digits(text: Optional[str]) -> str:
    return re.sub(r"\D", "", text or "")


def normalize_phone(phone: Optional[str]) -> str:
    """Normalize a Brazilian phone number to E.164 digits (55 + DDD + number).

    >>> normalize_phone("(11) 98765-4321")
    '5511987654321'
    >>> normalize_phone("011 98765-4321")
    '5511987654321'
    """
    digits = only_digits(phone)
    if not digits:
        return ""
    if digits.startswith("0"):
        digits = digits[1:]
    if not digits.startswith("55"):
        digits = "55" + digits
    return digits


def format_cpf(cpf: Optional[str]) -> str:
    """Format 11 digits as 000.000.000-00; anything else is returned as given."""
    digits = only_digits(cpf)
    if len(digits) != 11:
        return cpf or ""
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def format_cnpj(cnpj: Optional[str]) -> str:
    """Format 14 digits as 00.000.000/0000-00."""
    digits = only_digits(cnpj)
    if len(digits) != 14:
        return cnpj or ""
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"
