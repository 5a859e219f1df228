from __future__ import annotations

import hashlib
import ipaddress
import re
from typing import Any

from fastapi import Request


_CNPJ_LENGTH = 14
_DANGEROUS_CHARACTERS = re.compile(r"[<>\"'&]")
_MAX_SANITIZED_LENGTH = 1000


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def _cnpj_check_digit(digits: str) -> int:
    total = 0
    weight = 2
    for char in reversed(digits):
        total += int(char) * weight
        weight = 2 if weight == 9 else weight + 1
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def validate_cnpj(value: str | None) -> bool:
    """Check a Brazilian company registration number (CNPJ).

    Formatting characters are ignored; the remaining digits must be 14 long,
    not all identical, and end with the two mod-11 check digits.
    """
    if not value:
        return False
    digits = re.sub(r"\D", "", value)
    if len(digits) != _CNPJ_LENGTH:
        return False
    if len(set(digits)) == 1:
        return False
    if _cnpj_check_digit(digits[:12]) != int(digits[12]):
        return False
    return _cnpj_check_digit(digits[:13]) == int(digits[13])


def sanitize_input(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return _DANGEROUS_CHARACTERS.sub("", value).strip()[:_MAX_SANITIZED_LENGTH]


def _parse_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def resolve_client_ip(request: Request) -> str:
    # Edge proxies forward the original client address via canonical headers.
    forwarded = _parse_ip(request.headers.get("cf-connecting-ip")) or _parse_ip(
        request.headers.get("true-client-ip")
    )
    if forwarded:
        return forwarded
    direct_host = request.client.host if request.client else None
    return _parse_ip(direct_host) or (direct_host or "unknown")
