"""Canonical forms for device hardware identifiers.

Every lookup, uniqueness check and transfer match goes through ``normalize`` so
that ``"35-209900-176148-1"`` and ``"352099001761481"`` are the same IMEI, and
``"c02 xk-1"`` and ``"C02XK1"`` are the same serial number.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .exceptions import InvalidIdentifierError

IMEI_LENGTH = 15
SERIAL_MAX_LENGTH = 64

_SEPARATORS = re.compile(r"[\s\-./]+")
_IMEI = re.compile(r"\d{15}")
_SERIAL = re.compile(r"[A-Z0-9]+")


class IdentifierKind(str, Enum):
    IMEI = "imei"
    SERIAL = "serial"


@dataclass(frozen=True, slots=True)
class NormalizedId:
    kind: IdentifierKind
    value: str

    def __str__(self) -> str:
        return self.value


def _strip(raw: str) -> str:
    return _SEPARATORS.sub("", raw or "")


def normalize(raw: str, kind: IdentifierKind) -> NormalizedId:
    cleaned = _strip(raw)
    if kind is IdentifierKind.IMEI:
        if not _IMEI.fullmatch(cleaned):
            raise InvalidIdentifierError(f"IMEI must be {IMEI_LENGTH} digits")
        return NormalizedId(IdentifierKind.IMEI, cleaned)

    cleaned = cleaned.upper()
    if not cleaned or len(cleaned) > SERIAL_MAX_LENGTH or not _SERIAL.fullmatch(cleaned):
        raise InvalidIdentifierError(
            f"serial number must be 1-{SERIAL_MAX_LENGTH} letters or digits"
        )
    return NormalizedId(IdentifierKind.SERIAL, cleaned)


def candidates(raw: str) -> list[NormalizedId]:
    """Every valid reading of an identifier whose kind the caller does not know."""
    found: list[NormalizedId] = []
    for kind in (IdentifierKind.IMEI, IdentifierKind.SERIAL):
        try:
            normalized = normalize(raw, kind)
        except InvalidIdentifierError:
            continue
        if all(existing.value != normalized.value for existing in found):
            found.append(normalized)
    if not found:
        raise InvalidIdentifierError("not a valid IMEI or serial number")
    return found


__all__ = [
    "IMEI_LENGTH",
    "IdentifierKind",
    "NormalizedId",
    "candidates",
    "normalize",
]
