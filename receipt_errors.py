"""Exception types raised or collected while decoding an App Store receipt.

Envelope level errors (NotAReceipt, MalformedEnvelope) abort the decode.
Attribute and value level errors are collected next to the decoded data so
that one corrupt field never hides the rest of the receipt.
"""
from __future__ import annotations

from typing import Optional


class ReceiptDecodeError(ValueError):
    """Base class for every receipt decoding failure."""


class NotAReceipt(ReceiptDecodeError):
    """The buffer is not a PKCS7 SignedData container."""


class MalformedEnvelope(ReceiptDecodeError):
    """The SignedData envelope is structurally invalid or carries no content."""


class AttributeDecodeError(ReceiptDecodeError):
    """One attribute record of a SET could not be decoded."""

    def __init__(self, message: str, attr_type: Optional[int] = None, depth: int = 0, index: Optional[int] = None):
        super().__init__(message)
        self.attr_type = attr_type
        self.depth = depth
        self.index = index

    def __str__(self) -> str:
        where = []
        if self.attr_type is not None:
            where.append(f"type {self.attr_type}")
        if self.index is not None:
            where.append(f"element {self.index}")
        if self.depth:
            where.append(f"depth {self.depth}")
        message = super().__str__()
        return f"{message} ({', '.join(where)})" if where else message


class RecursionLimitExceeded(AttributeDecodeError):
    """Nested in-app purchase SETs went deeper than the configured limit."""


class SizeLimitExceeded(AttributeDecodeError):
    """Attribute count or nested SET size went past the configured ceiling."""


class ValueDecodeError(ReceiptDecodeError):
    """An attribute value did not match the ASN.1 primitive its type carries."""

    def __init__(self, message: str, attr_type: Optional[int] = None):
        super().__init__(message)
        self.attr_type = attr_type


__all__ = [
    'ReceiptDecodeError',
    'NotAReceipt',
    'MalformedEnvelope',
    'AttributeDecodeError',
    'RecursionLimitExceeded',
    'SizeLimitExceeded',
    'ValueDecodeError',
]
