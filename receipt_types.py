"""Attribute type codes and decoder limits shared by the attribute and value decoders."""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Union


class AttributeType(IntEnum):
    """Known attribute type codes of the receipt and in-app purchase payloads."""
    BUNDLE_ID = 2
    BUNDLE_VERSION = 3
    OPAQUE_VALUE = 4
    HASH = 5
    CREATION_DATE = 12
    IN_APP_PURCHASE = 17
    ORIGINAL_APPLICATION_VERSION = 19
    EXPIRATION_DATE = 21
    QUANTITY = 1701
    PRODUCT_IDENTIFIER = 1702
    TRANSACTION_IDENTIFIER = 1703
    PURCHASE_DATE = 1704
    ORIGINAL_TRANSACTION_IDENTIFIER = 1705
    ORIGINAL_PURCHASE_DATE = 1706
    SUBSCRIPTION_EXPIRATION_DATE = 1708
    WEB_ORDER_LINE_ITEM_ID = 1711
    CANCELLATION_DATE = 1712
    SUBSCRIPTION_INTRODUCTORY_PRICE_PERIOD = 1719


# Unknown codes stay plain ints
AttributeKey = Union[AttributeType, int]


def attribute_key(code: int) -> AttributeKey:
    """Map a raw type code to its AttributeType, or keep the int when unknown."""
    try:
        return AttributeType(code)
    except ValueError:
        return code


def attribute_name(key: AttributeKey) -> str:
    if isinstance(key, AttributeType):
        return key.name.lower()
    return f"unrecognized_{key}"


STRING_TYPES = frozenset({
    AttributeType.BUNDLE_ID,
    AttributeType.BUNDLE_VERSION,
    AttributeType.ORIGINAL_APPLICATION_VERSION,
    AttributeType.PRODUCT_IDENTIFIER,
    AttributeType.TRANSACTION_IDENTIFIER,
    AttributeType.ORIGINAL_TRANSACTION_IDENTIFIER,
})

INTEGER_TYPES = frozenset({
    AttributeType.QUANTITY,
    AttributeType.WEB_ORDER_LINE_ITEM_ID,
    AttributeType.SUBSCRIPTION_INTRODUCTORY_PRICE_PERIOD,
})

DATE_TYPES = frozenset({
    AttributeType.CREATION_DATE,
    AttributeType.EXPIRATION_DATE,
    AttributeType.PURCHASE_DATE,
    AttributeType.ORIGINAL_PURCHASE_DATE,
    AttributeType.SUBSCRIPTION_EXPIRATION_DATE,
    AttributeType.CANCELLATION_DATE,
})

BYTES_TYPES = frozenset({
    AttributeType.OPAQUE_VALUE,
    AttributeType.HASH,
})


@dataclass(frozen=True)
class DecoderLimits:
    """Resource guards applied to one decode call."""
    max_depth: int = 8
    max_attributes: int = 65536
    max_set_size: int = 16 * 1024 * 1024


DEFAULT_LIMITS = DecoderLimits()


class DecodeBudget:
    """Attribute counter owned by a single decode call."""

    def __init__(self, limits: DecoderLimits):
        self.limits = limits
        self.consumed = 0

    def take(self) -> bool:
        """Consume one attribute slot; False once the ceiling is reached."""
        if self.consumed >= self.limits.max_attributes:
            return False
        self.consumed += 1
        return True
