"""Value decoder for receipt attribute records.

Every attribute record carries its value as an OCTET STRING whose contents are
another DER encoding. Which ASN.1 primitive sits inside depends on the record
type:

  strings   UTF8String or IA5String        bundle id, versions, product and transaction ids
  integers  INTEGER                        quantity, web order line item id, intro price period
  dates     IA5String, RFC 3339 timestamp  creation / expiration / purchase / cancellation dates
  bytes     left as is                     opaque value, SHA-1 hash, unrecognized types
  purchase  SET OF attribute records       in-app purchase receipt (type 17), decoded recursively

Integers widen: the exact value is kept as a Python int, whatever its size.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple

from asn1crypto import core

from receipt_errors import (
    AttributeDecodeError,
    ReceiptDecodeError,
    RecursionLimitExceeded,
    SizeLimitExceeded,
    ValueDecodeError,
)
from receipt_types import (
    AttributeKey,
    AttributeType,
    BYTES_TYPES,
    DATE_TYPES,
    DecodeBudget,
    DecoderLimits,
    DEFAULT_LIMITS,
    INTEGER_TYPES,
    STRING_TYPES,
    attribute_key,
)

logger = logging.getLogger(__name__)


class ValueKind(Enum):
    UTF8 = 'utf8'
    ASCII = 'ascii'
    INTEGER = 'integer'
    DATE = 'date'
    BYTES = 'bytes'
    PURCHASE = 'purchase'
    UNPARSABLE = 'unparsable'


@dataclass(frozen=True)
class AttributeValue:
    """One decoded attribute value.

    kind tells how to read value: str for UTF8/ASCII, int for INTEGER, an aware
    datetime (or None for an empty timestamp) for DATE, bytes for BYTES, an
    AttributeMap for PURCHASE and None for UNPARSABLE. raw keeps the OCTET
    STRING contents the value was decoded from.
    """
    kind: ValueKind
    value: Any
    raw: bytes = field(default=b'', repr=False)
    error: Optional[ReceiptDecodeError] = field(default=None, compare=False)

    @classmethod
    def unparsable(cls, raw: bytes, error: ReceiptDecodeError) -> 'AttributeValue':
        return cls(ValueKind.UNPARSABLE, None, raw, error)

    @property
    def is_unparsable(self) -> bool:
        return self.kind is ValueKind.UNPARSABLE

    def to_native(self) -> Any:
        """Plain Python form; an unparsable value becomes {'unparsable': reason}."""
        if self.kind is ValueKind.PURCHASE:
            return self.value.to_native()
        if self.kind is ValueKind.UNPARSABLE:
            return {'unparsable': str(self.error) if self.error is not None else ''}
        return self.value


def _load_text(attr_type: AttributeKey, octets: bytes) -> Tuple[ValueKind, str]:
    """Decode a UTF8String or IA5String, returning its kind and text."""
    try:
        parsed = core.load(octets)
    except ValueError as e:
        raise ValueDecodeError(f"Invalid string encoding: {e}", attr_type) from e

    if isinstance(parsed, core.UTF8String):
        kind = ValueKind.UTF8
    elif isinstance(parsed, core.IA5String):
        kind = ValueKind.ASCII
    else:
        raise ValueDecodeError(
            f"Expected UTF8String or IA5String, found {parsed.__class__.__name__}", attr_type)

    try:
        text = parsed.native
    except ValueError as e:  # UnicodeDecodeError included
        raise ValueDecodeError(f"Invalid {kind.value} text: {e}", attr_type) from e
    return kind, text.strip('\x00')


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp such as 2013-08-01T07:00:00Z into an aware datetime."""
    normalized = text.strip()
    if normalized[-1:] in ('Z', 'z'):
        normalized = normalized[:-1] + '+00:00'
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decode_string(attr_type: AttributeKey, octets: bytes) -> AttributeValue:
    kind, text = _load_text(attr_type, octets)
    return AttributeValue(kind, text, octets)


def _decode_integer(attr_type: AttributeKey, octets: bytes) -> AttributeValue:
    try:
        number = core.Integer.load(octets).native
    except ValueError as e:
        raise ValueDecodeError(f"Invalid INTEGER: {e}", attr_type) from e
    return AttributeValue(ValueKind.INTEGER, number, octets)


def _decode_date(attr_type: AttributeKey, octets: bytes) -> AttributeValue:
    _, text = _load_text(attr_type, octets)
    if not text.strip():
        return AttributeValue(ValueKind.DATE, None, octets)
    try:
        timestamp = parse_timestamp(text)
    except ValueError as e:
        raise ValueDecodeError(f"Invalid timestamp {text!r}: {e}", attr_type) from e
    return AttributeValue(ValueKind.DATE, timestamp, octets)


def _decode_purchase(octets: bytes, depth: int, limits: DecoderLimits,
                     budget: Optional[DecodeBudget]) -> AttributeValue:
    # receipt_attributes imports this module
    from receipt_attributes import decode_attribute_set

    if depth + 1 > limits.max_depth:
        raise RecursionLimitExceeded(
            f"In-app purchase nesting exceeds maximum depth {limits.max_depth}",
            attr_type=AttributeType.IN_APP_PURCHASE, depth=depth)
    try:
        nested = decode_attribute_set(octets, depth=depth + 1, limits=limits, budget=budget)
    except (RecursionLimitExceeded, SizeLimitExceeded):
        raise
    except AttributeDecodeError as e:
        raise ValueDecodeError(f"Invalid in-app purchase receipt: {e}", AttributeType.IN_APP_PURCHASE) from e
    return AttributeValue(ValueKind.PURCHASE, nested, octets)


def decode_value(attr_type: int, octets: bytes, *, depth: int = 0,
                 limits: Optional[DecoderLimits] = None,
                 budget: Optional[DecodeBudget] = None) -> AttributeValue:
    """Decode the OCTET STRING contents of one attribute according to its type."""
    limits = limits or DEFAULT_LIMITS
    key = attribute_key(int(attr_type))
    octets = bytes(octets)

    if key == AttributeType.IN_APP_PURCHASE:
        return _decode_purchase(octets, depth, limits, budget)
    if key in STRING_TYPES:
        return _decode_string(key, octets)
    if key in INTEGER_TYPES:
        return _decode_integer(key, octets)
    if key in DATE_TYPES:
        return _decode_date(key, octets)
    if key not in BYTES_TYPES:
        logger.debug("Unrecognized attribute type %d kept as %d raw bytes", key, len(octets))
    return AttributeValue(ValueKind.BYTES, octets, octets)


__all__ = [
    'ValueKind',
    'AttributeValue',
    'decode_value',
    'parse_timestamp',
]
