#!/usr/bin/env python3
"""Attribute-SET decoder for the receipt payload and in-app purchase receipts.

Payload ::= SET OF ReceiptAttribute

ReceiptAttribute ::= SEQUENCE {
    type     INTEGER,
    version  INTEGER,       -- read, not interpreted
    value    OCTET STRING   -- DER of the type specific value
}

The SET is walked element by element so that one malformed record does not
take the rest of the receipt down with it. Records are accumulated per type in
document order: in-app purchases (type 17) legitimately repeat and every
occurrence is kept.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from asn1crypto import core, parser

from receipt_errors import (
    AttributeDecodeError,
    ReceiptDecodeError,
    RecursionLimitExceeded,
    SizeLimitExceeded,
    ValueDecodeError,
)
from receipt_loader import INDEFINITE_LENGTH, read_length
from receipt_types import (
    AttributeKey,
    AttributeType,
    DecodeBudget,
    DecoderLimits,
    DEFAULT_LIMITS,
    attribute_key,
    attribute_name,
)
from receipt_values import AttributeValue, ValueKind, decode_value

logger = logging.getLogger(__name__)


class ReceiptAttribute(core.Sequence):
    """ReceiptAttribute ASN.1 structure - SEQUENCE { type INTEGER, version INTEGER, value OCTET STRING }"""
    _fields = [
        ('type', core.Integer),
        ('version', core.Integer),
        ('value', core.OctetString),
    ]


class ReceiptPayload(core.SetOf):
    """Receipt payload ASN.1 structure - SET OF ReceiptAttribute"""
    _child_spec = ReceiptAttribute


class AttributeMap(Mapping):
    """Read-only mapping of attribute type to the tuple of its decoded values.

    Known types are keyed by AttributeType, unknown ones by their raw integer;
    both can be looked up with a plain int. errors lists the problems met while
    decoding this SET (nested purchase SETs keep their own).
    """

    def __init__(self, entries: Optional[Dict[AttributeKey, Iterable[AttributeValue]]] = None,
                 errors: Iterable[ReceiptDecodeError] = ()):
        self._entries = {key: tuple(values) for key, values in (entries or {}).items()}
        self._errors = tuple(errors)

    def __getitem__(self, key: int) -> Tuple[AttributeValue, ...]:
        return self._entries[key]

    def __iter__(self) -> Iterator[AttributeKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"AttributeMap({self._entries!r}, errors={len(self._errors)})"

    @property
    def errors(self) -> Tuple[ReceiptDecodeError, ...]:
        return self._errors

    def first(self, key: int) -> Optional[AttributeValue]:
        """First value recorded for key, or None when the type is absent."""
        values = self._entries.get(key)
        return values[0] if values else None

    def value(self, key: int, default: Any = None) -> Any:
        """Decoded Python value for key.

        Returns default when the type is absent and raises the recorded error
        when it is present but could not be decoded.
        """
        found = self.first(key)
        if found is None:
            return default
        if found.is_unparsable:
            raise found.error
        return found.value

    def all_errors(self) -> List[ReceiptDecodeError]:
        """Errors of this SET followed by those of every nested purchase SET."""
        collected = list(self._errors)
        for values in self._entries.values():
            for item in values:
                if item.kind is ValueKind.PURCHASE:
                    collected.extend(item.value.all_errors())
        return collected

    def to_native(self) -> Dict[str, Any]:
        """Plain dict keyed by attribute name; purchases are always a list."""
        result = {}
        for key, values in self._entries.items():
            natives = [item.to_native() for item in values]
            if key == AttributeType.IN_APP_PURCHASE or len(natives) > 1:
                result[attribute_name(key)] = natives
            else:
                result[attribute_name(key)] = natives[0]
        return result


def _element_size(contents: bytes, offset: int) -> int:
    """Encoded size of the TLV element starting at offset.

    Only the header is read; the remainder of the SET is never copied.
    Raises ValueError when the header is unreadable or overruns contents.
    """
    idx = offset + 1
    if contents[offset] & 0x1F == 0x1F:
        # High tag number form: base-128 continuation bytes
        while idx < len(contents) and contents[idx] & 0x80:
            idx += 1
        idx += 1
    length, idx = read_length(contents, idx)
    if length is None:
        raise ValueError(f"Unreadable length at offset {offset}")
    if length == INDEFINITE_LENGTH:
        return parser.peek(contents[offset:])
    if idx + length > len(contents):
        raise ValueError(f"Element at offset {offset} declares {length} bytes, "
                         f"only {len(contents) - idx} remain")
    return idx + length - offset


def _set_contents(data: bytes) -> bytes:
    """Return the contents octets of a SET, raising AttributeDecodeError otherwise."""
    try:
        payload = ReceiptPayload.load(data)
        contents = payload.contents
    except ValueError as e:
        raise AttributeDecodeError(f"Not an attribute SET: {e}") from e
    return contents or b''


def decode_attribute_set(data: bytes, *, depth: int = 0,
                         limits: Optional[DecoderLimits] = None,
                         budget: Optional[DecodeBudget] = None) -> AttributeMap:
    """Decode a SET OF ReceiptAttribute into an AttributeMap.

    Per-element failures are collected in the returned map's errors. Only input
    that is not a SET at all (or is larger than limits.max_set_size) raises.
    """
    limits = limits or DEFAULT_LIMITS
    budget = budget or DecodeBudget(limits)
    data = bytes(data)

    if len(data) > limits.max_set_size:
        raise SizeLimitExceeded(
            f"Attribute SET of {len(data)} bytes exceeds {limits.max_set_size} bytes", depth=depth)
    contents = _set_contents(data)

    entries: Dict[AttributeKey, List[AttributeValue]] = {}
    errors: List[ReceiptDecodeError] = []
    offset = 0
    index = 0

    while offset < len(contents):
        try:
            consumed = _element_size(contents, offset)
        except ValueError as e:
            # Element boundary lost, nothing after this point can be located
            errors.append(AttributeDecodeError(f"Unreadable attribute record: {e}", depth=depth, index=index))
            logger.warning("Stopped walking attribute SET at offset %d: %s", offset, e)
            break
        element = contents[offset:offset + consumed]
        offset += consumed

        if not budget.take():
            errors.append(SizeLimitExceeded(
                f"More than {limits.max_attributes} attribute records", depth=depth, index=index))
            logger.warning("Attribute limit of %d reached, skipping remaining records", limits.max_attributes)
            break

        try:
            record = ReceiptAttribute.load(element)
            code = record['type'].native
            version = record['version'].native
            octets = record['value'].native
        except ValueError as e:
            errors.append(AttributeDecodeError(f"Malformed attribute record: {e}", depth=depth, index=index))
            logger.warning("Skipping malformed attribute record %d at depth %d: %s", index, depth, e)
            index += 1
            continue

        key = attribute_key(code)
        logger.debug("Attribute %d: type=%s version=%s size=%d depth=%d",
                     index, attribute_name(key), version, len(octets), depth)
        try:
            value = decode_value(key, octets, depth=depth, limits=limits, budget=budget)
        except (RecursionLimitExceeded, SizeLimitExceeded) as e:
            e.attr_type = key
            e.index = index
            errors.append(e)
            logger.warning("Attribute %s not decoded: %s", attribute_name(key), e)
            value = AttributeValue.unparsable(octets, e)
        except ValueDecodeError as e:
            errors.append(e)
            logger.warning("Attribute %s is unparsable: %s", attribute_name(key), e)
            value = AttributeValue.unparsable(octets, e)

        entries.setdefault(key, []).append(value)
        index += 1

    logger.debug("Decoded %d attribute type(s) from %d record(s) at depth %d (%d error(s))",
                 len(entries), index, depth, len(errors))
    return AttributeMap(entries, errors)


__all__ = [
    'ReceiptAttribute',
    'ReceiptPayload',
    'AttributeMap',
    'decode_attribute_set',
]
