#!/usr/bin/env python3
"""App Store receipt: decoded certificates, signers and attributes of one receipt file.

    receipt = Receipt.from_bytes(data)
    receipt.bundle_id                  # 'com.example.app', or None when absent
    receipt.in_app_purchases           # tuple of AttributeMap, one per purchase
    receipt.diagnostics                # recoverable problems met while decoding

A Receipt is immutable. Decoding is synchronous, touches no shared state and can
run from several threads at once.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from certificate_parser import Certificate
from receipt_attributes import AttributeMap, decode_attribute_set
from receipt_envelope import decode_envelope
from receipt_errors import AttributeDecodeError, ReceiptDecodeError
from receipt_loader import looks_like_receipt
from receipt_types import AttributeType, DecodeBudget, DecoderLimits, DEFAULT_LIMITS
from receipt_values import AttributeValue, ValueKind
from signer_parser import Signer

logger = logging.getLogger(__name__)


class Receipt:
    """Aggregate of everything decoded from a receipt file."""

    looks_like_receipt = staticmethod(looks_like_receipt)

    def __init__(self, certificates: Sequence[Certificate], signers: Sequence[Signer],
                 attributes: AttributeMap):
        self._certificates = tuple(certificates)
        self._signers = tuple(signers)
        self._attributes = attributes

    @classmethod
    def from_bytes(cls, data: bytes, *, limits: Optional[DecoderLimits] = None) -> 'Receipt':
        """Decode a receipt.

        Raises NotAReceipt or MalformedEnvelope when the envelope cannot be
        trusted; attribute level problems end up in diagnostics instead.
        """
        limits = limits or DEFAULT_LIMITS
        logger.info("======= Decode receipt (%d bytes) =======", len(data))
        envelope = decode_envelope(data)

        budget = DecodeBudget(limits)
        try:
            attributes = decode_attribute_set(envelope.payload, limits=limits, budget=budget)
        except AttributeDecodeError as e:
            logger.warning("Receipt payload could not be decoded: %s", e)
            attributes = AttributeMap(errors=[e])

        receipt = cls(envelope.certificates, envelope.signers, attributes)
        diagnostics = receipt.diagnostics
        if diagnostics:
            logger.warning("Receipt decoded with %d diagnostic(s)", len(diagnostics))
        logger.info("Receipt attributes: %d type(s), %d in-app purchase(s)",
                    len(attributes), len(receipt.in_app_purchases))
        return receipt

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Receipt):
            return NotImplemented
        return (self._certificates == other._certificates
                and self._signers == other._signers
                and self._attributes == other._attributes)

    __hash__ = None

    def __repr__(self) -> str:
        return (f"Receipt(bundle_id={self._safe(AttributeType.BUNDLE_ID)!r}, "
                f"certificates={len(self._certificates)}, signers={len(self._signers)}, "
                f"attributes={len(self._attributes)})")

    def _safe(self, attr_type: int) -> Any:
        try:
            return self.value(attr_type)
        except ReceiptDecodeError:
            return 'n/a'

    @property
    def certificates(self) -> Tuple[Certificate, ...]:
        return self._certificates

    @property
    def signers(self) -> Tuple[Signer, ...]:
        return self._signers

    @property
    def attributes(self) -> AttributeMap:
        return self._attributes

    @property
    def diagnostics(self) -> List[ReceiptDecodeError]:
        return self._attributes.all_errors()

    def signer_certificate(self, signer: Signer) -> Optional[Certificate]:
        for certificate in self._certificates:
            if signer.matches(certificate):
                return certificate
        return None

    def attribute(self, attr_type: int) -> Optional[AttributeValue]:
        return self._attributes.first(attr_type)

    def values(self, attr_type: int) -> Tuple[AttributeValue, ...]:
        return self._attributes.get(attr_type, ())

    def value(self, attr_type: int, default: Any = None) -> Any:
        """Decoded value of attr_type: default when absent, raises when unparsable."""
        return self._attributes.value(attr_type, default)

    @property
    def bundle_id(self) -> Optional[str]:
        return self.value(AttributeType.BUNDLE_ID)

    @property
    def bundle_version(self) -> Optional[str]:
        return self.value(AttributeType.BUNDLE_VERSION)

    @property
    def opaque_value(self) -> Optional[bytes]:
        return self.value(AttributeType.OPAQUE_VALUE)

    @property
    def sha1_hash(self) -> Optional[bytes]:
        return self.value(AttributeType.HASH)

    @property
    def creation_date(self) -> Optional[datetime]:
        return self.value(AttributeType.CREATION_DATE)

    @property
    def original_application_version(self) -> Optional[str]:
        return self.value(AttributeType.ORIGINAL_APPLICATION_VERSION)

    @property
    def expiration_date(self) -> Optional[datetime]:
        return self.value(AttributeType.EXPIRATION_DATE)

    @property
    def in_app_purchases(self) -> Tuple[AttributeMap, ...]:
        return tuple(item.value for item in self.values(AttributeType.IN_APP_PURCHASE)
                     if item.kind is ValueKind.PURCHASE)


__all__ = [
    'Receipt',
]
