"""Signer-info extraction for the receipt envelope (structure only, no signature check)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from asn1crypto import cms, core

from certificate_parser import Certificate, NameComponents, name_components

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signer:
    version: str
    issuer: Optional[str]
    issuer_components: NameComponents
    serial_number: Optional[int]
    subject_key_identifier: Optional[bytes]
    digest_algorithm: str
    signature_algorithm: str
    signature: bytes = field(default=b'', repr=False)
    signed_attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def matches(self, certificate: Certificate) -> bool:
        """True if certificate is the one this signer names by issuer and serial number."""
        if self.serial_number is None:
            return False
        return (certificate.serial_number == self.serial_number
                and certificate.issuer_components == self.issuer_components)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'issuer': self.issuer,
            'serial_number': self.serial_number,
            'subject_key_identifier': self.subject_key_identifier,
            'digest_algorithm': self.digest_algorithm,
            'signature_algorithm': self.signature_algorithm,
            'signature': self.signature,
            'signed_attributes': dict(self.signed_attributes),
        }


def _signed_attributes(signer_info: cms.SignerInfo) -> Mapping[str, Any]:
    signed_attrs = signer_info['signed_attrs']
    if isinstance(signed_attrs, core.Void):
        return MappingProxyType({})
    result = {}
    for attr in signed_attrs:
        attr_type = attr['type'].native
        try:
            values = attr['values'].native
        except ValueError as e:
            logger.debug("Signed attribute %s not decodable, keeping raw: %s", attr_type, e)
            values = attr['values'].dump()
        result[attr_type] = values
    return MappingProxyType(result)


def parse_signer_info(signer_info: cms.SignerInfo) -> Signer:
    """Extract a Signer from an asn1crypto SignerInfo. Raises ValueError on malformed input."""
    sid = signer_info['sid']
    issuer = None
    issuer_components: NameComponents = ()
    serial_number = None
    subject_key_identifier = None
    if sid.name == 'issuer_and_serial_number':
        issuer_name = sid.chosen['issuer']
        issuer = issuer_name.human_friendly
        issuer_components = name_components(issuer_name)
        serial_number = sid.chosen['serial_number'].native
    else:
        subject_key_identifier = sid.chosen.native

    signer = Signer(
        version=signer_info['version'].native,
        issuer=issuer,
        issuer_components=issuer_components,
        serial_number=serial_number,
        subject_key_identifier=subject_key_identifier,
        digest_algorithm=signer_info['digest_algorithm']['algorithm'].native,
        signature_algorithm=signer_info['signature_algorithm']['algorithm'].native,
        signature=signer_info['signature'].native,
        signed_attributes=_signed_attributes(signer_info),
    )
    logger.debug("Signer %s serial=%s digest=%s", issuer or 'ski', serial_number, signer.digest_algorithm)
    return signer


__all__ = [
    'Signer',
    'parse_signer_info',
]
