#!/usr/bin/env python3
"""
Certificate field extraction for the certificates embedded in a receipt envelope.

Structural fields (subject, issuer, serial, validity) come from asn1crypto and
must parse; the rest is augmentation collected best-effort:
 - cryptography: SHA-1 / SHA-256 fingerprints, public key algorithm
 - pyOpenSSL: OpenSSL's name for the signature algorithm
Augmentation failures land in Certificate.errors instead of raising.

This module intentionally does NOT perform chain validation or signature verification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from OpenSSL import crypto

logger = logging.getLogger(__name__)

NameComponents = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Certificate:
    subject: str
    issuer: str
    subject_components: NameComponents
    issuer_components: NameComponents
    serial_number: int
    not_before: Optional[datetime]
    not_after: Optional[datetime]
    signature_algorithm: Optional[str] = None
    public_key_algorithm: Optional[str] = None
    sha1_fingerprint: Optional[str] = None
    sha256_fingerprint: Optional[str] = None
    der: bytes = field(default=b'', repr=False)
    errors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subject': self.subject,
            'issuer': self.issuer,
            'serial_number': self.serial_number,
            'not_before': self.not_before,
            'not_after': self.not_after,
            'signature_algorithm': self.signature_algorithm,
            'public_key_algorithm': self.public_key_algorithm,
            'sha1_fingerprint': self.sha1_fingerprint,
            'sha256_fingerprint': self.sha256_fingerprint,
        }


def name_components(name: asn1_x509.Name) -> NameComponents:
    """Flatten an asn1crypto Name into ordered (attribute, value) pairs."""
    components = []
    for attr, value in name.native.items():
        if isinstance(value, list):
            for item in value:
                components.append((attr, str(item)))
        else:
            components.append((attr, str(value)))
    return tuple(components)


def _public_key_algorithm(crypto_cert: x509.Certificate) -> str:
    public_key = crypto_cert.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        return f"RSA-{public_key.key_size}"
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return f"EC-{public_key.curve.name}"
    return public_key.__class__.__name__


def parse_certificate(certificate: Union[bytes, asn1_x509.Certificate]) -> Certificate:
    """
    Parse a DER-encoded (or already loaded) X.509 certificate into a Certificate.

    Raises ValueError when the structural fields cannot be read.
    """
    if isinstance(certificate, asn1_x509.Certificate):
        asn1_cert = certificate
        der = certificate.dump()
    else:
        der = bytes(certificate)
        asn1_cert = asn1_x509.Certificate.load(der)

    errors = []

    # ---- asn1crypto structural fields (fatal on failure) ----
    tbs_certificate = asn1_cert['tbs_certificate']
    subject = tbs_certificate['subject']
    issuer = tbs_certificate['issuer']
    validity = tbs_certificate['validity'].native
    serial_number = tbs_certificate['serial_number'].native

    # ---- cryptography augmentation ----
    sha1_fingerprint = None
    sha256_fingerprint = None
    public_key_algorithm = None
    try:
        crypto_cert = x509.load_der_x509_certificate(der)
        sha1_fingerprint = crypto_cert.fingerprint(hashes.SHA1()).hex()
        sha256_fingerprint = crypto_cert.fingerprint(hashes.SHA256()).hex()
        public_key_algorithm = _public_key_algorithm(crypto_cert)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        errors.append(f"cryptography parsing failed: {e}")

    # ---- OpenSSL augmentation ----
    signature_algorithm = None
    try:
        openssl_cert = crypto.load_certificate(crypto.FILETYPE_ASN1, der)
        signature_algorithm = openssl_cert.get_signature_algorithm().decode('ascii')
    except (crypto.Error, ValueError) as e:
        errors.append(f"OpenSSL parsing failed: {e}")
    if signature_algorithm is None:
        signature_algorithm = asn1_cert['signature_algorithm']['algorithm'].native

    if errors:
        logger.debug("Certificate %s parsed with %d error(s): %s", subject.human_friendly, len(errors), errors)

    return Certificate(
        subject=subject.human_friendly,
        issuer=issuer.human_friendly,
        subject_components=name_components(subject),
        issuer_components=name_components(issuer),
        serial_number=serial_number,
        not_before=validity.get('not_before'),
        not_after=validity.get('not_after'),
        signature_algorithm=signature_algorithm,
        public_key_algorithm=public_key_algorithm,
        sha1_fingerprint=sha1_fingerprint,
        sha256_fingerprint=sha256_fingerprint,
        der=der,
        errors=tuple(errors),
    )


__all__ = [
    'Certificate',
    'name_components',
    'parse_certificate',
]
