#!/usr/bin/env python3
"""PKCS7 SignedData envelope decoding for App Store receipts.

ContentInfo { content_type = signed_data, content = SignedData {
    digest_algorithms, encap_content_info { content_type, content },
    certificates, signer_infos } }

The encapsulated content is the attribute SET payload. Receipts always carry it
attached; a detached signature is a malformed envelope here.
"""
from __future__ import annotations

import logging
from typing import List, NamedTuple

from asn1crypto import cms, core

from certificate_parser import Certificate, parse_certificate
from receipt_errors import MalformedEnvelope, NotAReceipt
from receipt_loader import looks_like_receipt
from signer_parser import Signer, parse_signer_info

logger = logging.getLogger(__name__)


class Envelope(NamedTuple):
    certificates: List[Certificate]
    signers: List[Signer]
    payload: bytes


def _extract_certificates(signed_data: cms.SignedData) -> List[Certificate]:
    """Parse the embedded certificate set in document order."""
    cert_set = signed_data['certificates']
    if isinstance(cert_set, core.Void):
        logger.info("Envelope carries no certificates")
        return []
    certificates = []
    for index, choice in enumerate(cert_set):
        if choice.name != 'certificate':
            logger.warning("Skipping certificate %d of unsupported kind %s", index, choice.name)
            continue
        certificate = parse_certificate(choice.chosen)
        logger.info("[Cert %d] subject: %s | issuer: %s", index, certificate.subject, certificate.issuer)
        certificates.append(certificate)
    return certificates


def _extract_signers(signed_data: cms.SignedData) -> List[Signer]:
    return [parse_signer_info(info) for info in signed_data['signer_infos']]


def _extract_payload(signed_data: cms.SignedData) -> bytes:
    encap_content_info = signed_data['encap_content_info']
    content_type = encap_content_info['content_type'].native
    if content_type != 'data':
        logger.warning("Unexpected encapsulated content type %s", content_type)
    content = encap_content_info['content']
    if isinstance(content, core.Void):
        raise MalformedEnvelope("SignedData has no encapsulated content (detached signature)")
    payload = content.native
    if not isinstance(payload, bytes):
        raise MalformedEnvelope(f"Encapsulated content is not an OCTET STRING ({type(payload).__name__})")
    return payload


def decode_envelope(data: bytes) -> Envelope:
    """Decode the PKCS7 envelope into certificates, signers and the raw payload."""
    logger.info("Decoding PKCS7 envelope (%d bytes)", len(data))
    try:
        content_info = cms.ContentInfo.load(bytes(data))
        content_type = content_info['content_type'].native
    except ValueError as e:
        if looks_like_receipt(data):
            raise MalformedEnvelope(f"Malformed SignedData ContentInfo: {e}") from e
        raise NotAReceipt(f"Not a PKCS7 ContentInfo: {e}") from e

    if content_type != 'signed_data':
        raise NotAReceipt(f"Unexpected content type {content_type}, expected signed_data")

    try:
        signed_data = content_info['content']
        if isinstance(signed_data, core.Void):
            raise MalformedEnvelope("ContentInfo has no SignedData content")
        payload = _extract_payload(signed_data)
        certificates = _extract_certificates(signed_data)
        signers = _extract_signers(signed_data)
    except MalformedEnvelope:
        raise
    except (ValueError, KeyError, TypeError) as e:
        raise MalformedEnvelope(f"Malformed SignedData: {e}") from e

    logger.info("Envelope: %d certificate(s), %d signer(s), payload %d bytes",
                len(certificates), len(signers), len(payload))
    return Envelope(certificates, signers, payload)


__all__ = [
    'Envelope',
    'decode_envelope',
]
