#!/usr/bin/env python3
"""Cheap pre-check telling whether a buffer may hold a PKCS7 SignedData receipt.

The sniff walks DER headers by hand instead of loading the whole ContentInfo:
  ContentInfo ::= SEQUENCE {
      contentType   OBJECT IDENTIFIER,    -- must be 1.2.840.113549.1.7.2
      content   [0] EXPLICIT ANY OPTIONAL
  }
Anything unexpected yields False; the function never raises.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

_TAG_SEQUENCE = 0x30
_TAG_OID = 0x06

# DER body of OID 1.2.840.113549.1.7.2 (pkcs7-signedData)
_SIGNED_DATA_OID = bytes.fromhex('2a864886f70d010702')

# Marker for BER indefinite length (0x80)
INDEFINITE_LENGTH = -1


def read_length(buf: bytes, idx: int) -> Tuple[Optional[int], int]:
    """Read a DER/BER length at idx. Returns (length, next_index); length None on error."""
    if idx >= len(buf):
        return None, idx
    first = buf[idx]
    idx += 1
    if first == 0x80:
        return INDEFINITE_LENGTH, idx
    if first & 0x80:
        nbytes = first & 0x7F
        if nbytes > 8 or idx + nbytes > len(buf):
            return None, idx
        val = 0
        for _ in range(nbytes):
            val = (val << 8) | buf[idx]
            idx += 1
        return val, idx
    return first, idx


def looks_like_receipt(data: bytes) -> bool:
    """Return True if data starts like a ContentInfo wrapping SignedData."""
    try:
        if not data or len(data) < 2 or data[0] != _TAG_SEQUENCE:
            return False
        outer_len, pos = read_length(data, 1)
        if outer_len is None:
            return False
        if outer_len != INDEFINITE_LENGTH and pos + outer_len > len(data):
            logger.debug("Declared outer length %d exceeds buffer size %d", outer_len, len(data))
            return False
        if pos >= len(data) or data[pos] != _TAG_OID:
            return False
        oid_len, pos = read_length(data, pos + 1)
        if oid_len is None or oid_len == INDEFINITE_LENGTH:
            return False
        return data[pos:pos + oid_len] == _SIGNED_DATA_OID
    except (TypeError, IndexError) as e:
        logger.debug("Receipt sniff failed: %s", e)
        return False


__all__ = [
    'INDEFINITE_LENGTH',
    'looks_like_receipt',
    'read_length',
]
