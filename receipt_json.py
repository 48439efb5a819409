"""
JSON export of a decoded receipt for renderers and other external consumers.
"""

import json
import logging
from datetime import datetime

from receipt import Receipt

logger = logging.getLogger(__name__)


def _format_value(value):
    """Make decoded values JSON friendly: bytes as 0x-hex, datetimes as ISO 8601."""
    if isinstance(value, bytes):
        return f"0x{value.hex()}"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _format_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_format_value(item) for item in value]
    return value


def receipt_to_dict(receipt: Receipt) -> dict:
    """Tree of plain data: unparsable attributes map to {'unparsable': reason}, diagnostics to strings."""
    result = {
        'certificates': [cert.to_dict() for cert in receipt.certificates],
        'signers': [signer.to_dict() for signer in receipt.signers],
        'attributes': receipt.attributes.to_native(),
        'diagnostics': [str(error) for error in receipt.diagnostics],
    }
    return _format_value(result)


def receipt_to_json(receipt: Receipt) -> str:
    """Convert a receipt to a JSON string"""
    result = receipt_to_dict(receipt)
    logger.debug("Serialized receipt with %d attribute type(s)", len(result['attributes']))
    return json.dumps(result, indent=2, default=str)
