import datetime
import hashlib

import pytest

from certificate_parser import parse_certificate
from receipt_envelope import decode_envelope
from receipt_errors import MalformedEnvelope, NotAReceipt, ReceiptDecodeError
from receipt_loader import looks_like_receipt
from receipt_builders import (
    NOT_BEFORE,
    make_certificate,
    plain_data,
    sample_payload,
    signed_data_with_body,
    signed_receipt,
)


@pytest.fixture(scope='module')
def certificate_der():
    return make_certificate()


def test_payload_is_extracted(certificate_der):
    payload = sample_payload()
    envelope = decode_envelope(signed_receipt(payload, [certificate_der]))
    assert envelope.payload == payload


def test_certificate_fields(certificate_der):
    envelope = decode_envelope(signed_receipt(sample_payload(), [certificate_der]))
    assert len(envelope.certificates) == 1
    cert = envelope.certificates[0]
    assert 'Test Receipt Signer' in cert.subject
    assert ('common_name', 'Test Receipt Signer') in cert.subject_components
    assert cert.subject_components == cert.issuer_components
    assert cert.serial_number == 4242
    assert cert.not_before == NOT_BEFORE
    assert cert.not_after == NOT_BEFORE + datetime.timedelta(days=365)
    assert cert.der == certificate_der
    assert cert.sha256_fingerprint == hashlib.sha256(certificate_der).hexdigest()
    assert cert.sha1_fingerprint == hashlib.sha1(certificate_der).hexdigest()
    assert cert.public_key_algorithm == 'EC-secp256r1'
    assert cert.signature_algorithm
    assert cert.errors == ()


def test_signer_fields(certificate_der):
    envelope = decode_envelope(signed_receipt(sample_payload(), [certificate_der]))
    assert len(envelope.signers) == 1
    signer = envelope.signers[0]
    assert signer.version == 'v1'
    assert signer.serial_number == 4242
    assert signer.digest_algorithm == 'sha256'
    assert signer.signature_algorithm == 'sha256_ecdsa'
    assert signer.subject_key_identifier is None
    assert dict(signer.signed_attributes) == {}
    assert signer.matches(envelope.certificates[0])


def test_signer_does_not_match_other_certificate(certificate_der):
    envelope = decode_envelope(signed_receipt(sample_payload(), [certificate_der]))
    other = parse_certificate(make_certificate(common_name='Someone Else', serial=4242))
    assert not envelope.signers[0].matches(other)


def test_envelope_without_certificates():
    envelope = decode_envelope(signed_receipt(sample_payload()))
    assert envelope.certificates == []
    assert envelope.signers == []


def test_plain_data_is_not_a_receipt():
    with pytest.raises(NotAReceipt):
        decode_envelope(plain_data())


def test_garbage_is_not_a_receipt():
    with pytest.raises(NotAReceipt):
        decode_envelope(b'\x00\x01\x02\x03')
    with pytest.raises(ReceiptDecodeError):
        decode_envelope(b'')


def test_detached_content_is_malformed():
    with pytest.raises(MalformedEnvelope):
        decode_envelope(signed_receipt(sample_payload(), detached=True))


@pytest.mark.parametrize('body', [
    b'\x04\x03abc',
    b'\x30\x03\x02\x01',
    b'\x30\x03\x02\x01\x01',
])
def test_garbage_signed_data_is_malformed(body):
    data = signed_data_with_body(body)
    assert looks_like_receipt(data)
    with pytest.raises(MalformedEnvelope):
        decode_envelope(data)
