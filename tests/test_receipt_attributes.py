import time

import pytest

from receipt_attributes import AttributeMap, decode_attribute_set
from receipt_errors import (
    AttributeDecodeError,
    RecursionLimitExceeded,
    SizeLimitExceeded,
    ValueDecodeError,
)
from receipt_types import AttributeType, DecoderLimits
from receipt_values import ValueKind
from receipt_builders import attribute, der_set, ia5, integer, purchase, utf8


def test_bundle_id_and_version():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        attribute(3, utf8('1.0')),
    ))
    assert attributes[AttributeType.BUNDLE_ID][0].value == 'com.example.app'
    assert attributes[3][0].value == '1.0'
    assert attributes.value(AttributeType.BUNDLE_VERSION) == '1.0'
    assert not attributes.errors


def test_every_purchase_is_kept_in_order():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        purchase(attribute(1702, utf8('a')), attribute(1701, integer(1))),
        purchase(attribute(1702, utf8('b')), attribute(1701, integer(2))),
        purchase(attribute(1702, utf8('c')), attribute(1701, integer(3))),
    ))
    purchases = attributes[AttributeType.IN_APP_PURCHASE]
    assert len(purchases) == 3
    assert all(item.kind is ValueKind.PURCHASE for item in purchases)
    assert [item.value.value(AttributeType.PRODUCT_IDENTIFIER) for item in purchases] == ['a', 'b', 'c']
    assert [item.value.value(AttributeType.QUANTITY) for item in purchases] == [1, 2, 3]
    for item in purchases:
        assert item.value == decode_attribute_set(item.raw)


def test_duplicate_singular_type_keeps_all_first_wins():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('first')),
        attribute(2, utf8('second')),
    ))
    assert [item.value for item in attributes[2]] == ['first', 'second']
    assert attributes.value(2) == 'first'


def test_unknown_type_is_kept_under_its_code():
    attributes = decode_attribute_set(der_set(attribute(9999, b'\x01\x02')))
    assert 9999 in attributes
    assert attributes[9999][0].kind is ValueKind.BYTES
    assert attributes.to_native() == {'unrecognized_9999': b'\x01\x02'}


def test_version_field_is_ignored():
    attributes = decode_attribute_set(der_set(attribute(2, utf8('com.example.app'), version=7)))
    assert attributes.value(2) == 'com.example.app'


def test_truncated_value_is_marked_unparsable():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        attribute(1701, b'\x02\x04\x00\x01'),
    ))
    assert attributes.value(AttributeType.BUNDLE_ID) == 'com.example.app'
    corrupt = attributes.first(AttributeType.QUANTITY)
    assert corrupt is not None
    assert corrupt.is_unparsable
    assert isinstance(corrupt.error, ValueDecodeError)
    with pytest.raises(ValueDecodeError):
        attributes.value(AttributeType.QUANTITY)
    assert len(attributes.errors) == 1


def test_absent_versus_unparsable():
    attributes = decode_attribute_set(der_set(attribute(12, ia5('not a date'))))
    assert attributes.value(AttributeType.EXPIRATION_DATE, 'n/a') == 'n/a'
    with pytest.raises(ValueDecodeError):
        attributes.value(AttributeType.CREATION_DATE, 'n/a')


def test_malformed_element_does_not_stop_the_walk():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        integer(5),
        attribute(3, utf8('1.0')),
    ))
    assert attributes.value(2) == 'com.example.app'
    assert attributes.value(3) == '1.0'
    assert len(attributes.errors) == 1
    error = attributes.errors[0]
    assert isinstance(error, AttributeDecodeError)
    assert error.index == 1


def test_not_a_set_raises():
    with pytest.raises(AttributeDecodeError):
        decode_attribute_set(utf8('not a set'))
    with pytest.raises(AttributeDecodeError):
        decode_attribute_set(b'')


def test_empty_set():
    attributes = decode_attribute_set(der_set())
    assert len(attributes) == 0
    assert attributes.first(2) is None


def _nested_purchases(levels):
    node = attribute(1702, utf8('leaf'))
    for _ in range(levels):
        node = attribute(17, der_set(node))
    return node


def test_depth_guard_stops_crafted_nesting():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        _nested_purchases(12),
    ))
    assert attributes.value(AttributeType.BUNDLE_ID) == 'com.example.app'

    current = attributes
    levels = 0
    while True:
        item = current.first(AttributeType.IN_APP_PURCHASE)
        if item.is_unparsable:
            break
        current = item.value
        levels += 1
    assert levels == 8
    assert isinstance(item.error, RecursionLimitExceeded)

    errors = attributes.all_errors()
    assert len(errors) == 1
    assert isinstance(errors[0], RecursionLimitExceeded)
    assert errors[0].attr_type == AttributeType.IN_APP_PURCHASE


def test_configured_depth_allows_single_purchase_level():
    limits = DecoderLimits(max_depth=1)
    single = decode_attribute_set(der_set(purchase(attribute(1702, utf8('a')))), limits=limits)
    assert not single.all_errors()

    nested = decode_attribute_set(der_set(_nested_purchases(2)), limits=limits)
    errors = nested.all_errors()
    assert len(errors) == 1
    assert isinstance(errors[0], RecursionLimitExceeded)


def test_attribute_count_limit():
    limits = DecoderLimits(max_attributes=2)
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        attribute(3, utf8('1.0')),
        attribute(19, utf8('1.0')),
    ), limits=limits)
    assert attributes.value(2) == 'com.example.app'
    assert attributes.value(3) == '1.0'
    assert AttributeType.ORIGINAL_APPLICATION_VERSION not in attributes
    assert isinstance(attributes.errors[-1], SizeLimitExceeded)


def test_attribute_count_limit_covers_nested_purchases():
    limits = DecoderLimits(max_attributes=3)
    attributes = decode_attribute_set(der_set(
        purchase(attribute(1702, utf8('a')), attribute(1701, integer(1)), attribute(1703, utf8('t'))),
    ), limits=limits)
    errors = attributes.all_errors()
    assert len(errors) == 1
    assert isinstance(errors[0], SizeLimitExceeded)


def test_set_size_limit():
    with pytest.raises(SizeLimitExceeded):
        decode_attribute_set(der_set(attribute(2, utf8('com.example.app'))),
                             limits=DecoderLimits(max_set_size=10))


def test_to_native_tree():
    attributes = decode_attribute_set(der_set(
        attribute(2, utf8('com.example.app')),
        purchase(attribute(1702, utf8('a'))),
    ))
    assert attributes.to_native() == {
        'bundle_id': 'com.example.app',
        'in_app_purchase': [{'product_identifier': 'a'}],
    }


def test_attribute_map_is_read_only():
    attributes = AttributeMap({2: []})
    with pytest.raises(TypeError):
        attributes[3] = ()


def test_to_native_keeps_empty_date_and_corrupt_value_apart():
    attributes = decode_attribute_set(der_set(
        attribute(21, ia5('')),
        attribute(1701, b'\x02\x04\x00\x01'),
    ))
    native = attributes.to_native()
    assert native['expiration_date'] is None
    assert set(native['quantity']) == {'unparsable'}
    assert isinstance(native['quantity']['unparsable'], str)


def test_large_set_is_walked_in_linear_time():
    records = attribute(9999, b'') * 20000 + attribute(9998, b'\x00' * (4 * 1024 * 1024))
    payload = der_set(records)
    started = time.perf_counter()
    attributes = decode_attribute_set(payload)
    elapsed = time.perf_counter() - started
    assert len(attributes[9999]) == 20000
    assert len(attributes[9998][0].raw) == 4 * 1024 * 1024
    assert not attributes.errors
    assert elapsed < 10


def test_truncated_element_header_stops_the_walk():
    contents = attribute(2, utf8('com.example.app')) + b'\x30\x84\x00\x00\x10\x00\x02'
    attributes = decode_attribute_set(der_set(contents))
    assert attributes.value(2) == 'com.example.app'
    assert len(attributes.errors) == 1
    assert attributes.errors[0].index == 1
