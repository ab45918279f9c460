import base64
import io
import struct

import pytest

from packedxml_codec import (
    ByteCursor,
    DataDescriptor,
    ElementDescriptor,
    TruncatedDataError,
    bytes_to_base64,
    bytes_to_hex_dump,
    read_data_descriptor,
    read_dictionary,
    read_element_descriptors,
)


def cursor(data):
    return ByteCursor(io.BytesIO(data))


def test_fixed_width_reads_are_little_endian_and_signed():
    c = cursor(struct.pack('<bhHiIqf', -2, -300, 65000, -70000, 0xFFFFFFFF, -(1 << 40), 1.5))
    assert c.read_sbyte() == -2
    assert c.read_int16() == -300
    assert c.read_uint16() == 65000
    assert c.read_int32() == -70000
    assert c.read_uint32() == 0xFFFFFFFF
    assert c.read_int64() == -(1 << 40)
    assert c.read_float() == 1.5
    assert c.position == 1 + 2 + 2 + 4 + 4 + 8 + 4


def test_short_read_raises_truncated():
    c = cursor(b'\x01\x02')
    with pytest.raises(TruncatedDataError) as excinfo:
        c.read_int32()
    assert excinfo.value.wanted == 4
    assert excinfo.value.got == 2
    assert excinfo.value.offset == 0


def test_string_till_zero_needs_terminator():
    c = cursor(b'abc')
    with pytest.raises(TruncatedDataError):
        c.read_string_till_zero()


def test_dictionary_keeps_write_order():
    names = ['root', 'child', 'value', 'transform']
    data = b''.join(n.encode() + b'\x00' for n in names) + b'\x00' + b'\xff\xff'
    c = cursor(data)
    assert read_dictionary(c) == names
    # stops right after the empty terminator string
    assert c.position == len(data) - 2


def test_empty_dictionary():
    assert read_dictionary(cursor(b'\x00')) == []


def test_dictionary_decodes_utf8():
    assert read_dictionary(cursor('名字'.encode('utf-8') + b'\x00\x00')) == ['名字']


def test_data_descriptor_splits_end_and_type():
    c = cursor(struct.pack('<I', (5 << 28) | 0x123))
    descriptor = read_data_descriptor(c)
    assert descriptor == DataDescriptor(0x123, 5, 4)
    assert str(descriptor) == '[0x123, 0x5]@0x4'


def test_data_descriptor_keeps_all_28_bits():
    descriptor = read_data_descriptor(cursor(struct.pack('<I', 0xFFFFFFFF)))
    assert descriptor.end == 0xFFFFFFF
    assert descriptor.type == 0xF


def test_element_descriptors_in_declaration_order():
    data = (struct.pack('<HI', 2, (1 << 28) | 4)
            + struct.pack('<HI', 0, (2 << 28) | 8)
            + struct.pack('<HI', 2, (1 << 28) | 8))
    descriptors = read_element_descriptors(cursor(data), 3)
    assert [d.name_index for d in descriptors] == [2, 0, 2]
    assert [d.data.end for d in descriptors] == [4, 8, 8]
    assert [d.data.type for d in descriptors] == [1, 2, 1]
    assert [d.data.address for d in descriptors] == [6, 12, 18]
    assert str(descriptors[0]) == '[0x2:[0x4, 0x1]@0x6'


def test_element_descriptor_is_a_pair():
    descriptor = ElementDescriptor(1, DataDescriptor(3, 2))
    assert descriptor.data.end == 3


@pytest.mark.parametrize('data, expected', [
    (b'', ''),
    (b'\x00', 'AA=='),
    (b'\x00\x00', 'AAA='),
    (b'\x00\x00\x00', 'AAAA'),
    (b'foobar', 'Zm9vYmFy'),
    (b'\xff\xfe', '//4='),
])
def test_base64_padding(data, expected):
    assert bytes_to_base64(data) == expected


def test_base64_matches_standard_alphabet():
    data = bytes(range(256)) + b'\x80'
    assert bytes_to_base64(data) == base64.b64encode(data).decode('ascii')


def test_hex_dump():
    assert bytes_to_hex_dump(b'\x01\xff\x00') == '[ 1 ff 0 ]L:3'
    assert bytes_to_hex_dump(b'') == '[ ]L:0'
