import struct
from dataclasses import dataclass

PACKED_HEADER = 0x62A14E45

_INT_TO_BASE64 = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/'


class PackedXmlError(Exception):
    pass


class FormatError(PackedXmlError):
    def __init__(self, source=None, header=None):
        if source:
            message = f'File "{source}" is not a Packed Xml!'
        else:
            message = 'Buffer does not contain a Packed Xml!'
        super().__init__(message)
        self.source = source or 'buffer'
        self.header = header


class DecodeError(PackedXmlError):
    def __init__(self, message, offset=None):
        super().__init__(message)
        self.offset = offset


class TruncatedDataError(DecodeError):
    def __init__(self, offset, wanted, got):
        super().__init__(f'Unexpected end of data at 0x{offset:x}: wanted {wanted} bytes, got {got}', offset)
        self.wanted = wanted
        self.got = got


class UnknownTypeError(DecodeError):
    def __init__(self, name, descriptor, dump, offset=None):
        super().__init__(f'Unknown type of {name}: {descriptor} {dump}', offset)
        self.name = name
        self.descriptor = descriptor
        self.dump = dump


class BooleanCorruptionError(DecodeError):
    def __init__(self, value, offset=None):
        super().__init__('Boolean error', offset)
        self.value = value


class OffsetOrderError(DecodeError):
    pass


class NestingTooDeepError(DecodeError):
    pass


class PreconditionError(PackedXmlError):
    pass


class DictionaryIndexError(PreconditionError, IndexError):
    def __init__(self, index, size):
        super().__init__(f'Dictionary index {index} out of range (dictionary has {size} entries)')
        self.index = index
        self.size = size


@dataclass(frozen=True)
class DataDescriptor:
    end: int
    type: int
    address: int = 0

    @classmethod
    def from_encoded(cls, encoded, address=0):
        return cls(encoded & 0xFFFFFFF, encoded >> 28, address)  # bottom 28 bits / top 4 bits

    def __str__(self):
        return f'[0x{self.end:x}, 0x{self.type:x}]@0x{self.address:x}'


@dataclass(frozen=True)
class ElementDescriptor:
    name_index: int
    data: DataDescriptor

    def __str__(self):
        return f'[0x{self.name_index:x}:{self.data}'


class ByteCursor:
    """Forward-only little-endian reader over a binary stream."""

    def __init__(self, stream):
        self.reader = stream

    @property
    def position(self):
        return self.reader.tell()

    def read_bytes(self, n):
        offset = self.reader.tell()
        data = self.reader.read(n)
        if len(data) != n:
            raise TruncatedDataError(offset, n, len(data))
        return data

    def read_available(self, n):
        return self.reader.read(n)

    def _unpack(self, fmt, size):
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_sbyte(self):
        return self._unpack('<b', 1)

    def read_int16(self):
        return self._unpack('<h', 2)

    def read_uint16(self):
        return self._unpack('<H', 2)

    def read_int32(self):
        return self._unpack('<i', 4)

    def read_uint32(self):
        return self._unpack('<I', 4)

    def read_int64(self):
        return self._unpack('<q', 8)

    def read_float(self):
        return self._unpack('<f', 4)

    def read_string_till_zero(self):
        start = self.reader.tell()
        chars = []
        while True:
            b = self.reader.read(1)
            if not b:
                raise TruncatedDataError(start, len(chars) + 1, len(chars))
            if b == b'\x00':
                break
            chars.append(b)
        return b''.join(chars).decode('utf-8', errors='replace')


def read_dictionary(cursor):
    """
    Read zero-terminated strings until the empty one; list position is the
    index the element tables refer to.
    """
    dictionary = []
    while True:
        text = cursor.read_string_till_zero()
        if len(text) == 0:
            break
        dictionary.append(text)
    return dictionary


def read_data_descriptor(cursor):
    encoded = cursor.read_uint32()
    return DataDescriptor.from_encoded(encoded, cursor.position)


def read_element_descriptors(cursor, number):
    result = []
    for _ in range(number):
        name_index = cursor.read_uint16()
        result.append(ElementDescriptor(name_index, read_data_descriptor(cursor)))
    return result


def bytes_to_base64(data):
    """Padded RFC 4648 base64 of ``data``."""
    num_full_groups, num_bytes_in_partial_group = divmod(len(data), 3)
    result = []
    for i in range(num_full_groups):
        byte0, byte1, byte2 = data[i * 3:i * 3 + 3]
        result.append(_INT_TO_BASE64[byte0 >> 2])
        result.append(_INT_TO_BASE64[(byte0 << 4) & 0x3F | (byte1 >> 4)])
        result.append(_INT_TO_BASE64[(byte1 << 2) & 0x3F | (byte2 >> 6)])
        result.append(_INT_TO_BASE64[byte2 & 0x3F])

    tail = data[num_full_groups * 3:]
    if num_bytes_in_partial_group == 1:
        byte0 = tail[0]
        result.append(_INT_TO_BASE64[byte0 >> 2])
        result.append(_INT_TO_BASE64[(byte0 << 4) & 0x3F])
        result.append('==')
    elif num_bytes_in_partial_group == 2:
        byte0, byte1 = tail
        result.append(_INT_TO_BASE64[byte0 >> 2])
        result.append(_INT_TO_BASE64[(byte0 << 4) & 0x3F | (byte1 >> 4)])
        result.append(_INT_TO_BASE64[(byte1 << 2) & 0x3F])
        result.append('=')
    return ''.join(result)


def bytes_to_hex_dump(data):
    # [ 1 ff 0 ]L:3
    return '[ ' + ''.join(f'{b:x} ' for b in data) + f']L:{len(data)}'
