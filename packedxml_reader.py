import io
import logging
import math
import os
import xml.dom.minidom
import xml.etree.ElementTree as ET
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Context, Decimal
from enum import IntEnum

from packedxml_codec import (
    PACKED_HEADER,
    ByteCursor,
    BooleanCorruptionError,
    DictionaryIndexError,
    FormatError,
    NestingTooDeepError,
    OffsetOrderError,
    UnknownTypeError,
    bytes_to_base64,
    bytes_to_hex_dump,
    read_data_descriptor,
    read_dictionary,
    read_element_descriptors,
)

logger = logging.getLogger(__name__)


class PackedXmlDataType(IntEnum):
    Element = 0
    String = 1
    Integer = 2
    Float = 3
    Boolean = 4
    Base64 = 5


@dataclass
class ReaderSettings:
    root_name: str = 'packedSection'
    fix_unnamed_values: bool = False
    max_depth: int = 256


class PackedXmlReader:
    """
    Decodes one PackedXml document into an ``ElementTree`` element.

    Every value advances the running offset to its descriptor's declared end,
    whatever the branch actually consumed from the stream.
    """
    Packed_Header = PACKED_HEADER

    def __init__(self, stream, settings=None, source=None):
        self.reader = ByteCursor(stream)
        self.settings = settings or ReaderSettings()
        self.source = source
        self.dictionary = []
        self._depth = 0

    def read_header(self):
        head = self.reader.read_uint32()
        if head != self.Packed_Header:
            raise FormatError(self.source, head)
        version = self.reader.read_sbyte()
        logger.debug('PackedXml version byte: %d', version)

    def decode(self):
        self.read_header()
        self.dictionary = read_dictionary(self.reader)
        logger.debug('Dictionary holds %d names', len(self.dictionary))

        xmlroot = ET.Element(self.settings.root_name)
        length = self.read_element(xmlroot)
        logger.debug('Element data of <%s> ends at 0x%x', xmlroot.tag, length)

        trailing = self.reader.read_available(1)
        if trailing:
            logger.warning('Data remains after the root element at 0x%x', self.reader.position - 1)

        if self.settings.fix_unnamed_values:
            fix_unnamed_values(xmlroot)
        return xmlroot

    def lookup_name(self, name_index):
        if not 0 <= name_index < len(self.dictionary):
            raise DictionaryIndexError(name_index, len(self.dictionary))
        return self.dictionary[name_index]

    def read_element(self, element):
        self._depth += 1
        if self._depth > self.settings.max_depth:
            raise NestingTooDeepError(
                f'Element <{element.tag}> nested deeper than {self.settings.max_depth}',
                self.reader.position)
        try:
            child_count = self.reader.read_uint16()
            descriptor = read_data_descriptor(self.reader)
            elements = read_element_descriptors(self.reader, child_count)
            names = [self.lookup_name(d.name_index) for d in elements]

            offset = self.read_element_data(element, descriptor)
            for name, element_descriptor in zip(names, elements):
                child = ET.Element(name)
                offset = self.read_element_data(child, element_descriptor.data, offset)
                element.append(child)
            return offset
        finally:
            self._depth -= 1

    def read_element_data(self, element, descriptor, offset=0):
        length_in_bytes = descriptor.end - offset
        if length_in_bytes < 0:
            raise OffsetOrderError(
                f'Value of <{element.tag}> ends at 0x{descriptor.end:x} before running offset 0x{offset:x}',
                descriptor.address)

        t = descriptor.type
        if t == PackedXmlDataType.Element:
            self.read_element(element)
        elif t == PackedXmlDataType.String:
            element.text = self.read_string(length_in_bytes)
        elif t == PackedXmlDataType.Integer:
            element.text = self.read_number(length_in_bytes)
        elif t == PackedXmlDataType.Float:
            floats = self.read_floats(length_in_bytes)
            if len(floats) == 12:
                # 4x3 transform matrix
                for i in range(4):
                    row = ET.SubElement(element, f'row{i}')
                    row.text = format_floats(floats[i * 3:(i + 1) * 3])
            else:
                element.text = format_floats(floats)
        elif t == PackedXmlDataType.Boolean:
            element.text = 'true' if self.read_boolean(length_in_bytes) else 'false'
        elif t == PackedXmlDataType.Base64:
            element.text = bytes_to_base64(self.reader.read_bytes(length_in_bytes))
        else:
            position = self.reader.position
            dump = bytes_to_hex_dump(self.reader.read_available(length_in_bytes))
            raise UnknownTypeError(element.tag, descriptor, dump, position)
        return descriptor.end

    def read_string(self, length):
        return self.reader.read_bytes(length).decode('utf-8', errors='replace')

    def read_number(self, length):
        if length == 1:
            return str(self.reader.read_sbyte())
        elif length == 2:
            return str(self.reader.read_int16())
        elif length == 4:
            return str(self.reader.read_int32())
        elif length == 8:
            return str(self.reader.read_int64())
        return '0'

    def read_floats(self, length):
        return [self.reader.read_float() for _ in range(length // 4)]

    def read_boolean(self, length):
        # Any length other than 1 reads nothing and means false.
        if length != 1:
            return False
        position = self.reader.position
        value = self.reader.read_sbyte()
        if value != 1:
            raise BooleanCorruptionError(value, position)
        return True


_FLOAT_CONTEXT = Context(prec=64, rounding=ROUND_HALF_UP)
_MICRO = Decimal('0.000001')


def format_float(f):
    """
    Render a float32 the way .NET formats a Single with "0.000000": rounded to
    7 significant digits first, then to 6 decimals.
    """
    if math.isnan(f):
        return 'NaN'
    if math.isinf(f):
        return 'Infinity' if f > 0 else '-Infinity'
    rounded = Decimal(f'{f:.7g}').quantize(_MICRO, context=_FLOAT_CONTEXT)
    return f'{rounded:f}'


def format_floats(floats):
    return ' '.join(format_float(f) for f in floats)


def fix_unnamed_values(root):
    """Move leading text of elements that also have children into a <value> child."""
    for element in list(root.iter()):
        if len(element) and element.text:
            value = ET.Element('value')
            value.text = element.text
            element.text = None
            element.insert(0, value)
    return root


def _settings_with(settings, root_name, fix_unnamed_values):
    settings = settings or ReaderSettings()
    overrides = {}
    if root_name is not None:
        overrides['root_name'] = root_name
    if fix_unnamed_values is not None:
        overrides['fix_unnamed_values'] = fix_unnamed_values
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def decode_packedxml(bin_data, settings=None, root_name=None, fix_unnamed_values=None):
    settings = _settings_with(settings, root_name, fix_unnamed_values)
    reader = PackedXmlReader(io.BytesIO(bin_data), settings)
    return reader.decode()


def read_packedxml_file(filepath, settings=None, root_name=None, fix_unnamed_values=None):
    settings = _settings_with(settings, root_name, fix_unnamed_values)
    with open(filepath, 'rb') as f:
        bin_data = f.read()
    reader = PackedXmlReader(io.BytesIO(bin_data), settings, source=os.path.basename(filepath))
    return reader.decode()


def to_xml_string(element):
    return ET.tostring(element, encoding='utf-8').decode('utf-8')


def remove_xml_declaration(xml_str):
    lines = xml_str.splitlines()
    if lines and lines[0].strip().startswith('<?xml'):
        return '\n'.join(lines[1:]).lstrip()
    return xml_str


def to_pretty_xml(element):
    pretty_xml = xml.dom.minidom.parseString(ET.tostring(element, encoding='utf-8')).toprettyxml(indent='  ', encoding='utf-8').decode('utf-8')
    return remove_xml_declaration(pretty_xml)


def decode_packedxml_strict(bin_data, root_name='packedSection'):
    return to_xml_string(decode_packedxml(bin_data, root_name=root_name))
