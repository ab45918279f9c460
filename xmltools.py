#!/usr/bin/env python3
"""
PackedXml batch decoder

Converts BigWorld PackedXml resources (.xml, .def, .visual, .model ...) into
readable, indented XML.
"""

import logging
import os
import sys
from pathlib import Path
from xml.parsers.expat import ExpatError

from packedxml_codec import PACKED_HEADER, PackedXmlError
from packedxml_reader import ReaderSettings, read_packedxml_file, to_pretty_xml

logger = logging.getLogger(__name__)

SUPPORTED_EXTS = ['.xml', '.def', '.visual', '.chunk', '.settings', '.primitives', '.model', '.animation', '.anca']


def get_all_xml_files(dir_path):
    xml_files = []
    for root, _, files in os.walk(dir_path):
        for file in files:
            if any(file.lower().endswith(ext) for ext in SUPPORTED_EXTS):
                xml_files.append(os.path.join(root, file))
    return sorted(xml_files)


def is_packed_xml(raw):
    return len(raw) >= 4 and int.from_bytes(raw[:4], byteorder='little') == PACKED_HEADER


def decode_file(path, settings=None):
    return to_pretty_xml(read_packedxml_file(path, settings))


def batch_decode(files, output_dir=None, base_dir=None, settings=None):
    """
    Decode every PackedXml file in ``files``.

    Output goes to ``output_dir`` keeping the path relative to ``base_dir``,
    or overwrites the source file when no output directory is given.
    Returns ``(succeeded, total)``; files that are not PackedXml count as failures.
    """
    succeeded = 0
    total = len(files)
    for file in files:
        try:
            with open(file, 'rb') as f:
                head = f.read(4)
            if not is_packed_xml(head):
                logger.error(f"文件头检测失败（非PackedXml格式）: {file}")
                continue
            pretty_xml = decode_file(file, settings)

            if output_dir:
                rel_path = os.path.relpath(file, base_dir) if base_dir else os.path.basename(file)
                out_path = os.path.join(output_dir, rel_path)
                Path(out_path).parent.mkdir(parents=True, exist_ok=True)
            else:
                out_path = file
            with open(out_path, 'w', encoding='utf-8') as fw:
                fw.write(pretty_xml)
            succeeded += 1
            logger.info(f"解码成功: {file} -> {out_path}")
        except (PackedXmlError, ExpatError) as e:
            logger.error(f"解码失败: {file}，错误: {e}")
        except OSError as e:
            logger.error(f"IO错误: {file}，错误: {e}")
    logger.info(f"批量解码完成: {succeeded}/{total} 文件成功")
    return succeeded, total


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    if len(argv) not in (1, 2):
        print("用法: python xmltools.py <输入路径> [输出目录]")
        print("示例: python xmltools.py ./res/scripts ./decoded")
        return 1

    input_path = argv[0]
    output_dir = argv[1] if len(argv) == 2 else None
    settings = ReaderSettings()

    if os.path.isdir(input_path):
        if output_dir is None:
            print("错误: 目录输入需要指定输出目录")
            return 1
        files = get_all_xml_files(input_path)
        logger.info(f"已检索到{len(files)}个文件: {input_path}")
        succeeded, total = batch_decode(files, output_dir, input_path, settings)
        return 0 if succeeded == total else 1

    if output_dir is None:
        try:
            print(decode_file(input_path, settings))
        except (PackedXmlError, ExpatError, OSError) as e:
            logger.error(f"解码失败: {input_path}，错误: {e}")
            return 1
        return 0

    succeeded, total = batch_decode([input_path], output_dir, settings=settings)
    return 0 if succeeded == total else 1


if __name__ == "__main__":
    sys.exit(main())
