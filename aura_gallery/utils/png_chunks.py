"""
png_chunks.py
Description: Reads the length-prefixed chunk sequence of a PNG container.
    Each chunk is a 4-byte big-endian length, a 4-byte ASCII type, the payload
    and a 4-byte CRC (ignored). Keyed text chunks (tEXt, zTXt, iTXt) can be
    decoded into key/value pairs for the metadata extractor.
Author: Eric Hiss (GitHub: EricRollei)
Contact: [eric@historic.camera, eric@rollei.us]
Version: 1.0.0
Date: [March 2025]
License: Dual License (Non-Commercial and Commercial Use)
Copyright (c) 2025 Eric Hiss. All rights reserved.

Dual License:
1. Non-Commercial Use: This software is licensed under the terms of the
   Creative Commons Attribution-NonCommercial 4.0 International License.
   To view a copy of this license, visit http://creativecommons.org/licenses/by-nc/4.0/

2. Commercial Use: For commercial use, a separate license is required.
   Please contact Eric Hiss at [eric@historic.camera, eric@rollei.us] for licensing options.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED,
INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A
PARTICULAR PURPOSE AND NONINFRINGEMENT.

Dependencies:
This code depends on several third-party libraries, each with its own license:

"""
# aura_gallery/utils/png_chunks.py
import struct
import zlib
from typing import Iterator, NamedTuple, Optional, Tuple

from .error_handling import MalformedContainer

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

# length + type
CHUNK_HEADER_SIZE = 8
CRC_SIZE = 4

TEXT_CHUNK_TYPES = ('tEXt', 'zTXt', 'iTXt')


class Chunk(NamedTuple):
    """One chunk of the container"""
    type: str
    data: bytes


def read_chunks(buffer: bytes) -> Iterator[Chunk]:
    """
    Lazily yield the chunks of a fully buffered PNG file

    Args:
        buffer: Complete file contents

    Yields:
        Chunk: Chunks in file order

    Raises:
        MalformedContainer: If the signature is missing or a chunk type is not
            four ASCII letters. A chunk whose declared length runs past the end
            of the buffer ends the sequence without an error.
    """
    if len(buffer) < len(PNG_SIGNATURE) or buffer[:len(PNG_SIGNATURE)] != PNG_SIGNATURE:
        raise MalformedContainer("Missing PNG signature")

    offset = len(PNG_SIGNATURE)
    end = len(buffer)

    while end - offset >= CHUNK_HEADER_SIZE:
        length, raw_type = struct.unpack('>I4s', buffer[offset:offset + CHUNK_HEADER_SIZE])

        # bytes.isalpha only accepts ASCII letters
        if not raw_type.isalpha():
            raise MalformedContainer(f"Invalid chunk type {raw_type!r} at offset {offset}")

        data_start = offset + CHUNK_HEADER_SIZE
        data_end = data_start + length
        if data_end + CRC_SIZE > end:
            # Truncated file: keep what was read so far
            return

        chunk_type = raw_type.decode('ascii')
        yield Chunk(chunk_type, bytes(buffer[data_start:data_end]))

        if chunk_type == 'IEND':
            return

        offset = data_end + CRC_SIZE


def decode_text_chunk(chunk: Chunk) -> Optional[Tuple[str, str]]:
    """
    Split a keyed text chunk into (key, value)

    tEXt is split at the first zero byte. zTXt and iTXt carry a compression
    flag after the key and are inflated when compressed. Values are decoded
    as UTF-8 with replacement, which is what ComfyUI writes.

    Args:
        chunk: A chunk of type tEXt, zTXt or iTXt

    Returns:
        tuple: (key, value) or None when the chunk has no key separator or
            cannot be inflated
    """
    data = chunk.data
    null_index = data.find(b'\x00')
    if null_index == -1:
        return None

    key = data[:null_index].decode('utf-8', errors='replace')
    rest = data[null_index + 1:]

    if chunk.type == 'tEXt':
        return key, rest.decode('utf-8', errors='replace')

    try:
        if chunk.type == 'zTXt':
            # compression method byte, then deflate stream
            return key, zlib.decompress(rest[1:]).decode('utf-8', errors='replace')

        if chunk.type == 'iTXt':
            if len(rest) < 2:
                return None
            compressed = rest[0] == 1
            # skip language tag and translated keyword
            parts = rest[2:].split(b'\x00', 2)
            if len(parts) < 3:
                return None
            text = parts[2]
            if compressed:
                text = zlib.decompress(text)
            return key, text.decode('utf-8', errors='replace')
    except zlib.error:
        return None

    return None


def iter_text_chunks(chunks) -> Iterator[Tuple[str, str]]:
    """Yield (key, value) for every decodable keyed text chunk"""
    for chunk in chunks:
        if chunk.type not in TEXT_CHUNK_TYPES:
            continue
        pair = decode_text_chunk(chunk)
        if pair is not None:
            yield pair
