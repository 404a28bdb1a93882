import struct

import pytest

from aura_gallery.utils.error_handling import MalformedContainer
from aura_gallery.utils.png_chunks import Chunk, read_chunks, decode_text_chunk, iter_text_chunks

from helpers import SIGNATURE, build_png, chunk, text_chunk, ztxt_chunk, itxt_chunk


def test_missing_signature_is_malformed():
    with pytest.raises(MalformedContainer):
        list(read_chunks(b'\xff\xd8\xff\xe0' + b'\x00' * 64))


def test_buffer_shorter_than_signature_is_malformed():
    with pytest.raises(MalformedContainer):
        list(read_chunks(SIGNATURE[:5]))


def test_chunks_come_back_in_file_order():
    data = build_png(text_chunk('workflow', '{}'), text_chunk('prompt', '{}'))
    types = [c.type for c in read_chunks(data)]
    assert types == ['IHDR', 'tEXt', 'tEXt', 'IEND']


def test_stops_after_iend():
    data = build_png() + chunk(b'tEXt', b'late\x00value')
    assert [c.type for c in read_chunks(data)][-1] == 'IEND'


def test_truncated_chunk_ends_sequence_quietly():
    good = text_chunk('workflow', '{"a": 1}')
    # declares 500 bytes but the file ends after 3
    truncated = struct.pack('>I', 500) + b'tEXt' + b'abc'
    data = SIGNATURE + chunk(b'IHDR', b'\x00' * 13) + good + truncated

    chunks = list(read_chunks(data))
    assert [c.type for c in chunks] == ['IHDR', 'tEXt']


def test_trailing_partial_header_is_ignored():
    data = SIGNATURE + chunk(b'IHDR', b'\x00' * 13) + b'\x00\x00\x00'
    assert [c.type for c in read_chunks(data)] == ['IHDR']


def test_non_letter_chunk_type_is_malformed():
    data = SIGNATURE + chunk(b'IHDR', b'\x00' * 13) + chunk(b'12\x00!', b'')
    with pytest.raises(MalformedContainer):
        list(read_chunks(data))


def test_text_chunk_splits_at_first_zero_byte():
    assert decode_text_chunk(Chunk('tEXt', b'prompt\x00a\x00b')) == ('prompt', 'a\x00b')


def test_text_chunk_without_separator_is_ignored():
    assert decode_text_chunk(Chunk('tEXt', b'no separator here')) is None


def test_invalid_utf8_is_replaced():
    key, value = decode_text_chunk(Chunk('tEXt', b'prompt\x00caf\xe9'))
    assert key == 'prompt'
    assert value == 'caf\ufffd'


def test_compressed_and_international_text():
    data = build_png(
        ztxt_chunk('workflow', '{"z": true}'),
        itxt_chunk('prompt', '{"i": "é"}'),
        itxt_chunk('extra', 'packed', compressed=True),
    )
    pairs = list(iter_text_chunks(read_chunks(data)))
    assert pairs == [('workflow', '{"z": true}'), ('prompt', '{"i": "é"}'), ('extra', 'packed')]


def test_corrupt_deflate_stream_is_ignored():
    assert decode_text_chunk(Chunk('zTXt', b'workflow\x00\x00not zlib')) is None


def test_iter_text_chunks_skips_other_types():
    chunks = [Chunk('IHDR', b''), Chunk('tEXt', b'k\x00v'), Chunk('IDAT', b'k\x00v')]
    assert list(iter_text_chunks(chunks)) == [('k', 'v')]
