import zlib

import tilepaint as tp


def test_reference_vectors():
    assert tp.crc32(b"") == 0
    assert tp.crc32(b"123456789") == 0xCBF43926


def test_table_is_standard_and_frozen():
    assert isinstance(tp.CRC_TABLE, tuple)
    assert len(tp.CRC_TABLE) == 256
    assert tp.CRC_TABLE[0] == 0
    assert tp.CRC_TABLE[1] == 0x77073096
    assert tp.CRC_TABLE[255] == 0x2D02EF8D


def test_matches_zlib():
    data = bytes(range(256)) * 7 + b"IDAT"
    assert tp.crc32(data) == zlib.crc32(data) & 0xFFFFFFFF


def test_running_checksum():
    assert tp.crc32(b"56789", tp.crc32(b"1234")) == 0xCBF43926
    assert tp.crc32(b"IEND") == 0xAE426082
