from __future__ import annotations

import io
import unittest
import zlib
from contextlib import redirect_stderr

from dbpf import refpack
from dbpf.codec import Codec, decode_payload, encode_payload, looks_compressed
from dbpf.constants import COMPRESSION_DEFLATE, COMPRESSION_NONE, COMPRESSION_REFPACK
from dbpf.errors import DeflateError, RefPackError


# Compression type without the high bit: 4-byte size follows the signature
_HDR4 = bytes([0x10, 0xFB, 0x00, 0x00, 0x00, 0x00])
# High bit set: 3-byte size
_HDR3 = bytes([0x90, 0xFB, 0x00, 0x00, 0x00])


class RefPackTests(unittest.TestCase):
    def test_literal_run_then_short_copy(self):
        stream = _HDR4 + bytes([0xE0]) + b"ABCD" + bytes([0x00, 0x00])
        self.assertEqual(b"ABCDDDD", refpack.decompress(stream, 7))

    def test_three_byte_size_header(self):
        stream = _HDR3 + bytes([0xE0]) + b"ABCD" + bytes([0x00, 0x00])
        self.assertEqual(b"ABCDDDD", refpack.decompress(stream, 7))

    def test_short_copy_with_leading_literal(self):
        # 0x01: one literal, copy 3 from offset 1
        stream = _HDR4 + bytes([0x01, 0x00]) + b"Q"
        self.assertEqual(b"QQQQ", refpack.decompress(stream, 4))

    def test_medium_copy(self):
        # 0x80: copy 4; b1=0x40 one literal; offset (0 << 8) + 3 + 1 = 4
        stream = _HDR4 + bytes([0xE0]) + b"ABCD" + bytes([0x80, 0x40, 0x03]) + b"E"
        self.assertEqual(b"ABCDEBCDE", refpack.decompress(stream, 9))

    def test_long_copy(self):
        # 0xC0: no literals; offset (0 << 8) + 1 + 1 = 2; copy 1 + 5 = 6
        stream = _HDR4 + bytes([0xE0]) + b"ABCD" + bytes([0xC0, 0x00, 0x01, 0x01])
        self.assertEqual(b"ABCDCDCDCD", refpack.decompress(stream, 10))

    def test_terminal_opcode_stops_and_zero_fills(self):
        stream = _HDR4 + bytes([0xE0]) + b"ABCD" + bytes([0xFD]) + b"Z" + b"ignored"
        self.assertEqual(b"ABCDZ\x00\x00\x00", refpack.decompress(stream, 8))

    def test_longer_literal_run(self):
        # 0xE1: ((0x01) << 2) + 4 = 8 literals
        stream = _HDR4 + bytes([0xE1]) + b"12345678" + bytes([0xFC])
        self.assertEqual(b"12345678", refpack.decompress(stream, 8))

    def test_bad_signature(self):
        with self.assertRaises(RefPackError):
            refpack.decompress(bytes([0x10, 0xFA, 0, 0, 0, 4, 0xE0]) + b"ABCD", 4)

    def test_too_short(self):
        with self.assertRaises(RefPackError):
            refpack.decompress(b"\x10", 4)
        with self.assertRaises(RefPackError):
            refpack.decompress(bytes([0x10, 0xFB, 0x00]), 4)

    def test_back_reference_before_start(self):
        stream = _HDR4 + bytes([0x00, 0x05])
        with self.assertRaises(RefPackError):
            refpack.decompress(stream, 8)

    def test_literal_past_input(self):
        stream = _HDR4 + bytes([0xE0]) + b"AB"
        with self.assertRaises(RefPackError):
            refpack.decompress(stream, 8)

    def test_output_overrun(self):
        stream = _HDR4 + bytes([0xE0]) + b"ABCD"
        with self.assertRaises(RefPackError):
            refpack.decompress(stream, 2)


class CodecTests(unittest.TestCase):
    def test_deflate_roundtrip(self):
        data = b"hello package " * 200
        stored, tag = encode_payload(data, force=True)
        self.assertEqual(COMPRESSION_DEFLATE, tag)
        self.assertLess(len(stored), len(data))
        self.assertEqual(data, decode_payload(tag, len(data), stored))

    def test_existing_tag_compresses_without_force(self):
        data = b"abc" * 500
        stored, tag = encode_payload(data, COMPRESSION_DEFLATE)
        self.assertEqual(COMPRESSION_DEFLATE, tag)
        self.assertEqual(data, zlib.decompress(stored))

    def test_untagged_without_force_is_raw(self):
        data = b"abc" * 500
        self.assertEqual((data, COMPRESSION_NONE), encode_payload(data))

    def test_already_compressed_passes_through(self):
        packed = zlib.compress(b"x" * 1000)
        self.assertTrue(looks_compressed(packed))
        self.assertEqual((packed, COMPRESSION_DEFLATE), encode_payload(packed, force=True))
        fake_refpack = bytes([0x10, 0xFB, 0, 0, 0, 1, 0xFC])
        self.assertEqual((fake_refpack, COMPRESSION_DEFLATE), encode_payload(fake_refpack, force=True))

    def test_incompressible_kept_raw_but_tagged(self):
        data = bytes(range(1, 60))
        stored, tag = encode_payload(data, force=True)
        self.assertEqual(data, stored)
        self.assertEqual(COMPRESSION_DEFLATE, tag)
        # Same length as declared: read back as-is
        self.assertEqual(data, decode_payload(tag, len(data), stored))

    def test_deflate_stream_as_long_as_its_output(self):
        # A short run plus distinct bytes compresses to roughly its own length
        found = None
        for run in range(1, 120):
            for tail in (16, 24, 40, 64):
                data = b"a" * run + bytes(range(1, tail + 1))
                packed = zlib.compress(data)
                if len(packed) == len(data):
                    found = (data, packed)
                    break
            if found:
                break
        self.assertIsNotNone(found)
        data, packed = found
        self.assertEqual(data, decode_payload(COMPRESSION_DEFLATE, len(data), packed))

    def test_verbatim_payload_with_zlib_lead_byte(self):
        # 0x78 0x79 fails the zlib header check, so the bytes are taken as stored
        data = b"xyz" + bytes(range(1, 50))
        self.assertEqual(data, decode_payload(COMPRESSION_DEFLATE, len(data), data))
        with self.assertRaises(DeflateError):
            decode_payload(COMPRESSION_DEFLATE, len(data) + 1, data)

    def test_refpack_sniffed_under_any_tag(self):
        stream = _HDR4 + bytes([0xE0]) + b"ABCD" + bytes([0x00, 0x00])
        self.assertEqual(b"ABCDDDD", decode_payload(COMPRESSION_REFPACK, 7, stream))
        self.assertEqual(b"ABCDDDD", decode_payload(COMPRESSION_DEFLATE, 7, stream))

    def test_untagged_returns_stored(self):
        stored = zlib.compress(b"y" * 100)
        self.assertEqual(stored, decode_payload(COMPRESSION_NONE, 100, stored))

    def test_size_mismatch_warns(self):
        data = b"abc" * 50
        err = io.StringIO()
        with redirect_stderr(err):
            out = decode_payload(COMPRESSION_DEFLATE, 999, zlib.compress(data))
        self.assertEqual(data, out)
        self.assertIn("size mismatch", err.getvalue())

    def test_corrupt_deflate(self):
        with self.assertRaises(DeflateError):
            decode_payload(COMPRESSION_DEFLATE, 100, b"\x78\x9cgarbage")

    def test_compression_level(self):
        data = b"level test " * 300
        fast = Codec(COMPRESSION_DEFLATE, 1).compress(data)
        self.assertEqual(data, zlib.decompress(fast))
        self.assertEqual(data, Codec(COMPRESSION_NONE).compress(data))


if __name__ == "__main__":
    unittest.main()
