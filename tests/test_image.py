"""Tests for binary images and textual program parsing."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from synacor_vm import VirtualMachine
from synacor_vm.image import decode_image, encode_image, load_image, parse_word, parse_words


class TestBinaryImage:
    """Little-endian 16-bit word images."""

    def test_decode_little_endian(self):
        data = bytes([0x09, 0x00, 0x00, 0x80, 0x01, 0x80, 0x04, 0x00])
        assert decode_image(data) == [9, 32768, 32769, 4]

    def test_decode_ignores_odd_trailing_byte(self):
        assert decode_image(bytes([0x13, 0x00, 0x41, 0x00, 0xFF])) == [19, 65]

    def test_decode_empty(self):
        assert decode_image(b"") == []

    def test_encode(self):
        assert encode_image([0, 0x1234, 0xFFFF]) == bytes([0x00, 0x00, 0x34, 0x12, 0xFF, 0xFF])

    @pytest.mark.parametrize("word", [65536, -1])
    def test_encode_rejects_wide_words(self, word):
        with pytest.raises(ValueError):
            encode_image([word])

    def test_load_image(self, tmp_path):
        path = tmp_path / "program.bin"
        path.write_bytes(bytes([0x13, 0x00, 0x48, 0x00, 0x00, 0x00]))
        assert load_image(path) == [19, 72, 0]

    def test_vm_runs_image_file(self, tmp_path):
        path = tmp_path / "program.bin"
        path.write_bytes(encode_image([19, 72, 19, 105, 0]))
        vm = VirtualMachine()
        vm.load_image(path)
        assert vm.run().output == "Hi"

    def test_vm_runs_image_bytes(self):
        vm = VirtualMachine()
        vm.load_image(encode_image([9, 32768, 32769, 4, 19, 32768, 0]))
        assert vm.run().output == "\x04"

    def test_load_missing_image(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_image(tmp_path / "missing.bin")


class TestParseWord:
    """Single tokens."""

    @pytest.mark.parametrize("token,expected", [
        ("halt", 0),
        ("set", 1),
        ("ADD", 9),
        ("noop", 21),
        ("r0", 32768),
        ("R7", 32775),
        ("42", 42),
        ("0x41", 65),
        ("65535", 65535),
    ])
    def test_valid(self, token, expected):
        assert parse_word(token) == expected

    @pytest.mark.parametrize("token", ["r8", "r9", "65536", "-1", "bogus", "0xZZ"])
    def test_invalid(self, token):
        with pytest.raises(ValueError):
            parse_word(token)


class TestParseWords:
    """Whole programs."""

    def test_commas_and_spaces(self):
        assert parse_words("9,32768, 32769 4") == [9, 32768, 32769, 4]

    def test_mnemonics_and_registers(self):
        assert parse_words("add r0 r1 4\nout r0\nhalt") == [9, 32768, 32769, 4, 19, 32768, 0]

    def test_comments_and_blank_lines(self):
        source = """
            ; header comment
            set r0 72   ; load H
            # another comment style

            out r0
        """
        assert parse_words(source) == [1, 32768, 72, 19, 32768]

    def test_empty(self):
        assert parse_words("") == []

    def test_reports_bad_token(self):
        with pytest.raises(ValueError, match="nope"):
            parse_words("set r0 1\nnope")
