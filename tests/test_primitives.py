"""Tests for decode primitives and the packed-script unpacker."""

import string

import pytest

from aniext.core.exceptions import DecodeError
from aniext.hosters.primitives import (
    b64decode,
    b64encode,
    encode_base_n,
    hex_to_chars,
    is_packed,
    rot13,
    shift_chars,
    strip_tokens,
    try_unpack,
    unpack_packed,
)


def _packed(payload: str, base: int, count: int, words) -> str:
    return (
        "<script>eval(function(p,a,c,k,e,d){while(c--)if(k[c])p=p.replace(k[c]);return p}"
        f"('{payload}',{base},{count},'{'|'.join(words)}'.split('|'),0,{{}}))</script>"
    )


class TestPrimitives:
    def test_rot13_is_an_involution(self):
        assert rot13("Hello, World!") == "Uryyb, Jbeyq!"
        assert rot13(rot13(string.printable)) == string.printable

    def test_b64decode_tolerates_missing_padding(self):
        assert b64decode("aGVsbG8") == "hello"
        assert b64decode(" aGVs\nbG8= ") == "hello"

    def test_b64decode_rejects_garbage(self):
        with pytest.raises(DecodeError):
            b64decode("not*base64")
        with pytest.raises(DecodeError):
            b64decode("")

    def test_b64encode_inverse(self):
        assert b64decode(b64encode("anime \xe9")) == "anime \xe9"

    def test_shift_chars(self):
        assert shift_chars("abc", 3) == "def"
        assert shift_chars(shift_chars("xyz", 3), -3) == "xyz"

    def test_shift_out_of_range(self):
        with pytest.raises(DecodeError):
            shift_chars("\x01", -5)

    def test_hex_to_chars(self):
        assert hex_to_chars("616263") == "abc"
        with pytest.raises(DecodeError):
            hex_to_chars("abc")
        with pytest.raises(DecodeError):
            hex_to_chars("zz")

    def test_strip_tokens(self):
        assert strip_tokens("ab@$cd^^e_f", ("@$", "^^")) == "abcdef"


class TestBaseN:
    @pytest.mark.parametrize(
        "number,base,expected",
        [(0, 10, "0"), (11, 36, "b"), (35, 36, "z"), (36, 62, "A"), (61, 62, "Z"), (62, 62, "10")],
    )
    def test_encode(self, number, base, expected):
        assert encode_base_n(number, base) == expected

    def test_invalid_base(self):
        with pytest.raises(DecodeError):
            encode_base_n(5, 1)


class TestUnpacker:
    def test_base_64_with_twelve_symbols(self):
        words = ["zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten", "eleven"]
        packed = _packed("0 1 2 3 4 5 6 7 8 9 a b", 64, 12, words)
        assert is_packed(packed)
        assert unpack_packed(packed) == " ".join(words)

    def test_high_indices_are_replaced_first(self):
        words = ["b"] + ["unused"] * 10 + ["eleven"]
        packed = _packed("0 b", 64, 12, words)
        assert unpack_packed(packed) == "b eleven"

    def test_empty_dictionary_entries_keep_token(self):
        packed = _packed("0 1", 10, 2, ["", "kept"])
        assert unpack_packed(packed) == "0 kept"

    def test_tokens_inside_words_are_untouched(self):
        words = ["var", "player", "file", "https", "cdn", "example", "master", "m3u8"]
        packed = _packed('0 1={2:"3://4.5/6.7"};', 10, 8, words)
        assert unpack_packed(packed) == 'var player={file:"https://cdn.example/master.m3u8"};'

    def test_not_packed(self):
        assert not is_packed("<script>var a = 1;</script>")
        assert try_unpack("plain text") is None
        with pytest.raises(DecodeError):
            unpack_packed("plain text")
