from __future__ import annotations

import pytest

from domain.patching import (
    ByteReplacer,
    LengthPrefixedEncoding,
    ReplacementPass,
    UnsafePatchError,
    Utf16LeEncoding,
    Utf8Encoding,
)
from domain.patching.encodings import contains_any, find_all
from tests.unit.launcher_test_utils import length_prefixed, utf16


def test_find_all_reports_non_overlapping_offsets() -> None:
    assert list(find_all(b"aaaa", b"aa")) == [0, 2]
    assert list(find_all(b"abc", b"")) == []


def test_replace_all_zero_pads_shorter_replacement() -> None:
    data = bytearray(b"<hytale.com>")

    count = ByteReplacer.replace_all(data, b"hytale.com", b"abc.ws")

    assert count == 1
    assert bytes(data) == b"<abc.ws\x00\x00\x00\x00>"


def test_replace_all_rejects_longer_replacement() -> None:
    data = bytearray(b"hytale.com")

    with pytest.raises(ValueError):
        ByteReplacer.replace_all(data, b"hytale.com", b"much-longer.example")

    assert bytes(data) == b"hytale.com"


def test_replace_exact_refuses_length_change() -> None:
    with pytest.raises(UnsafePatchError):
        ByteReplacer.replace_exact(bytearray(b"hytale.com"), b"hytale.com", b"abc.ws")


def test_length_prefixed_encoding_layout() -> None:
    encoded = LengthPrefixedEncoding().encode("ab")

    assert encoded == b"\x02\x00\x00\x00a\x00b\x00"


def test_cascade_stops_at_first_encoding_with_matches() -> None:
    data = length_prefixed("hytale.com") + b"|hytale.com|"
    passes = (
        ReplacementPass(LengthPrefixedEncoding(), (("hytale.com", "sanasol.ws"),)),
        ReplacementPass(Utf8Encoding(), (("hytale.com", "sanasol.ws"),)),
    )

    match = ByteReplacer().cascade(data, passes)

    assert match.found
    assert match.encoding == "length-prefixed"
    assert match.count == 1
    assert match.data == length_prefixed("sanasol.ws") + b"|hytale.com|"


def test_cascade_falls_through_to_later_encodings() -> None:
    data = b"\x00" + utf16("hytale.com") + b"\x00\x00"
    passes = (
        ReplacementPass(LengthPrefixedEncoding(), (("hytale.com", "sanasol.ws"),)),
        ReplacementPass(Utf8Encoding(), (("hytale.com", "sanasol.ws"),)),
        ReplacementPass(Utf16LeEncoding(), (("hytale.com", "sanasol.ws"),)),
    )

    match = ByteReplacer().cascade(data, passes)

    assert match.encoding == "utf-16le"
    assert match.data == b"\x00" + utf16("sanasol.ws") + b"\x00\x00"


def test_cascade_skips_pairs_that_do_not_fit() -> None:
    data = b"hytale.com and discord.gg/hytale"
    passes = (
        ReplacementPass(
            Utf8Encoding(),
            (("discord.gg/hytale", "discord.gg/a-much-longer-invite"), ("hytale.com", "sanasol.ws")),
        ),
    )

    match = ByteReplacer().cascade(data, passes)

    assert match.count == 1
    assert match.data == b"sanasol.ws and discord.gg/hytale"


def test_cascade_returns_input_when_nothing_matches() -> None:
    data = b"no endpoints here"

    match = ByteReplacer().cascade(data, (ReplacementPass(Utf8Encoding(), (("hytale.com", "x.ws"),)),))

    assert not match.found
    assert match.encoding is None
    assert match.data is data


def test_utf16_partial_literal_followed_by_non_zero_byte() -> None:
    truncated = utf16("hytale.com")[:-1]
    data = bytearray(truncated + b"\x05tail")

    count = Utf16LeEncoding(partial_literals=("hytale.com",)).replace(data, "hytale.com", "abc.ws")

    assert count == 1
    expected_prefix = utf16("abc.ws")[:-1]
    assert bytes(data) == expected_prefix + b"\x00" * (len(truncated) - len(expected_prefix)) + b"\x05tail"


def test_utf16_partial_pass_ignores_ordinary_text() -> None:
    data = bytearray(utf16("hytale.co") + b"\x05")

    count = Utf16LeEncoding(partial_literals=("hytale.com",)).replace(data, "hytale.com", "abc.ws")

    assert count == 0


def test_utf16_partial_pass_only_applies_to_listed_literals() -> None:
    data = bytearray(utf16("hytale.com")[:-1] + b"\x05")

    count = Utf16LeEncoding().replace(data, "hytale.com", "abc.ws")

    assert count == 0


def test_contains_any_checks_each_encoding() -> None:
    encodings = (LengthPrefixedEncoding(), Utf8Encoding(), Utf16LeEncoding())

    assert contains_any(b"xx" + utf16("sanasol.ws"), "sanasol.ws", encodings)
    assert not contains_any(b"sanasol", "sanasol.ws", encodings)
