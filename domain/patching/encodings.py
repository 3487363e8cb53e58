"""Byte-level search and replace of string literals in several encodings.

Executables embed the same literal in different layouts depending on the
toolchain that produced them.  Each layout is modelled as a
:class:`StringEncoding`; :meth:`ByteReplacer.cascade` tries an ordered list
of :class:`ReplacementPass` objects and keeps the first one that finds
anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Protocol, Sequence

from domain.patching.models import UnsafePatchError

_LOGGER = logging.getLogger(__name__)

_RECORD_PADDING = b"\x00\x00\x00"


class StringEncoding(Protocol):
    """Protocol describing how a literal is laid out in a binary."""

    name: str

    def encode(self, text: str) -> bytes:
        """Return the byte pattern of ``text`` in this layout."""

    def replace(self, data: bytearray, old: str, new: str) -> int:
        """Rewrite every occurrence of ``old`` in ``data``; return the count."""


@dataclass(frozen=True)
class EncodingMatch:
    """Tagged outcome of one replacement pass."""

    encoding: str | None
    count: int
    data: bytes

    @property
    def found(self) -> bool:
        return self.count > 0


@dataclass(frozen=True)
class ReplacementPass:
    """Literal pairs to rewrite using a single encoding."""

    encoding: StringEncoding
    pairs: tuple[tuple[str, str], ...]


def find_all(data: bytes | bytearray, pattern: bytes) -> Iterator[int]:
    """Yield the offset of every non-overlapping occurrence of ``pattern``."""

    if not pattern:
        return
    start = 0
    while True:
        index = data.find(pattern, start)
        if index < 0:
            return
        yield index
        start = index + len(pattern)


class ByteReplacer:
    """Search and replace over raw byte buffers."""

    @staticmethod
    def count(data: bytes | bytearray, pattern: bytes) -> int:
        return sum(1 for _ in find_all(data, pattern))

    @staticmethod
    def replace_all(data: bytearray, old: bytes, new: bytes) -> int:
        """Length-changing replace: shorter replacements are zero padded.

        A replacement longer than ``old`` would have to spill into the bytes
        after the literal, so it is rejected with :class:`ValueError`.
        """

        if len(new) > len(old):
            raise ValueError(
                f"replacement of {len(new)} bytes does not fit a {len(old)} byte literal"
            )
        padded = new + b"\x00" * (len(old) - len(new))
        count = 0
        for offset in list(find_all(data, old)):
            data[offset : offset + len(old)] = padded
            count += 1
        return count

    @staticmethod
    def replace_exact(data: bytearray, old: bytes, new: bytes) -> int:
        """Length-preserving replace used where offsets must not move."""

        if len(new) != len(old):
            raise UnsafePatchError(
                f"replacement is {len(new)} bytes but the original is {len(old)} bytes"
            )
        count = 0
        for offset in list(find_all(data, old)):
            data[offset : offset + len(old)] = new
            count += 1
        return count

    def cascade(self, data: bytes, passes: Sequence[ReplacementPass]) -> EncodingMatch:
        """Apply the first pass that finds at least one occurrence.

        Pairs whose replacement is longer than the original in a given
        encoding are skipped.  When no pass finds anything the input is
        returned untouched with a count of zero.
        """

        for replacement_pass in passes:
            encoding = replacement_pass.encoding
            buffer = bytearray(data)
            total = 0
            for old, new in replacement_pass.pairs:
                try:
                    count = encoding.replace(buffer, old, new)
                except ValueError:
                    _LOGGER.debug(
                        "Skipping %s -> %s in %s layout: replacement too long", old, new, encoding.name
                    )
                    continue
                if count:
                    _LOGGER.info("Rewrote %d %s occurrence(s) of %s", count, encoding.name, old)
                total += count
            if total:
                return EncodingMatch(encoding=encoding.name, count=total, data=bytes(buffer))
            _LOGGER.info("No %s occurrences found", encoding.name)
        return EncodingMatch(encoding=None, count=0, data=data)


class LengthPrefixedEncoding:
    """One length byte, three padding bytes, then UTF-16LE characters."""

    name = "length-prefixed"

    def encode(self, text: str) -> bytes:
        if len(text) > 0xFF:
            raise ValueError("length-prefixed literals hold at most 255 characters")
        return bytes([len(text)]) + _RECORD_PADDING + text.encode("utf-16-le")

    def replace(self, data: bytearray, old: str, new: str) -> int:
        return ByteReplacer.replace_all(data, self.encode(old), self.encode(new))


class Utf8Encoding:
    name = "utf-8"

    def encode(self, text: str) -> bytes:
        return text.encode("utf-8")

    def replace(self, data: bytearray, old: str, new: str) -> int:
        return ByteReplacer.replace_all(data, self.encode(old), self.encode(new))


class Utf16LeEncoding:
    """Raw UTF-16LE with an optional partial-pattern pass.

    The partial pass covers one observed client build in which a single copy
    of the base domain is followed by a non-zero byte where the high byte of
    the final character should be.  Only literals listed in
    ``partial_literals`` get this treatment, and only at offsets whose
    following byte is non-zero, so ordinary UTF-16 text is never touched.
    """

    name = "utf-16le"

    def __init__(self, partial_literals: Sequence[str] = ()) -> None:
        self._partial_literals = frozenset(partial_literals)

    def encode(self, text: str) -> bytes:
        return text.encode("utf-16-le")

    def replace(self, data: bytearray, old: str, new: str) -> int:
        old_bytes = self.encode(old)
        new_bytes = self.encode(new)
        count = ByteReplacer.replace_all(data, old_bytes, new_bytes)
        if old in self._partial_literals:
            count += self._replace_partial(data, old_bytes[:-1], new_bytes[:-1])
        return count

    @staticmethod
    def _replace_partial(data: bytearray, old: bytes, new: bytes) -> int:
        padded = new + b"\x00" * (len(old) - len(new))
        count = 0
        for offset in list(find_all(data, old)):
            after = offset + len(old)
            if after >= len(data) or data[after] == 0:
                continue
            data[offset:after] = padded
            _LOGGER.info(
                "Rewrote partial utf-16le literal at offset %d (trailing byte 0x%02X)",
                offset,
                data[after],
            )
            count += 1
        return count


def contains_any(data: bytes | bytearray, text: str, encodings: Sequence[StringEncoding]) -> bool:
    """Return ``True`` if ``text`` appears in ``data`` in any of ``encodings``."""

    for encoding in encodings:
        try:
            pattern = encoding.encode(text)
        except ValueError:
            continue
        if pattern and pattern in data:
            return True
    return False


__all__ = [
    "ByteReplacer",
    "EncodingMatch",
    "LengthPrefixedEncoding",
    "ReplacementPass",
    "StringEncoding",
    "Utf16LeEncoding",
    "Utf8Encoding",
    "contains_any",
    "find_all",
]
