# This file is part of lco-thumbnails.
#
# Developed for the LSST Data Management System.
# This product includes software developed by the LSST Project
# (https://www.lsst.org).
# See the COPYRIGHT file at the top-level directory of this distribution
# for details of code ownership.
#
# Use of this source code is governed by a 3-clause BSD-style
# license that can be found in the LICENSE file.

from __future__ import annotations

__all__ = ("Card", "Header", "HeaderValue", "read_header")

import dataclasses
import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, TypeAlias, final

from ._common import (
    BLOCK_SIZE,
    CARD_SIZE,
    HeaderKeyNotFoundError,
    HeaderTypeMismatchError,
    TruncatedHeaderError,
    padded_size,
)

HeaderValue: TypeAlias = int | float | str | bool | None

COMMENTARY_KEYWORDS = frozenset({"", "COMMENT", "HISTORY", "CONTINUE"})

_END_CARD = b"END" + b" " * (CARD_SIZE - 3)

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([EeDd][+-]?\d+)?$")

# Sentinel for typed accessors; None is a legitimate header value.
_MISSING: Any = object()


@dataclasses.dataclass(frozen=True)
class Card:
    """A single parsed 80-character header card."""

    keyword: str
    """Keyword, right-stripped and upper case (may be empty)."""

    value: HeaderValue = None
    """Typed value; `None` for commentary cards and undefined values."""

    comment: str = ""
    """Comment text, or the full text of a commentary card."""

    @property
    def is_commentary(self) -> bool:
        """Whether this card carries no keyword value."""
        return self.keyword in COMMENTARY_KEYWORDS

    @classmethod
    def parse(cls, raw: bytes) -> Card:
        """Parse the bytes of one card.

        Non-ASCII bytes are tolerated (decoded as Latin-1) so that garbage
        input fails later with a structural error instead of here.
        """
        text = raw.decode("latin-1")
        keyword = text[:8].rstrip().upper()
        if keyword in COMMENTARY_KEYWORDS or text[8:10] != "= ":
            return cls(keyword, None, text[8:].rstrip())
        value, comment = _parse_value_field(text[10:])
        return cls(keyword, value, comment)


def _parse_value_field(field: str) -> tuple[HeaderValue, str]:
    stripped = field.lstrip()
    if stripped.startswith("'"):
        # Quoted string; '' is an escaped quote.
        chars: list[str] = []
        i = 1
        while i < len(stripped):
            c = stripped[i]
            if c == "'":
                if stripped[i + 1 : i + 2] == "'":
                    chars.append("'")
                    i += 2
                    continue
                break
            chars.append(c)
            i += 1
        rest = stripped[i + 1 :]
        _, _, comment = rest.partition("/")
        return "".join(chars).rstrip(), comment.strip()
    token, _, comment = stripped.partition("/")
    return _parse_token(token.strip()), comment.strip()


def _parse_token(token: str) -> HeaderValue:
    if not token:
        return None
    if token == "T":
        return True
    if token == "F":
        return False
    if _INT_RE.match(token):
        return int(token)
    if _FLOAT_RE.match(token):
        return float(token.replace("D", "E").replace("d", "e"))
    # Complex values and anything malformed are kept verbatim.
    return token


@final
class Header(Mapping[str, HeaderValue]):
    """An ordered, read-only mapping from keyword to typed value.

    Parameters
    ----------
    cards
        Parsed cards, in file order, not including ``END``.

    Notes
    -----
    When a keyword is repeated, the last occurrence wins.  Commentary cards
    (``COMMENT``, ``HISTORY``, blank keywords and ``CONTINUE``) are not part
    of the mapping; they are available from `commentary`.
    """

    def __init__(self, cards: Iterable[Card] = ()):
        self._cards = tuple(cards)
        self._values: dict[str, HeaderValue] = {}
        self._comments: dict[str, str] = {}
        for card in self._cards:
            if not card.is_commentary:
                self._values[card.keyword] = card.value
                self._comments[card.keyword] = card.comment

    __slots__ = ("_cards", "_values", "_comments")

    @property
    def cards(self) -> tuple[Card, ...]:
        """All cards in file order."""
        return self._cards

    @property
    def commentary(self) -> list[Card]:
        """Commentary cards in file order."""
        return [card for card in self._cards if card.is_commentary]

    def comment(self, keyword: str) -> str:
        """Return the comment attached to a keyword."""
        try:
            return self._comments[keyword]
        except KeyError:
            raise HeaderKeyNotFoundError(keyword) from None

    def __getitem__(self, keyword: str) -> HeaderValue:
        return self._values[keyword]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Header({len(self._cards)} cards)"

    def _lookup(self, keyword: str, default: Any, expected: str, accept: tuple[type, ...]) -> Any:
        if keyword not in self._values:
            if default is _MISSING:
                raise HeaderKeyNotFoundError(keyword)
            return default
        value = self._values[keyword]
        # Exact type checks: bool is an int subclass but never a FITS integer.
        if type(value) not in accept:
            raise HeaderTypeMismatchError(keyword, expected, value)
        return value

    def get_int(self, keyword: str, default: Any = _MISSING) -> int:
        """Return an integer-valued keyword.

        Raises
        ------
        HeaderKeyNotFoundError
            Raised if the keyword is absent and no default was given.
        HeaderTypeMismatchError
            Raised if the value is not an integer.  Logical values are never
            accepted.
        """
        return self._lookup(keyword, default, "an integer", (int,))

    def get_float(self, keyword: str, default: Any = _MISSING) -> float:
        """Return a real-valued keyword; integer values are converted."""
        value = self._lookup(keyword, default, "a real number", (float, int))
        return float(value) if type(value) is int else value

    def get_str(self, keyword: str, default: Any = _MISSING) -> str:
        """Return a string-valued keyword."""
        return self._lookup(keyword, default, "a string", (str,))

    def get_bool(self, keyword: str, default: Any = _MISSING) -> bool:
        """Return a logical-valued keyword."""
        return self._lookup(keyword, default, "a logical", (bool,))


def read_header(buffer: bytes | memoryview, offset: int = 0) -> tuple[Header, int]:
    """Parse the header block that starts at ``offset``.

    Parameters
    ----------
    buffer
        The full file contents.
    offset
        Position of the first card; should be a multiple of `BLOCK_SIZE`.

    Returns
    -------
    header
        The parsed header.
    data_start
        Offset just past the block holding the ``END`` card, i.e. where the
        data block (or next header) begins.

    Raises
    ------
    TruncatedHeaderError
        Raised if the buffer ends before an ``END`` card is found.

    Notes
    -----
    Only ``END`` followed by 77 blanks ends the header.  A card that starts
    with ``END`` but has anything else in the rest of its 80 bytes is parsed
    as an ordinary card.
    """
    view = memoryview(buffer)
    cards: list[Card] = []
    position = offset
    while position + CARD_SIZE <= len(view):
        raw = bytes(view[position : position + CARD_SIZE])
        position += CARD_SIZE
        if raw == _END_CARD:
            return Header(cards), offset + padded_size(position - offset)
        cards.append(Card.parse(raw))
    raise TruncatedHeaderError(
        f"No END card in the header starting at byte {offset} "
        f"({(len(view) - offset) // BLOCK_SIZE} complete blocks available)."
    )
