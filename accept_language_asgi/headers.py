"""
HTTP Accept-Language header parsing and negotiation utilities.
"""
import re
from typing import NamedTuple

from loguru import logger

from .table import AcceptLanguageError, TranslationTable

FALLBACK_TEXT = "Accept Language header not found or no valid languages found."

# Segments past this count are ignored.
MAX_SEGMENTS = 50

DEFAULT_QUALITY = 10

# Only single-digit weights are understood; "q=1" and "q=1.0" fall through
# to DEFAULT_QUALITY like any other unparseable qualifier.
QUALITY_RE = re.compile(r"q=0\.(\d)")
SEGMENT_SEPARATOR_RE = re.compile(r"[, ]+")


class ResourceExhausted(AcceptLanguageError):
    """The response chain could not be allocated."""


class LanguageToken(NamedTuple):
    code: str
    quality: int


class MatchedChunk(NamedTuple):
    text: str
    quality: int


class ResponseChain(NamedTuple):
    """
    Ordered response chunks. Matched translations are each terminated by a
    line break; the fallback sentence is sent as-is.
    """

    texts: tuple[str, ...]
    is_fallback: bool = False

    @classmethod
    def fallback(cls, text: str = FALLBACK_TEXT) -> "ResponseChain":
        return cls((text,), is_fallback=True)

    def chunks(self) -> list[bytes]:
        terminator = "" if self.is_fallback else "\n"
        # Source bytes that were not UTF-8 come back out unchanged.
        return [
            f"{text}{terminator}".encode("utf-8", errors="surrogateescape")
            for text in self.texts
        ]

    def body(self) -> bytes:
        return b"".join(self.chunks())


def split_segments(header_value: str) -> list[str]:
    """Splits on runs of commas and spaces, keeping at most MAX_SEGMENTS."""
    segments = [s for s in SEGMENT_SEPARATOR_RE.split(header_value) if s]
    return segments[:MAX_SEGMENTS]


def parse_quality(qualifier: str) -> int:
    match = QUALITY_RE.match(qualifier)
    if match is None:
        return DEFAULT_QUALITY
    return int(match.group(1))


def parse_part(part: str) -> LanguageToken:
    """
    Parses a single segment of the 'Accept-Language' header (e.g. "es;q=0.8").
    The code is lowercased; a missing or malformed qualifier yields quality 10.
    """
    code, sep, qualifier = part.partition(";")
    quality = parse_quality(qualifier) if sep else DEFAULT_QUALITY
    return LanguageToken(code.lower(), quality)


def negotiate(
    header_value: str | None,
    table: TranslationTable,
    fallback_text: str = FALLBACK_TEXT,
) -> ResponseChain:
    """
    Resolves the 'Accept-Language' header against `table` and returns the
    matched translations ordered by descending quality. Equal qualities keep
    header order. Returns the fallback chain when the header is absent or
    nothing matches.
    """
    if header_value is None:
        logger.debug("No Accept-Language header, sending fallback")
        return ResponseChain.fallback(fallback_text)

    try:
        matches: list[MatchedChunk] = []

        # 1. Parse the header and keep the segments the table knows
        for part in split_segments(header_value):
            token = parse_part(part)
            text, found = table.lookup(token.code)
            if found:
                matches.append(MatchedChunk(text, token.quality))

        # 2. list.sort is stable, so ties stay in header order
        matches.sort(key=lambda m: m.quality, reverse=True)

        if not matches:
            logger.debug("No language in {!r} matched, sending fallback", header_value)
            return ResponseChain.fallback(fallback_text)

        logger.debug("Negotiated {} language(s) from {!r}", len(matches), header_value)
        return ResponseChain(tuple(m.text for m in matches))
    except MemoryError as exc:
        raise ResourceExhausted("could not allocate the response chain") from exc
