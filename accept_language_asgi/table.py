"""
Translation table: an immutable language code -> greeting text mapping.
"""
from collections.abc import Iterator, Mapping
from enum import Enum
from os import PathLike
from types import MappingProxyType

from loguru import logger

# Sources larger than this are truncated, not rejected.
MAX_SOURCE_BYTES = 2048
MAX_ENTRIES = 256

BUILTIN_SOURCE = (
    b"en hello world\n"
    b"es hola mundo\n"
    b"fr bonjour monde\n"
    b"in namaste duniya\n"
)


class AcceptLanguageError(Exception):
    """Base class for errors raised by this package."""


class BuildErrorReason(str, Enum):
    SOURCE_UNREADABLE = "SourceUnreadable"
    INSERTION_FAILED = "InsertionFailed"


class BuildError(AcceptLanguageError):
    """The translation table could not be built."""

    def __init__(self, reason: BuildErrorReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = reason.value
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def parse_source(source: bytes) -> Iterator[tuple[str, str]]:
    """
    Yields (code, text) pairs from a "code text" per line source.
    Lines without a text part are skipped.

    Bytes that are not UTF-8, including a multibyte sequence cut by the size
    limit, are kept as surrogate escapes so they are sent back unchanged.
    """
    decoded = source.decode("utf-8", errors="surrogateescape")

    for line in decoded.split("\n"):
        parts = line.rstrip("\r").split(None, 1)
        if len(parts) < 2:
            continue
        yield parts[0], parts[1]


class TranslationTable(Mapping[str, str]):
    """
    Read-only mapping of lowercase language codes to translations.

    Build it once with `build()` or `from_path()` and share it between
    requests; nothing mutates it afterwards.
    """

    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._entries = MappingProxyType(
            {code.lower(): text for code, text in (entries or {}).items()}
        )

    @classmethod
    def build(
        cls, source: bytes, max_entries: int = MAX_ENTRIES
    ) -> "TranslationTable":
        truncated = len(source) > MAX_SOURCE_BYTES
        source = source[:MAX_SOURCE_BYTES]

        entries: dict[str, str] = {}
        for code, text in parse_source(source):
            code = code.lower()
            if code in entries:
                logger.warning(
                    "Duplicate language code {!r}, keeping the last definition",
                    code,
                )
            elif len(entries) >= max_entries:
                raise BuildError(
                    BuildErrorReason.INSERTION_FAILED,
                    f"cannot insert {code!r}, table is full ({max_entries} entries)",
                )
            entries[code] = text

        logger.info(
            "Built translation table with {} entries{}",
            len(entries),
            " (source truncated)" if truncated else "",
        )
        return cls(entries)

    @classmethod
    def from_path(
        cls, path: str | PathLike, max_entries: int = MAX_ENTRIES
    ) -> "TranslationTable":
        try:
            with open(path, "rb") as f:
                source = f.read(MAX_SOURCE_BYTES + 1)
        except OSError as exc:
            raise BuildError(
                BuildErrorReason.SOURCE_UNREADABLE, f"{path}: {exc.strerror}"
            ) from exc
        return cls.build(source, max_entries=max_entries)

    @classmethod
    def builtin(cls) -> "TranslationTable":
        return cls.build(BUILTIN_SOURCE)

    def lookup(self, code: str) -> tuple[str, bool]:
        """Case-insensitive lookup. Returns (text, found)."""
        text = self._entries.get(code.lower())
        if text is None:
            return "", False
        return text, True

    def __getitem__(self, code: str) -> str:
        return self._entries[code.lower()]

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.lower() in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self._entries)!r})"
