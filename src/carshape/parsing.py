from __future__ import annotations

import enum
from pathlib import Path
from typing import Iterable

import numpy as np


class ParseErrorKind(enum.Enum):
    FILE_NOT_FOUND = "file_not_found"
    UNEXPECTED_TOKEN = "unexpected_token"
    DIMENSION_MISMATCH = "dimension_mismatch"
    PREMATURE_EOF = "premature_eof"


class ParseError(ValueError):
    """
    Raised when a problem file cannot be turned into a fully populated problem.

    `kind` tells the caller whether the file was missing (recoverable: try
    another path) or its content was malformed.
    """

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        *,
        path: Path | None = None,
        field: str | None = None,
        token_index: int | None = None,
    ) -> None:
        self.kind = kind
        self.path = path
        self.field = field
        self.token_index = token_index
        where = []
        if path is not None:
            where.append(str(path))
        if field is not None:
            where.append(f"field {field!r}")
        if token_index is not None:
            where.append(f"token #{token_index}")
        prefix = f"[{', '.join(where)}] " if where else ""
        super().__init__(f"{prefix}{message}")


def _parse_int(tok: str) -> int:
    # int() and float() also accept digit-grouping underscores ("1_0").
    if "_" in tok:
        raise ValueError(tok)
    return int(tok, 10)


def _parse_float(tok: str) -> float:
    if "_" in tok:
        raise ValueError(tok)
    return float(tok)


class TokenReader:
    """
    Sequential reader over the whitespace-separated tokens of a problem file.

    Every read either returns exactly the requested number of values or raises
    `ParseError`; there is no partial result.
    """

    def __init__(self, tokens: list[str], *, path: Path | None = None) -> None:
        self._tokens = tokens
        self._pos = 0
        self.path = path

    @classmethod
    def from_text(cls, text: str, *, path: Path | None = None) -> "TokenReader":
        return cls(text.split(), path=path)

    @classmethod
    def open(cls, path: str | Path) -> "TokenReader":
        p = Path(path)
        try:
            text = p.read_text(encoding="ascii")
        except OSError as e:
            raise ParseError(ParseErrorKind.FILE_NOT_FOUND, f"cannot open data file: {e.strerror}", path=p) from e
        except UnicodeDecodeError as e:
            raise ParseError(ParseErrorKind.UNEXPECTED_TOKEN, "invalid data file: non-ASCII content", path=p) from e
        return cls.from_text(text, path=p)

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._tokens) - self._pos

    def _error(self, kind: ParseErrorKind, message: str, field: str) -> ParseError:
        return ParseError(kind, message, path=self.path, field=field, token_index=self._pos)

    def read_count(self, field: str) -> int:
        """Read one non-negative integer dimension."""
        if self._pos >= len(self._tokens):
            raise self._error(ParseErrorKind.PREMATURE_EOF, "invalid data file: premature end of file", field)
        tok = self._tokens[self._pos]
        try:
            value = _parse_int(tok)
        except ValueError:
            raise self._error(
                ParseErrorKind.UNEXPECTED_TOKEN, f"invalid data file: expected an integer, got {tok!r}", field
            ) from None
        if value < 0:
            raise self._error(ParseErrorKind.DIMENSION_MISMATCH, f"invalid data file: negative count {value}", field)
        self._pos += 1
        return value

    def read_float(self, field: str) -> float:
        return float(self.read_floats(1, field)[0])

    def read_floats(self, n: int, field: str) -> np.ndarray:
        """Read `n` floats into a new read-only float64 array, in file order."""
        n = int(n)
        if n < 0:
            raise self._error(ParseErrorKind.DIMENSION_MISMATCH, f"invalid data file: negative size {n}", field)
        end = self._pos + n
        if end > len(self._tokens):
            have = len(self._tokens) - self._pos
            raise self._error(
                ParseErrorKind.PREMATURE_EOF,
                f"invalid data file: premature end of file ({have} of {n} values)",
                field,
            )
        out = np.empty((n,), dtype=np.float64)
        for i, tok in enumerate(self._tokens[self._pos : end]):
            try:
                out[i] = _parse_float(tok)
            except ValueError:
                self._pos += i
                raise self._error(
                    ParseErrorKind.UNEXPECTED_TOKEN, f"invalid data file: expected a number, got {tok!r}", field
                ) from None
        self._pos = end
        out.setflags(write=False)
        return out

    def expect_end(self) -> None:
        if self._pos != len(self._tokens):
            raise self._error(
                ParseErrorKind.DIMENSION_MISMATCH,
                f"invalid data file: {self.remaining} unexpected trailing token(s)",
                "<end>",
            )


def format_float(x: float) -> str:
    # repr() round-trips float64 exactly.
    return repr(float(x))


def format_floats(values: Iterable[float]) -> str:
    return " ".join(format_float(v) for v in values)


def readonly(values: np.ndarray, size: int, what: str) -> np.ndarray:
    """
    Return a flat, read-only float64 copy of `values` with exactly `size` elements.
    """
    arr = np.array(values, dtype=np.float64).reshape(-1)
    if arr.size != int(size):
        raise ValueError(f"{what} must have {int(size)} values, got {arr.size}")
    arr.setflags(write=False)
    return arr
