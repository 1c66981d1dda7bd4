from __future__ import annotations

import logging
from pathlib import Path
from typing import ClassVar, TypeVar

from carshape.parsing import ParseError, ParseErrorKind, TokenReader

logger = logging.getLogger(__name__)

P = TypeVar("P", bound="ProblemFile")


class ProblemFile:
    """
    Load/save plumbing shared by the problem classes.

    Subclasses implement `read` (consume tokens in file order) and
    `format_lines` (emit them back in the same order).
    """

    kind: ClassVar[str] = ""

    @classmethod
    def read(cls: type[P], reader: TokenReader) -> P:
        raise NotImplementedError

    def format_lines(self) -> list[str]:
        raise NotImplementedError

    def summary(self) -> dict[str, int]:
        raise NotImplementedError

    @classmethod
    def load(cls: type[P], path: str | Path) -> P:
        """
        Parse a problem file. Raises `ParseError`; never returns a partial problem.
        """
        reader = TokenReader.open(path)
        problem = cls.read(reader)
        reader.expect_end()
        logger.debug("loaded %s problem from %s: %s", cls.kind, path, problem.summary())
        return problem

    @classmethod
    def loads(cls: type[P], text: str) -> P:
        reader = TokenReader.from_text(text)
        problem = cls.read(reader)
        reader.expect_end()
        return problem

    @classmethod
    def try_load(cls: type[P], path: str | Path) -> P | None:
        """Like `load`, but returns None when the file cannot be opened."""
        try:
            return cls.load(path)
        except ParseError as e:
            if e.kind is ParseErrorKind.FILE_NOT_FOUND:
                logger.warning("%s", e)
                return None
            raise

    def dumps(self) -> str:
        return "\n".join(self.format_lines()) + "\n"

    def save(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.dumps(), encoding="ascii")
        return p
