"""Regex pre-tokenization: split text into chunks that merges never cross."""

from collections.abc import Iterator
from typing import Final

import regex as re

from .errors import PatternError
from .pattern import TokenPattern

# one chunk per text: no pre-tokenization
WHOLE_TEXT_PATTERN: Final[str] = r"(?s).+"


class Chunker:
    """
    Split text into ordered, non-overlapping chunks with a fixed regex grammar.

    The chunks always concatenate back to the input. Text a pattern fails to
    match is emitted as its own chunk instead of being dropped, so custom
    patterns keep the partition lossless too.
    """

    def __init__(self, pattern: str | None = None) -> None:
        """Compile ``pattern``; the GPT-4 split pattern is used when omitted."""
        if pattern is None:
            pattern = TokenPattern.GPT4
        if isinstance(pattern, TokenPattern):
            pattern = pattern.value
        self.pat: str = pattern
        self.compiled_pat: re.Pattern[str] = _compile_pattern(self.pat)

    def split(self, text: str) -> Iterator[str]:
        """Lazily yield the chunks of ``text`` in order."""
        pos = 0
        for m in self.compiled_pat.finditer(text):
            start, end = m.span()
            # empty matches carry no text
            if start == end:
                continue
            if start > pos:
                yield text[pos:start]
            yield m.group(0)
            pos = end
        if pos < len(text):
            yield text[pos:]

    def __call__(self, text: str) -> list[str]:
        return list(self.split(text))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.pat!r})"


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    """
    Compile and validate a regex pattern.

    :param pattern: Regex pattern string to compile.
    :return: Compiled regex pattern.
    :raises PatternError: If pattern is invalid.
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError("invalid regex pattern", pattern=pattern, regex_err=e)
