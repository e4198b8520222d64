"""Registry of reserved strings that bypass merge-based tokenization."""

import functools
import logging
from collections.abc import Iterator, Mapping, Set as AbstractSet
from types import MappingProxyType
from typing import Literal

import regex as re

from .errors import SpecialTokenError, VocabularyError
from .types import Token

log = logging.getLogger(__name__)


class SpecialTokenRegistry:
    """
    Immutable mapping of special strings to reserved token ids.

    Reserved ids live outside the learned vocabulary: every id must be at least
    ``vocab_size`` and no two strings may share one.
    """

    __slots__ = ("_toks", "_inverted")

    def __init__(
        self, special_toks: Mapping[str, Token] | None = None, *, vocab_size: int
    ) -> None:
        """
        :param special_toks: Special string -> reserved id.
        :param vocab_size: Size of the learned vocabulary the ids must not overlap.
        :raises SpecialTokenError: If a string is empty or two strings share an id.
        :raises VocabularyError: If an id collides with the learned vocabulary.
        """
        toks = dict(special_toks or {})

        if any(not seq for seq in toks):
            raise SpecialTokenError("special token strings must be non-empty")

        # IDs must be unique within the incoming dict.
        ids = list(toks.values())
        if len(ids) != len(set(ids)):
            duplicates = {seq for seq, tok in toks.items() if ids.count(tok) > 1}
            raise SpecialTokenError("duplicate token ids", found_tokens=duplicates)

        # IDs must not collide with the BPE vocab (base 256 + merges).
        for tok in ids:
            if tok < vocab_size:
                raise VocabularyError(
                    "special token id overlaps with vocabulary",
                    vocab_size=vocab_size,
                    invalid_tok=tok,
                )

        self._toks: Mapping[str, Token] = MappingProxyType(toks)
        self._inverted: Mapping[Token, str] = MappingProxyType(
            {tok: seq for seq, tok in toks.items()}
        )

    @classmethod
    def appended(
        cls, special_toks: list[str], *, vocab_size: int
    ) -> "SpecialTokenRegistry":
        """Assign ids sequentially after the largest learned id, in list order."""
        return cls(
            {seq: vocab_size + idx for idx, seq in enumerate(special_toks)},
            vocab_size=vocab_size,
        )

    @property
    def tokens(self) -> Mapping[str, Token]:
        return self._toks

    @property
    def ids(self) -> frozenset[Token]:
        return frozenset(self._inverted)

    def token_of(self, seq: str) -> Token | None:
        return self._toks.get(seq)

    def string_of(self, tok: Token) -> str | None:
        return self._inverted.get(tok)

    def select(
        self,
        text: str,
        allowed: AbstractSet[str] | Literal["all"] = "all",
        disallowed: AbstractSet[str] | Literal["all"] = frozenset(),
        *,
        warn_ignored: bool = False,
    ) -> Mapping[str, Token]:
        """
        Return the registered tokens to honour while encoding ``text``.

        Works like tiktoken's ``allowed_special``/``disallowed_special``:
        ``allowed`` strings are matched as special tokens, ``disallowed``
        strings must not occur in ``text`` at all. ``"all"`` as ``allowed``
        means every registered string; as ``disallowed`` it means every
        registered string that is not allowed. Unregistered strings are ignored.

        :param warn_ignored: Log a warning when registered strings occur in
            ``text`` without being honoured.
        :raises SpecialTokenError: If ``text`` contains a disallowed string.
        """
        registered = self._toks.keys()
        allowed_seqs = set(registered) if allowed == "all" else registered & allowed
        if disallowed == "all":
            disallowed_seqs = registered - allowed_seqs
        else:
            disallowed_seqs = registered & disallowed

        found = {seq for seq in disallowed_seqs if seq in text}
        if found:
            raise SpecialTokenError(
                "disallowed special tokens found in text", found_tokens=found
            )

        if warn_ignored:
            ignored = sorted(seq for seq in registered - allowed_seqs if seq in text)
            if ignored:
                log.warning(f"special tokens found in text but not allowed: {ignored}")

        if len(allowed_seqs) == len(self._toks):
            return self._toks
        return {seq: self._toks[seq] for seq in allowed_seqs}

    def split(
        self, text: str, allowed: Mapping[str, Token] | None = None
    ) -> Iterator[tuple[str, Token | None]]:
        """
        Split ``text`` into literal segments and special token segments.

        Matches are exact, non-overlapping and scanned left to right; when
        several allowed strings match at the same position the longest wins.
        Literal segments are yielded with ``None``, special segments with their
        reserved id. Empty literal segments are skipped.

        :param allowed: Subset of special tokens to honour; all registered tokens when omitted.
        """
        active = self._toks if allowed is None else allowed
        if not active:
            if text:
                yield text, None
            return

        pos = 0
        for m in _special_pattern(frozenset(active)).finditer(text):
            start, end = m.span()
            if start > pos:
                yield text[pos:start], None
            seq = m.group(0)
            yield seq, active[seq]
            pos = end
        if pos < len(text):
            yield text[pos:], None

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return item in self._toks
        return item in self._inverted

    def __len__(self) -> int:
        return len(self._toks)

    def __iter__(self) -> Iterator[str]:
        return iter(self._toks)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpecialTokenRegistry):
            return NotImplemented
        return dict(self._toks) == dict(other._toks)

    def __hash__(self) -> int:
        return hash(frozenset(self._toks.items()))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({dict(self._toks)!r})"


@functools.lru_cache(maxsize=64)
def _special_pattern(seqs: frozenset[str]) -> re.Pattern[str]:
    """Compile an alternation of ``seqs``, longest first so shared prefixes match greedily."""
    # escape regex metachars like "|" in special tokens to avoid unwanted effects
    ordered = sorted(seqs, key=lambda seq: (-len(seq), seq))
    return re.compile("|".join(re.escape(seq) for seq in ordered))
