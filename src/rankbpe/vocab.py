"""
Immutable vocabulary: token ids, their byte expansions and the ranked merge rules.
"""

import logging
import operator
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from .errors import (
    DuplicateVocabularyEntryError,
    MalformedVocabularyFileError,
    UnknownTokenError,
)
from .types import MergeHistory, Token, TokenBytes, TokenPair

log = logging.getLogger(__name__)

N_BASE_TOKENS: Final[int] = 256
IDENTITY_BYTE_ORDER: Final[tuple[int, ...]] = tuple(range(N_BASE_TOKENS))


@dataclass(frozen=True, slots=True)
class MergeRule:
    """Adjacent ``pair`` merges into ``token``; ``rank`` is the order it was learned in."""

    pair: TokenPair
    token: Token
    rank: int


class VocabularyStore:
    """
    Read-only token table shared by every encode/decode call.

    Holds three indexes built exactly once:

    - token id -> byte sequence (list indexed by id),
    - token pair -> merge rule (hash indexed),
    - byte value -> base token id (256-entry table).

    Base tokens ``0..255`` each stand for one byte; ``byte_order[t]`` names the
    byte behind base token ``t``. Trained vocabularies use the identity order,
    the GPT-4 vocabulary uses a fixed permutation.

    There is no mutating API, so one instance can be shared across threads.
    """

    __slots__ = (
        "_token_bytes",
        "_rules",
        "_merges",
        "_byte_order",
        "_byte_to_token",
        "_bytes_to_token",
    )

    def __init__(
        self,
        token_bytes: list[TokenBytes],
        rules: dict[TokenPair, MergeRule],
        byte_order: tuple[int, ...],
    ) -> None:
        """Use ``from_merges``; this constructor trusts its (already validated) inputs."""
        self._token_bytes: tuple[TokenBytes, ...] = tuple(token_bytes)
        self._rules: Mapping[TokenPair, MergeRule] = MappingProxyType(rules)
        self._merges: tuple[MergeRule, ...] = tuple(
            sorted(rules.values(), key=lambda rule: rule.rank)
        )
        self._byte_order = byte_order
        byte_to_token = [0] * N_BASE_TOKENS
        for tok, byte in enumerate(byte_order):
            byte_to_token[byte] = tok
        self._byte_to_token: tuple[Token, ...] = tuple(byte_to_token)
        self._bytes_to_token: Mapping[TokenBytes, Token] = MappingProxyType(
            {b: tok for tok, b in enumerate(self._token_bytes)}
        )

    @classmethod
    def from_merges(
        cls,
        merges: Iterable[tuple[TokenPair, Token]],
        byte_order: Sequence[int] | None = None,
    ) -> "VocabularyStore":
        """
        Build a store from a merge history given in rank order.

        :param merges: ``(pair, new_token)`` entries, earliest learned first.
        :param byte_order: Byte value of each base token; identity when omitted.
        :raises MalformedVocabularyFileError: If ``byte_order`` is not a permutation of 0..255,
            or a merge references a token that does not exist yet or skips an id.
        :raises DuplicateVocabularyEntryError: If a pair is merged twice or two tokens
            would expand to the same bytes.
        """
        order = IDENTITY_BYTE_ORDER if byte_order is None else tuple(byte_order)
        if sorted(order) != list(IDENTITY_BYTE_ORDER):
            raise MalformedVocabularyFileError(
                "base token byte order must be a permutation of 0..255"
            )

        token_bytes: list[TokenBytes] = [bytes([b]) for b in order]
        seen: dict[TokenBytes, Token] = {b: tok for tok, b in enumerate(token_bytes)}
        rules: dict[TokenPair, MergeRule] = {}

        for rank, ((tok0, tok1), mtok) in enumerate(merges):
            # ids are dense: merge at rank r always creates token 256 + r
            expected = N_BASE_TOKENS + rank
            if mtok != expected:
                raise MalformedVocabularyFileError(
                    f"merge at rank {rank} creates token {mtok}, expected {expected}"
                )
            # constituents must already exist, so every rule depends only on earlier ones
            if not (0 <= tok0 < mtok and 0 <= tok1 < mtok):
                raise MalformedVocabularyFileError(
                    f"merge at rank {rank} uses unknown constituents {(tok0, tok1)}"
                )
            if (tok0, tok1) in rules:
                raise DuplicateVocabularyEntryError(
                    "pair merged more than once", invalid_tok=mtok
                )
            merged = token_bytes[tok0] + token_bytes[tok1]
            if merged in seen:
                raise DuplicateVocabularyEntryError(
                    f"token {mtok} duplicates token {seen[merged]}",
                    token_bytes=merged,
                    invalid_tok=mtok,
                )
            seen[merged] = mtok
            token_bytes.append(merged)
            rules[(tok0, tok1)] = MergeRule(pair=(tok0, tok1), token=mtok, rank=rank)

        log.debug(f"built vocabulary with {len(token_bytes)} tokens ({len(rules)} merges)")
        return cls(token_bytes, rules, order)

    # lookups
    # -------------------------------------------------------------------------

    def bytes_of(self, token: Token) -> TokenBytes:
        """Return the byte expansion of ``token``; raises ``UnknownTokenError`` when out of range."""
        if not 0 <= token < len(self._token_bytes):
            raise UnknownTokenError(
                "token not found in vocabulary",
                vocab_size=len(self._token_bytes),
                invalid_tok=token,
            )
        return self._token_bytes[token]

    def rank_of(self, pair: TokenPair) -> int | None:
        """Return the merge rank of ``pair`` or ``None`` when the pair was never merged."""
        rule = self._rules.get(pair)
        return None if rule is None else rule.rank

    def merge_for(self, pair: TokenPair) -> Token | None:
        """Return the token ``pair`` merges into or ``None``."""
        rule = self._rules.get(pair)
        return None if rule is None else rule.token

    def rule_for(self, pair: TokenPair) -> MergeRule | None:
        return self._rules.get(pair)

    def token_for_byte(self, byte: int) -> Token:
        """Return the base token that stands for ``byte``."""
        return self._byte_to_token[byte]

    def token_for_bytes(self, token_bytes: TokenBytes) -> Token | None:
        """Reverse lookup: the token whose expansion is exactly ``token_bytes``."""
        return self._bytes_to_token.get(token_bytes)

    # views
    # -------------------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._token_bytes)

    @property
    def merges(self) -> tuple[MergeRule, ...]:
        """Merge rules in rank order."""
        return self._merges

    @property
    def byte_order(self) -> tuple[int, ...]:
        return self._byte_order

    @property
    def byte_to_token(self) -> tuple[Token, ...]:
        return self._byte_to_token

    @property
    def vocab(self) -> Mapping[Token, TokenBytes]:
        """Read-only token -> bytes mapping."""
        return MappingProxyType(dict(enumerate(self._token_bytes)))

    def merge_history(self) -> MergeHistory:
        """Return ``(pair, token)`` entries in rank order, the input of ``from_merges``."""
        return [(rule.pair, rule.token) for rule in self._merges]

    def __len__(self) -> int:
        return len(self._token_bytes)

    def __contains__(self, token: object) -> bool:
        try:
            tok = operator.index(token)
        except TypeError:
            return False
        return 0 <= tok < len(self._token_bytes)

    def __iter__(self) -> Iterator[Token]:
        return iter(range(len(self._token_bytes)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VocabularyStore):
            return NotImplemented
        return (
            self._token_bytes == other._token_bytes
            and self._merges == other._merges
            and self._byte_order == other._byte_order
        )

    def __hash__(self) -> int:
        return hash((self._token_bytes, self._merges, self._byte_order))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={self.size}, merges={len(self._merges)})"
