"""Token ids -> bytes -> text."""

import operator
from collections.abc import Iterable
from typing import Final, Literal

from .errors import DecodingError, UnknownTokenError
from .specials import SpecialTokenRegistry
from .types import Token
from .vocab import VocabularyStore

DecodeErrors = Literal["replace", "strict"]

_DECODE_ERRORS: Final[tuple[str, ...]] = ("replace", "strict")


class Decoder:
    """
    Expand token ids back into bytes and text.

    Learned ids expand through the vocabulary store, reserved ids to their
    special strings. Any id sequence in range decodes; invalid UTF-8 in the
    joined bytes is either replaced with U+FFFD or reported, depending on
    ``errors``.
    """

    def __init__(
        self,
        store: VocabularyStore,
        registry: SpecialTokenRegistry | None = None,
    ) -> None:
        self.store = store
        self.registry = (
            registry
            if registry is not None
            else SpecialTokenRegistry(vocab_size=store.size)
        )

    def decode_bytes(self, tokens: Iterable[Token]) -> bytes:
        """
        Concatenate the byte expansion of every token.

        :raises UnknownTokenError: If a token is neither learned nor a registered special token.
        :raises TypeError: If a token is not an integer.
        """
        store = self.store
        registry = self.registry
        parts: list[bytes] = []
        for tok in tokens:
            # accept int-like ids such as numpy integers
            tok = operator.index(tok)
            if tok in store:
                parts.append(store.bytes_of(tok))
                continue
            seq = registry.string_of(tok)
            if seq is None:
                raise UnknownTokenError(
                    "token not found in vocabulary",
                    vocab_size=store.size,
                    invalid_tok=tok,
                )
            parts.append(seq.encode("utf-8"))
        return b"".join(parts)

    def decode(self, tokens: Iterable[Token], errors: DecodeErrors = "replace") -> str:
        """
        Decode tokens into text.

        :param errors: How to handle invalid UTF-8: "replace" (default) or "strict".
        :raises UnknownTokenError: If any token id is unknown.
        :raises DecodingError: If ``errors="strict"`` and the bytes are not valid UTF-8.
        """
        if errors not in _DECODE_ERRORS:
            raise ValueError(f"errors must be one of {_DECODE_ERRORS}, got {errors!r}")
        data = self.decode_bytes(tokens)
        try:
            return data.decode("utf-8", errors=errors)
        except UnicodeDecodeError as e:
            raise DecodingError(
                "decoded bytes are not valid utf-8", position=e.start
            ) from e

    def decode_batch(
        self, token_batch: Iterable[Iterable[Token]], errors: DecodeErrors = "replace"
    ) -> list[str]:
        return [self.decode(tokens, errors=errors) for tokens in token_batch]
