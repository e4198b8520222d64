"""Text -> token ids: special token extraction, chunking and rank-ordered merging."""

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
import functools
import logging
import os
from math import ceil

from ._bpe import apply_merges
from .chunker import Chunker
from .errors import InvalidUtf8InputError
from .specials import SpecialTokenRegistry
from .strategy import SpecialTokenStrategy
from .types import Token
from .vocab import VocabularyStore

log = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 4096
# longer chunks, such as whole documents without a split pattern, skip the cache
MAX_CACHED_CHUNK_BYTES = 256


class Encoder:
    """
    Encode text into token ids with a fixed vocabulary.

    Text is first split around special tokens, literal segments are chunked by
    the split pattern, and every chunk is reduced independently: starting from
    one base token per byte, the adjacent pair with the lowest merge rank is
    merged everywhere in the chunk until no pair merges.

    The encoder only reads from the store; results for chunks of at most
    ``MAX_CACHED_CHUNK_BYTES`` bytes are kept in a small per-encoder LRU cache.
    """

    def __init__(
        self,
        store: VocabularyStore,
        chunker: Chunker | None = None,
        registry: SpecialTokenRegistry | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        """
        :param cache_size: Number of chunk encodings kept in the LRU cache; 0 disables it.
        :raises ValueError: If ``cache_size`` is not a non-negative integer.
        """
        if not isinstance(cache_size, int) or cache_size < 0:
            raise ValueError(f"cache_size must be a non-negative int, got {cache_size!r}")
        self.store = store
        self.chunker = chunker if chunker is not None else Chunker()
        self.registry = (
            registry
            if registry is not None
            else SpecialTokenRegistry(vocab_size=store.size)
        )
        self.cache_size = cache_size
        self._cached_chunk = (
            functools.lru_cache(maxsize=cache_size)(self._bpe_chunk) if cache_size else None
        )

    def encode(
        self,
        text: str | bytes,
        strategy: SpecialTokenStrategy | None = None,
    ) -> list[Token]:
        """
        Encode text, honouring the special tokens selected by ``strategy``.

        :param text: A ``str`` or UTF-8 ``bytes``.
        :param strategy: Chooses which registered special tokens are recognized;
            all of them when ``None``.
        :raises InvalidUtf8InputError: If ``text`` is not valid UTF-8 (or, for
            ``str``, holds lone surrogates).
        :raises SpecialTokenError: If the strategy rejects the text.
        """
        text = validate_text(text)
        if not text:
            return []

        if strategy is None:
            allowed = self.registry.tokens
        else:
            allowed = strategy.select(text, self.registry)

        tokens: list[Token] = []
        for segment, special_tok in self.registry.split(text, allowed):
            if special_tok is not None:
                # special tokens have pre-determined encodings
                tokens.append(special_tok)
            else:
                tokens.extend(self._encode_text(segment))
        return tokens

    def encode_ordinary(self, text: str | bytes) -> list[Token]:
        """Encode text treating special token strings as plain text."""
        return self._encode_text(validate_text(text))

    def encode_bytes(self, data: bytes) -> list[Token]:
        """
        Encode arbitrary bytes, valid UTF-8 or not.

        Invalid sequences are carried through as byte-level tokens, so
        ``decode_bytes`` gives back exactly ``data``. Special tokens are not
        recognized in this mode.
        """
        # surrogateescape maps each invalid byte to a lone surrogate and back
        text = data.decode("utf-8", errors="surrogateescape")
        return self._encode_text(text, errors="surrogateescape")

    def encode_batch(
        self,
        texts: Sequence[str | bytes],
        strategy: SpecialTokenStrategy | None = None,
        num_workers: int | None = None,
    ) -> list[list[Token]]:
        """
        Encode many texts, in parallel threads when ``num_workers`` allows.

        :param texts: Text inputs to encode.
        :param strategy: Optional special token handling strategy.
        :param num_workers: Thread count; CPU count when ``None``, serial when 1.
        :returns: Encoded token sequences in input order.
        """
        if num_workers is None:
            workers = os.cpu_count() or 1
        else:
            workers = max(1, num_workers)  # "0" interpreted as 1 worker

        if workers == 1 or len(texts) <= 1:
            return [self.encode(text, strategy) for text in texts]

        # group texts to reduce task-scheduling overhead when the input
        # contains many documents
        target_tasks = min(len(texts), workers * 2)
        group_size = max(1, ceil(len(texts) / target_tasks))
        text_groups = [
            texts[idx : idx + group_size] for idx in range(0, len(texts), group_size)
        ]

        def encode_group(group: Sequence[str | bytes]) -> list[list[Token]]:
            return [self.encode(text, strategy) for text in group]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            encoded_groups = list(pool.map(encode_group, text_groups))
        return [encoded for group in encoded_groups for encoded in group]

    def _encode_text(self, text: str, errors: str = "strict") -> list[Token]:
        """Chunk ``text`` and concatenate the BPE encoding of each chunk."""
        tokens: list[Token] = []
        for chunk in self.chunker.split(text):
            tokens.extend(self._encode_chunk(chunk.encode("utf-8", errors=errors)))
        return tokens

    def _encode_chunk(self, chunk: bytes) -> tuple[Token, ...]:
        if self._cached_chunk is None or len(chunk) > MAX_CACHED_CHUNK_BYTES:
            return self._bpe_chunk(chunk)
        return self._cached_chunk(chunk)

    def _bpe_chunk(self, chunk: bytes) -> tuple[Token, ...]:
        """Reduce one chunk to tokens by applying merges lowest rank first."""
        byte_to_token = self.store.byte_to_token
        ids = [byte_to_token[b] for b in chunk]
        return tuple(apply_merges(ids, self.store.rule_for))


def validate_text(text: str | bytes) -> str:
    """Return ``text`` as ``str`` after checking that it is valid UTF-8."""
    if isinstance(text, (bytes, bytearray)):
        try:
            return bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidUtf8InputError(
                "input is not valid utf-8", position=e.start, input_text=bytes(text)
            ) from e
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidUtf8InputError(
            "input contains unencodable surrogates", position=e.start, input_text=text
        ) from e
    return text
