"""
Tokenizer facade tying a vocabulary store to chunking, special tokens, encoding and decoding.
"""

import logging
import os
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Final

from ._sanitise import render_bytes
from .chunker import WHOLE_TEXT_PATTERN, Chunker
from .decoder import DecodeErrors, Decoder
from .encoder import DEFAULT_CACHE_SIZE, Encoder
from .errors import ModelLoadError, PatternError, RankBPEError, SpecialTokenError
from .loader import GPT4_BYTE_ORDER, dump_tiktoken_ranks, load_tiktoken_ranks
from .pattern import TokenPattern
from .specials import SpecialTokenRegistry
from .strategy import SpecialTokenStrategy
from .trainer import train_bpe
from .types import Token, TokenBytes, TokenPair
from .vocab import N_BASE_TOKENS, VocabularyStore

PREFIX: Final[str] = "RankBPE"
MODEL_FORMAT: Final[str] = "v1"
MODEL_SUFFIX: Final[str] = ".model"
VOCAB_SUFFIX: Final[str] = ".vocab"

log = logging.getLogger(__name__)


class Tokenizer:
    """
    Byte-level BPE tokenizer.

    Built once around an immutable ``VocabularyStore``; every method only reads
    shared state, so one instance may serve many threads.

    .. code-block:: python

        tok = Tokenizer.train(corpus, vocab_size=1000, special_tokens=["<|endoftext|>"])
        ids = tok.encode("hello world<|endoftext|>")
        assert tok.decode(ids) == "hello world<|endoftext|>"
    """

    def __init__(
        self,
        store: VocabularyStore,
        *,
        pattern: str | None = TokenPattern.GPT4,
        special_tokens: Mapping[str, Token] | None = None,
        name: str | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        """
        :param store: Learned vocabulary.
        :param pattern: Split pattern for pre-tokenization (GPT-4 by default).
        :param special_tokens: Special string -> reserved id; ids must not overlap ``store``.
        :param name: Optional label, e.g. "cl100k_base".
        :param cache_size: Size of the per-tokenizer chunk cache; 0 disables it.
        :raises ValueError: If ``cache_size`` is negative or not an integer.
        """
        self.store = store
        self.name = name
        self.cache_size = cache_size
        self.chunker = Chunker(WHOLE_TEXT_PATTERN if pattern is None else pattern)
        self.registry = SpecialTokenRegistry(special_tokens, vocab_size=store.size)
        self.encoder = Encoder(store, self.chunker, self.registry, cache_size=cache_size)
        self.decoder = Decoder(store, self.registry)

    # construction
    # -------------------------------------------------------------------------

    @classmethod
    def train(
        cls,
        corpus: str | Iterable[str],
        vocab_size: int,
        *,
        pattern: str | None = TokenPattern.GPT4,
        special_tokens: Sequence[str] | None = None,
        verbose: bool = False,
        show_progress: bool = True,
        stop_event: threading.Event | None = None,
    ) -> "Tokenizer":
        """
        Train a tokenizer on ``corpus``.

        Special tokens are cut out of the corpus before training and then get
        ids appended after the largest learned id, in the order given.

        :param pattern: Split pattern for training and encoding; ``None`` trains
            on whole strings without pre-tokenization.
        :raises InvalidVocabSizeError: If ``vocab_size`` is less than 256.
        """
        result = train_bpe(
            corpus,
            vocab_size,
            pattern=pattern,
            special_tokens=special_tokens,
            verbose=verbose,
            show_progress=show_progress,
            stop_event=stop_event,
        )
        registry = SpecialTokenRegistry.appended(
            list(special_tokens or ()), vocab_size=result.store.size
        )
        return cls(result.store, pattern=pattern, special_tokens=registry.tokens)

    @classmethod
    def from_tiktoken(
        cls,
        source: str | os.PathLike | bytes | Mapping[TokenBytes, Token],
        *,
        pattern: str | None = TokenPattern.GPT4,
        special_tokens: Mapping[str, Token] | None = None,
        byte_order: Sequence[int] | None = GPT4_BYTE_ORDER,
        name: str | None = None,
    ) -> "Tokenizer":
        """Build a tokenizer from a tiktoken rank file; see ``load_tiktoken_ranks``."""
        store = load_tiktoken_ranks(source, byte_order=byte_order)
        return cls(store, pattern=pattern, special_tokens=special_tokens, name=name)

    def with_special_tokens(self, special_tokens: Mapping[str, Token]) -> "Tokenizer":
        """
        Return a tokenizer sharing this vocabulary with a different set of special tokens.

        To extend the existing tokens pass the merged dict:
        ``tok.with_special_tokens({**tok.special_tokens, "<|new|>": 300})``.
        """
        return Tokenizer(
            self.store,
            pattern=self.pat,
            special_tokens=special_tokens,
            name=self.name,
            cache_size=self.cache_size,
        )

    # encode / decode
    # -------------------------------------------------------------------------

    def encode(
        self,
        text: str | bytes,
        strategy: SpecialTokenStrategy | None = None,
    ) -> list[Token]:
        """
        Encode text into a sequence of tokens.

        :param strategy: Which registered special tokens to recognize; all when ``None``.
        :raises InvalidUtf8InputError: If ``text`` is not valid UTF-8.
        """
        return self.encoder.encode(text, strategy)

    def encode_ordinary(self, text: str | bytes) -> list[Token]:
        """Encode text ignoring special tokens."""
        return self.encoder.encode_ordinary(text)

    def encode_bytes(self, data: bytes) -> list[Token]:
        """Encode raw bytes, including invalid UTF-8."""
        return self.encoder.encode_bytes(data)

    def encode_batch(
        self,
        texts: Sequence[str | bytes],
        strategy: SpecialTokenStrategy | None = None,
        num_workers: int | None = None,
    ) -> list[list[Token]]:
        """Encode multiple texts into sequences of tokens in batch."""
        if not texts:
            return []
        return self.encoder.encode_batch(texts, strategy, num_workers=num_workers)

    def decode(self, tokens: Iterable[Token], errors: DecodeErrors = "replace") -> str:
        """
        Decode a sequence of tokens back into text.

        :param errors: How to handle invalid UTF-8: "replace" (default) or "strict".
        :raises UnknownTokenError: If any token ID is not in the vocabulary.
        :raises DecodingError: If ``errors="strict"`` and the bytes are not valid UTF-8.
        """
        return self.decoder.decode(tokens, errors=errors)

    def decode_bytes(self, tokens: Iterable[Token]) -> bytes:
        return self.decoder.decode_bytes(tokens)

    def decode_batch(
        self,
        token_batch: Iterable[Iterable[Token]],
        errors: DecodeErrors = "replace",
    ) -> list[str]:
        """Decode multiple token sequences."""
        return self.decoder.decode_batch(token_batch, errors=errors)

    def token_bytes(self, tok: Token) -> bytes:
        """Return the bytes of a single learned or special token."""
        return self.decoder.decode_bytes([tok])

    # introspection
    # -------------------------------------------------------------------------

    @property
    def pat(self) -> str:
        return self.chunker.pat

    @property
    def special_tokens(self) -> Mapping[str, Token]:
        return self.registry.tokens

    @property
    def merges(self) -> dict[TokenPair, Token]:
        """Byte pair -> merge token, in rank order."""
        return {rule.pair: rule.token for rule in self.store.merges}

    def vocab_size(self) -> int:
        """Return the number of learned tokens (base 256 plus merges)."""
        return len(self.store)

    @property
    def n_vocab(self) -> int:
        """One past the largest token id, special tokens included."""
        return max([self.store.size, *(tok + 1 for tok in self.registry.ids)])

    def __repr__(self) -> str:
        label = f"{self.name!r}, " if self.name else ""
        return (
            f"{self.__class__.__name__}({label}vocab_size={self.vocab_size()}, "
            f"special_tokens={len(self.registry)})"
        )

    # persistence
    # -------------------------------------------------------------------------

    def save(self, file_prefix: str) -> None:
        """
        Save tokenizer state to disk.

        Creates two files: a .model file with merge mappings and a .vocab file
        with human-readable token representations.

        :param file_prefix: Path prefix for output files.
        :raises PatternError: If the split pattern contains a line break.
        :raises SpecialTokenError: If a special token contains a line break.
        """
        # the .model format is line based
        if "\n" in self.pat:
            raise PatternError(
                "split pattern with line breaks cannot be saved", pattern=self.pat
            )
        multiline = {seq for seq in self.registry if "\n" in seq}
        if multiline:
            raise SpecialTokenError(
                "special tokens with line breaks cannot be saved",
                found_tokens=multiline,
            )

        log.info(f"saving tokenizer to {file_prefix}")
        self._save_model(file_prefix)
        self._save_vocab(file_prefix)
        log.info("tokenizer saved successfully")

    def save_tiktoken(self, path: str | os.PathLike) -> None:
        """
        Write the learned vocabulary in tiktoken rank file format.

        Special tokens are not part of that format. Reload a trained vocabulary
        with ``byte_order=None`` unless it uses the GPT-4 byte order.
        """
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(dump_tiktoken_ranks(self.store))
        log.info(f"rank file written to {out}")

    @classmethod
    def load(cls, model_filename: str | os.PathLike) -> "Tokenizer":
        """
        Load tokenizer state from a .model file.

        :param model_filename: Path to the .model file.
        :raises ModelLoadError: If file does not exist, extension is not .model,
            format version mismatch occurs, or the contents are malformed.
        """
        path = Path(model_filename)

        if not path.exists():
            raise ModelLoadError("model filepath does not exist", model_path=str(path))

        if not path.suffix == MODEL_SUFFIX:
            raise ModelLoadError("expected .model file", model_path=str(path))

        log.info(f"loading model from {path}")

        merges: list[tuple[TokenPair, Token]] = []
        special_toks: dict[str, Token] = {}
        pattern: str | None = None

        with path.open("r", encoding="utf-8", newline="\n") as f:
            # verify format match
            header = f.readline().rstrip("\n").split(" ")
            if len(header) != 2 or header[0] != PREFIX:
                raise ModelLoadError("not a rankbpe model file", model_path=str(path))
            if header[1] != MODEL_FORMAT:
                raise ModelLoadError(
                    "model format mismatch",
                    model_path=str(path),
                    version_mismatch=(header[1], MODEL_FORMAT),
                )

            # store split pattern if it exists; the pattern may hold spaces
            model_re = f.readline().rstrip("\n")
            if not model_re.startswith("re "):
                raise ModelLoadError(f"expected split pattern line, got {model_re!r}")
            if len(model_re) > 3:
                pattern = model_re[3:]

            # base token byte order
            order_line = f.readline().strip()
            if not order_line.startswith("order "):
                raise ModelLoadError(f"expected byte order line, got {order_line!r}")
            try:
                byte_order = [int(b) for b in order_line[6:].split()]
            except ValueError:
                raise ModelLoadError(f"invalid byte order: {order_line}")
            if len(byte_order) != N_BASE_TOKENS:
                raise ModelLoadError(
                    f"byte order must list {N_BASE_TOKENS} bytes, got {len(byte_order)}"
                )

            # read and load special tokens
            start_marker = f.readline().strip()
            if start_marker != "---":
                raise ModelLoadError(
                    f"start sequence marker missing: (expected ---) (got {start_marker})"
                )

            # parse special token count
            n_special_tokens = f.readline().strip()
            try:
                n_special_tokens = int(n_special_tokens)
                if n_special_tokens < 0:
                    raise ValueError()
            except ValueError:
                raise ModelLoadError(f"invalid special token count: {n_special_tokens}")

            log.debug(f"loading {n_special_tokens} special tokens")

            for _ in range(n_special_tokens):
                # split from the right as the token sequence might contain whitespace
                sp_tok: list[str] = f.readline().rstrip("\n").rsplit(" ", maxsplit=1)
                if len(sp_tok) != 2:
                    raise ModelLoadError(
                        f"special token mapping must be delimited by a whitespace: {sp_tok}"
                    )
                try:
                    special_toks[sp_tok[0]] = int(sp_tok[1])
                except ValueError:
                    raise ModelLoadError(f"token is not a number: {sp_tok[1]}")

            end_marker = f.readline().strip()
            if end_marker != "---":
                raise ModelLoadError(
                    f"end sequence marker missing: (expected ---) (got {end_marker})"
                )

            # read and load merges, one per line in rank order
            log.debug("loading merge tokens")
            for line in f:
                try:
                    ctok0, ctok1, mtok = map(int, line.split())
                except ValueError:
                    raise ModelLoadError(
                        f"invalid merge format at line: {line.strip()}"
                    )
                merges.append(((ctok0, ctok1), mtok))

            log.debug(f"loaded {len(merges)} merge rules")

        try:
            store = VocabularyStore.from_merges(merges, byte_order=byte_order)
            tokenizer = cls(store, pattern=pattern, special_tokens=special_toks)
        except RankBPEError as e:
            raise ModelLoadError("invalid model contents", model_path=str(path)) from e

        log.info(
            f"model loaded successfully: {len(special_toks)} special tokens, "
            f"{len(merges)} merge rules, {len(store)} total tokens"
        )
        return tokenizer

    def _save_model(self, file_prefix: str) -> None:
        """Persist merge mappings and special tokens to a .model file."""
        model_path = Path(file_prefix).with_suffix(MODEL_SUFFIX)
        # create directory if does not exist
        model_path.parent.mkdir(parents=True, exist_ok=True)

        log.debug(f"saving model to {model_path}")

        with model_path.open("w", encoding="utf-8", newline="\n") as f:
            # header: format version, regex pattern, base token byte order
            f.write(f"{PREFIX} {MODEL_FORMAT}\n")
            f.write(f"re {self.pat}\n")
            f.write(f"order {' '.join(map(str, self.store.byte_order))}\n")
            # start of special tokens marker
            f.write("---\n")
            f.write(f"{len(self.registry)}\n")
            for seq, tok in self.registry.tokens.items():
                f.write(f"{seq} {tok}\n")
            # end of special tokens marker
            f.write("---\n")
            # body: merges in rank order
            for rule in self.store.merges:
                f.write(f"{rule.pair[0]} {rule.pair[1]} {rule.token}\n")

    def _save_vocab(self, file_prefix: str) -> None:
        """Persist human-readable token representations to a .vocab file."""
        vocab_path = Path(file_prefix).with_suffix(VOCAB_SUFFIX)
        vocab_path.parent.mkdir(parents=True, exist_ok=True)

        log.debug(f"saving vocab to {vocab_path}")

        inverted_merges = {rule.token: rule.pair for rule in self.store.merges}

        with vocab_path.open("w", encoding="utf-8", newline="\n") as f:
            # save special token sequence -> token
            for seq, tok in self.registry.tokens.items():
                f.write(f"ST [{tok}] {seq}\n")
            for tok in self.store:
                subword = render_bytes(self.store.bytes_of(tok))
                # token arises from merging: show derivation from child tokens
                if tok in inverted_merges:
                    ctok0, ctok1 = inverted_merges[tok]
                    subword0 = render_bytes(self.store.bytes_of(ctok0))
                    subword1 = render_bytes(self.store.bytes_of(ctok1))
                    f.write(f"[{tok}] [{subword0}][{subword1}] -> {subword}\n")
                else:
                    # one of base 256 tokens: no merging
                    f.write(f"[{tok}] {subword}\n")
