"""Standalone BPE training module."""

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
import logging
import threading

import regex as re

from ._bpe import bpe_freqs, bpe_merge
from ._decorators import timed
from ._progress import progress_bar
from .chunker import Chunker
from .encoder import validate_text
from .errors import InvalidVocabSizeError
from .pattern import TokenPattern
from .types import Token, TokenBytes, TokenPair
from .vocab import N_BASE_TOKENS, VocabularyStore

log = logging.getLogger(__name__)


@dataclass
class BPETrainingResult:
    """Results from one BPE training run."""

    store: VocabularyStore
    n_merges_requested: int
    n_merges_completed: int

    @property
    def stopped_early(self) -> bool:
        return self.n_merges_completed < self.n_merges_requested


class BPETrainer:
    """
    BPE trainer that learns merge rules from a text corpus.

    The corpus is split into chunks first (unless ``pattern`` is ``None``), so
    learned merges never cross chunk boundaries. Identical chunks are counted
    once and weighted by frequency.

    Each round merges the most frequent adjacent pair; ties go to the
    numerically smallest pair, which makes training fully deterministic.

    Example:
       >>> trainer = BPETrainer()
       >>> result = trainer.train("hello hello world", vocab_size=260)
       >>> result.n_merges_completed
       4
    """

    def __init__(
        self,
        pattern: str | None = TokenPattern.GPT4,
        special_tokens: Iterable[str] | None = None,
    ) -> None:
        """
        :param pattern: Split pattern for pre-tokenization; ``None`` trains on whole strings.
        :param special_tokens: Strings cut out of the corpus before training.
        """
        self.chunker: Chunker | None = None if pattern is None else Chunker(pattern)
        self.special_tokens: list[str] = [seq for seq in special_tokens or () if seq]

    @timed("training")
    def train(
        self,
        corpus: str | Iterable[str],
        vocab_size: int,
        verbose: bool = False,
        show_progress: bool = True,
        stop_event: threading.Event | None = None,
    ) -> BPETrainingResult:
        """
        Learn ``vocab_size - 256`` merges from ``corpus``.

        :param corpus: Training text as a single string or an iterable of strings.
        :param vocab_size: Target vocabulary size including the 256 base tokens.
        :param verbose: Log each learned merge when ``True``.
        :param show_progress: Display a progress bar while merging.
        :param stop_event: Training stops after the current merge once this is set.
        :returns: The learned vocabulary and merge counts.
        :raises InvalidVocabSizeError: If ``vocab_size`` is less than 256.
        :raises InvalidUtf8InputError: If a corpus string holds lone surrogates.
        """
        if vocab_size < N_BASE_TOKENS:
            raise InvalidVocabSizeError(
                "vocab size must be at least 256", vocab_size=vocab_size
            )

        n_merges = vocab_size - N_BASE_TOKENS
        words = self._count_chunks(corpus)
        log.debug(f"training on {len(words)} unique chunks")

        # trained vocabularies use the identity byte order: base token == byte
        seqs: list[list[Token]] = [list(word) for word in words]
        weights: list[int] = list(words.values())
        token_bytes: list[TokenBytes] = [bytes([b]) for b in range(N_BASE_TOKENS)]
        known_bytes: set[TokenBytes] = set(token_bytes)

        counts: Counter[TokenPair] = Counter()
        # pair -> indices of sequences that (may) contain it
        where: defaultdict[TokenPair, set[int]] = defaultdict(set)
        for idx, seq in enumerate(seqs):
            bpe_freqs(seq, counts, weights[idx])
            for pair in zip(seq, seq[1:]):
                where[pair].add(idx)

        # pairs whose bytes already name a token are never merged
        banned: set[TokenPair] = set()
        merges: list[tuple[TokenPair, Token]] = []

        with progress_bar(n_merges, "training", show_progress) as bar:
            while len(merges) < n_merges:
                if stop_event is not None and stop_event.is_set():
                    log.warning(f"training cancelled after {len(merges)} merges")
                    break
                if not counts:
                    break

                # most frequent pair, ties broken by the smallest pair
                pair = min(counts, key=lambda p: (-counts[p], p))
                merged = token_bytes[pair[0]] + token_bytes[pair[1]]
                if merged in known_bytes:
                    log.debug(f"skipping pair {pair}: bytes {merged!r} already in vocabulary")
                    banned.add(pair)
                    del counts[pair]
                    continue

                new_tok = N_BASE_TOKENS + len(merges)
                n_occurrences = counts[pair]
                self._apply_merge(seqs, weights, counts, where, banned, pair, new_tok)

                merges.append((pair, new_tok))
                token_bytes.append(merged)
                known_bytes.add(merged)
                bar.update(1)

                if verbose:
                    log.info(
                        "merge %d/%d: %s -> %d (%r) had %d occurrences",
                        len(merges),
                        n_merges,
                        pair,
                        new_tok,
                        merged,
                        n_occurrences,
                    )

        if len(merges) < n_merges:
            log.warning(
                f"no more byte pairs to merge after {len(merges)} merges "
                f"(requested {n_merges}) stopping early"
            )

        return BPETrainingResult(
            store=VocabularyStore.from_merges(merges),
            n_merges_requested=n_merges,
            n_merges_completed=len(merges),
        )

    def _count_chunks(self, corpus: str | Iterable[str]) -> Counter[TokenBytes]:
        """
        Split the corpus around special tokens and into chunks, counting unique chunk bytes.

        :raises InvalidUtf8InputError: If a corpus string holds lone surrogates.
        """
        texts = [corpus] if isinstance(corpus, str) else corpus
        special_pat = None
        if self.special_tokens:
            ordered = sorted(set(self.special_tokens), key=lambda seq: (-len(seq), seq))
            special_pat = re.compile("|".join(re.escape(seq) for seq in ordered))

        words: Counter[TokenBytes] = Counter()
        for text in texts:
            text = validate_text(text)
            pieces = special_pat.split(text) if special_pat is not None else [text]
            for piece in pieces:
                if not piece:
                    continue
                chunks = self.chunker.split(piece) if self.chunker is not None else [piece]
                for chunk in chunks:
                    words[chunk.encode("utf-8")] += 1
        return words

    @staticmethod
    def _apply_merge(
        seqs: list[list[Token]],
        weights: list[int],
        counts: Counter[TokenPair],
        where: defaultdict[TokenPair, set[int]],
        banned: set[TokenPair],
        pair: TokenPair,
        new_tok: Token,
    ) -> None:
        """
        Rewrite ``pair`` to ``new_tok`` in every sequence holding it and update counts in place.

        Only sequences indexed under ``pair`` are touched; their old pairs are
        subtracted and their new pairs added, which gives the same counts as a
        full recount.
        """
        touched: set[TokenPair] = set()
        for idx in where.pop(pair, ()):
            seq = seqs[idx]
            merged = bpe_merge(seq, pair, new_tok)
            # stale index entry: an earlier merge already consumed this pair
            if len(merged) == len(seq):
                continue
            weight = weights[idx]
            for old in zip(seq, seq[1:]):
                counts[old] -= weight
                touched.add(old)
            for new in zip(merged, merged[1:]):
                if new in banned:
                    continue
                counts[new] += weight
                where[new].add(idx)
                touched.add(new)
            seqs[idx] = merged

        # keep the counter lean: drop pairs that no longer occur
        for p in touched:
            if counts[p] <= 0:
                del counts[p]
        counts.pop(pair, None)


def train_bpe(
    corpus: str | Iterable[str],
    vocab_size: int,
    *,
    pattern: str | None = TokenPattern.GPT4,
    special_tokens: Iterable[str] | None = None,
    verbose: bool = False,
    show_progress: bool = True,
    stop_event: threading.Event | None = None,
) -> BPETrainingResult:
    """Train a BPE vocabulary from ``corpus``; see ``BPETrainer.train``."""
    trainer = BPETrainer(pattern=pattern, special_tokens=special_tokens)
    return trainer.train(
        corpus,
        vocab_size,
        verbose=verbose,
        show_progress=show_progress,
        stop_event=stop_event,
    )


__all__ = ["BPETrainer", "BPETrainingResult", "train_bpe"]
