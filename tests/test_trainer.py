"""Unit tests for BPE training: merge selection, chunk boundaries, special tokens and cancellation."""

import logging
import threading
from collections import Counter

import pytest

from rankbpe import (
    BPETrainer,
    Chunker,
    InvalidUtf8InputError,
    InvalidVocabSizeError,
    TokenPattern,
    train_bpe,
)
from rankbpe._bpe import bpe_freqs, bpe_merge

CORPUS = (
    "The quick brown fox jumps over the lazy dog. "
    "Pack my box with five dozen liquor jugs! "
    "How vexingly quick daft zebras jump; the five boxing wizards jump quickly. "
    "1234567890 2024-01-01 café naïve 日本語 🎉🎉 "
) * 8


def naive_train(corpus, vocab_size, pattern=TokenPattern.GPT4):
    """Full recount every round; the incremental trainer must agree with it."""
    seqs = [list(chunk.encode("utf-8")) for chunk in Chunker(pattern).split(corpus)]
    token_bytes = [bytes([b]) for b in range(256)]
    banned = set()
    merges = []
    while len(merges) < vocab_size - 256:
        counts = Counter()
        for seq in seqs:
            bpe_freqs(seq, counts)
        for pair in banned:
            counts.pop(pair, None)
        if not counts:
            break
        pair = min(counts, key=lambda p: (-counts[p], p))
        merged = token_bytes[pair[0]] + token_bytes[pair[1]]
        if merged in token_bytes:
            banned.add(pair)
            continue
        new_tok = 256 + len(merges)
        seqs = [bpe_merge(seq, pair, new_tok) for seq in seqs]
        merges.append((pair, new_tok))
        token_bytes.append(merged)
    return merges


# Vocab size
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("vocab_size", [0, 100, 255])
def test_vocab_size_below_base_rejected(vocab_size):
    with pytest.raises(InvalidVocabSizeError) as exc_info:
        train_bpe("hello", vocab_size, show_progress=False)
    assert exc_info.value.vocab_size == vocab_size


def test_vocab_size_256_learns_nothing():
    result = train_bpe("hello world", 256, show_progress=False)
    assert result.store.size == 256
    assert result.n_merges_requested == 0
    assert not result.stopped_early


def test_empty_corpus_stops_early():
    result = train_bpe("", 266, show_progress=False)
    assert result.store.size == 256
    assert result.n_merges_completed == 0
    assert result.stopped_early


# Merge selection
# ---------------------------------------------------------------------------


def test_most_frequent_pair_first():
    result = train_bpe("abab cdcdcd", 257, pattern=None, show_progress=False)
    assert result.store.merges[0].pair == (ord("c"), ord("d"))
    assert result.store.merges[0].token == 256


def test_ties_go_to_smallest_pair():
    result = train_bpe("abcd", 257, pattern=None, show_progress=False)
    assert result.store.merges[0].pair == (ord("a"), ord("b"))


def test_overlapping_runs():
    result = train_bpe("aaaa", 258, pattern=None, show_progress=False)
    store = result.store
    assert store.merges[0].pair == (97, 97)
    assert store.merges[1].pair == (256, 256)
    assert store.bytes_of(257) == b"aaaa"


def test_odd_run_merges_leftover():
    store = train_bpe("aaa", 258, pattern=None, show_progress=False).store
    assert store.bytes_of(256) == b"aa"
    assert store.bytes_of(257) == b"aaa"


def test_merges_do_not_cross_chunks():
    chunked = train_bpe("a b", 300, show_progress=False)
    assert chunked.n_merges_completed == 1
    assert chunked.store.bytes_of(256) == b" b"
    assert chunked.stopped_early

    whole = train_bpe("a b", 300, pattern=None, show_progress=False)
    assert whole.n_merges_completed == 2
    assert whole.store.bytes_of(257) == b"a b"


def test_learned_tokens_unique_bytes():
    store = train_bpe(CORPUS, 400, show_progress=False).store
    all_bytes = [store.bytes_of(tok) for tok in store]
    assert len(set(all_bytes)) == len(all_bytes)


def test_incremental_counts_match_full_recount():
    result = train_bpe(CORPUS, 380, show_progress=False)
    assert result.store.merge_history() == naive_train(CORPUS, 380)


def test_incremental_counts_match_full_recount_without_chunking():
    corpus = "abracadabra " * 5 + "banana bandana " * 3
    result = train_bpe(corpus, 300, pattern=None, show_progress=False)
    assert result.store.merge_history() == naive_train(corpus, 300, pattern=r"(?s).+")


# Determinism and corpus shapes
# ---------------------------------------------------------------------------


def test_training_is_deterministic():
    first = train_bpe(CORPUS, 350, show_progress=False).store
    second = train_bpe(CORPUS, 350, show_progress=False).store
    assert first == second


def test_iterable_corpus_matches_joined_chunks():
    joined = train_bpe("hello world", 270, show_progress=False).store
    split = train_bpe(["hello", " world"], 270, show_progress=False).store
    assert joined == split


def test_trainer_class_matches_function():
    trainer = BPETrainer(pattern=TokenPattern.GPT2)
    result = trainer.train(CORPUS, 300, show_progress=False)
    assert result.store == train_bpe(
        CORPUS, 300, pattern=TokenPattern.GPT2, show_progress=False
    ).store


# Special tokens
# ---------------------------------------------------------------------------


def test_special_tokens_excluded_from_training():
    result = train_bpe(
        "ab<|eot|>ab",
        300,
        pattern=None,
        special_tokens=["<|eot|>"],
        show_progress=False,
    )
    assert result.n_merges_completed == 1
    assert result.store.bytes_of(256) == b"ab"
    learned = [result.store.bytes_of(rule.token) for rule in result.store.merges]
    assert learned == [b"ab"]


def test_special_strings_train_as_text_when_not_registered():
    result = train_bpe("<|eot|><|eot|>", 257, pattern=None, show_progress=False)
    assert result.store.bytes_of(256) == b"<|"


# Cancellation and logging
# ---------------------------------------------------------------------------


def test_stop_event_cancels_training(caplog):
    stop = threading.Event()
    stop.set()
    with caplog.at_level(logging.WARNING, logger="rankbpe.trainer"):
        result = train_bpe(CORPUS, 400, show_progress=False, stop_event=stop)
    assert result.n_merges_completed == 0
    assert result.stopped_early
    assert "cancelled" in caplog.text


def test_early_stop_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="rankbpe.trainer"):
        train_bpe("a b", 300, show_progress=False)
    assert "stopping early" in caplog.text


def test_verbose_logs_each_merge(caplog):
    with caplog.at_level(logging.INFO, logger="rankbpe.trainer"):
        train_bpe("hello hello", 258, verbose=True, show_progress=False)
    assert "merge 1/2" in caplog.text
    assert "merge 2/2" in caplog.text


def test_training_time_logged(caplog):
    with caplog.at_level(logging.INFO, logger="rankbpe.trainer"):
        train_bpe("hello", 257, show_progress=False)
    assert "training finished in" in caplog.text


def test_training_time_logged_on_error(caplog):
    with caplog.at_level(logging.INFO, logger="rankbpe.trainer"):
        with pytest.raises(InvalidVocabSizeError):
            train_bpe("hello", 10, show_progress=False)
    assert "training finished in" in caplog.text


# Corpus validation
# ---------------------------------------------------------------------------


def test_lone_surrogate_in_corpus_rejected():
    with pytest.raises(InvalidUtf8InputError) as exc_info:
        train_bpe(["fine text", "bad \ud800 text"], 300, show_progress=False)
    assert exc_info.value.position == 4


def test_lone_surrogate_rejected_without_pattern():
    with pytest.raises(InvalidUtf8InputError):
        train_bpe("\udcff\udcff", 257, pattern=None, show_progress=False)


def test_bytes_corpus_entries_decoded():
    result = train_bpe([b"abab", "abab"], 257, pattern=None, show_progress=False)
    assert result.store.bytes_of(256) == b"ab"
