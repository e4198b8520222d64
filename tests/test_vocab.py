"""Unit tests for the vocabulary store: construction, lookups, byte order and invariants."""

import pytest

from rankbpe import (
    GPT4_BYTE_ORDER,
    DuplicateVocabularyEntryError,
    MalformedVocabularyFileError,
    MergeRule,
    UnknownTokenError,
    VocabularyStore,
    train_bpe,
)
from rankbpe._bpe import apply_merges, lowest_rank_rule

# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hi_store():
    """Identity-ordered store with merges "hi" (256) and "hi!" (257)."""
    return VocabularyStore.from_merges([((104, 105), 256), ((256, 33), 257)])


# Construction
# ---------------------------------------------------------------------------


def test_empty_history_has_base_tokens_only():
    store = VocabularyStore.from_merges([])
    assert store.size == 256
    assert len(store) == 256
    assert store.merges == ()
    assert all(store.bytes_of(tok) == bytes([tok]) for tok in range(256))


def test_merge_tokens_expand_to_concatenation(hi_store):
    assert hi_store.size == 258
    assert hi_store.bytes_of(256) == b"hi"
    assert hi_store.bytes_of(257) == b"hi!"


def test_rank_and_merge_lookups(hi_store):
    assert hi_store.rank_of((104, 105)) == 0
    assert hi_store.rank_of((256, 33)) == 1
    assert hi_store.merge_for((256, 33)) == 257
    assert hi_store.rule_for((104, 105)) == MergeRule(pair=(104, 105), token=256, rank=0)
    assert hi_store.rank_of((1, 2)) is None
    assert hi_store.merge_for((1, 2)) is None


def test_merges_are_in_rank_order(hi_store):
    assert [rule.rank for rule in hi_store.merges] == [0, 1]
    assert hi_store.merge_history() == [((104, 105), 256), ((256, 33), 257)]


def test_reverse_byte_lookup(hi_store):
    assert hi_store.token_for_bytes(b"hi!") == 257
    assert hi_store.token_for_bytes(b"A") == 65
    assert hi_store.token_for_bytes(b"zz") is None


def test_duplicate_pair_rejected():
    with pytest.raises(DuplicateVocabularyEntryError):
        VocabularyStore.from_merges([((104, 105), 256), ((104, 105), 257)])


def test_duplicate_bytes_rejected():
    """The bytes abc built once as ab+c and again as a+bc."""
    merges = [
        ((97, 98), 256),  # ab
        ((256, 99), 257),  # abc
        ((98, 99), 258),  # bc
        ((97, 258), 259),  # abc again
    ]
    with pytest.raises(DuplicateVocabularyEntryError) as exc_info:
        VocabularyStore.from_merges(merges)
    assert exc_info.value.token_bytes == b"abc"
    assert exc_info.value.invalid_tok == 259


def test_sparse_token_id_rejected():
    with pytest.raises(MalformedVocabularyFileError):
        VocabularyStore.from_merges([((97, 98), 300)])


def test_forward_reference_rejected():
    with pytest.raises(MalformedVocabularyFileError):
        VocabularyStore.from_merges([((97, 400), 256)])


def test_byte_order_must_be_permutation():
    with pytest.raises(MalformedVocabularyFileError):
        VocabularyStore.from_merges([], byte_order=[0] * 256)
    with pytest.raises(MalformedVocabularyFileError):
        VocabularyStore.from_merges([], byte_order=range(255))


# Byte order
# ---------------------------------------------------------------------------


def test_gpt4_byte_order_mapping():
    store = VocabularyStore.from_merges([], byte_order=GPT4_BYTE_ORDER)
    assert store.token_for_byte(32) == 220
    assert store.token_for_byte(0) == 188
    assert store.token_for_byte(ord("!")) == 0
    assert store.bytes_of(220) == b" "
    assert store.bytes_of(188) == b"\x00"
    # byte_to_token inverts byte_order
    assert all(
        store.byte_to_token[byte] == tok for tok, byte in enumerate(store.byte_order)
    )


def test_identity_order_by_default(hi_store):
    assert hi_store.byte_order == tuple(range(256))
    assert hi_store.token_for_byte(200) == 200


# Lookups out of range
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("tok", [-1, 258, 10**6])
def test_bytes_of_unknown_token(hi_store, tok):
    with pytest.raises(UnknownTokenError) as exc_info:
        hi_store.bytes_of(tok)
    assert exc_info.value.invalid_tok == tok


def test_contains(hi_store):
    assert 0 in hi_store
    assert 257 in hi_store
    assert 258 not in hi_store
    assert "a" not in hi_store


# Immutability and sharing
# ---------------------------------------------------------------------------


def test_vocab_view_is_read_only(hi_store):
    with pytest.raises(TypeError):
        hi_store.vocab[0] = b"x"  # type: ignore[index]


def test_no_new_attributes(hi_store):
    with pytest.raises(AttributeError):
        hi_store.extra = 1  # type: ignore[attr-defined]


def test_merge_rule_is_frozen(hi_store):
    rule = hi_store.merges[0]
    with pytest.raises(AttributeError):
        rule.rank = 5  # type: ignore[misc]


def test_equal_histories_give_equal_stores(hi_store):
    other = VocabularyStore.from_merges(hi_store.merge_history())
    assert other == hi_store
    assert hash(other) == hash(hi_store)


# Structural invariants on a trained vocabulary
# ---------------------------------------------------------------------------


def test_trained_store_invariants():
    corpus = "the quick brown fox jumps over the lazy dog " * 20
    store = train_bpe(corpus, 320, show_progress=False).store

    for rule in store.merges:
        left, right = rule.pair
        # constituents are base tokens or merges learned earlier
        for part in (left, right):
            if part >= 256:
                assert store.merges[part - 256].rank < rule.rank
        assert store.bytes_of(rule.token) == store.bytes_of(left) + store.bytes_of(right)

    # bytes are unique across the vocabulary
    all_bytes = [store.bytes_of(tok) for tok in store]
    assert len(set(all_bytes)) == len(all_bytes)


# Merge application
# ---------------------------------------------------------------------------


def test_lowest_rank_rule_picks_earliest_merge(hi_store):
    # "hi" and "i!" both appear; only "hi" is a rule
    rule = lowest_rank_rule([104, 105, 33], hi_store.rule_for)
    assert rule == MergeRule(pair=(104, 105), token=256, rank=0)
    assert lowest_rank_rule([256, 33], hi_store.rule_for).token == 257
    assert lowest_rank_rule([1, 2, 3], hi_store.rule_for) is None


def test_apply_merges_uses_rule_tokens(hi_store):
    assert apply_merges(list(b"hi!hi"), hi_store.rule_for) == [257, 256]
    assert apply_merges(list(b"h"), hi_store.rule_for) == [104]
    assert apply_merges([], hi_store.rule_for) == []


def test_apply_merges_stops_when_nothing_merges(hi_store):
    assert apply_merges(list(b"ih!"), hi_store.rule_for) == list(b"ih!")
