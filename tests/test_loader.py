"""Unit tests for tiktoken rank files: parsing, merge recovery and dumping."""

import base64

import pytest

from rankbpe import (
    GPT4_BYTE_ORDER,
    DuplicateVocabularyEntryError,
    MalformedVocabularyFileError,
    Tokenizer,
    dump_tiktoken_ranks,
    load_tiktoken_ranks,
    parse_rank_file,
    train_bpe,
)
from rankbpe.loader import recover_merges


def b64(token: bytes) -> str:
    return base64.b64encode(token).decode("ascii")


# Parsing
# ---------------------------------------------------------------------------


def test_parse_entries():
    data = f"{b64(b'a')} 0\n{b64(b'b')} 1\n{b64(b'ab')} 2\n".encode()
    assert parse_rank_file(data) == [(b"a", 0), (b"b", 1), (b"ab", 2)]


def test_parse_accepts_str_and_skips_blank_lines():
    data = f"\n{b64(b'a')} 0\n\n{b64(b'b')} 1\n\n"
    assert parse_rank_file(data) == [(b"a", 0), (b"b", 1)]


def test_parse_invalid_base64():
    with pytest.raises(MalformedVocabularyFileError) as exc_info:
        parse_rank_file(b"!!!! 0\n")
    assert exc_info.value.line_no == 1


def test_parse_non_monotonic_rank():
    data = f"{b64(b'a')} 0\n{b64(b'b')} 2\n".encode()
    with pytest.raises(MalformedVocabularyFileError) as exc_info:
        parse_rank_file(data)
    assert exc_info.value.line_no == 2


def test_parse_ranks_must_start_at_zero():
    with pytest.raises(MalformedVocabularyFileError):
        parse_rank_file(f"{b64(b'a')} 1\n".encode())


@pytest.mark.parametrize(
    "line",
    [
        "YQ==",  # rank missing
        "YQ== x",  # rank not an integer
        "YQ== 0 extra",  # too many fields
    ],
)
def test_parse_malformed_lines(line):
    with pytest.raises(MalformedVocabularyFileError):
        parse_rank_file(line.encode())


def test_parse_non_ascii():
    with pytest.raises(MalformedVocabularyFileError):
        parse_rank_file("YQ== 0\né 1\n".encode("utf-8"))


# Loading
# ---------------------------------------------------------------------------


def test_load_recovers_merges(hello_rank_file, hello_merges):
    store = load_tiktoken_ranks(hello_rank_file)
    assert store.size == 256 + len(hello_merges)
    assert store.byte_order == GPT4_BYTE_ORDER

    he, ll, hell = 256, 257, 258
    o = GPT4_BYTE_ORDER.index(ord("o"))
    assert store.merge_for((he, ll)) == hell
    assert store.rank_of((he, ll)) == 2
    assert store.merge_for((hell, o)) == 259
    # token id equals file rank
    for rank, token in enumerate(hello_merges, start=256):
        assert store.bytes_of(rank) == token


def test_load_from_path_and_mapping(tmp_path, hello_rank_file):
    path = tmp_path / "hello.tiktoken"
    path.write_bytes(hello_rank_file)
    from_path = load_tiktoken_ranks(path)
    from_str_path = load_tiktoken_ranks(str(path))
    from_mapping = load_tiktoken_ranks(
        {token: rank for token, rank in parse_rank_file(hello_rank_file)}
    )
    assert from_path == from_str_path == from_mapping


def test_identity_order_rejected_by_default(rank_file_factory):
    data = rank_file_factory([b"ab"], byte_order=range(256))
    with pytest.raises(MalformedVocabularyFileError):
        load_tiktoken_ranks(data)


def test_identity_order_accepted_without_byte_order(rank_file_factory):
    data = rank_file_factory([b"ab"], byte_order=range(256))
    store = load_tiktoken_ranks(data, byte_order=None)
    assert store.byte_order == tuple(range(256))
    assert store.merge_for((97, 98)) == 256


def test_too_few_entries(rank_file_factory):
    data = rank_file_factory([])
    # drop the last base token
    truncated = b"\n".join(data.splitlines()[:255])
    with pytest.raises(MalformedVocabularyFileError):
        load_tiktoken_ranks(truncated)


def test_duplicate_token(rank_file_factory):
    with pytest.raises(DuplicateVocabularyEntryError):
        load_tiktoken_ranks(rank_file_factory([b"ab", b"a"]), byte_order=None)


def test_non_decomposable_token(rank_file_factory):
    # neither "ab" nor "bc" exists, so "abc" splits into three parts
    with pytest.raises(MalformedVocabularyFileError):
        load_tiktoken_ranks(rank_file_factory([b"abc"]))


def test_token_built_from_later_rank(rank_file_factory):
    # "abc" listed before the "bc" it would need
    with pytest.raises(MalformedVocabularyFileError):
        load_tiktoken_ranks(rank_file_factory([b"abc", b"bc"]))


def test_recover_merges_uses_lowest_rank_first():
    entries = [(bytes([b]), b) for b in range(256)]
    entries += [(b"bc", 256), (b"ab", 257), (b"abc", 258)]
    # "bc" outranks "ab", so "abc" is a + bc
    assert recover_merges(entries)[-1] == ((97, 256), 258)


# Dumping
# ---------------------------------------------------------------------------


def test_dump_round_trips_file_bytes(hello_rank_file):
    store = load_tiktoken_ranks(hello_rank_file)
    assert dump_tiktoken_ranks(store) == hello_rank_file


def test_trained_store_round_trips():
    corpus = "low lower lowest newer wider " * 10
    store = train_bpe(corpus, 290, show_progress=False).store
    reloaded = load_tiktoken_ranks(dump_tiktoken_ranks(store), byte_order=None)
    assert reloaded.byte_order == store.byte_order
    assert [reloaded.bytes_of(tok) for tok in reloaded] == [
        store.bytes_of(tok) for tok in store
    ]


# Encoding with a loaded vocabulary
# ---------------------------------------------------------------------------


def test_loaded_vocabulary_encodes(hello_rank_file):
    tok = Tokenizer.from_tiktoken(hello_rank_file)
    assert tok.encode("hello world") == [259, 264]
    assert tok.decode([259, 264]) == "hello world"
    # unmerged letters map through the byte permutation
    assert tok.encode("hi") == [ord("h") - 33, ord("i") - 33]
    assert tok.encode(" ") == [220]
