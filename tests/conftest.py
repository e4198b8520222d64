"""Shared fixtures for rankbpe tests."""

import base64
from collections.abc import Callable, Sequence

import pytest

import rankbpe
from rankbpe.loader import GPT4_BYTE_ORDER

# no progress bars in test output
rankbpe.disable_progress()


def make_rank_file(
    extra: Sequence[bytes], byte_order: Sequence[int] = GPT4_BYTE_ORDER
) -> bytes:
    """Build rank file contents: 256 base tokens in ``byte_order`` followed by ``extra``."""
    tokens = [bytes([b]) for b in byte_order] + list(extra)
    lines = [
        f"{base64.b64encode(tok).decode('ascii')} {rank}"
        for rank, tok in enumerate(tokens)
    ]
    return ("\n".join(lines) + "\n").encode("ascii")


# tokens 256.. of a tiny GPT-4 ordered vocabulary; each one splits into two
# earlier tokens under BPE restricted to lower ranks
HELLO_WORLD_MERGES: list[bytes] = [
    b"he",  # 256
    b"ll",  # 257
    b"hell",  # 258
    b"hello",  # 259
    b" w",  # 260
    b"or",  # 261
    b" wor",  # 262
    b"ld",  # 263
    b" world",  # 264
]


@pytest.fixture
def rank_file_factory() -> Callable[..., bytes]:
    return make_rank_file


@pytest.fixture
def hello_rank_file() -> bytes:
    """Rank file with the GPT-4 byte order and merges spelling "hello world"."""
    return make_rank_file(HELLO_WORLD_MERGES)


@pytest.fixture
def hello_merges() -> list[bytes]:
    return list(HELLO_WORLD_MERGES)
