"""
Loader for tiktoken rank files (``<base64 bytes> <rank>`` per line).

A rank file lists tokens only, not merges. The merge history is implicit in
the ranks: the entry at rank ``r`` was formed from two tokens of lower rank.
The loader recovers each pair and rebuilds a ``VocabularyStore`` whose merge
ranks follow the file order exactly.
"""

import base64
import binascii
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

from ._decorators import timed
from .errors import DuplicateVocabularyEntryError, MalformedVocabularyFileError
from .types import MergeHistory, Ranks, Token, TokenBytes
from .vocab import N_BASE_TOKENS, VocabularyStore

log = logging.getLogger(__name__)

# Byte value of each base token in cl100k_base: printable bytes first
# (33-126, 161-172, 174-255), then the rest in ascending order. Token 188 is
# byte 0 and token 220 is the space.
GPT4_BYTE_ORDER: Final[tuple[int, ...]] = (
    33, 34, 35, 36, 37, 38, 39, 40, 41, 42, 43, 44, 45, 46, 47, 48, 49, 50, 51, 52, 53,
    54, 55, 56, 57, 58, 59, 60, 61, 62, 63, 64, 65, 66, 67, 68, 69, 70, 71, 72, 73, 74,
    75, 76, 77, 78, 79, 80, 81, 82, 83, 84, 85, 86, 87, 88, 89, 90, 91, 92, 93, 94, 95,
    96, 97, 98, 99, 100, 101, 102, 103, 104, 105, 106, 107, 108, 109, 110, 111, 112,
    113, 114, 115, 116, 117, 118, 119, 120, 121, 122, 123, 124, 125, 126, 161, 162, 163,
    164, 165, 166, 167, 168, 169, 170, 171, 172, 174, 175, 176, 177, 178, 179, 180, 181,
    182, 183, 184, 185, 186, 187, 188, 189, 190, 191, 192, 193, 194, 195, 196, 197, 198,
    199, 200, 201, 202, 203, 204, 205, 206, 207, 208, 209, 210, 211, 212, 213, 214, 215,
    216, 217, 218, 219, 220, 221, 222, 223, 224, 225, 226, 227, 228, 229, 230, 231, 232,
    233, 234, 235, 236, 237, 238, 239, 240, 241, 242, 243, 244, 245, 246, 247, 248, 249,
    250, 251, 252, 253, 254, 255, 0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15,
    16, 17, 18, 19, 20, 21, 22, 23, 24, 25, 26, 27, 28, 29, 30, 31, 32, 127, 128, 129,
    130, 131, 132, 133, 134, 135, 136, 137, 138, 139, 140, 141, 142, 143, 144, 145, 146,
    147, 148, 149, 150, 151, 152, 153, 154, 155, 156, 157, 158, 159, 160, 173,
)  # fmt: skip


def parse_rank_file(data: bytes | str) -> list[tuple[TokenBytes, Token]]:
    """
    Parse rank file contents into ``(token bytes, rank)`` entries.

    Blank lines are ignored. Ranks must start at 0 and increase by exactly one
    per entry, so ranks double as dense token ids.

    :raises MalformedVocabularyFileError: On bad base64, a missing or
        non-integer rank, or a rank out of sequence.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("ascii")
        except UnicodeDecodeError as e:
            raise MalformedVocabularyFileError(
                f"rank file is not ascii (byte offset {e.start})"
            ) from e

    entries: list[tuple[TokenBytes, Token]] = []
    for line_no, line in enumerate(data.splitlines(), start=1):
        stripped = line.strip()
        if not stripped:
            continue
        parts = stripped.split()
        if len(parts) != 2:
            raise MalformedVocabularyFileError(
                "expected '<base64> <rank>'", line_no=line_no, line=line
            )
        raw, rank_str = parts
        try:
            token = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedVocabularyFileError(
                "invalid base64 token", line_no=line_no, line=line
            ) from e
        try:
            rank = int(rank_str)
        except ValueError as e:
            raise MalformedVocabularyFileError(
                "rank is not an integer", line_no=line_no, line=line
            ) from e
        expected = len(entries)
        if rank != expected:
            raise MalformedVocabularyFileError(
                f"non-monotonic rank {rank} (expected {expected})",
                line_no=line_no,
                line=line,
            )
        if not token:
            raise MalformedVocabularyFileError(
                "empty token", line_no=line_no, line=line
            )
        entries.append((token, rank))

    return entries


def _entries_from_mapping(ranks: Mapping[TokenBytes, Token]) -> list[tuple[TokenBytes, Token]]:
    """Order an in-memory ``{bytes: rank}`` mapping and check that ranks are dense."""
    entries = sorted(ranks.items(), key=lambda item: item[1])
    for expected, (token, rank) in enumerate(entries):
        if rank != expected:
            raise MalformedVocabularyFileError(
                f"non-monotonic rank {rank} (expected {expected}) for token {token!r}"
            )
    return entries


def _bpe_parts(ranks: Ranks, token: TokenBytes, max_rank: int) -> list[TokenBytes]:
    """
    Run byte-level BPE over ``token`` using only ranks below ``max_rank``.

    Each round merges the leftmost adjacent pair with the lowest rank, the way
    the reference encoder does. Stopping just below the token's own rank leaves
    the two parts it was built from.
    """
    parts = [bytes([b]) for b in token]
    while True:
        min_idx: int | None = None
        min_rank: int | None = None
        for i, (left, right) in enumerate(zip(parts, parts[1:])):
            rank = ranks.get(left + right)
            if rank is not None and (min_rank is None or rank < min_rank):
                min_idx, min_rank = i, rank
        if min_idx is None or min_rank is None or min_rank >= max_rank:
            break
        parts[min_idx : min_idx + 2] = [parts[min_idx] + parts[min_idx + 1]]
    return parts


def recover_merges(
    entries: Sequence[tuple[TokenBytes, Token]],
) -> MergeHistory:
    """
    Recover the merge history implied by rank-ordered entries.

    :returns: ``(pair, token)`` entries for every rank at or above 256, in rank order.
    :raises MalformedVocabularyFileError: If an entry cannot be split into two earlier tokens.
    """
    ranks: Ranks = {token: rank for token, rank in entries}
    merges: MergeHistory = []
    for token, rank in entries[N_BASE_TOKENS:]:
        parts = _bpe_parts(ranks, token, max_rank=rank)
        if len(parts) != 2:
            raise MalformedVocabularyFileError(
                f"token {token!r} at rank {rank} is not a merge of two earlier tokens "
                f"(split into {len(parts)} parts)"
            )
        merges.append(((ranks[parts[0]], ranks[parts[1]]), rank))
    return merges


@timed("rank file load")
def load_tiktoken_ranks(
    source: str | os.PathLike | bytes | Mapping[TokenBytes, Token],
    *,
    byte_order: Sequence[int] | None = GPT4_BYTE_ORDER,
) -> VocabularyStore:
    """
    Build a ``VocabularyStore`` from a tiktoken rank file.

    :param source: Path of a rank file, its raw contents, or an already parsed
        ``{token bytes: rank}`` mapping.
    :param byte_order: Expected byte value of each base token. Defaults to the
        GPT-4 permutation; ``None`` takes the order from the file itself.
    :raises MalformedVocabularyFileError: If the file cannot be parsed, the
        first 256 ranks are not the 256 single bytes in ``byte_order``, or an
        entry is not a merge of two earlier tokens.
    :raises DuplicateVocabularyEntryError: If two ranks share a byte sequence.
    """
    if isinstance(source, Mapping):
        entries = _entries_from_mapping(source)
    elif isinstance(source, bytes):
        entries = parse_rank_file(source)
    else:
        path = Path(source)
        log.info(f"loading rank file from {path}")
        entries = parse_rank_file(path.read_bytes())

    seen: dict[TokenBytes, Token] = {}
    for token, rank in entries:
        if token in seen:
            raise DuplicateVocabularyEntryError(
                f"rank {rank} duplicates rank {seen[token]}",
                token_bytes=token,
                invalid_tok=rank,
            )
        seen[token] = rank

    if len(entries) < N_BASE_TOKENS:
        raise MalformedVocabularyFileError(
            f"rank file has {len(entries)} entries, expected at least {N_BASE_TOKENS}"
        )

    file_order: list[int] = []
    for token, rank in entries[:N_BASE_TOKENS]:
        if len(token) != 1:
            raise MalformedVocabularyFileError(
                f"rank {rank} must be a single byte, got {token!r}"
            )
        file_order.append(token[0])

    if byte_order is not None:
        for rank, (expected, actual) in enumerate(zip(byte_order, file_order)):
            if expected != actual:
                raise MalformedVocabularyFileError(
                    f"base token {rank} is byte {actual}, expected byte {expected}"
                )

    merges = recover_merges(entries)
    store = VocabularyStore.from_merges(merges, byte_order=file_order)
    log.info(f"loaded {len(store)} ranks ({len(merges)} merges)")
    return store


def dump_tiktoken_ranks(store: VocabularyStore) -> bytes:
    """Serialize ``store`` to the rank file format; token ids are the ranks."""
    lines = [
        f"{base64.b64encode(store.bytes_of(tok)).decode('ascii')} {tok}"
        for tok in store
    ]
    return ("\n".join(lines) + "\n").encode("ascii")


__all__ = [
    "GPT4_BYTE_ORDER",
    "parse_rank_file",
    "recover_merges",
    "load_tiktoken_ranks",
    "dump_tiktoken_ranks",
]
