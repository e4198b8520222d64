"""
Core Byte Pair Encoding (BPE) operations.
"""

from collections import Counter
from collections.abc import Callable

from .types import Token, TokenPair
from .vocab import MergeRule


def bpe_freqs(
    tokens: list[Token],
    counts: Counter[TokenPair] | None = None,
    weight: int = 1,
) -> Counter[TokenPair]:
    """
    Count every consecutive token pair in ``tokens``.

    :param tokens: Token sequence to analyze.
    :param counts: Existing counter to update in place; a new one is created when omitted.
    :param weight: Amount added per occurrence (number of times the sequence occurs).
    :returns: The updated pair counter.
    """
    if counts is None:
        counts = Counter()
    for pair in zip(tokens, tokens[1:]):
        counts[pair] += weight
    return counts


def bpe_merge(tokens: list[Token], target: TokenPair, new_tok: Token) -> list[Token]:
    """
    Merge all occurrences of a target token pair into a single new token.

    Occurrences are replaced left to right without overlap, so ``a a a`` merged
    on ``(a, a)`` becomes ``aa a``.

    Note that merged tokens may represent partial UTF-8 sequences. Decode with
    errors="replace" to handle invalid sequences gracefully.
    """
    newtoks: list[Token] = []

    i = 0
    n = len(tokens)
    while i < n:
        # check if we can form a pair and it matches the target
        if i < n - 1 and tokens[i] == target[0] and tokens[i + 1] == target[1]:
            newtoks.append(new_tok)
            i += 2
        else:
            newtoks.append(tokens[i])
            i += 1

    return newtoks


def lowest_rank_rule(
    tokens: list[Token], rule_for: Callable[[TokenPair], MergeRule | None]
) -> MergeRule | None:
    """
    Return the rule of the lowest-rank adjacent pair, or ``None`` if no pair merges.

    Ranks are unique, so the minimum is never ambiguous.
    """
    best: MergeRule | None = None
    for pair in zip(tokens, tokens[1:]):
        rule = rule_for(pair)
        if rule is not None and (best is None or rule.rank < best.rank):
            best = rule
    return best


def apply_merges(
    tokens: list[Token], rule_for: Callable[[TokenPair], MergeRule | None]
) -> list[Token]:
    """
    Apply merges to ``tokens`` in rank order until none applies.

    Each round picks the lowest-rank adjacent pair and replaces every
    non-overlapping occurrence of it, mirroring the order merges were learned.
    """
    while len(tokens) >= 2:
        rule = lowest_rank_rule(tokens, rule_for)
        if rule is None:
            break
        tokens = bpe_merge(tokens, rule.pair, rule.token)
    return tokens
