"""
Core types for tokenization.
"""

from typing import TypeAlias

Token: TypeAlias = int
TokenBytes: TypeAlias = bytes
TokenPair: TypeAlias = tuple[Token, Token]
MergeHistory: TypeAlias = list[tuple[TokenPair, Token]]
Ranks: TypeAlias = dict[TokenBytes, Token]
