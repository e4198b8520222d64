"""rankbpe: byte-level BPE tokenization compatible with tiktoken rank files."""

from ._progress import disable_progress, enable_progress
from .chunker import Chunker
from .decoder import Decoder
from .encoder import Encoder
from .errors import (
    DecodingError,
    DuplicateVocabularyEntryError,
    InvalidUtf8InputError,
    InvalidVocabSizeError,
    MalformedVocabularyFileError,
    ModelLoadError,
    PatternError,
    RankBPEError,
    SpecialTokenError,
    StrategyError,
    TokenizationError,
    UnknownTokenError,
    VocabularyError,
)
from .factory import from_pretrained, list_pretrained
from .loader import (
    GPT4_BYTE_ORDER,
    dump_tiktoken_ranks,
    load_tiktoken_ranks,
    parse_rank_file,
)
from .pattern import TokenPattern, get_pattern, list_patterns
from .pretrained import cl100k_base
from .specials import SpecialTokenRegistry
from .strategy import (
    ALLOW_ALL,
    ALLOW_NONE,
    ALLOW_NONE_RAISE,
    SpecialTokenStrategy,
    allow_only,
    get_strategy,
    list_strategies,
)
from .tokenizer import Tokenizer
from .trainer import BPETrainer, BPETrainingResult, train_bpe
from .vocab import MergeRule, VocabularyStore

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("rankbpe")
except PackageNotFoundError:
    __version__ = "dev"

__all__ = [
    "Tokenizer",
    "VocabularyStore",
    "MergeRule",
    "BPETrainer",
    "BPETrainingResult",
    "Chunker",
    "Encoder",
    "Decoder",
    "SpecialTokenRegistry",
    "TokenPattern",
    "SpecialTokenStrategy",
    "ALLOW_ALL",
    "ALLOW_NONE",
    "ALLOW_NONE_RAISE",
    "allow_only",
    "GPT4_BYTE_ORDER",
    "train_bpe",
    "parse_rank_file",
    "load_tiktoken_ranks",
    "dump_tiktoken_ranks",
    "cl100k_base",
    "from_pretrained",
    "list_pretrained",
    "get_strategy",
    "get_pattern",
    "list_patterns",
    "list_strategies",
    "enable_progress",
    "disable_progress",
    "RankBPEError",
    "VocabularyError",
    "InvalidVocabSizeError",
    "DuplicateVocabularyEntryError",
    "UnknownTokenError",
    "MalformedVocabularyFileError",
    "TokenizationError",
    "InvalidUtf8InputError",
    "DecodingError",
    "SpecialTokenError",
    "PatternError",
    "StrategyError",
    "ModelLoadError",
]
