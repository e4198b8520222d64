"""
A reproduction of GPT-4's tokenization from the `cl100k_base` rank file of tiktoken.
"""

import functools
import logging
import os
import threading
from pathlib import Path
from typing import Final

from tiktoken.load import read_file_cached

from .loader import GPT4_BYTE_ORDER, load_tiktoken_ranks
from .pattern import TokenPattern
from .tokenizer import Tokenizer
from .types import Token

log = logging.getLogger(__name__)

CL100K_BASE_URL: Final[str] = (
    "https://openaipublic.blob.core.windows.net/encodings/cl100k_base.tiktoken"
)
# local copy of the rank file, skips the download when set
CL100K_FILE_ENV_VAR: Final[str] = "RANKBPE_CL100K_FILE"

ENDOFTEXT: Final[str] = "<|endoftext|>"
FIM_PREFIX: Final[str] = "<|fim_prefix|>"
FIM_MIDDLE: Final[str] = "<|fim_middle|>"
FIM_SUFFIX: Final[str] = "<|fim_suffix|>"
ENDOFPROMPT: Final[str] = "<|endofprompt|>"

CL100K_SPECIAL_TOKENS: Final[dict[str, Token]] = {
    ENDOFTEXT: 100257,
    FIM_PREFIX: 100258,
    FIM_MIDDLE: 100259,
    FIM_SUFFIX: 100260,
    ENDOFPROMPT: 100276,
}


def read_cl100k_ranks() -> bytes:
    """Return the raw cl100k_base rank file, from ``RANKBPE_CL100K_FILE`` or tiktoken's blob cache."""
    local = os.environ.get(CL100K_FILE_ENV_VAR, "").strip()
    if local:
        log.debug(f"reading cl100k_base ranks from {local}")
        return Path(local).read_bytes()
    log.debug(f"fetching cl100k_base ranks from {CL100K_BASE_URL}")
    return read_file_cached(CL100K_BASE_URL)


_cl100k_lock = threading.Lock()


def cl100k_base() -> Tokenizer:
    """
    Return the process-wide GPT-4 tokenizer, building it on first use.

    The rank file is parsed once; later calls, from any thread, return the
    same immutable instance.
    """
    with _cl100k_lock:
        return _build_cl100k_base()


@functools.cache
def _build_cl100k_base() -> Tokenizer:
    store = load_tiktoken_ranks(read_cl100k_ranks(), byte_order=GPT4_BYTE_ORDER)
    return Tokenizer(
        store,
        pattern=TokenPattern.GPT4,
        special_tokens=CL100K_SPECIAL_TOKENS,
        name="cl100k_base",
    )
