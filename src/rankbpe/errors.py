"""Custom exception hierarchy for rankbpe tokenization errors."""

import regex as re

from .types import Token


class RankBPEError(Exception):
    """Base exception for all rankbpe errors."""


class SpecialTokenError(RankBPEError):
    """Raised when special token handling fails."""

    def __init__(self, message: str, *, found_tokens: set[str] | None = None) -> None:
        """Initialize with optional found_tokens that get appended to the message."""
        if found_tokens:
            message = f"{message} (found: {', '.join(sorted(found_tokens))})"
        super().__init__(message)
        self.found_tokens = found_tokens


class TokenizationError(RankBPEError):
    """Raised when tokenization fails."""

    def __init__(
        self,
        message: str,
        *,
        position: int | None = None,
        input_text: str | bytes | None = None,
    ) -> None:
        super().__init__(message)
        self.position = position
        self.input_text = input_text


class InvalidUtf8InputError(TokenizationError):
    """Raised when text handed to the encoder is not valid UTF-8."""

    def __init__(
        self,
        message: str,
        *,
        position: int | None = None,
        input_text: str | bytes | None = None,
    ) -> None:
        if position is not None:
            message = f"{message} (position: {position})"
        super().__init__(message, position=position, input_text=input_text)


class DecodingError(RankBPEError):
    """Raised when decoded bytes are not valid UTF-8 under the strict policy."""

    def __init__(self, message: str, *, position: int | None = None) -> None:
        if position is not None:
            message = f"{message} (byte offset: {position})"
        super().__init__(message)
        self.position = position


class VocabularyError(RankBPEError):
    """Raised when vocabulary operations fail."""

    def __init__(
        self,
        message: str,
        *,
        vocab_size: int | None = None,
        invalid_tok: Token | None = None,
    ) -> None:
        """Initialize with optional token and vocab_size that get appended to the message."""
        extra = " "
        # training: vocab size < 256
        if vocab_size is not None:
            extra += f"(vocab size: {vocab_size}) "
        # decoding: token not in model vocab
        if invalid_tok is not None:
            extra += f"(invalid token: {invalid_tok}) "
        super().__init__(message + extra.rstrip())
        self.vocab_size = vocab_size
        self.invalid_tok = invalid_tok


class InvalidVocabSizeError(VocabularyError):
    """Raised when a requested vocabulary size cannot hold the 256 base tokens."""


class UnknownTokenError(VocabularyError):
    """Raised when a token id is neither in the vocabulary nor a special token."""


class DuplicateVocabularyEntryError(VocabularyError):
    """Raised when two tokens would share a byte sequence or a pair is merged twice."""

    def __init__(
        self,
        message: str,
        *,
        token_bytes: bytes | None = None,
        invalid_tok: Token | None = None,
    ) -> None:
        if token_bytes is not None:
            message = f"{message} (bytes: {token_bytes!r})"
        super().__init__(message, invalid_tok=invalid_tok)
        self.token_bytes = token_bytes


class MalformedVocabularyFileError(RankBPEError):
    """Raised when a rank file cannot be parsed or violates its ordering rules."""

    def __init__(
        self,
        message: str,
        *,
        line_no: int | None = None,
        line: str | None = None,
    ) -> None:
        extra = " "
        if line_no is not None:
            extra += f"(line: {line_no}) "
        if line is not None:
            extra += f"(content: {line!r}) "
        super().__init__(message + extra.rstrip())
        self.line_no = line_no
        self.line = line


class ModelLoadError(RankBPEError):
    """Raised when loading a tokenizer model fails."""

    def __init__(
        self,
        message: str,
        *,
        model_path: str | None = None,
        version_mismatch: tuple[str, str] | None = None,
    ) -> None:
        extra = " "
        if model_path:
            extra += f"(path: {model_path}) "
        if version_mismatch is not None:
            extra += f"(expected: {version_mismatch[1]}) (got {version_mismatch[0]}) "
        super().__init__(message + extra.rstrip())
        self.model_path = model_path
        self.version_mismatch = version_mismatch


class PatternError(RankBPEError):
    """Raised when compiling and/or validating regex patterns."""

    def __init__(
        self,
        message: str,
        *,
        pattern: str | None = None,
        regex_err: re.error | None = None,
    ) -> None:
        """
        Initialize PatternError with pattern details.

        Args:
            message: Error message.
            pattern: The regex pattern that failed.
            regex_err: The underlying regex error from the regex library.
        """
        extra = " "
        if pattern:
            extra += f"(pattern: {pattern!r}) "
        if regex_err:
            extra += f"(reason: {regex_err}) "
        super().__init__(message + extra.rstrip())
        self.pattern = pattern
        self.regex_err = regex_err


class StrategyError(RankBPEError):
    """Raised when strategy operations fail."""

    def __init__(
        self,
        message: str,
        *,
        invalid_name: str | None = None,
        available_strats: list[str] | None = None,
    ) -> None:
        extra = " "
        if invalid_name:
            extra += f"(available: {available_strats}) (got {invalid_name}) "
        super().__init__(message + extra.rstrip())
        self.invalid_name = invalid_name
        self.available_strats = available_strats
