"""Factory functions for creating tokenizers."""

from collections.abc import Callable
from pathlib import Path
from typing import Final

from .errors import ModelLoadError
from .pretrained import cl100k_base
from .tokenizer import MODEL_SUFFIX, Tokenizer


_PRETRAINED_REGISTRY: Final[dict[str, Callable[[], Tokenizer]]] = {
    "cl100k_base": cl100k_base,
    "gpt4": cl100k_base,
}


def list_pretrained() -> list[str]:
    """Return names accepted by ``from_pretrained`` besides model paths."""
    return list(_PRETRAINED_REGISTRY.keys())


def from_pretrained(name_or_path: str) -> Tokenizer:
    """
    Load a built-in vocabulary by name or a saved tokenizer from disk.

    :param name_or_path: A registered name (e.g. "cl100k_base") or the path to a .model file.
    :return: Loaded tokenizer instance with vocabulary and configuration.
    :raises ModelLoadError: If the name is unknown and no such .model file exists.

    .. code-block:: python

        tokenizer = from_pretrained("cl100k_base")
        tokenizer = from_pretrained("path/to/model.model")
        tokens = tokenizer.encode("Hello world")
    """
    factory = _PRETRAINED_REGISTRY.get(name_or_path.lower())
    if factory is not None:
        return factory()

    path = Path(name_or_path)
    if path.suffix != MODEL_SUFFIX:
        raise ModelLoadError(
            f"unknown pretrained tokenizer (available: {list_pretrained()})",
            model_path=name_or_path,
        )
    return Tokenizer.load(path)
