"""Named special token policies passed to ``Tokenizer.encode``."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final, Literal

from .errors import StrategyError
from .specials import SpecialTokenRegistry
from .types import Token

StrategyName = Literal["all", "none", "none-raise", "custom"]


@dataclass(frozen=True, slots=True)
class SpecialTokenStrategy:
    """
    Preset arguments for ``SpecialTokenRegistry.select``.

    ``allowed`` strings are matched as special tokens; ``disallowed`` strings
    make encoding fail when they appear in the text. ``"all"`` stands for
    every registered string (for ``disallowed``, every one not allowed).
    Registered strings that are neither are encoded as plain text.
    """

    name: str
    allowed: frozenset[str] | Literal["all"] = "all"
    disallowed: frozenset[str] | Literal["all"] = frozenset()
    warn_ignored: bool = False

    def select(self, text: str, registry: SpecialTokenRegistry) -> Mapping[str, Token]:
        """Return the tokens of ``registry`` to honour while encoding ``text``."""
        return registry.select(
            text, self.allowed, self.disallowed, warn_ignored=self.warn_ignored
        )


ALLOW_ALL: Final = SpecialTokenStrategy("all")
ALLOW_NONE: Final = SpecialTokenStrategy("none", allowed=frozenset(), warn_ignored=True)
ALLOW_NONE_RAISE: Final = SpecialTokenStrategy(
    "none-raise", allowed=frozenset(), disallowed="all"
)

_PRESETS: Final[dict[str, SpecialTokenStrategy]] = {
    preset.name: preset for preset in (ALLOW_ALL, ALLOW_NONE, ALLOW_NONE_RAISE)
}


def allow_only(
    allowed_subset: Iterable[str], *, strict: bool = False
) -> SpecialTokenStrategy:
    """
    Honour only ``allowed_subset``.

    Other registered strings are encoded as plain text, or rejected with
    ``SpecialTokenError`` when ``strict`` is set.
    """
    return SpecialTokenStrategy(
        "custom",
        allowed=frozenset(allowed_subset),
        disallowed="all" if strict else frozenset(),
    )


def list_strategies() -> list[str]:
    """Return available special token strategy names."""
    return [*_PRESETS, "custom"]


def get_strategy(
    name: StrategyName = "all", allowed_subset: Iterable[str] | None = None
) -> SpecialTokenStrategy:
    """
    Look up a special token strategy by name.

    :param name: "all", "none" (plain text, logs a warning), "none-raise" or "custom".
    :param allowed_subset: Required for "custom"; the tokens honoured while encoding.
    :raises StrategyError: If name is unknown or allowed_subset is missing for custom.

    .. code-block:: python

        tok.encode(text, get_strategy("none-raise"))
        tok.encode(text, get_strategy("custom", allowed_subset={"<|endoftext|>"}))
    """
    if name == "custom":
        if allowed_subset is None:
            raise StrategyError("allowed_subset is required for custom strategy")
        return allow_only(allowed_subset)

    preset = _PRESETS.get(name)
    if preset is None:
        raise StrategyError(
            "unknown strategy name",
            invalid_name=name,
            available_strats=list_strategies(),
        )
    return preset


__all__ = [
    "StrategyName",
    "SpecialTokenStrategy",
    "ALLOW_ALL",
    "ALLOW_NONE",
    "ALLOW_NONE_RAISE",
    "allow_only",
    "list_strategies",
    "get_strategy",
]
