"""Registry of feature factories.

Feature factories are looked up by name instead of being loaded dynamically.
A factory spec string names one or more registered factories separated by
``;``, each optionally followed by a single parenthesised argument::

    "word(2);history"

Several names produce a :class:`CombinationFeatureFactory` whose output is the
concatenation of its children's features, in spec order.
"""
from __future__ import annotations
import re
from typing import Callable, Dict, List, Sequence

from .types import FeatureFactory, State

FEATURE_FACTORIES: Dict[str, Callable[..., FeatureFactory]] = {}

_SPEC_RE = re.compile(r"^\s*([A-Za-z_][\w.]*)\s*(?:\((.*)\))?\s*$")


def register_feature_factory(name: str):
    """Class decorator adding a factory constructor to the registry."""

    def decorator(factory: Callable[..., FeatureFactory]):
        if name in FEATURE_FACTORIES:
            raise ValueError(f"Feature factory '{name}' is already registered")
        FEATURE_FACTORIES[name] = factory
        return factory

    return decorator


class CombinationFeatureFactory:
    """Concatenates the features of several factories."""

    def __init__(self, factories: Sequence[FeatureFactory]):
        self.factories = list(factories)

    def featurize(self, state: State) -> List[str]:
        features: List[str] = []
        for factory in self.factories:
            features.extend(factory.featurize(state))
        return features


def _build_one(part: str) -> FeatureFactory:
    match = _SPEC_RE.match(part)
    if match is None:
        raise ValueError(f"Malformed feature factory spec: '{part}'")
    name, arg = match.group(1), match.group(2)
    try:
        factory = FEATURE_FACTORIES[name]
    except KeyError:
        known = ", ".join(sorted(FEATURE_FACTORIES)) or "none"
        raise ValueError(f"Unknown feature factory '{name}' (registered: {known})")
    if arg is None:
        return factory()
    return factory(arg.strip())


def build_feature_factory(spec: str) -> FeatureFactory:
    """
    Builds a feature factory from a spec string.

    Args:
        spec: One or more ``name`` or ``name(arg)`` entries separated by ``;``.

    Returns:
        The single named factory, or a :class:`CombinationFeatureFactory` when
        the string names more than one.

    Raises:
        ValueError: If the string is empty, malformed, or names an unregistered
                    factory.
    """
    parts = [part for part in spec.split(";") if part.strip()]
    if not parts:
        raise ValueError("Feature factory spec is empty")
    factories = [_build_one(part) for part in parts]
    if len(factories) == 1:
        return factories[0]
    return CombinationFeatureFactory(factories)
