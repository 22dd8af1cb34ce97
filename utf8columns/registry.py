"""
Per-type registry of attributes that hold UTF-8 text.

Registration is additive and happens while types are being defined; after
that the registry is only read. Names registered on a base class apply to
its subclasses.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Tuple, Union

logger = logging.getLogger(__name__)


class EncodedAttributeRegistry:
    def __init__(self) -> None:
        # dict keys keep insertion order and make re-registration a no-op
        self._attributes: Dict[type, Dict[str, None]] = {}

    def register(self, owner: type, names: Union[str, Iterable[str]]) -> Tuple[str, ...]:
        """
        Add names to the owner's normalization set and return the effective set.

        Registering a name twice is allowed and has no effect.
        """
        if isinstance(names, str):
            names = (names,)

        declared = self._attributes.setdefault(owner, {})
        added = [name for name in names if name not in declared]
        for name in added:
            declared[name] = None

        if added:
            logger.debug("[utf8columns] %s: registered %s", owner.__name__, ", ".join(added))
        return self.attributes(owner)

    def attributes(self, owner: type) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for klass in reversed(owner.__mro__):
            for name in self._attributes.get(klass, ()):
                seen.setdefault(name, None)
        return tuple(seen)

    def is_registered(self, owner: type, name: str) -> bool:
        return any(name in self._attributes.get(klass, ()) for klass in owner.__mro__)
