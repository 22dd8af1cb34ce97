"""
SQLAlchemy binding.

Put `Utf8Bytes` on the columns that hold text, then declare them:

    utf8 = Utf8Columns()

    class Doc(Base):
        __tablename__ = "doc"
        id = Column(Integer, primary_key=True)
        text = Column(Utf8Bytes)

    utf8.columns(Doc, "text")

    session.add(Doc(text="a ≤ b"))
    utf8.search(session, Doc, text="a ≤ b")

The database always holds UTF-8 bytes, and loaded objects always hold `str`.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Set, Tuple

from sqlalchemy import LargeBinary, event, inspect as sa_inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import instance_state, set_committed_value
from sqlalchemy.types import TypeDecorator

from .config import Settings, get_settings
from .normalize import (
    encode_predicates,
    normalize_before_persist,
    reconstruct_after_load,
    to_storage,
)
from .registry import EncodedAttributeRegistry

logger = logging.getLogger(__name__)


class Utf8Bytes(TypeDecorator):
    """
    Binary column holding UTF-8 text.

    Text is bound as its UTF-8 bytes; results come back as the raw bytes the
    driver returned, untouched. Turning them into text is the load hook's job.
    """

    impl = LargeBinary
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_storage(value)

    def process_result_value(self, value, dialect):
        return value


class _StateAccess:
    # state.dict never triggers a lazy load of an expired attribute
    def get(self, instance: Any, name: str) -> Any:
        return instance_state(instance).dict.get(name)


class _PendingAccess(_StateAccess):
    def set(self, instance: Any, name: str, value: Any) -> None:
        setattr(instance, name, value)


class _LoadedAccess(_StateAccess):
    def set(self, instance: Any, name: str, value: Any) -> None:
        set_committed_value(instance, name, value)


_PENDING = _PendingAccess()
_LOADED = _LoadedAccess()


class Utf8Columns:
    def __init__(
        self,
        registry: Optional[EncodedAttributeRegistry] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.registry = registry if registry is not None else EncodedAttributeRegistry()
        self.settings = settings or get_settings()
        self._installed: Set[type] = set()

    def columns(self, cls: type, *names: str) -> Tuple[str, ...]:
        """
        Declare which attributes of `cls` hold UTF-8 text.

        May be called any number of times; names accumulate. Called with no
        names it just returns the attributes declared so far.
        """
        if not names:
            return self.registry.attributes(cls)

        declared = self.registry.register(cls, names)
        self._install(cls)
        return declared

    def all_columns(self, cls: type) -> Tuple[str, ...]:
        keys = [prop.key for prop in sa_inspect(cls).column_attrs]
        return self.columns(cls, *keys)

    def search(self, session: Session, cls: type, **predicates: Any) -> List[Any]:
        """
        Equality search on `cls`, with text predicates encoded like stored values.

        None matches NULL, a list/tuple/set matches any of its members, and a
        SQL expression is compared as given.
        """
        bound = encode_predicates(self.registry, cls, predicates)
        criteria = [self._criterion(cls, name, value) for name, value in bound]
        return list(session.scalars(select(cls).where(*criteria)))

    @staticmethod
    def _criterion(cls: type, name: str, value: Any):
        column = getattr(cls, name)
        if value is None:
            return column.is_(None)
        if isinstance(value, (list, tuple, set, frozenset)):
            return column.in_(value)
        return column == value

    def _hooks(self) -> List[Tuple[str, Any]]:
        return [
            ("before_insert", self._before_persist),
            ("before_update", self._before_persist),
            ("load", self._after_load),
            ("refresh", self._after_refresh),
            # server-generated values written back after INSERT/UPDATE
            ("refresh_flush", self._after_refresh),
        ]

    def _install(self, cls: type) -> None:
        # listeners propagate to subclasses, so one install per hierarchy
        if any(klass in self._installed for klass in cls.__mro__):
            return

        for klass in [k for k in self._installed if issubclass(k, cls)]:
            for identifier, fn in self._hooks():
                event.remove(klass, identifier, fn)
            self._installed.discard(klass)

        for identifier, fn in self._hooks():
            event.listen(cls, identifier, fn, propagate=True)
        self._installed.add(cls)
        logger.debug("[utf8columns] hooks installed on %s", cls.__name__)

    def _before_persist(self, mapper, connection, target) -> None:
        normalize_before_persist(self.registry, target, _PENDING, settings=self.settings)

    def _after_load(self, target, context) -> None:
        reconstruct_after_load(self.registry, target, _LOADED, settings=self.settings)

    def _after_refresh(self, target, context, attrs) -> None:
        reconstruct_after_load(
            self.registry, target, _LOADED, names=attrs, settings=self.settings
        )


__all__ = ["Utf8Bytes", "Utf8Columns"]
