"""
Core encoding normalization logic.

A textual value is either raw `bytes` (untagged) or a `str` (tagged as
UTF-8 text). Responsibilities:
- promotion of raw bytes to text before persisting (no validation)
- reconstruction + validation of values loaded from storage
- normalization of search predicate values so they match stored bytes
"""

from __future__ import annotations

from collections.abc import Mapping
from operator import itemgetter
from typing import Any, Iterable, List, Optional, Tuple

from charset_normalizer import from_bytes

from .config import Settings, get_settings
from .errors import InvalidEncodingError
from .models import EncodingDiagnosis
from .registry import EncodedAttributeRegistry
from .rules import CANONICAL_ENCODING, PROMOTION_ERRORS, SCALAR_TYPES


def is_scalar(value: Any) -> bool:
    return isinstance(value, SCALAR_TYPES)


def promote(value: Any) -> Any:
    """
    Tag raw bytes as UTF-8 text without altering them.

    Malformed sequences are kept as lone surrogates so that `demote` gives back
    the exact input bytes; `is_valid` is what rejects them. Text is returned
    as-is, and non-scalars pass through.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode(CANONICAL_ENCODING, PROMOTION_ERRORS)
    return value


def is_valid(text: str) -> bool:
    try:
        text.encode(CANONICAL_ENCODING)
    except UnicodeEncodeError:
        return False
    return True


def demote(text: str) -> bytes:
    """Drop the text tag, returning the bytes `text` was promoted from."""
    try:
        return text.encode(CANONICAL_ENCODING, PROMOTION_ERRORS)
    except UnicodeEncodeError:
        # surrogates outside the escape range did not come from promotion
        return text.encode(CANONICAL_ENCODING, "surrogatepass")


def to_storage(value: Any) -> Any:
    if isinstance(value, str):
        return demote(value)
    return value


def diagnose(raw: bytes, attribute: str, object_type: str) -> EncodingDiagnosis:
    offset = None
    reason = None
    try:
        raw.decode(CANONICAL_ENCODING)
    except UnicodeDecodeError as exc:
        offset = exc.start
        reason = exc.reason

    detected = None
    match = from_bytes(raw).best()
    if match is not None:
        detected = match.encoding

    return EncodingDiagnosis(
        attribute=attribute,
        object_type=object_type,
        offset=offset,
        reason=reason,
        detected=detected,
        length=len(raw),
    )


def _invalid(
    name: str,
    owner: type,
    raw: bytes,
    settings: Settings,
    source: str = "database",
) -> InvalidEncodingError:
    diagnosis = diagnose(raw, name, owner.__name__) if settings.diagnose else None
    return InvalidEncodingError(name, owner.__name__, raw=raw, diagnosis=diagnosis, source=source)


def reconstruct(value: Any, attribute: str, owner: type, settings: Optional[Settings] = None) -> Any:
    """Promote and validate a single loaded value, raising on malformed UTF-8."""
    if not is_scalar(value):
        return value
    text = promote(value)
    if not is_valid(text):
        raise _invalid(attribute, owner, demote(text), settings or get_settings())
    return text


class DictAccess:
    """Reads and writes attributes straight from the instance __dict__."""

    def get(self, instance: Any, name: str) -> Any:
        return vars(instance).get(name)

    def set(self, instance: Any, name: str, value: Any) -> None:
        vars(instance)[name] = value


DICT_ACCESS = DictAccess()


def normalize_before_persist(
    registry: EncodedAttributeRegistry,
    instance: Any,
    access: Any = None,
    *,
    settings: Optional[Settings] = None,
) -> None:
    """
    Promote every registered raw value on `instance` to text, in place.

    Called right before an instance is inserted or updated. Values are not
    validated unless `validate_on_write` is set; a malformed value then stays
    untouched on the instance and InvalidEncodingError is raised.
    """
    access = access or DICT_ACCESS
    settings = settings or get_settings()
    owner = type(instance)

    for name in registry.attributes(owner):
        value = access.get(instance, name)
        if not is_scalar(value):
            continue

        text = promote(value)
        if settings.validate_on_write and not is_valid(text):
            raise _invalid(name, owner, demote(text), settings, source="application")
        if text is not value:
            access.set(instance, name, text)


def reconstruct_after_load(
    registry: EncodedAttributeRegistry,
    instance: Any,
    access: Any = None,
    *,
    names: Optional[Iterable[str]] = None,
    settings: Optional[Settings] = None,
) -> None:
    """
    Turn the raw bytes loaded into `instance` back into text and validate them.

    `names` limits the work to a subset of attributes (e.g. the ones a refresh
    just loaded). A malformed value is put back as raw bytes before
    InvalidEncodingError is raised, so the instance never holds invalid text.
    """
    access = access or DICT_ACCESS
    settings = settings or get_settings()
    owner = type(instance)

    targets = registry.attributes(owner)
    if names is not None:
        wanted = set(names)
        targets = tuple(name for name in targets if name in wanted)

    for name in targets:
        value = access.get(instance, name)
        try:
            text = reconstruct(value, name, owner, settings)
        except InvalidEncodingError as exc:
            access.set(instance, name, exc.raw)
            raise
        if text is not value:
            access.set(instance, name, text)


def encode_predicates(
    registry: EncodedAttributeRegistry,
    owner: type,
    predicates: Any,
) -> List[Tuple[str, Any]]:
    """
    Return (name, bound value) pairs with registered text values promoted.

    A mapping is bound in name order; an iterable of pairs keeps its own order.
    Each pair is decided and encoded in the same pass, so a promoted value can
    never land on another predicate's position. The caller's values are never
    modified: promotion always builds a new object.
    """
    if isinstance(predicates, Mapping):
        pairs = sorted(predicates.items(), key=itemgetter(0))
    else:
        pairs = list(predicates)

    bound = []
    for name, value in pairs:
        if is_scalar(value) and registry.is_registered(owner, name):
            value = promote(value)
        bound.append((name, value))
    return bound


def encode_search_predicates(
    registry: EncodedAttributeRegistry,
    owner: type,
    names: Iterable[str],
    bound_values: Iterable[Any],
) -> List[Any]:
    """Encode values already laid out in binding order, `names[i]` naming `bound_values[i]`."""
    names = list(names)
    bound_values = list(bound_values)
    if len(names) != len(bound_values):
        raise ValueError(
            f"{len(names)} predicate names for {len(bound_values)} bound values"
        )

    return [value for _, value in encode_predicates(registry, owner, zip(names, bound_values))]
