"""Derivation of indexed columns from artifact payloads.

Every backend stores a handful of lookup keys next to the opaque payload:
the grant the artifact belongs to, the user session id and the device-flow
user code. Those keys are pulled out of the payload at upsert time by an
extractor registered per artifact kind. Kinds without a dedicated extractor
use the well-known payload field names emitted by the identity provider.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

Payload = dict[str, Any]


@dataclass(frozen=True)
class IndexedFields:
    """Lookup keys derived from a payload.

    Attributes:
        grant_id: Grouping key used for cascading revocation
        uid: User-session identifier (lookup by session)
        user_code: Device-flow user code (lookup by code)
    """

    grant_id: str | None = None
    uid: str | None = None
    user_code: str | None = None


IndexExtractor = Callable[[Mapping[str, Any]], IndexedFields]


def _as_key(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def default_extractor(payload: Mapping[str, Any]) -> IndexedFields:
    """Read the ``grantId``, ``uid`` and ``userCode`` payload fields."""
    return IndexedFields(
        grant_id=_as_key(payload.get("grantId")),
        uid=_as_key(payload.get("uid")),
        user_code=_as_key(payload.get("userCode")),
    )


_extractors: dict[str, IndexExtractor] = {}

# kind -> payload field matched by find_by_auxiliary_field
_auxiliary_fields: dict[str, str] = {"Client": "jwks_uri"}


def register_indexer(kind: str, extractor: IndexExtractor) -> None:
    """Register a custom index extractor for an artifact kind."""
    _extractors[kind] = extractor


def unregister_indexer(kind: str) -> None:
    """Remove a custom extractor, falling back to the default one."""
    _extractors.pop(kind, None)


def extract_indexed_fields(kind: str, payload: Mapping[str, Any]) -> IndexedFields:
    """Derive the indexed columns for ``payload`` of the given kind."""
    extractor = _extractors.get(kind, default_extractor)
    return extractor(payload)


def register_auxiliary_field(kind: str, field_name: str) -> None:
    """Declare the payload field searched by ``find_by_auxiliary_field`` for a kind."""
    _auxiliary_fields[kind] = field_name


def auxiliary_field_for(kind: str) -> str | None:
    """Return the auxiliary lookup field of a kind, if one is declared."""
    return _auxiliary_fields.get(kind)
