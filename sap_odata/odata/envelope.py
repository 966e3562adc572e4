"""
sap_odata.odata.envelope - OData v2 response envelope decoding
===============================================================

OData v2 services wrap payloads in a ``d`` object. Collections arrive as
``{"d": {"results": [...]}}``; single entities arrive either bare in ``d``
or, on some systems, under ``d.results`` as well. ``decode`` handles all of
these with one code path so callers never branch on the server's shape.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from sap_odata.core.errors import DecodeError

WRAPPER_FIELD = "d"
RESULTS_FIELD = "results"
V4_VALUE_FIELD = "value"


@dataclass
class DecodedEnvelope:
    """
    Result of decoding a response body.

    Attributes
    ----------
    result : Any
        A dict / model instance, or a list of them when decoded with many=True
    next_link : str or None
        Server-driven paging link (``d.__next``)
    count : int or None
        Inline count (``d.__count``) when $inlinecount=allpages was requested
    """
    result: Any
    next_link: Optional[str] = None
    count: Optional[int] = None


def _parse(raw: Union[bytes, str]) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid JSON: {exc}", raw) from exc


def _unwrap(doc: Any, raw: Union[bytes, str]) -> Any:
    if not isinstance(doc, dict):
        raise DecodeError("top-level JSON value is not an object", raw)
    if WRAPPER_FIELD in doc:
        return doc[WRAPPER_FIELD]
    if isinstance(doc.get(V4_VALUE_FIELD), list):
        return {RESULTS_FIELD: doc[V4_VALUE_FIELD], "__next": doc.get("@odata.nextLink")}
    raise DecodeError(f"missing '{WRAPPER_FIELD}' envelope", raw)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _validate(item: Any, model: Optional[Type[BaseModel]], raw: Union[bytes, str]) -> Any:
    if not isinstance(item, dict):
        raise DecodeError(f"expected an entity object, got {type(item).__name__}", raw)
    if model is None:
        return item
    try:
        return model.model_validate(item)
    except ValidationError as exc:
        raise DecodeError(f"entity does not match {model.__name__}: {exc}", raw) from exc


def decode_envelope(
    raw: Union[bytes, str],
    many: bool = False,
    model: Optional[Type[BaseModel]] = None,
) -> DecodedEnvelope:
    """
    Decode a response body into a single entity or a list of entities.

    Parameters
    ----------
    raw : bytes or str
        Response body
    many : bool
        True if the caller expects a collection
    model : pydantic model class, optional
        Validate each entity into this model; plain dicts otherwise

    Raises
    ------
    DecodeError
        Invalid JSON, missing envelope, wrong shape or failed validation
    """
    wrapper = _unwrap(_parse(raw), raw)

    next_link: Optional[str] = None
    count: Optional[int] = None
    if isinstance(wrapper, dict) and RESULTS_FIELD in wrapper:
        payload = wrapper[RESULTS_FIELD]
        next_link = wrapper.get("__next") or None
        count = _to_int(wrapper.get("__count"))
    else:
        payload = wrapper

    if many:
        if not isinstance(payload, list):
            raise DecodeError(f"expected a collection, got {type(payload).__name__}", raw)
        items: List[Any] = [_validate(item, model, raw) for item in payload]
        return DecodedEnvelope(items, next_link=next_link, count=count)

    if not isinstance(payload, dict):
        raise DecodeError(f"expected a single entity, got {type(payload).__name__}", raw)
    return DecodedEnvelope(_validate(payload, model, raw), next_link=next_link, count=count)


def decode(
    raw: Union[bytes, str],
    many: bool = False,
    model: Optional[Type[BaseModel]] = None,
) -> Any:
    """Shortcut for ``decode_envelope(...).result``."""
    return decode_envelope(raw, many=many, model=model).result


def strip_metadata(entity: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the ``__metadata`` block SAP adds to every entity."""
    return {k: v for k, v in entity.items() if k != "__metadata"}
