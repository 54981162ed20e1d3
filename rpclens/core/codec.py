"""
JSON encode/decode shared by the problem writer, response envelopes and body decoder
"""
import json
import types
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .config import JSONOptions

DEFAULT_JSON_OPTIONS = JSONOptions()

# Largest magnitude a float64 holds without losing integer precision
_MAX_EXACT_INT = 2**53


class ResponseEncodingError(RuntimeError):
    """A response body could not be serialized.

    Always a programming error (a non-serializable value in a body or in
    problem data), never a client error, so it is not converted into a
    problem document.
    """


@lru_cache(maxsize=None)
def type_adapter(body_type: Any) -> TypeAdapter:
    """Cached pydantic adapter for a body type"""
    return TypeAdapter(body_type)


def decode_json(raw: bytes, adapter: TypeAdapter) -> Any:
    """
    Decode and validate a JSON document. Raises pydantic.ValidationError.

    Validation is strict: a JSON type that differs from the declared one
    ("5" or 5.0 for an int) is a mismatch, not something to coerce.
    """
    return adapter.validate_json(raw, strict=True)


def encode_json(value: Any, options: JSONOptions | None = None) -> bytes:
    """
    Serialize a value to UTF-8 JSON bytes

    Accepts anything pydantic can turn into JSON-compatible data: models,
    dataclasses, mappings, sequences and scalars.

    Raises:
        ResponseEncodingError: value holds something that cannot be encoded
    """
    options = options or DEFAULT_JSON_OPTIONS

    try:
        if not options.none_collections_as_null:
            value = _fill_none_collections(value)
        data = to_jsonable_python(value, by_alias=True)
        if options.canonicalize_raw_ints:
            data = _canonicalize_ints(data)

        if options.multiline:
            text = json.dumps(data, indent=options.indent, ensure_ascii=False, allow_nan=False)
        else:
            text = json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise ResponseEncodingError(f"error marshalling JSON: {e}") from e

    return text.encode("utf-8")


def _empty_collection_for(annotation: Any) -> list | dict | None:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        for arg in get_args(annotation):
            if arg is type(None):
                continue
            empty = _empty_collection_for(arg)
            if empty is not None:
                return empty
        return None

    target = origin or annotation
    if not isinstance(target, type) or issubclass(target, (str, bytes)):
        return None
    if issubclass(target, Mapping):
        return {}
    if issubclass(target, (list, tuple, set, frozenset)):
        return []
    return None


def _fill_none_collections(value: Any) -> Any:
    """Replace None in collection-typed model fields with an empty collection"""
    if isinstance(value, BaseModel):
        updates = {}
        for name, field in type(value).model_fields.items():
            current = getattr(value, name, None)
            if current is None:
                empty = _empty_collection_for(field.annotation)
                if empty is not None:
                    updates[name] = empty
                continue
            filled = _fill_none_collections(current)
            if filled is not current:
                updates[name] = filled
        return value.model_copy(update=updates) if updates else value

    if isinstance(value, (list, tuple)):
        items = [_fill_none_collections(item) for item in value]
        if all(new is old for new, old in zip(items, value)):
            return value
        return type(value)(items) if isinstance(value, tuple) else items

    if isinstance(value, Mapping):
        filled = {key: _fill_none_collections(item) for key, item in value.items()}
        if all(filled[key] is value[key] for key in filled):
            return value
        return filled

    return value


def _canonicalize_ints(data: Any) -> Any:
    if isinstance(data, bool):
        return data
    if isinstance(data, int):
        return float(data) if abs(data) > _MAX_EXACT_INT else data
    if isinstance(data, list):
        return [_canonicalize_ints(item) for item in data]
    if isinstance(data, dict):
        return {key: _canonicalize_ints(item) for key, item in data.items()}
    return data
