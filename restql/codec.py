"""Base64/JSON envelope for query descriptors (the `q` query-string parameter)."""

import base64
import binascii
import json
from typing import Any, Mapping, Union

from .errors import QueryDecodeError
from .ir_types import QueryOptions


def dump_query(query: Union[QueryOptions, Mapping[str, Any]]) -> dict:
    """Wire form of a query: camelCase keys, absent clauses dropped."""
    if isinstance(query, QueryOptions):
        return query.model_dump(mode='json', by_alias=True, exclude_none=True)
    return dict(query)


def encode_query(query: Union[QueryOptions, Mapping[str, Any]]) -> str:
    """JSON-encode then base64-encode a query descriptor."""
    text = json.dumps(dump_query(query), separators=(',', ':'), default=str)
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def decode_query(encoded: str) -> Any:
    """
    Decode a base64 JSON query descriptor.

    The result is untrusted and must still go through validate_query().

    Raises:
        QueryDecodeError: If the text is not base64 or not JSON
    """
    if not isinstance(encoded, str) or not encoded:
        raise QueryDecodeError("Invalid base64 or JSON format")
    try:
        # Accept the URL-safe alphabet and stripped padding from query strings
        normalized = encoded.replace('-', '+').replace('_', '/')
        normalized += '=' * (-len(normalized) % 4)
        raw = base64.b64decode(normalized, validate=True)
        return json.loads(raw.decode('utf-8'))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise QueryDecodeError(f"Invalid base64 or JSON format: {e}") from e
