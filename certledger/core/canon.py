# certledger/core/canon.py
import json
from typing import Any, Union

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")

from certledger.errors import EncodingError

# Largest integer an IEEE 754 double holds exactly; RFC 8785 serializes numbers as doubles.
MAX_SAFE_INTEGER = 2**53 - 1


def _check_integers(obj: Any) -> None:
    if isinstance(obj, bool):
        return
    if isinstance(obj, int):
        if abs(obj) > MAX_SAFE_INTEGER:
            raise EncodingError(f"Integer {obj} is outside the exactly representable range (+/-{MAX_SAFE_INTEGER})")
    elif isinstance(obj, dict):
        for value in obj.values():
            _check_integers(value)
    elif isinstance(obj, (list, tuple)):
        for value in obj:
            _check_integers(value)


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).

    Object keys are sorted recursively, arrays keep their order and no
    whitespace is emitted, so every replica writing the same logical record
    stores byte-identical values. Integers beyond +/-(2**53 - 1) are refused
    rather than rounded.
    """
    _check_integers(obj)
    try:
        return jcs.canonicalize(obj)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Cannot canonically encode value: {e}") from e


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string."""
    return canonical_json(obj).decode("utf-8")


def decode_json(data: Union[bytes, str]) -> Any:
    """Parse JSON bytes or text, raising EncodingError on malformed input."""
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EncodingError(f"Malformed JSON value: {e}") from e


def recanonicalize(data: Union[bytes, str]) -> bytes:
    """Decode then re-encode; the result equals ``data`` iff it was canonical."""
    return canonical_json(decode_json(data))
