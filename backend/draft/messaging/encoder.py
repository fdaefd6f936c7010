"""
MessagePack framing for the draft push feed.

Frames are dicts with a "type" key. Pydantic models are dumped in JSON mode
first so datetimes travel as ISO-8601 strings and enums as their values.
"""

from typing import Any

import msgpack
from pydantic import BaseModel


class DecodeError(Exception):
    """Error raised when MessagePack decoding fails."""


# Client frames are tiny (ping); anything bigger is rejected before unpacking.
MAX_BUFFER_LEN = 4 * 1024
MAX_STR_LEN = 1024
MAX_BIN_LEN = 1024
MAX_ARRAY_LEN = 64
MAX_MAP_LEN = 32
MAX_EXT_LEN = 64


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data)


def encode_model(frame_type: str, model: BaseModel) -> bytes:
    """Encode a model as a typed frame: {"type": frame_type, **fields}."""
    return encode({**model.model_dump(mode="json"), "type": frame_type})


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a dict.

    Raises DecodeError if data is invalid, not a dict, or exceeds size limits.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected dict, got {type(result).__name__}")

    return result
