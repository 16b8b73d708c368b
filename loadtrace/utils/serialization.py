"""
Protobuf serialization helpers

Conversion of OTLP protobuf messages to OTLP/JSON, the proto3 JSON mapping
with hex-encoded trace and span ids.
"""

import base64
import json
from typing import Any

from google.protobuf.json_format import MessageToDict
from google.protobuf.message import Message

# OTLP/JSON encodes these bytes fields as hex instead of base64
OTLP_HEX_ID_FIELDS = ("traceId", "spanId", "parentSpanId")


def _hex_ids(value: Any) -> Any:
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if key in OTLP_HEX_ID_FIELDS and isinstance(item, str):
                converted[key] = base64.b64decode(item).hex()
            else:
                converted[key] = _hex_ids(item)
        return converted
    if isinstance(value, list):
        return [_hex_ids(item) for item in value]
    return value


def protobuf_to_otlp_json(message: Message) -> str:
    """Convert an OTLP protobuf message to an OTLP/JSON string

    OTLP/JSON uses lowerCamelCase names, integer enums and hex-encoded
    trace/span ids.

    Args:
        message: OTLP protobuf message, e.g. ExportTraceServiceRequest

    Returns:
        str: JSON string
    """
    if message is None:
        return "{}"

    data = MessageToDict(message, use_integers_for_enums=True)
    return json.dumps(_hex_ids(data), separators=(",", ":"))
