import json
from datetime import datetime
from typing import Any

TYPE_MARKER = "_bftype_"


def default_encoder(o: Any) -> Any:
    if isinstance(o, datetime):
        return {TYPE_MARKER: "datetime", "value": o.isoformat()}
    raise TypeError(f"Type {type(o)} not serializable")


def default_decoder(d: dict[str, Any]) -> Any:
    if d.get(TYPE_MARKER) == "datetime":
        return datetime.fromisoformat(d["value"])
    return d


class JSONSerializer:
    """JSON with a type marker for datetimes."""

    def serialize(self, obj: Any) -> bytes:
        try:
            return json.dumps(obj, default=default_encoder).encode("utf-8")
        except TypeError as e:
            raise ValueError(f"Value is not JSON-serializable: {e}")

    def deserialize(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"), object_hook=default_decoder)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON data: {e}")
