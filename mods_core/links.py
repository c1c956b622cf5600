"""
Link wire format.

The host stores each link as a JSON string whose ``source`` and ``dest``
fields are themselves JSON strings:

    '{"source":"{\\"id\\":\\"0.12\\",\\"type\\":\\"outputs\\",\\"name\\":\\"image\\"}",
      "dest":"{\\"id\\":\\"0.34\\",\\"type\\":\\"inputs\\",\\"name\\":\\"image\\"}"}'

The same string is used as the ``id`` of the SVG path drawn for the link, so
the overlay and the saved document share one encoding.  Output must match
``JSON.stringify`` byte for byte: compact separators, non-ASCII unescaped,
keys in ``id, type, name`` / ``source, dest`` order.
"""

import json
from typing import Any, Dict

from .exceptions import LinkDecodeError
from .models import Connection

_SEPARATORS = (',', ':')


def _stringify(value: Dict[str, Any]) -> str:
    return json.dumps(value, separators=_SEPARATORS, ensure_ascii=False)


def encode_endpoint(module_id: str, port_type: str, port_name: str) -> str:
    """Encode one end of a link, e.g. ``{"id":"0.1","type":"outputs","name":"out"}``."""
    return _stringify({'id': module_id, 'type': port_type, 'name': port_name})


def encode_link(connection: Connection) -> str:
    """Encode a connection into the host's link string."""
    return _stringify({
        'source': encode_endpoint(connection.source_id, 'outputs', connection.source_port),
        'dest': encode_endpoint(connection.dest_id, 'inputs', connection.dest_port),
    })


def _decode_endpoint(raw: Any, side: str) -> Dict[str, str]:
    if not isinstance(raw, str):
        raise LinkDecodeError(f"Link {side} is not an encoded string", {'side': side})
    try:
        endpoint = json.loads(raw)
    except ValueError as e:
        raise LinkDecodeError(f"Link {side} is not valid JSON: {e}", {'side': side})
    if not isinstance(endpoint, dict) or 'id' not in endpoint or 'name' not in endpoint:
        raise LinkDecodeError(f"Link {side} lacks id/name", {'side': side})
    return {'id': str(endpoint['id']), 'name': str(endpoint['name'])}


def decode_link(text: str) -> Connection:
    """Decode a host link string into a Connection.

    Raises LinkDecodeError for anything that is not a well-formed link;
    callers iterating a collection skip the entry and carry on.
    """
    try:
        outer = json.loads(text)
    except (TypeError, ValueError) as e:
        raise LinkDecodeError(f"Link is not valid JSON: {e}", {'link': text})
    if not isinstance(outer, dict):
        raise LinkDecodeError("Link is not a JSON object", {'link': text})

    source = _decode_endpoint(outer.get('source'), 'source')
    dest = _decode_endpoint(outer.get('dest'), 'dest')
    return Connection(
        source_id=source['id'],
        source_port=source['name'],
        dest_id=dest['id'],
        dest_port=dest['name'],
    )
