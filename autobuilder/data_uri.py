import base64, binascii, re
from typing import Tuple
from urllib.parse import unquote_to_bytes

DATA_URI_RE = re.compile(r"^data:([^,]*?)(;base64)?,(.*)$", re.IGNORECASE | re.DOTALL)
DEFAULT_MIME = "text/plain"

class DataUriError(Exception):
    pass

def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Return ``(mime, payload)`` for a ``data:`` URI, base64 or percent-encoded."""
    m = DATA_URI_RE.match(uri or "")
    if not m:
        raise DataUriError("Unsupported data URI")
    params, is_b64, body = m.groups()
    mime = params.split(";", 1)[0].strip() or DEFAULT_MIME
    if not is_b64:
        return mime, unquote_to_bytes(body)
    try:
        return mime, base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DataUriError(f"Invalid base64 payload: {e}") from e
