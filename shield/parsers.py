# shield/parsers.py
import json
from typing import List, Optional, Union
from urllib.parse import parse_qs

UNKNOWN_CLIENT = "unknown"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def get_client_ip(
    forwarded_for: Union[str, List[str], None],
    peer: Optional[str] = None,
) -> str:
    """
    Best-effort originating address of a request.

    The first X-Forwarded-For entry wins (the nearest proxy is trusted),
    then the socket peer, then the "unknown" sentinel. Never raises.
    """
    if isinstance(forwarded_for, (list, tuple)):
        forwarded_for = forwarded_for[0] if forwarded_for else None

    if isinstance(forwarded_for, str):
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    if peer:
        return peer
    return UNKNOWN_CLIENT


def serialize_body(raw: bytes, content_type: str = "") -> str:
    """
    Turn a request body into text for scanning.

    JSON is re-serialized compactly and form bodies become a JSON object,
    so both scan the same way. Anything else scans as an empty body.
    """
    if not raw:
        return ""

    content_type = (content_type or "").split(";")[0].strip().lower()
    text = raw.decode("utf-8", errors="replace")

    if content_type == "application/json" or content_type.endswith("+json"):
        try:
            parsed = json.loads(text)
        except ValueError:
            # unparseable JSON still gets scanned as sent
            return text
        if not isinstance(parsed, (dict, list)):
            return ""
        return json.dumps(parsed, separators=(",", ":"), ensure_ascii=False)

    if content_type == FORM_CONTENT_TYPE:
        fields = {
            key: values[0] if len(values) == 1 else values
            for key, values in parse_qs(text, keep_blank_values=True).items()
        }
        return json.dumps(fields, separators=(",", ":"), ensure_ascii=False)

    return ""


def build_signal(url: str, body: str = "") -> str:
    """Combine URL and serialized body into the string the rules scan."""
    return f"{url} {body}"
