"""Packed file references.

A reference identifies a remote file: where it lives (``source``), its id
there, and whatever else is needed to reach it again (parent site, group
id, download URL). References travel through the file picker as opaque
strings, so they are packed as base64-encoded JSON.
"""

import base64
import binascii
import json
from typing import Any

from lms_o365.core.logging import get_logger

logger = get_logger(__name__)


def pack_reference(reference: dict[str, Any]) -> str:
    payload = json.dumps(reference, separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def unpack_reference(packed: str | None) -> dict[str, Any]:
    """Decode a packed reference.

    Returns:
        The reference, or an empty dict when it cannot be decoded
    """
    if not packed:
        return {}
    try:
        padded = packed + "=" * (-len(packed) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.warning("file_reference_invalid", error_type=type(e).__name__)
        return {}
    return data if isinstance(data, dict) else {}
