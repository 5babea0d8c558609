"""Double-submit CSRF check for the mutating API routes.

The client fetches a token from ``/api/csrf-token`` and sends it both in the
``X-CSRF-Token`` header and in the JSON body; the two must match.
"""

from __future__ import annotations

import hmac
import uuid
from typing import Optional

from aiohttp import web

CSRF_HEADER = "X-CSRF-Token"


def new_csrf_token() -> str:
    return str(uuid.uuid4())


def csrf_header_token(request: web.Request) -> Optional[str]:
    """Header token, or None when missing/blank."""
    token = request.headers.get(CSRF_HEADER, "").strip()
    return token or None


def csrf_tokens_match(header_token: str, body_token: str) -> bool:
    if not body_token:
        return False
    return hmac.compare_digest(header_token.encode("utf-8"), body_token.encode("utf-8"))
