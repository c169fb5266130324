from __future__ import annotations

import uuid


def make_headers(user_id: uuid.UUID | None = None) -> dict[str, str]:
    """Construct the auth header expected by the API gateway shim."""
    return {"X-User-Id": str(user_id or uuid.uuid4())}
