"""ID helpers."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate a random UUID4 string for row primary keys."""
    return str(uuid.uuid4())
