"""Identifier generation."""

import uuid


def new_id() -> str:
    """Random opaque identifier (32 lowercase hex characters)."""
    return uuid.uuid4().hex
