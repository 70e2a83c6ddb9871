"""Name generation for per-run engine resources."""

import uuid


def generate_suffix(length: int = 20) -> str:
    """Random lowercase hex string used to make container names unique."""
    return uuid.uuid4().hex[:length]


def generate_run_id() -> str:
    """Identifier of one test run, suffixed onto its network and volumes."""
    return generate_suffix(20)
