from __future__ import annotations

import uuid


TRACE_HEADER = "x-trace-id"


def generate_trace_id() -> str:
    return uuid.uuid4().hex


__all__ = ["TRACE_HEADER", "generate_trace_id"]
