from dominio_api.telemetry.tracing import TRACE_HEADER, generate_trace_id

__all__ = ["TRACE_HEADER", "generate_trace_id"]
