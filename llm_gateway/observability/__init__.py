"""
Observability for the LLM gateway.

Structured logging (JSON in production, coloured text in development)
with per-request ids, plus the optional interaction audit log.
"""
