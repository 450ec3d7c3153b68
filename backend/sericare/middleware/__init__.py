"""
SeriCare Backend — Middleware Package
======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Access Log] → [Rate Limit] → [GZip] → [CORS] → Route

    - Request ID is set before anything logs, so 429 bodies and access log
      lines carry it
    - The access log sees the final status code, including 429s
    - Rate limit rejects before the route does any work
"""
