"""
TravelDiary Backend: Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Execution order (outermost first):
    Request → [CORS] → [Request ID] → [Access Log] → [Rate Limit] → [GZip] → Route

    - CORS is outermost so even 429 responses carry the CORS headers the
      browser needs to read them.
    - The request ID exists before the access log line, the rate limiter and
      the error handlers need it, so X-Request-ID is on every response.
    - Rejected (429) requests still get an access log line.
"""
