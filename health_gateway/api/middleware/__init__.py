"""Request pipeline for cross-cutting request/response concerns.

Every HTTP request runs through these steps, front to back, before any
route handler sees it:

1. **AccessLoggingStep**: logs the request on arrival, completion on response
2. **BodyParsingStep**: reads and decodes the body under a hard size cap
3. **CorsStep**: CORS headers on every response, preflights answered directly
4. **SecurityHeadersStep**: HSTS and the hardening header set

``PipelineMiddleware`` runs the steps; ``ErrorBoundary`` builds the response
of every failure, wherever it came from.
"""
