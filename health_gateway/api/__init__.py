"""HTTP API layer of the health tracker gateway.

This package turns the ASGI application built by FastAPI into a gateway
with one set of cross-request guarantees, whatever handler group answers.

Key components:
- **main**: Application factory (static routes, docs, pipeline wiring)
- **middleware**: The request pipeline
  - Access logging, body parsing, CORS and security header steps
  - The dispatcher running them in a fixed order
  - The error boundary normalizing every failure into one body
- **routes**: Route registry mounting handler groups under their prefixes
- **schemas**: Pydantic models for the error and health bodies
- **utils**: orjson-backed response class
"""
