"""HTTP surface: FastAPI app and ASGI middleware."""
