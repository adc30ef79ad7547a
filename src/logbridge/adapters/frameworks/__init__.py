"""ASGI and FastAPI front doors for the ingestion gateway."""
