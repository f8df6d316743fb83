"""
tracelog.api

API package for a traced example service.

Responsibilities:
- FastAPI app factory and router modules.
- API-layer dependency wiring.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The API layer should remain thin: it composes the sink and middleware and serves health checks.
