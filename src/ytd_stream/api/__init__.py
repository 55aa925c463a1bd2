"""HTTP boundary — FastAPI routes over the core and delivery engine.

Only this package knows about HTTP status codes, headers and ASGI.
"""

from ytd_stream.api.app import create_app

__all__: list[str] = ["create_app"]
