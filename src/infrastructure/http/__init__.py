"""HTTP client and local proxy infrastructure."""
from infrastructure.http.client import HttpFetcher, make_http_session
from infrastructure.http.proxy import create_app

__all__ = [
    'HttpFetcher',
    'create_app',
    'make_http_session',
]
