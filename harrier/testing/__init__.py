"""
Harrier Testing - in-process test infrastructure.

Usage:
    from harrier.testing import TestClient

    async with TestClient(app) as client:
        response = await client.get("/items/42")
        assert response.status_code == 200
"""

from .client import TestClient, TestResponse
from .utils import make_test_ctx, make_test_receive, make_test_request, make_test_scope

__all__ = [
    "TestClient",
    "TestResponse",
    "make_test_scope",
    "make_test_receive",
    "make_test_request",
    "make_test_ctx",
]
