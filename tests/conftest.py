"""
Pytest configuration and fixtures shared by the test suite
"""
import asyncio
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.routing import Route

from rpclens.core.config import Settings
from rpclens.core.errors import Problem, ProblemType
from rpclens.core.handler import handle_blank_request, handle_json_request
from rpclens.core.responses import JSONBody, NoContent
from rpclens.main import create_app


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Strict settings: Content-Type required, compact JSON for readable assertions"""
    return Settings(
        ALLOW_BLANK_CONTENT_TYPE=False,
        ALLOW_UTF8_CHARSET=False,
        JSON_MULTILINE=False,
    )


@pytest.fixture
def lenient_settings() -> Settings:
    """Settings that accept a request without a Content-Type header"""
    return Settings(ALLOW_BLANK_CONTENT_TYPE=True, JSON_MULTILINE=False)


# ============================================================================
# REQUEST HELPERS
# ============================================================================

def build_request(body: bytes = b"", headers: dict[str, str] | None = None) -> Request:
    """Build a bare Starlette POST request with the given body"""
    raw_headers = [
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "query_string": b"",
        "headers": raw_headers,
    }
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request


def run(coro) -> Any:
    """Run a coroutine to completion from a synchronous test"""
    return asyncio.run(coro)


# ============================================================================
# SAMPLE ENDPOINTS
# ============================================================================

class ComputeRequest(BaseModel):
    x: int


class OutOfCreditProblem(Problem):
    """Domain-specific problem used to exercise custom variants"""

    def __init__(self, balance: int, cost: int):
        self.balance = balance
        self.cost = cost
        super().__init__(f"balance {balance} below cost {cost}")

    def problem_type(self) -> ProblemType:
        return ProblemType(
            title="You do not have enough credit.",
            status=403,
            uri="https://example.com/probs/out-of-credit",
        )

    def problem_instance(self) -> str:
        return "/account/12345/msgs/abc"

    def problem_detail(self) -> str:
        return f"Your current balance is {self.balance}, but that costs {self.cost}."

    def set_problem_headers(self, headers) -> None:
        headers["Retry-After"] = "3600"

    def problem_data(self) -> dict[str, Any]:
        return {"balance": self.balance, "accounts": ["/account/12345", "/account/67890"]}

    def error_data(self) -> dict[str, Any]:
        return {"account_id": 12345}


async def compute(request: Request, body: ComputeRequest, log) -> JSONBody[dict]:
    if body.x < 0:
        raise OutOfCreditProblem(balance=30, cost=50)
    if body.x == 13:
        raise RuntimeError("database exploded at 10.0.0.7")
    if body.x == 0:
        return NoContent()
    return JSONBody(status=200, body={"y": body.x * 2})


def echo_dict(request: Request, body: dict, log) -> JSONBody[dict]:
    """Synchronous endpoint taking an untyped JSON object"""
    return JSONBody(status=201, body=body, extra_headers={"Location": "/things/1"})


async def ping(request: Request, log) -> JSONBody[dict]:
    return JSONBody(status=200, body={"pong": True})


def build_app(settings: Settings) -> Starlette:
    return Starlette(
        routes=[
            Route("/compute", handle_json_request(compute, ComputeRequest, settings=settings), methods=["POST"]),
            Route("/echo", handle_json_request(echo_dict, dict, name="echo", settings=settings), methods=["POST"]),
            Route("/ping", handle_blank_request(ping, name="ping", settings=settings), methods=["GET", "POST"]),
        ]
    )


@pytest.fixture
def client(settings: Settings) -> TestClient:
    """Test client for a bare Starlette app wired with the handler adapter"""
    with TestClient(build_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def lenient_client(lenient_settings: Settings) -> TestClient:
    with TestClient(build_app(lenient_settings)) as test_client:
        yield test_client


@pytest.fixture
def app_client(settings: Settings) -> TestClient:
    """Test client for the full FastAPI application"""
    with TestClient(create_app(settings)) as test_client:
        yield test_client
