"""
End-to-end tests for the generic handler adapter

Tests cover:
- Successful decode -> endpoint -> envelope flow
- Decode failures short-circuiting to problem documents
- Endpoint problems, escalation of unstructured errors
- Body-less handlers
- One log record per request, tagged with the endpoint name
"""
import functools
import json
import logging

import pytest
from fastapi.testclient import TestClient
from starlette.applications import Starlette
from starlette.routing import Route

from rpclens.core.codec import ResponseEncodingError
from rpclens.core.errors import problemf, problem_status
from rpclens.core.handler import (
    BlankBodyHandler,
    JSONBodyHandler,
    endpoint_name,
    handle_blank_request,
    handle_json_request,
)
from rpclens.core.responses import JSONBody

from conftest import ComputeRequest, build_request, compute, run

HANDLER_LOGGER = "rpclens.core.handler"


def handler_records(caplog):
    return [r for r in caplog.records if r.name == HANDLER_LOGGER]


class TestJSONBodyHandler:
    """Test handlers that decode a JSON body"""

    def test_valid_body(self, client: TestClient):
        response = client.post("/compute", json={"x": 5})

        assert response.status_code == 200
        assert response.json() == {"y": 10}
        assert response.headers["content-type"] == "application/json"
        assert response.headers["content-length"] == str(len(response.content))

    def test_unparsable_body(self, client: TestClient):
        response = client.post(
            "/compute",
            content=b'{"x": 5',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.headers["content-type"] == "application/problem+json"
        body = response.json()
        assert body["status"] == 400
        assert body["title"] == "Bad Request"
        assert body["detail"].startswith("Error decoding JSON body")

    def test_wrong_media_type(self, client: TestClient):
        response = client.post("/compute", content=b'{"x": 5}', headers={"Content-Type": "text/plain"})

        assert response.status_code == 415
        assert response.headers["accept"] == "application/json"
        assert response.json()["received_type"] == "text/plain"

    def test_missing_content_type_strict(self, client: TestClient):
        response = client.post("/compute", content=b'{"x": 5}')

        assert response.status_code == 415

    def test_missing_content_type_lenient(self, lenient_client: TestClient):
        response = lenient_client.post("/compute", content=b'{"x": 5}')

        assert response.status_code == 200
        assert response.json() == {"y": 10}

    def test_endpoint_problem(self, client: TestClient):
        response = client.post("/compute", json={"x": -1})

        assert response.status_code == 403
        assert response.headers["retry-after"] == "3600"
        body = response.json()
        assert body["type"] == "https://example.com/probs/out-of-credit"
        assert body["instance"] == "/account/12345/msgs/abc"
        assert body["balance"] == 30
        assert "account_id" not in body

    def test_unstructured_error_escalates_to_500(self, client: TestClient):
        response = client.post("/compute", json={"x": 13})

        assert response.status_code == 500
        assert response.headers["content-type"] == "application/problem+json"
        assert response.json() == {
            "title": "Internal Server Error",
            "status": 500,
            "detail": "Internal Server Error",
        }
        assert "10.0.0.7" not in response.text

    def test_no_content(self, client: TestClient):
        response = client.post("/compute", json={"x": 0})

        assert response.status_code == 204
        assert response.content == b""

    def test_sync_endpoint_with_untyped_body(self, client: TestClient):
        response = client.post("/echo", json={"anything": [1, "two"]})

        assert response.status_code == 201
        assert response.headers["location"] == "/things/1"
        assert response.json() == {"anything": [1, "two"]}

    def test_wrapped_problem_is_surfaced(self, settings):
        async def lookup(request, body, log):
            try:
                raise problemf(problem_status(404), "", "widget %d not found", body["id"])
            except Exception as e:
                raise RuntimeError("repository layer failed") from e

        app = Starlette(routes=[Route("/lookup", handle_json_request(lookup, dict, settings=settings), methods=["POST"])])
        with TestClient(app) as test_client:
            response = test_client.post("/lookup", json={"id": 9})

        assert response.status_code == 404
        assert response.json()["detail"] == "widget 9 not found"

    def test_unserializable_response_is_fatal(self, settings):
        async def broken(request, body, log):
            return JSONBody(status=200, body={"handle": object()})

        app = Starlette(routes=[Route("/broken", handle_json_request(broken, dict, settings=settings), methods=["POST"])])
        with TestClient(app) as test_client:
            with pytest.raises(ResponseEncodingError):
                test_client.post("/broken", json={})

    def test_string_for_int_is_400(self, client: TestClient):
        response = client.post("/compute", json={"x": "5"})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Error decoding JSON body")

    def test_non_envelope_return_is_a_programming_error(self, settings):
        handler = handle_blank_request(lambda request, log: {"y": 1}, name="bare_dict", settings=settings)

        with pytest.raises(TypeError, match="bare_dict returned dict"):
            run(handler.handle(build_request()))

    def test_handle_directly(self, settings):
        handler = handle_json_request(compute, ComputeRequest, settings=settings)

        response = run(handler.handle(build_request(b'{"x": 21}', {"Content-Type": "application/json"})))

        assert response.status_code == 200
        assert json.loads(response.body) == {"y": 42}


class TestBlankBodyHandler:
    """Test handlers that take no body"""

    def test_get(self, client: TestClient):
        response = client.get("/ping")

        assert response.status_code == 200
        assert response.json() == {"pong": True}

    def test_body_and_content_type_ignored(self, client: TestClient):
        response = client.post("/ping", content=b"not json", headers={"Content-Type": "text/plain"})

        assert response.status_code == 200

    def test_factory_returns_blank_handler(self, settings):
        handler = handle_blank_request(lambda request, log: None, name="noop", settings=settings)

        assert isinstance(handler, BlankBodyHandler)
        assert not isinstance(handler, JSONBodyHandler)


class TestHandlerLogging:
    """Every outcome produces exactly one handler log record"""

    @pytest.mark.parametrize(
        "payload, level",
        [
            ({"x": 5}, logging.DEBUG),
            ({"x": -1}, logging.WARNING),
            ({"x": 13}, logging.ERROR),
            ({"x": "five"}, logging.DEBUG),
        ],
    )
    def test_one_record_per_request(self, client: TestClient, caplog, payload, level):
        caplog.set_level(logging.DEBUG, logger=HANDLER_LOGGER)

        client.post("/compute", json=payload)

        records = handler_records(caplog)
        assert len(records) == 1
        assert records[0].levelno == level
        assert records[0].endpoint == "conftest.compute"

    def test_media_type_failure_logged(self, client: TestClient, caplog):
        caplog.set_level(logging.DEBUG, logger=HANDLER_LOGGER)

        client.post("/compute", content=b"{}", headers={"Content-Type": "text/plain"})

        records = handler_records(caplog)
        assert len(records) == 1
        assert records[0].status == 415

    def test_explicit_name_used(self, client: TestClient, caplog):
        caplog.set_level(logging.DEBUG, logger=HANDLER_LOGGER)

        client.post("/echo", json={})

        assert handler_records(caplog)[0].endpoint == "echo"

    def test_server_error_logged_with_traceback(self, client: TestClient, caplog):
        caplog.set_level(logging.DEBUG, logger=HANDLER_LOGGER)

        client.post("/compute", json={"x": 13})

        record = handler_records(caplog)[0]
        assert "10.0.0.7" in record.getMessage()
        assert isinstance(record.exc_info[1], RuntimeError)


def _decorator(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        return await func(*args, **kwargs)
    return wrapper


class _CallableEndpoint:
    def __call__(self, request, log):
        return None


class TestEndpointName:

    def test_function(self):
        assert endpoint_name(compute) == "conftest.compute"

    def test_partial(self):
        assert endpoint_name(functools.partial(compute)) == "conftest.compute"

    def test_decorated(self):
        assert endpoint_name(_decorator(compute)) == "conftest.compute"

    def test_callable_object(self):
        assert endpoint_name(_CallableEndpoint()) == f"{__name__}._CallableEndpoint"

    def test_name_is_independent_of_reference(self):
        alias = compute

        assert endpoint_name(alias) == endpoint_name(compute)
        assert handle_json_request(alias, dict).name == "conftest.compute"
