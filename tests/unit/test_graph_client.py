"""Tests for the Microsoft Graph client."""

import json
from unittest.mock import Mock, patch

import pytest
import requests
from azure.core.exceptions import ClientAuthenticationError

from alzctl.graph_client import (
    GRAPH_SCOPE,
    GraphClient,
    GraphError,
    GraphTransientError,
    escape_odata_string,
)


def _response(status_code=200, body=None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.headers = headers or {}
    response.content = json.dumps(body).encode() if body is not None else b""
    response.text = response.content.decode()
    response.json.return_value = body
    return response


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("alzctl.retry_handler.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def graph(mock_credential, session):
    return GraphClient(credential=mock_credential, session=session)


class TestAuth:
    def test_bearer_token_sent(self, graph, session, mock_credential):
        session.request.return_value = _response(200, {"id": "1"})

        graph.get("/groups/1")

        mock_credential.get_token.assert_called_once_with(GRAPH_SCOPE)
        headers = session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer fake-graph-token-12345"

    def test_token_cached(self, graph, session, mock_credential):
        session.request.return_value = _response(200, {"id": "1"})

        graph.get("/groups/1")
        graph.get("/groups/2")

        assert mock_credential.get_token.call_count == 1

    def test_authentication_failure(self, graph, mock_credential):
        mock_credential.get_token.side_effect = ClientAuthenticationError("Please run 'az login'")

        with pytest.raises(GraphError) as exc_info:
            graph.get("/groups")

        assert exc_info.value.status_code == 401
        assert "az login" in str(exc_info.value)


class TestRequest:
    def test_urls(self, graph, session):
        session.request.return_value = _response(200, {})

        graph.get("/groups")
        graph.get("deviceManagement/deviceCompliancePolicies", beta=True)

        urls = [c.args[1] for c in session.request.call_args_list]
        assert urls == [
            "https://graph.microsoft.com/v1.0/groups",
            "https://graph.microsoft.com/beta/deviceManagement/deviceCompliancePolicies",
        ]

    def test_no_content(self, graph, session):
        session.request.return_value = _response(204)

        assert graph.patch("/groups/1", {"description": "x"}) is None
        assert session.request.call_args.kwargs["json"] == {"description": "x"}

    def test_error_details(self, graph, session):
        session.request.return_value = _response(
            400, {"error": {"code": "Request_BadRequest", "message": "Invalid property"}}
        )

        with pytest.raises(GraphError) as exc_info:
            graph.post("/groups", {})

        error = exc_info.value
        assert error.status_code == 400
        assert error.code == "Request_BadRequest"
        assert "Invalid property" in str(error)
        assert session.request.call_count == 1

    def test_allow_404(self, graph, session):
        session.request.return_value = _response(404, {"error": {"code": "Request_ResourceNotFound"}})

        assert graph.get("/users/nobody@contoso.com", allow_404=True) is None

    def test_throttling_retried_with_retry_after(self, graph, session, no_sleep):
        session.request.side_effect = [
            _response(429, {"error": {"code": "TooManyRequests"}}, {"Retry-After": "7"}),
            _response(200, {"id": "1"}),
        ]

        assert graph.get("/groups/1") == {"id": "1"}
        no_sleep.assert_called_once_with(7.0)

    def test_connection_error_retried(self, graph, session):
        session.request.side_effect = [requests.ConnectionError("reset"), _response(200, {"id": "1"})]

        assert graph.get("/groups/1") == {"id": "1"}

    def test_gives_up_after_max_attempts(self, graph, session):
        session.request.return_value = _response(503, {"error": {"code": "ServiceUnavailable"}})

        with pytest.raises(GraphTransientError):
            graph.get("/groups")

        assert session.request.call_count == 4

    def test_non_json_error_body(self, graph, session):
        response = _response(502)
        response.json.side_effect = ValueError("no json")
        response.text = "<html>Bad Gateway</html>"
        session.request.return_value = response

        with pytest.raises(GraphTransientError, match="Bad Gateway"):
            graph.get("/groups")


class TestPostNotResent:
    """A create that may have been committed must not be sent twice."""

    @pytest.mark.parametrize(
        "first",
        [
            _response(504, {"error": {"code": "GatewayTimeout"}}),
            _response(502, {"error": {"code": "BadGateway"}}),
            requests.ReadTimeout("read timed out"),
            requests.ConnectionError("connection reset"),
        ],
    )
    def test_post_sent_once(self, graph, session, first):
        session.request.side_effect = [first, _response(201, {"id": "g1"})]

        with pytest.raises(GraphError) as exc_info:
            graph.post("/groups", {"displayName": "sg-alz-readers"})

        assert not isinstance(exc_info.value, GraphTransientError)
        assert session.request.call_count == 1

    def test_post_retried_when_throttled(self, graph, session, no_sleep):
        session.request.side_effect = [
            _response(429, {"error": {"code": "TooManyRequests"}}, {"Retry-After": "3"}),
            _response(201, {"id": "g1"}),
        ]

        assert graph.post("/groups", {"displayName": "sg-alz-readers"}) == {"id": "g1"}
        assert session.request.call_count == 2
        no_sleep.assert_called_once_with(3.0)

    def test_post_retried_on_unavailable_with_retry_after(self, graph, session):
        session.request.side_effect = [
            _response(503, {"error": {"code": "ServiceUnavailable"}}, {"Retry-After": "1"}),
            _response(201, {"id": "g1"}),
        ]

        assert graph.post("/groups", {"displayName": "sg-alz-readers"}) == {"id": "g1"}
        assert session.request.call_count == 2

    def test_post_not_retried_on_unavailable_without_retry_after(self, graph, session):
        session.request.side_effect = [
            _response(503, {"error": {"code": "ServiceUnavailable"}}),
            _response(201, {"id": "g1"}),
        ]

        with pytest.raises(GraphError):
            graph.post("/groups", {"displayName": "sg-alz-readers"})

        assert session.request.call_count == 1

    def test_post_retried_on_connect_timeout(self, graph, session):
        session.request.side_effect = [requests.ConnectTimeout("connect timed out"), _response(201, {"id": "g1"})]

        assert graph.post("/groups", {"displayName": "sg-alz-readers"}) == {"id": "g1"}

    def test_patch_still_retried_on_gateway_timeout(self, graph, session):
        session.request.side_effect = [_response(504, {"error": {"code": "GatewayTimeout"}}), _response(204)]

        assert graph.patch("/groups/g1", {"description": "Readers"}) is None
        assert session.request.call_count == 2


class TestPaging:
    def test_follows_next_link(self, graph, session):
        next_link = "https://graph.microsoft.com/v1.0/groups?$skiptoken=abc"
        session.request.side_effect = [
            _response(200, {"value": [{"id": "1"}], "@odata.nextLink": next_link}),
            _response(200, {"value": [{"id": "2"}]}),
        ]

        assert graph.list_all("/groups") == [{"id": "1"}, {"id": "2"}]
        assert session.request.call_args_list[1].args[1] == next_link

    def test_find_by_display_name_escapes_quotes(self, graph, session):
        session.request.return_value = _response(200, {"value": []})

        graph.find_by_display_name("/groups", "O'Brien's team", select="id,displayName")

        params = session.request.call_args.kwargs["params"]
        assert params["$filter"] == "displayName eq 'O''Brien''s team'"
        assert params["$select"] == "id,displayName"


class TestGetUser:
    def test_upn_is_quoted(self, graph, session):
        session.request.return_value = _response(200, {"id": "u1"})

        assert graph.get_user("break glass@contoso.com") == {"id": "u1"}
        assert session.request.call_args.args[1].endswith("/users/break%20glass@contoso.com")


def test_escape_odata_string():
    assert escape_odata_string("it's") == "it''s"
