"""Unit tests for the Cloud Controller v2 client (auth, filters, pagination, errors)."""

from unittest.mock import MagicMock

import pytest
import requests

from src.cfbrokerproxy.cloudcontroller import CloudControllerClient, CloudControllerError, Filter
from src.cfbrokerproxy.cloudcontroller.client import convert_filter_parameters, parse_warnings

API = "https://api.example.com"
UAA = "https://uaa.example.com"


def _response(status=200, body=None, headers=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    response.content = b"" if body is None else b"{}"
    response.json.return_value = body
    if body is None:
        response.json.side_effect = ValueError("no json")
    response.text = text
    response.reason = "Reason"
    return response


def _auth_responses(token="t1"):
    return [
        _response(body={"token_endpoint": UAA}),
        _response(body={"access_token": token, "token_type": "bearer"}),
    ]


def _client(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    client = CloudControllerClient(API, "user", "secret", session=session, timeout=7)
    return client, session


def _resource(guid, **entity):
    return {"metadata": {"guid": guid}, "entity": entity}


# Filters and warnings

def test_filter_format_single_value():
    assert Filter.equals("name", "my-redis").format() == "name:my-redis"


def test_filter_format_multiple_values():
    assert Filter(type="service_guid", operator=" IN ", values=["a", "b"]).format() == "service_guid IN a,b"


def test_convert_filter_parameters_repeats_q():
    params = convert_filter_parameters([Filter.equals("name", "x"), Filter.equals("space_guid", "y")])
    assert params == [("q", "name:x"), ("q", "space_guid:y")]


def test_parse_warnings_decodes_header():
    response = _response(headers={"X-Cf-Warnings": "first%20warning,second"})
    assert parse_warnings(response) == ["first warning", "second"]


def test_parse_warnings_absent_header():
    assert parse_warnings(_response()) == []


# Authentication

def test_skip_ssl_validation_disables_verify():
    session = MagicMock()
    CloudControllerClient(API, "user", "secret", skip_ssl_validation=True, session=session)
    assert session.verify is False


def test_authenticate_uses_password_grant():
    client, session = _client(*_auth_responses())

    client.authenticate()

    info_call, token_call = session.request.call_args_list
    assert info_call.args == ("GET", f"{API}/v2/info")
    assert token_call.args == ("POST", f"{UAA}/oauth/token")
    assert token_call.kwargs["data"] == {
        "grant_type": "password",
        "username": "user",
        "password": "secret",
    }
    assert token_call.kwargs["auth"] == ("cf", "")
    assert token_call.kwargs["timeout"] == 7


def test_missing_token_endpoint_raises():
    client, _ = _client(_response(body={}))

    with pytest.raises(CloudControllerError) as exc_info:
        client.authenticate()
    assert exc_info.value.code == "uaa_endpoint_missing"


def test_non_json_info_raises_invalid_response():
    client, _ = _client(_response(status=200, text="<html>not a cloud controller</html>"))

    with pytest.raises(CloudControllerError) as exc_info:
        client.authenticate()

    assert exc_info.value.code == "cc_invalid_response"
    assert exc_info.value.status_code == 200


def test_non_object_token_body_raises_invalid_response():
    client, _ = _client(_response(body={"token_endpoint": UAA}), _response(body=["unexpected"]))

    with pytest.raises(CloudControllerError) as exc_info:
        client.authenticate()

    assert exc_info.value.code == "cc_invalid_response"


def test_requests_carry_bearer_token():
    client, session = _client(*_auth_responses("abc"), _response(body={"resources": []}))

    client.get_spaces()

    list_call = session.request.call_args_list[-1]
    assert list_call.kwargs["headers"]["Authorization"] == "bearer abc"


def test_expired_token_refreshed_once_and_replayed():
    client, session = _client(
        *_auth_responses("old"),
        _response(status=401, body={"error_code": "CF-InvalidAuthToken"}),
        *_auth_responses("new"),
        _response(body={"resources": [_resource("sp1", name="dev")]}),
    )

    spaces, _ = client.get_spaces()

    assert [s.guid for s in spaces] == ["sp1"]
    replay = session.request.call_args_list[-1]
    assert replay.kwargs["headers"]["Authorization"] == "bearer new"


# Listing and pagination

def test_list_follows_next_url():
    client, session = _client(
        *_auth_responses(),
        _response(body={
            "next_url": "/v2/services?page=2&results-per-page=1",
            "resources": [_resource("s1", label="redis", description="cache")],
        }),
        _response(body={
            "next_url": None,
            "resources": [_resource("s2", label="mysql", description="db")],
        }),
    )

    services, _ = client.get_services()

    assert [(s.guid, s.label) for s in services] == [("s1", "redis"), ("s2", "mysql")]
    second_page = session.request.call_args_list[-1]
    assert second_page.args == ("GET", f"{API}/v2/services?page=2&results-per-page=1")
    assert second_page.kwargs["params"] is None


def test_list_sends_filters_and_collects_warnings():
    client, session = _client(
        *_auth_responses(),
        _response(
            body={"resources": [_resource("p1", name="small", service_guid="s1")]},
            headers={"X-Cf-Warnings": "deprecated%20endpoint"},
        ),
    )

    plans, warnings = client.get_service_plans(Filter.equals("service_guid", "s1"))

    assert plans[0].service_guid == "s1"
    assert warnings == ["deprecated endpoint"]
    call = session.request.call_args_list[-1]
    assert call.args == ("GET", f"{API}/v2/service_plans")
    assert call.kwargs["params"] == [("q", "service_guid:s1")]


# Mutations

def test_create_service_instance_body_and_query():
    client, session = _client(
        *_auth_responses(),
        _response(status=202, body=_resource(
            "i1",
            name="my-redis",
            dashboard_url="https://dash",
            last_operation={"type": "create", "state": "in progress", "description": ""},
        )),
    )

    instance, _ = client.create_service_instance("space-1", "p1", "my-redis", True, {})

    assert instance.guid == "i1"
    assert instance.last_operation.in_progress
    call = session.request.call_args_list[-1]
    assert call.args == ("POST", f"{API}/v2/service_instances")
    assert call.kwargs["params"] == [("accepts_incomplete", "true")]
    assert call.kwargs["json"] == {
        "name": "my-redis",
        "space_guid": "space-1",
        "service_plan_guid": "p1",
        "parameters": {},
    }


def test_delete_service_instance_no_content_keeps_guid():
    client, _ = _client(*_auth_responses(), _response(status=204))

    instance, warnings = client.delete_service_instance("i1", accepts_incomplete=True)

    assert instance.guid == "i1"
    assert instance.last_operation.state == ""
    assert warnings == []


def test_delete_service_key_sync():
    client, session = _client(*_auth_responses(), _response(status=204))

    key, _ = client.delete_service_key("k1", accepts_incomplete=False)

    assert key.guid == "k1"
    call = session.request.call_args_list[-1]
    assert call.args == ("DELETE", f"{API}/v2/service_keys/k1")
    assert call.kwargs["params"] == [("accepts_incomplete", "false")]


# Errors

def test_error_response_mapped_to_cc_error():
    client, _ = _client(
        *_auth_responses(),
        _response(status=400, body={
            "code": 60002,
            "description": "The service instance name is taken: my-redis",
            "error_code": "CF-ServiceInstanceNameTaken",
        }),
    )

    with pytest.raises(CloudControllerError) as exc_info:
        client.create_service_instance("space-1", "p1", "my-redis", True)

    error = exc_info.value
    assert error.code == "CF-ServiceInstanceNameTaken"
    assert error.status_code == 400
    assert str(error) == "The service instance name is taken: my-redis"
    assert error.retryable is False


def test_server_error_marked_retryable():
    client, _ = _client(*_auth_responses(), _response(status=502, text="Bad Gateway"))

    with pytest.raises(CloudControllerError) as exc_info:
        client.get_service_instance("i1")

    assert exc_info.value.code == "cc_http_error"
    assert exc_info.value.retryable is True
    assert exc_info.value.to_dict()["status_code"] == 502


def test_connection_failure_wrapped():
    client, _ = _client(*_auth_responses(), requests.ConnectionError("refused"))

    with pytest.raises(CloudControllerError) as exc_info:
        client.get_spaces()

    assert exc_info.value.code == "cc_unreachable"
    assert exc_info.value.retryable is True


def test_non_json_success_body_raises_invalid_response():
    page = _response(status=200, text="<html></html>")
    page.content = b"<html></html>"
    client, _ = _client(*_auth_responses(), page)

    with pytest.raises(CloudControllerError) as exc_info:
        client.get_service_instance("i1")

    assert exc_info.value.code == "cc_invalid_response"
    assert exc_info.value.retryable is False
