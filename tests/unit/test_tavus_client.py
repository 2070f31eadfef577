"""Unit tests for the Tavus API client (mocked HTTP session)."""

from __future__ import annotations

import json
from unittest.mock import Mock

import pytest
import requests

from replica_automation.provisioning.client import (
    OwnerContext,
    ProvisioningError,
    TavusClient,
    build_persona_payload,
)
from replica_automation.workflow.effects import UpstreamStatus


def _response(status_code: int, payload: object, reason: str = "") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp.reason = reason
    resp._content = json.dumps(payload).encode("utf-8")
    return resp


def _client(session: Mock) -> TavusClient:
    return TavusClient(api_key="test-key", base_url="https://tavus.test/v2/", session=session)


@pytest.fixture
def session() -> Mock:
    mock_session = Mock(spec=requests.Session)
    mock_session.headers = {}
    return mock_session


def test_client_requires_api_key(session: Mock) -> None:
    with pytest.raises(ValueError):
        TavusClient(api_key="", session=session)


def test_client_sets_auth_header(session: Mock) -> None:
    _client(session)
    assert session.headers["x-api-key"] == "test-key"


def test_get_status_normalizes_payload(session: Mock) -> None:
    session.request.return_value = _response(200, {"replica_id": "r1", "status": "completed"})

    report = _client(session).get_status("r1")

    assert report.status is UpstreamStatus.READY
    assert report.raw_status == "completed"
    method, url = session.request.call_args.args
    assert method == "GET"
    assert url == "https://tavus.test/v2/replicas/r1"
    assert session.request.call_args.kwargs["timeout"] == 30.0


def test_get_status_reports_upstream_error_message(session: Mock) -> None:
    session.request.return_value = _response(
        200, {"status": "error", "error_message": "video too short"}
    )

    report = _client(session).get_status("r1")

    assert report.status is UpstreamStatus.FAILED
    assert report.error == "video too short"


def test_http_error_raises_provisioning_error(session: Mock) -> None:
    session.request.return_value = _response(429, {"message": "slow down"}, reason="Too Many")

    with pytest.raises(ProvisioningError) as excinfo:
        _client(session).get_status("r1")

    assert excinfo.value.status_code == 429
    assert "slow down" in str(excinfo.value)


def test_transport_error_raises_provisioning_error(session: Mock) -> None:
    session.request.side_effect = requests.ConnectionError("connection reset")

    with pytest.raises(ProvisioningError):
        _client(session).get_status("r1")


def test_create_derived_posts_persona(session: Mock) -> None:
    session.request.return_value = _response(200, {"persona_id": "p-9"})
    context = OwnerContext(
        owner_id="owner-1",
        source_resource_id="r1",
        record={"name": "Ada", "description": "Mathematician", "replica_type": "historical"},
    )

    persona_id = _client(session).create_derived(context)

    assert persona_id == "p-9"
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "https://tavus.test/v2/personas")
    body = session.request.call_args.kwargs["json"]
    assert body["persona_name"] == "Ada"
    assert body["default_replica_id"] == "r1"
    assert body["system_prompt"] == "You are Ada. Mathematician"
    assert body["context"] == "Persona type: historical. Mathematician"


def test_create_derived_requires_persona_id(session: Mock) -> None:
    session.request.return_value = _response(200, {"status": "ok"})
    context = OwnerContext(owner_id="owner-1", source_resource_id="r1", record={"name": "Ada"})

    with pytest.raises(ProvisioningError):
        _client(session).create_derived(context)


def test_payload_prefers_record_attributes() -> None:
    context = OwnerContext(
        owner_id="owner-1",
        source_resource_id="r1",
        record={
            "name": "Ada",
            "attributes": {"system_prompt": "Be Ada.", "context": "Victorian London"},
        },
    )

    body = build_persona_payload(context, llm_model="gpt-4o")

    assert body["system_prompt"] == "Be Ada."
    assert body["context"] == "Victorian London"
    assert body["layers"]["llm"]["model"] == "gpt-4o"


def test_payload_requires_owner_name() -> None:
    context = OwnerContext(owner_id="owner-1", source_resource_id="r1", record={})

    with pytest.raises(ProvisioningError):
        build_persona_payload(context, llm_model="gpt-4")


def test_associate_source_patches_persona(session: Mock) -> None:
    session.request.return_value = _response(200, {})

    _client(session).associate_source("p-9", "r1")

    method, url = session.request.call_args.args
    assert (method, url) == ("PATCH", "https://tavus.test/v2/personas/p-9")
    assert session.request.call_args.kwargs["json"] == [
        {"op": "replace", "path": "/default_replica_id", "value": "r1"}
    ]
