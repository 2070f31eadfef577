"""Tavus API client used by the provisioning workflow.

This intentionally wraps raw HTTP calls to keep them out of the workflow and to
make tests easy: the workflow depends only on the :class:`ProvisioningClient`
protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from replica_automation.workflow.effects import StatusReport

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """An upstream call failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class OwnerContext:
    """Everything needed to create the derived resource for an owner."""

    owner_id: str
    source_resource_id: str
    record: Mapping[str, object] = field(default_factory=dict)


class ProvisioningClient(Protocol):
    def get_status(self, source_resource_id: str) -> StatusReport: ...

    def create_derived(self, context: OwnerContext) -> str: ...

    def associate_source(self, derived_resource_id: str, source_resource_id: str) -> None: ...


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def build_persona_payload(context: OwnerContext, *, llm_model: str) -> dict[str, Any]:
    """Build the Tavus persona request body from an owner record."""

    record = context.record
    name = _text(record.get("name"))
    if not name:
        raise ProvisioningError(f"Owner {context.owner_id} has no name to create a persona from")

    description = _text(record.get("description"))
    attributes = record.get("attributes")
    attrs: Mapping[str, object] = attributes if isinstance(attributes, Mapping) else {}
    system_prompt = _text(attrs.get("system_prompt")) or f"You are {name}. {description}".strip()
    replica_type = _text(record.get("replica_type"))
    context_text = _text(attrs.get("context")) or (
        f"Persona type: {replica_type}. {description}".strip()
    )

    return {
        "persona_name": name,
        "default_replica_id": context.source_resource_id,
        "system_prompt": system_prompt,
        "context": context_text,
        "layers": {
            "llm": {"model": llm_model},
            "tts": {"voice_settings": {"speed": "normal", "emotion": ["neutral"]}},
        },
    }


class TavusClient:
    """Small wrapper around the Tavus v2 REST API for the calls the workflow needs."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.tavus.io/v2",
        timeout_seconds: float = 30.0,
        llm_model: str = "gpt-4",
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Tavus API key is required")

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._llm_model = llm_model
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "x-api-key": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": "replica-automation",
            }
        )

    def close(self) -> None:
        self._session.close()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self._session.request(method, self._url(path), timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise ProvisioningError(f"{method} {path} failed: {e}") from e

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not resp.ok:
            message = data.get("message") or data.get("error") or resp.reason
            raise ProvisioningError(
                f"{method} {path} returned HTTP {resp.status_code}: {message}",
                status_code=resp.status_code,
            )
        return data

    def get_status(self, source_resource_id: str) -> StatusReport:
        if not source_resource_id:
            raise ValueError("source_resource_id is required")
        data = self._request("GET", f"replicas/{source_resource_id}")
        raw_status = data.get("status")
        error = data.get("error_message") or data.get("error")
        report = StatusReport.from_raw(raw_status, error=error if isinstance(error, str) else None)
        logger.debug(
            "Fetched replica status",
            extra={"replica_id": source_resource_id, "raw_status": raw_status},
        )
        return report

    def create_derived(self, context: OwnerContext) -> str:
        payload = build_persona_payload(context, llm_model=self._llm_model)
        data = self._request("POST", "personas", json=payload)
        persona_id = data.get("persona_id")
        if not isinstance(persona_id, str) or not persona_id.strip():
            raise ProvisioningError("Tavus response did not include a persona_id")
        logger.info(
            "Created Tavus persona",
            extra={"owner_id": context.owner_id, "persona_id": persona_id},
        )
        return persona_id

    def associate_source(self, derived_resource_id: str, source_resource_id: str) -> None:
        # JSON Patch body, as accepted by PATCH /personas/{id}.
        self._request(
            "PATCH",
            f"personas/{derived_resource_id}",
            json=[{"op": "replace", "path": "/default_replica_id", "value": source_resource_id}],
        )
