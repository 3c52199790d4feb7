"""PagerDuty REST client for the alert that triggered the run."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests
import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

PAGERDUTY_API_URL = "https://api.pagerduty.com"
ALREADY_RESOLVED = "Incident Already Resolved"
INVALID_INPUT_ERROR_CODE = 2001


class AlertingClientError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WebhookParseError(AlertingClientError):
    pass


class InvalidTokenError(AlertingClientError):
    pass


class InvalidInputParamsError(AlertingClientError):
    pass


class IncidentNotFoundError(AlertingClientError):
    pass


class IncidentData(BaseModel):
    title: str  # e.g. InfraNodesNeedResizingSRE CRITICAL (1)
    incident_id: str  # e.g. Q2I4AV3ZURABC
    incident_ref: str = ""  # e.g. https://<>.pagerduty.com/incidents/Q2I4AV3ZURABC
    service_id: str = ""
    service_summary: str = ""


class _WebhookService(BaseModel):
    id: str = ""
    summary: str = ""


class _WebhookIncident(BaseModel):
    id: str = ""
    title: str = ""
    html_url: str = ""
    service: _WebhookService = Field(default_factory=_WebhookService)


class _WebhookEvent(BaseModel):
    event_type: str = ""
    data: _WebhookIncident = Field(default_factory=_WebhookIncident)


class _WebhookV3(BaseModel):
    event: _WebhookEvent = Field(default_factory=_WebhookEvent)


def parse_webhook_v3(payload: bytes) -> IncidentData:
    """Parse a PagerDuty v3 webhook whose event data is an incident."""
    try:
        hook = _WebhookV3.model_validate(json.loads(payload))
    except (ValueError, ValidationError) as e:
        raise WebhookParseError(f"could not decode webhook payload: {e}") from e

    data = hook.event.data
    for field_name, value in (
        ("event_type", hook.event.event_type),
        ("service.id", data.service.id),
        ("service.summary", data.service.summary),
        ("title", data.title),
        ("id", data.id),
        ("html_url", data.html_url),
    ):
        if not value:
            raise WebhookParseError(f"payload is missing field: {field_name}")

    return IncidentData(
        title=data.title,
        incident_id=data.id,
        incident_ref=data.html_url,
        service_id=data.service.id,
        service_summary=data.service.summary,
    )


def parse_orchestration_incident_id(payload: bytes) -> str:
    """Incident id of an event orchestration webhook: {"__pd_metadata": {"incident": {"id": ...}}}."""
    try:
        doc = json.loads(payload)
    except ValueError as e:
        raise WebhookParseError(f"could not decode webhook payload: {e}") from e
    incident_id = (((doc or {}).get("__pd_metadata") or {}).get("incident") or {}).get("id") or ""
    if not incident_id:
        raise WebhookParseError("payload is missing field: __pd_metadata.incident.id")
    return str(incident_id)


def extract_cluster_id(body: Dict[str, Any]) -> str:
    """
    Cluster id from an alert body.

    Newer alerts carry `details.cluster_id`; older ones carry a YAML `details.notes` blob with `cluster_id`.
    """
    details = (body or {}).get("details")
    if not isinstance(details, dict):
        raise AlertingClientError("could not find alert details field")

    cluster_id = details.get("cluster_id")
    if isinstance(cluster_id, str) and cluster_id:
        return cluster_id

    logger.warning("Unable to parse cluster_id directly from the alert details, trying the notes field")
    notes = details.get("notes")
    if not isinstance(notes, str):
        raise AlertingClientError("could not find notes field")
    try:
        parsed = yaml.safe_load(notes) or {}
    except yaml.YAMLError as e:
        raise AlertingClientError(f"error decoding notes YAML: {e}") from e
    cluster_id = parsed.get("cluster_id") if isinstance(parsed, dict) else None
    if not cluster_id:
        raise AlertingClientError("could not find cluster_id field in notes")
    return str(cluster_id)


class PagerDutyClient:
    """Alerting client bound to one incident."""

    def __init__(
        self,
        *,
        token: str,
        silent_policy: str,
        incident: IncidentData,
        from_email: str = "triage@localhost",
        base_url: str = PAGERDUTY_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.silent_policy = silent_policy
        self.incident = incident
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Token token={token}",
                "Accept": "application/vnd.pagerduty+json;version=2",
                "Content-Type": "application/json",
                "From": from_email,
            }
        )
        self._cluster_id: Optional[str] = None

    @classmethod
    def from_webhook(cls, payload: bytes, *, token: str, silent_policy: str, **kwargs: Any) -> "PagerDutyClient":
        """
        Build a client from a webhook payload.

        v3 incident webhooks are parsed directly; event orchestration webhooks only carry the incident id,
        so the incident is fetched.
        """
        try:
            incident = parse_webhook_v3(payload)
            return cls(token=token, silent_policy=silent_policy, incident=incident, **kwargs)
        except WebhookParseError as e:
            logger.info("Could not parse payload as webhook v3 (%s), trying event orchestration format", e)

        incident_id = parse_orchestration_incident_id(payload)
        client = cls(
            token=token,
            silent_policy=silent_policy,
            incident=IncidentData(title="", incident_id=incident_id),
            **kwargs,
        )
        client.incident = client.fetch_incident(incident_id)
        return client

    # --- HTTP plumbing ---------------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise AlertingClientError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 401:
            raise InvalidTokenError(f"the auth token that was provided is invalid: {resp.text}", 401)
        if resp.status_code == 404:
            raise IncidentNotFoundError(f"incident {self.incident.incident_id} not found: {resp.text}", 404)
        if resp.status_code == 400:
            code = None
            try:
                code = ((resp.json() or {}).get("error") or {}).get("code")
            except ValueError:
                pass
            if code == INVALID_INPUT_ERROR_CODE:
                raise InvalidInputParamsError(f"the escalation policy or incident id are invalid: {resp.text}", 400)
        if resp.status_code >= 400:
            raise AlertingClientError(f"{method} {path} returned {resp.status_code}: {resp.text}", resp.status_code)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    def _update_incident(self, fields: Dict[str, Any], what: str) -> None:
        body = {"incident": {"type": "incident_reference", **fields}}
        try:
            self._request("PUT", f"/incidents/{self.incident.incident_id}", json=body)
        except AlertingClientError as e:
            if ALREADY_RESOLVED in str(e):
                logger.info("Skipped %s, incident is already resolved.", what)
                return
            raise AlertingClientError(f"could not {what}: {e}") from e

    # --- incident data ---------------------------------------------------------------------------

    def fetch_incident(self, incident_id: str) -> IncidentData:
        doc = self._request("GET", f"/incidents/{incident_id}").get("incident") or {}
        service = doc.get("service") or {}
        return IncidentData(
            title=doc.get("title") or "",
            incident_id=doc.get("id") or incident_id,
            incident_ref=doc.get("html_url") or "",
            service_id=service.get("id") or "",
            service_summary=service.get("summary") or "",
        )

    def get_title(self) -> str:
        return self.incident.title

    def get_cluster_reference(self) -> str:
        return self.incident.incident_ref

    def get_alerts(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", f"/incidents/{self.incident.incident_id}/alerts").get("alerts") or [])

    def retrieve_cluster_id(self) -> str:
        """Cluster id of the incident's (single) alert. Fetched once, then cached."""
        if self._cluster_id is not None:
            return self._cluster_id

        alerts = self.get_alerts()
        if len(alerts) > 1:
            logger.warning(
                "There should be only one alert on each incident, taking the first result of incident: %s",
                self.incident.incident_id,
            )
        for alert in alerts:
            try:
                cluster_id = extract_cluster_id(alert.get("body") or {})
            except AlertingClientError as e:
                raise AlertingClientError(f"could not extract alert details from alert '{alert.get('id')}': {e}") from e
            if cluster_id:
                self._cluster_id = cluster_id
                return cluster_id
        raise AlertingClientError("could not find a cluster id in the given alerts")

    # --- alert actions ---------------------------------------------------------------------------

    def add_note(self, text: str) -> None:
        logger.info("Attaching note: %s", text)
        self._request("POST", f"/incidents/{self.incident.incident_id}/notes", json={"note": {"content": text}})

    def silence(self) -> None:
        logger.info("Moving to escalation policy: %s", self.silent_policy)
        self._update_incident(
            {"escalation_policy": {"id": self.silent_policy, "type": "escalation_policy_reference"}},
            "update the escalation policy",
        )

    def escalate(self) -> None:
        # The current level is not exposed by the API; incidents start at level 1.
        self._update_incident({"escalation_level": 2}, "escalate the incident")

    def silence_with_note(self, text: str) -> None:
        if text:
            try:
                self.add_note(text)
            except AlertingClientError as e:
                raise AlertingClientError(f"failed to attach notes to incident: {e}") from e
        self.silence()

    def escalate_with_note(self, text: str) -> None:
        if text:
            try:
                self.add_note(text)
            except AlertingClientError as e:
                raise AlertingClientError(f"failed to attach notes to incident: {e}") from e
        self.escalate()

    def update_title(self, title: str) -> None:
        self._update_incident({"title": title}, "update the incident title")
        self.incident = self.incident.model_copy(update={"title": title})
