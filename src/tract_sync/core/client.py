import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..exceptions import RemoteRejected, RemoteUnavailable

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/api/2"
ORIGIN_PROPERTY = "tract-sync.origin"


class JiraClient:
    """Thin synchronous client for the Jira REST API v2.

    Every method either returns the decoded JSON body or raises:

    * ``RemoteUnavailable`` for connection errors, timeouts and 5xx.
    * ``RemoteRejected`` for 4xx, carrying the status code and Jira's
      error payload.

    No call is retried.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = f"{config.jira_url.rstrip('/')}{API_PREFIX}"

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.username, self.config.password)
        session.verify = not self.config.insecure
        session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        return session

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make a REST request and decode the JSON response.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._get_session().request(
                method,
                url,
                json=json,
                params=params,
                timeout=(10, 60),
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise RemoteUnavailable(f"{method} {path}: {exc}") from exc

        if response.status_code >= 500:
            raise RemoteUnavailable(
                f"{method} {path}: HTTP {response.status_code}",
                status_code=response.status_code,
                payload=_decode(response),
            )
        if response.status_code >= 400:
            payload = _decode(response)
            logger.warning(
                "%s %s rejected (%s): %s",
                method,
                path,
                response.status_code,
                payload,
            )
            raise RemoteRejected(
                f"{method} {path}: HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        return _decode(response)

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def get_issue(self, key: str) -> dict[str, Any]:
        """
        Get an issue with all fields, comments and links.
        """
        return self._request("GET", f"/issue/{key}")

    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Create an issue.

        Returns:
            Jira's response, ``{"id": ..., "key": ..., "self": ...}``.
        """
        return self._request("POST", "/issue", json={"fields": fields})

    def update_fields(self, key: str, fields: dict[str, Any]) -> None:
        """
        Update several fields of an issue in one call.
        """
        self._request("PUT", f"/issue/{key}", json={"fields": fields})

    def search_issues(
        self,
        jql: str,
        fields: list[str] | None = None,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        """
        Run a JQL search and return every matching issue, following pages.
        """
        issues: list[dict[str, Any]] = []
        start_at = 0
        while True:
            params: dict[str, Any] = {
                "jql": jql,
                "startAt": start_at,
                "maxResults": page_size,
            }
            if fields:
                params["fields"] = ",".join(fields)
            page = self._request("GET", "/search", params=params)
            batch = page.get("issues") or []
            issues.extend(batch)
            start_at += len(batch)
            if not batch or start_at >= page.get("total", 0):
                return issues

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def get_transitions(self, key: str) -> list[dict[str, Any]]:
        """
        List the transitions available from the issue's current status.
        """
        data = self._request("GET", f"/issue/{key}/transitions")
        return data.get("transitions") or []

    def transition(self, key: str, transition_id: str) -> None:
        self._request(
            "POST",
            f"/issue/{key}/transitions",
            json={"transition": {"id": transition_id}},
        )

    # ------------------------------------------------------------------
    # Comments, links, worklogs
    # ------------------------------------------------------------------

    def add_comment(
        self, key: str, body: str, origin: str | None = None
    ) -> dict[str, Any]:
        """
        Add a comment.  When *origin* is given the comment carries the
        ``tract-sync.origin`` entity property so webhook consumers can
        recognize it without inspecting the text.
        """
        payload: dict[str, Any] = {"body": body}
        if origin:
            payload["properties"] = [
                {"key": ORIGIN_PROPERTY, "value": {"origin": origin}}
            ]
        return self._request("POST", f"/issue/{key}/comment", json=payload)

    def create_link(
        self, link_type: str, source_key: str, target_key: str
    ) -> None:
        """
        Link two issues so that "<source> <outward description> <target>"
        holds, e.g. ``create_link("Blocks", "APP-1", "APP-2")`` for
        "APP-1 blocks APP-2".

        Jira's POST body names the source ``inwardIssue``; on GET the source
        sees the target under ``outwardIssue``.
        """
        self._request(
            "POST",
            "/issueLink",
            json={
                "type": {"name": link_type},
                "inwardIssue": {"key": source_key},
                "outwardIssue": {"key": target_key},
            },
        )

    def delete_link(self, link_id: str) -> None:
        self._request("DELETE", f"/issueLink/{link_id}")

    def add_worklog(
        self, key: str, seconds: int, started: str, comment: str = ""
    ) -> dict[str, Any]:
        """
        Log work on an issue.  *started* uses Jira's format,
        ``2026-02-12T10:00:00.000+0000``.
        """
        return self._request(
            "POST",
            f"/issue/{key}/worklog",
            json={
                "timeSpentSeconds": seconds,
                "started": started,
                "comment": comment,
            },
        )

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def validate_connection(self) -> str:
        """
        Validate credentials via ``/myself``.  Returns the account name.
        """
        me = self._request("GET", "/myself")
        return me.get("name") or me.get("displayName") or ""


def _decode(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
