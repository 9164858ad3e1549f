"""
GitHub Issues client.

Thin JSON-over-HTTP wrapper around the endpoints the alert lifecycle needs.
Every failure (HTTP error, connection error, timeout, unreadable response)
is raised as TrackerError; the resilient wrapper decides what to do with it.
"""

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any

from apps.alerts.errors import TrackerError
from apps.tracker.secrets import SecretProvider

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"

# Colors for labels created by ensure_labels_exist, keyed by prefix.
LABEL_COLORS = {
    "Pri:P0": "b60205",
    "Pri:P1": "d93f0b",
    "Pri:P2": "fbca04",
    "Pri:P3": "0e8a16",
    "Team:": "1d76db",
    "Source:": "5319e7",
}
DEFAULT_LABEL_COLOR = "ededed"


def label_color(name: str) -> str:
    for prefix, color in LABEL_COLORS.items():
        if name.startswith(prefix):
            return color
    return DEFAULT_LABEL_COLOR


class GitHubIssueClient:
    """
    Client for the GitHub Issues REST API.

    Args:
        repo: Repository in ``owner/name`` form.
        secrets: Provider used to read the API token on every request.
        token_key: Secret key holding the token.
        api_url: API base URL (GitHub Enterprise uses a different one).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        repo: str,
        secrets: SecretProvider,
        token_key: str = "ALERTS_TRACKER_TOKEN",
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10,
    ):
        if not repo or "/" not in repo:
            raise ValueError(f"Tracker repository must be 'owner/name', got: {repo!r}")
        self.repo = repo
        self.secrets = secrets
        self.token_key = token_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        """Create an issue and return its number."""
        data = self._request("POST", "/issues", {"title": title, "body": body, "labels": labels})
        try:
            number = int(data["number"])
        except (KeyError, TypeError, ValueError):
            raise TrackerError("GitHub response did not include an issue number") from None
        logger.info(f"Created GitHub issue #{number} in {self.repo}")
        return number

    def close_issue(self, number: int) -> bool:
        self._request("PATCH", f"/issues/{number}", {"state": "closed", "state_reason": "completed"})
        logger.info(f"Closed GitHub issue #{number} in {self.repo}")
        return True

    def comment_on_issue(self, number: int, body: str) -> bool:
        self._request("POST", f"/issues/{number}/comments", {"body": body})
        logger.info(f"Commented on GitHub issue #{number} in {self.repo}")
        return True

    def get_issue_state(self, number: int) -> str:
        """Return ``"open"`` or ``"closed"``."""
        data = self._request("GET", f"/issues/{number}")
        state = data.get("state") if isinstance(data, dict) else None
        if state not in ("open", "closed"):
            raise TrackerError(f"Unexpected state for issue #{number}: {state!r}")
        return state

    def ensure_labels_exist(self, labels: list[str]) -> bool:
        """Create any missing labels. Labels that already exist are left alone."""
        for name in labels:
            try:
                self._request("POST", "/labels", {"name": name, "color": label_color(name)})
                logger.debug(f"Created label {name!r} in {self.repo}")
            except TrackerError as e:
                if e.status_code != 422:
                    raise
        return True

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        url = f"{self.api_url}/repos/{self.repo}{path}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.secrets.get(self.token_key)}",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "alert-lifecycle",
        }
        if data is not None:
            headers["Content-Type"] = "application/json"

        request = urllib.request.Request(url, data=data, headers=headers, method=method)

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else str(e)
            logger.warning(f"GitHub HTTP error {e.code} on {method} {path}: {error_body[:200]}")
            raise TrackerError(
                f"GitHub API error ({e.code}): {error_body[:200]}", status_code=e.code
            ) from e
        except urllib.error.URLError as e:
            logger.warning(f"GitHub URL error on {method} {path}: {e.reason}")
            raise TrackerError(f"Failed to connect to GitHub: {e.reason}") from e
        except TimeoutError as e:
            raise TrackerError(f"GitHub request timed out after {self.timeout}s") from e
        except (OSError, http.client.HTTPException, ValueError) as e:
            logger.warning(f"GitHub request failed on {method} {path}: {e!r}")
            raise TrackerError(f"GitHub request failed: {e!r}") from e

        if not body:
            return {}
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise TrackerError(f"GitHub returned invalid JSON: {e}") from e
