import http.client
import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase

from apps.alerts.errors import TrackerError
from apps.tracker.client import GitHubIssueClient, label_color


class StaticSecrets:
    def get(self, key):
        return "ghp_test"


def mock_response(data, status=200):
    response = MagicMock()
    response.read.return_value = json.dumps(data).encode("utf-8") if data is not None else b""
    response.status = status
    response.__enter__.return_value = response
    return response


def http_error(code, body=b'{"message": "nope"}'):
    return urllib.error.HTTPError(
        "https://api.github.com/repos/acme/alerts/issues", code, "error", {}, io.BytesIO(body)
    )


@patch("apps.tracker.client.urllib.request.urlopen")
class GitHubIssueClientTests(SimpleTestCase):
    """Tests for GitHubIssueClient."""

    def setUp(self):
        self.client = GitHubIssueClient("acme/alerts", StaticSecrets(), timeout=5)

    def sent_request(self, mock_urlopen, index=-1):
        return mock_urlopen.call_args_list[index][0][0]

    def test_create_issue(self, mock_urlopen):
        mock_urlopen.return_value = mock_response({"number": 42})

        number = self.client.create_issue("[P1] Disk Full", "body", ["Pri:P1"])

        self.assertEqual(number, 42)
        request = self.sent_request(mock_urlopen)
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.full_url, "https://api.github.com/repos/acme/alerts/issues")
        self.assertEqual(
            json.loads(request.data),
            {"title": "[P1] Disk Full", "body": "body", "labels": ["Pri:P1"]},
        )
        self.assertEqual(request.get_header("Authorization"), "Bearer ghp_test")
        self.assertEqual(request.get_header("X-github-api-version"), "2022-11-28")
        self.assertEqual(mock_urlopen.call_args.kwargs["timeout"], 5)

    def test_create_issue_without_number(self, mock_urlopen):
        mock_urlopen.return_value = mock_response({"id": 1})

        with self.assertRaises(TrackerError):
            self.client.create_issue("t", "b", [])

    def test_close_issue(self, mock_urlopen):
        mock_urlopen.return_value = mock_response({"number": 42, "state": "closed"})

        self.assertTrue(self.client.close_issue(42))

        request = self.sent_request(mock_urlopen)
        self.assertEqual(request.get_method(), "PATCH")
        self.assertTrue(request.full_url.endswith("/issues/42"))
        self.assertEqual(json.loads(request.data), {"state": "closed", "state_reason": "completed"})

    def test_comment_on_issue(self, mock_urlopen):
        mock_urlopen.return_value = mock_response({"id": 9})

        self.assertTrue(self.client.comment_on_issue(42, "still firing"))

        request = self.sent_request(mock_urlopen)
        self.assertTrue(request.full_url.endswith("/issues/42/comments"))
        self.assertEqual(json.loads(request.data), {"body": "still firing"})

    def test_get_issue_state(self, mock_urlopen):
        mock_urlopen.return_value = mock_response({"number": 42, "state": "closed"})

        self.assertEqual(self.client.get_issue_state(42), "closed")
        self.assertEqual(self.sent_request(mock_urlopen).get_method(), "GET")
        self.assertIsNone(self.sent_request(mock_urlopen).data)

    def test_get_issue_state_unexpected(self, mock_urlopen):
        mock_urlopen.return_value = mock_response({"number": 42})

        with self.assertRaises(TrackerError):
            self.client.get_issue_state(42)

    def test_ensure_labels_ignores_existing(self, mock_urlopen):
        mock_urlopen.side_effect = [http_error(422), mock_response({"name": "Team:ops"})]

        self.assertTrue(self.client.ensure_labels_exist(["Pri:P1", "Team:ops"]))

        self.assertEqual(mock_urlopen.call_count, 2)
        body = json.loads(self.sent_request(mock_urlopen, 1).data)
        self.assertEqual(body, {"name": "Team:ops", "color": "1d76db"})

    def test_ensure_labels_propagates_other_errors(self, mock_urlopen):
        mock_urlopen.side_effect = http_error(500)

        with self.assertRaises(TrackerError) as ctx:
            self.client.ensure_labels_exist(["Pri:P1"])

        self.assertEqual(ctx.exception.status_code, 500)

    def test_http_error(self, mock_urlopen):
        mock_urlopen.side_effect = http_error(403, b'{"message": "rate limited"}')

        with self.assertRaises(TrackerError) as ctx:
            self.client.comment_on_issue(1, "x")

        self.assertEqual(ctx.exception.status_code, 403)
        self.assertIn("rate limited", str(ctx.exception))

    def test_connection_error(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("Connection refused")

        with self.assertRaises(TrackerError) as ctx:
            self.client.close_issue(1)

        self.assertIn("Connection refused", str(ctx.exception))
        self.assertIsNone(ctx.exception.status_code)

    def test_timeout(self, mock_urlopen):
        mock_urlopen.side_effect = TimeoutError()

        with self.assertRaises(TrackerError) as ctx:
            self.client.close_issue(1)

        self.assertIn("timed out", str(ctx.exception))

    def test_invalid_json_response(self, mock_urlopen):
        response = mock_response(None)
        response.read.return_value = b"<html>"
        mock_urlopen.return_value = response

        with self.assertRaises(TrackerError):
            self.client.get_issue_state(1)

    def test_remote_disconnected(self, mock_urlopen):
        mock_urlopen.side_effect = http.client.RemoteDisconnected("Remote end closed connection")

        with self.assertRaises(TrackerError) as ctx:
            self.client.create_issue("t", "b", [])

        self.assertIn("RemoteDisconnected", str(ctx.exception))
        self.assertIsNone(ctx.exception.status_code)

    def test_connection_reset_while_reading(self, mock_urlopen):
        response = mock_response(None)
        response.read.side_effect = ConnectionResetError("reset by peer")
        mock_urlopen.return_value = response

        with self.assertRaises(TrackerError):
            self.client.comment_on_issue(1, "x")

    def test_undecodable_response(self, mock_urlopen):
        response = mock_response(None)
        response.read.return_value = b"\xff\xfe"
        mock_urlopen.return_value = response

        with self.assertRaises(TrackerError):
            self.client.get_issue_state(1)


class ClientConfigTests(SimpleTestCase):
    def test_repo_must_have_owner(self):
        with self.assertRaises(ValueError):
            GitHubIssueClient("alerts", StaticSecrets())

    def test_api_url_trailing_slash(self):
        client = GitHubIssueClient(
            "acme/alerts", StaticSecrets(), api_url="https://ghe.local/api/v3/"
        )

        self.assertEqual(client.api_url, "https://ghe.local/api/v3")

    def test_label_color(self):
        self.assertEqual(label_color("Pri:P0"), "b60205")
        self.assertEqual(label_color("Team:payments"), "1d76db")
        self.assertEqual(label_color("area:alerting"), "ededed")
