import subprocess
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from deployment.pipeline.webhook import (
    CommitInfo,
    WebhookResult,
    build_push_payload,
    read_git_commit,
    send_push_webhook,
    webhook_url,
)


def test_push_payload():
    commit = CommitInfo(sha="f00ba4", message="Fix login", author="dev")
    payload = build_push_payload("laravel-app", "main", commit, owner="acme",
                                 now=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))

    assert payload["ref"] == "refs/heads/main"
    assert payload["after"] == "f00ba4"
    assert payload["before"] == "0" * 40
    assert payload["repository"]["full_name"] == "acme/laravel-app"
    assert payload["repository"]["clone_url"] == "https://github.com/acme/laravel-app.git"
    assert payload["head_commit"]["timestamp"] == "2024-05-01T12:00:00Z"
    assert payload["commits"] == [payload["head_commit"]]
    assert payload["pusher"] == {"name": "dev", "email": "dev@example.com"}


def test_read_git_commit_outside_repository(tmp_path):
    with patch("deployment.pipeline.webhook.subprocess.run",
               side_effect=subprocess.CalledProcessError(128, ["git"])):
        commit = read_git_commit(str(tmp_path))

    assert commit == CommitInfo()
    assert commit.sha == "abc123def456789"


def test_read_git_commit():
    outputs = iter(["0123456789abcdef\n", "Add deploy\n\n", "dev\n", "main\n"])

    def fake_run(argv, **kwargs):
        return MagicMock(stdout=next(outputs))

    with patch("deployment.pipeline.webhook.subprocess.run", side_effect=fake_run):
        commit = read_git_commit()

    assert commit == CommitInfo(sha="0123456789abcdef", message="Add deploy", author="dev", branch="main")


def test_send_push_webhook():
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=200, text='{"jobs": {}}')

    result = send_push_webhook("http://jenkins:8080/", "tok", {"ref": "refs/heads/main"}, session=session)

    assert result.success
    args, kwargs = session.post.call_args
    assert args == ("http://jenkins:8080/generic-webhook-trigger/invoke?token=tok",)
    assert kwargs["json"] == {"ref": "refs/heads/main"}
    assert kwargs["headers"]["X-GitHub-Event"] == "push"
    assert kwargs["headers"]["X-GitHub-Delivery"]


def test_webhook_url():
    assert webhook_url("http://jenkins", "abc") == "http://jenkins/generic-webhook-trigger/invoke?token=abc"


def test_diagnosis():
    assert WebhookResult(200, "").diagnosis() == ["✅ Webhook sent successfully!"]
    assert "- Token mismatch" in WebhookResult(404, "").diagnosis()
    assert WebhookResult(403, "").diagnosis()[0] == "❌ Webhook failed - Forbidden"
    assert WebhookResult(500, "").diagnosis() == ["❌ Webhook failed (HTTP 500)"]
    assert not WebhookResult(500, "").success
