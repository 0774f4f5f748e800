"""Simulate a GitHub push webhook against Jenkins' Generic Webhook Trigger."""
import logging
import subprocess
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_COMMIT = "abc123def456789"
DEFAULT_MESSAGE = "Manual webhook test"
DEFAULT_AUTHOR = "test-user"

NULL_SHA = "0" * 40


@dataclass
class CommitInfo:
    sha: str = DEFAULT_COMMIT
    message: str = DEFAULT_MESSAGE
    author: str = DEFAULT_AUTHOR
    branch: Optional[str] = None


@dataclass
class WebhookResult:
    status_code: int
    body: str

    @property
    def success(self) -> bool:
        return self.status_code == 200

    def diagnosis(self) -> List[str]:
        if self.status_code == 200:
            return ["✅ Webhook sent successfully!"]
        if self.status_code == 404:
            return [
                "❌ Webhook failed - Job not found",
                "Possible issues:",
                "- Jenkins job name incorrect",
                "- Generic Webhook Trigger not configured",
                "- Token mismatch",
            ]
        if self.status_code == 403:
            return [
                "❌ Webhook failed - Forbidden",
                "Possible issues:",
                "- Incorrect webhook token",
                "- Jenkins security settings",
                "- IP restrictions",
            ]
        return [f"❌ Webhook failed (HTTP {self.status_code})"]


def _git(args: List[str], cwd: Optional[str]) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


def read_git_commit(cwd: Optional[str] = None) -> CommitInfo:
    """HEAD commit details, or placeholder values outside a git checkout."""
    try:
        return CommitInfo(
            sha=_git(["rev-parse", "HEAD"], cwd),
            message=_git(["log", "-1", "--pretty=%B"], cwd),
            author=_git(["log", "-1", "--pretty=%an"], cwd),
            branch=_git(["branch", "--show-current"], cwd) or None,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        logger.info("Not in a git repository, using default commit values")
        return CommitInfo()


def build_push_payload(repository: str, branch: str, commit: CommitInfo,
                       owner: str = "your-org", now: Optional[datetime] = None) -> Dict:
    """GitHub ``push`` event body for a single commit."""
    timestamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    person = {"name": commit.author, "email": f"{commit.author}@example.com"}
    commit_body = {
        "id": commit.sha,
        "message": commit.message,
        "timestamp": timestamp,
        "author": person,
        "committer": person,
    }
    return {
        "ref": f"refs/heads/{branch}",
        "before": NULL_SHA,
        "after": commit.sha,
        "repository": {
            "id": 123456789,
            "name": repository,
            "full_name": f"{owner}/{repository}",
            "private": False,
            "html_url": f"https://github.com/{owner}/{repository}",
            "clone_url": f"https://github.com/{owner}/{repository}.git",
            "default_branch": "main",
        },
        "pusher": person,
        "head_commit": commit_body,
        "commits": [commit_body],
    }


def webhook_url(jenkins_url: str, token: str) -> str:
    return f"{jenkins_url.rstrip('/')}/generic-webhook-trigger/invoke?token={token}"


def send_push_webhook(jenkins_url: str, token: str, payload: Dict,
                      session: Optional[requests.Session] = None, timeout: float = 30) -> WebhookResult:
    """POST the payload with the headers GitHub sends for a push event."""
    http = session or requests
    url = webhook_url(jenkins_url, token)
    logger.info(f"Sending webhook request to {jenkins_url}")
    response = http.post(
        url,
        json=payload,
        headers={
            "X-GitHub-Event": "push",
            "X-GitHub-Delivery": str(uuid.uuid4()),
        },
        timeout=timeout,
    )
    return WebhookResult(status_code=response.status_code, body=response.text)
