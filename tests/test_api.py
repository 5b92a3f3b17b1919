from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fakes import FakeRunner
from git_tools.api import create_app
from git_tools.config import Options
from git_tools.git_client import GitTools


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner(
        {
            ("git", "branch", "--show-current"): "main\n",
            ("git", "status", "--porcelain"): "?? notes.txt\n",
            ("git", "tag", "-l", "v*", "--sort=-version:refname"): "v1.1.0\nv1.0.0\n",
        }
    )


@pytest.fixture
def client(runner: FakeRunner) -> TestClient:
    tools = GitTools(Options(repo_dir="/nonexistent-repo"), runner=runner)
    return TestClient(create_app(tools))


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_status(client: TestClient) -> None:
    body = client.get("/status").json()
    assert body["branch"] == "main"
    assert body["unstaged_count"] == 1
    assert body["status"] == "1 unstaged"


def test_previous_tag(client: TestClient) -> None:
    response = client.get("/tags/previous", params={"version": "1.1.0"})
    assert response.json() == {"tag": "v1.0.0"}


def test_sync_rejects_invalid_remote(client: TestClient, runner: FakeRunner) -> None:
    response = client.post("/branches/sync", json={"branch": "feature", "remote": "--evil"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert "Invalid remote name" in body["error"]
    assert runner.calls == []


def test_sync_status_reports_invalid_branch(client: TestClient) -> None:
    body = client.get("/branches/sync-status", params={"branch": "bad;branch"}).json()
    assert body["in_sync"] is False
    assert "Invalid branch name" in body["error"]


def test_default_from_ref_exhausted_is_404(client: TestClient) -> None:
    response = client.get("/refs/default-from", params={"force_main_branch": True})
    assert response.status_code == 404
    assert "origin/master" in response.json()["detail"]


def test_default_from_ref(client: TestClient, runner: FakeRunner) -> None:
    runner.responses[("git", "rev-parse", "--verify", "master")] = "abc\n"
    response = client.get("/refs/default-from", params={"force_main_branch": True})
    assert response.json() == {"ref": "master"}


def test_config(client: TestClient) -> None:
    body = client.get("/config").json()
    assert body["default_remote"] == "origin"
    assert body["repo_dir"] == "/nonexistent-repo"
