import json
import os

import pytest

from mnemo.adapters.codex import CodexAdapter, normalize_remote
from mnemo.models import SessionEventType, SessionKind


def _write_rollout(home, repo_root):
    directory = home / "sessions" / "2026" / "05" / "17"
    directory.mkdir(parents=True)
    meta = {
        "type": "session_meta",
        "timestamp": "2026-05-17T12:00:00Z",
        "payload": {
            "id": "cx-1",
            "timestamp": "2026-05-17T12:00:00Z",
            "cwd": str(repo_root),
            "git": {
                "branch": "main",
                "commit_hash": "abc123",
                "repository_url": "git@example.com:acme/widget.git",
            },
        },
    }
    lines = [
        json.dumps(meta),
        '{"type":"turn_context","payload":{}}',
        '{"type":"response_item","timestamp":"2026-05-17T12:00:05Z","payload":{"type":"message","role":"user","content":[{"type":"input_text","text":"add retry to internal/billing/paystack.go"}]}}',
        '{"type":"response_item","timestamp":"2026-05-17T12:00:09Z","payload":{"type":"reasoning","content":[{"type":"text","text":"thinking about backoff"}]}}',
        '{"type":"response_item","timestamp":"2026-05-17T12:00:12Z","payload":{"type":"message","role":"assistant","content":[{"type":"output_text","text":"Done. Added exponential backoff."}]}}',
    ]
    path = directory / "rollout-2026-05-17-cx-1.jsonl"
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return path


def test_discover_and_ingest(home, repo):
    _write_rollout(home, repo)
    adapter = CodexAdapter(str(home))
    assert adapter.kind == SessionKind.CODEX

    found = adapter.discover(str(repo))
    assert len(found) == 1
    assert found[0].external_id == "cx-1"

    ingestion = adapter.ingest(found[0].source_path)
    assert ingestion.session.branch == "main"
    assert ingestion.session.commit_hash == "abc123"
    assert ingestion.session.external_id == "cx-1"
    assert ingestion.session.message_count == 2
    assert len(ingestion.events) == 3
    assert ingestion.events[0].type == SessionEventType.USER_MESSAGE
    assert ingestion.events[0].content == "add retry to internal/billing/paystack.go"
    assert ingestion.events[1].type == SessionEventType.THINKING
    assert ingestion.events[2].type == SessionEventType.ASSISTANT_MESSAGE
    assert [e.sequence for e in ingestion.events] == [1, 2, 3]
    assert ingestion.session.started_at.isoformat() == "2026-05-17T12:00:00+00:00"
    assert ingestion.session.ended_at.isoformat() == "2026-05-17T12:00:12+00:00"


def test_discover_ignores_other_repos(home, repo):
    _write_rollout(home, "/some/other/repo")
    assert CodexAdapter(str(home)).discover(str(repo)) == []


def test_reasoning_summary_fallback(home, repo):
    directory = home / "sessions" / "2026" / "05" / "18"
    directory.mkdir(parents=True)
    meta = {
        "type": "session_meta",
        "timestamp": "2026-05-18T12:00:00Z",
        "payload": {"id": "rx", "cwd": str(repo), "git": {"branch": "main"}},
    }
    lines = [
        json.dumps(meta),
        '{"type":"response_item","timestamp":"2026-05-18T12:00:01Z","payload":{"type":"reasoning","summary":[{"type":"summary_text","text":"weighing two designs"}]}}',
        '{"type":"response_item","timestamp":"2026-05-18T12:00:02Z","payload":{"type":"message","role":"assistant","content":"picked design B"}}',
    ]
    (directory / "rollout-2026-05-18-rx.jsonl").write_text("\n".join(lines) + "\n")

    found = CodexAdapter(str(home)).discover(str(repo))
    assert len(found) == 1
    ingestion = CodexAdapter(str(home)).ingest(found[0].source_path)
    assert len(ingestion.events) == 2
    assert ingestion.events[0].type == SessionEventType.THINKING
    assert ingestion.events[0].content == "weighing two designs"
    assert ingestion.events[1].content == "picked design B"


def test_tool_call_records_tool_name(home, repo):
    directory = home / "sessions"
    directory.mkdir(parents=True)
    meta = {"type": "session_meta", "payload": {"id": "tc", "cwd": str(repo)}}
    lines = [
        json.dumps(meta),
        '{"type":"response_item","payload":{"type":"function_call","name":"shell","text":"ls"}}',
        '{"type":"response_item","payload":{"type":"function_call_output","text":"a.go"}}',
        '{"type":"response_item","payload":{"type":"unknown_thing"}}',
    ]
    path = directory / "rollout-x.jsonl"
    path.write_text("\n".join(lines) + "\n")

    ingestion = CodexAdapter(str(home)).ingest(str(path))
    assert [e.type for e in ingestion.events] == [
        SessionEventType.TOOL_CALL,
        SessionEventType.TOOL_RESULT,
    ]
    assert ingestion.events[0].structured_value == {
        "codex_item_type": "function_call",
        "tool_name": "shell",
    }
    assert ingestion.events[1].content == "a.go"
    assert ingestion.session.message_count == 0


def test_discover_matches_by_remote_basename(home, tmp_path):
    repo = tmp_path / "widget"
    repo.mkdir()
    _write_rollout(home, "/somewhere/else")
    found = CodexAdapter(str(home)).discover(str(repo))
    assert [d.external_id for d in found] == ["cx-1"]


def test_discover_missing_sessions_dir(home, repo):
    assert CodexAdapter(str(home)).discover(str(repo)) == []


def test_discover_requires_repo_root(home):
    with pytest.raises(ValueError):
        CodexAdapter(str(home)).discover("")


def test_watch_dirs(home, repo):
    assert CodexAdapter(str(home)).watch_dirs(str(repo)) == [os.path.join(str(home), "sessions")]


@pytest.mark.parametrize(
    "url, expected",
    [
        ("git@example.com:acme/widget.git", "example.com/acme/widget"),
        ("https://example.com/Acme/Widget.git", "example.com/acme/widget"),
        ("git+ssh://git@example.com/acme/widget", "example.com/acme/widget"),
        ("  example.com/acme/widget/  ", "example.com/acme/widget"),
    ],
)
def test_normalize_remote(url, expected):
    assert normalize_remote(url) == expected