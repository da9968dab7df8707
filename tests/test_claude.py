import json
import os
from datetime import datetime, timezone

import pytest

from mnemo.adapters.claude import ClaudeAdapter, encode_repo_root
from mnemo.models import SessionEventType, SessionKind


def _write(home, repo_root, name, body):
    directory = os.path.join(str(home), "projects", encode_repo_root(repo_root))
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, name)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(body)
    return path


BASIC = (
    '{"type":"permission-mode","permissionMode":"default","sessionId":"sess-1"}\n'
    '{"type":"user","message":{"role":"user","content":"don\'t use GORM"},'
    '"timestamp":"2026-05-14T10:00:00.000Z","sessionId":"sess-1",'
    '"cwd":"/private/var/tmp/example-project","gitBranch":"main","uuid":"u-1"}\n'
    '{"type":"assistant","message":{"role":"assistant","content":[{"type":"text","text":"understood"}]},'
    '"timestamp":"2026-05-14T10:00:05.000Z","sessionId":"sess-1",'
    '"cwd":"/private/var/tmp/example-project","gitBranch":"main","uuid":"u-2"}\n'
)


def test_encode_repo_root():
    assert encode_repo_root("/Users/alice/cools/mnemo") == "-Users-alice-cools-mnemo"


def test_discover_and_ingest(tmp_path):
    repo_root = "/private/var/tmp/example-project"
    _write(tmp_path, repo_root, "sess-1.jsonl", BASIC)
    adapter = ClaudeAdapter(str(tmp_path))
    assert adapter.kind == SessionKind.CLAUDE

    found = adapter.discover(repo_root)
    assert len(found) == 1
    assert found[0].external_id == "sess-1"
    assert found[0].source_path.endswith("sess-1.jsonl")

    ing = adapter.ingest(found[0].source_path)
    assert ing.session.branch == "main"
    assert ing.session.message_count == 2
    assert len(ing.events) == 2
    assert ing.events[0].type == SessionEventType.USER_MESSAGE
    assert ing.events[0].content == "don't use GORM"
    assert ing.events[1].type == SessionEventType.ASSISTANT_MESSAGE
    assert ing.events[1].content == "understood"
    assert [e.sequence for e in ing.events] == [1, 2]
    assert ing.events[0].structured_value == {"claude_uuid": "u-1"}
    assert ing.session.started_at == datetime(2026, 5, 14, 10, 0, 0, tzinfo=timezone.utc)
    assert ing.session.ended_at == datetime(2026, 5, 14, 10, 0, 5, tzinfo=timezone.utc)
    assert ing.session.external_id == "sess-1"


def test_discover_missing_dir(tmp_path):
    assert ClaudeAdapter(str(tmp_path)).discover("/no/such/repo") == []


def test_real_world_variance(tmp_path):
    repo_root = "/private/var/tmp/variance-proj"
    body = (
        '{"type":"summary","summary":"prior session"}\n'
        '{"type":"permission-mode","permissionMode":"default","sessionId":"v1"}\n'
        '{"type":"user","message":{"role":"user","content":[{"type":"text","text":"refactor please"}]},'
        '"timestamp":"2026-05-18T10:00:00.000Z","sessionId":"v1","gitBranch":"dev"}\n'
        '{"type":"assistant","message":{"role":"assistant","content":[{"type":"thinking","text":"hmm"},'
        '{"type":"text","text":"on it"},{"type":"tool_use","name":"Edit","id":"t1"}]},'
        '"timestamp":"2026-05-18T10:00:05.000Z","sessionId":"v1","gitBranch":"dev"}\n'
        '{"type":"system","content":"context compacted","sessionId":"v1"}\n'
    )
    _write(tmp_path, repo_root, "v1.jsonl", body)
    adapter = ClaudeAdapter(str(tmp_path))
    found = adapter.discover(repo_root)
    assert len(found) == 1
    ing = adapter.ingest(found[0].source_path)
    assert ing.session.branch == "dev"
    assert ing.session.message_count == 2
    by_type = {e.type: e.content for e in ing.events}
    assert by_type[SessionEventType.USER_MESSAGE] == "refactor please"
    assert by_type[SessionEventType.ASSISTANT_MESSAGE] == "on it"
    assert by_type[SessionEventType.SYSTEM] == "context compacted"


def test_discover_requires_repo_root(tmp_path):
    with pytest.raises(ValueError):
        ClaudeAdapter(str(tmp_path)).discover("")


def test_discover_sorted_and_filters_entries(tmp_path):
    repo_root = "/private/var/tmp/sorted"
    _write(tmp_path, repo_root, "b.jsonl", "")
    _write(tmp_path, repo_root, "a.jsonl", "")
    _write(tmp_path, repo_root, "notes.txt", "")
    directory = os.path.join(str(tmp_path), "projects", encode_repo_root(repo_root))
    os.makedirs(os.path.join(directory, "sub.jsonl"))
    found = ClaudeAdapter(str(tmp_path)).discover(repo_root)
    assert [d.external_id for d in found] == ["a", "b"]


def test_watch_dirs(tmp_path):
    repo_root = "/private/var/tmp/watched"
    dirs = ClaudeAdapter(str(tmp_path)).watch_dirs(repo_root)
    assert dirs == [os.path.join(str(tmp_path), "projects", "-private-var-tmp-watched")]


def test_malformed_lines_are_skipped(tmp_path):
    body = (
        "not json\n"
        '{"type":5}\n'
        '{"type":"user","isMeta":"yes","message":{"content":"bad flag"}}\n'
        "\n"
        + json.dumps({"type": "user", "isMeta": True, "message": {"content": "kept"}})
        + "\n"
    )
    path = _write(tmp_path, "/r", "s.jsonl", body)
    ing = ClaudeAdapter(str(tmp_path)).ingest(path)
    assert [e.content for e in ing.events] == ["kept"]
    assert ing.events[0].structured_value == {"is_meta": True}


def test_no_timestamps_uses_now(tmp_path):
    path = _write(tmp_path, "/r", "s.jsonl", '{"type":"tool_use","content":"run"}\n')
    before = datetime.now(timezone.utc)
    ing = ClaudeAdapter(str(tmp_path)).ingest(path)
    after = datetime.now(timezone.utc)
    assert ing.session.ended_at is None
    assert before <= ing.session.started_at <= after
    assert ing.events[0].type == SessionEventType.TOOL_CALL
    assert ing.events[0].timestamp is None
    assert ing.session.message_count == 0


def test_ingest_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ClaudeAdapter(str(tmp_path)).ingest(os.path.join(str(tmp_path), "absent.jsonl"))