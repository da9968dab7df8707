import json
from datetime import datetime, timezone

import pytest

from mnemo.generic import parse_timestamp
from mnemo.models import Discovery, SessionEventType, SessionKind, SessionStatus
from mnemo.structured import MAX_FILES, discover_structured, ingest_structured

UTC = timezone.utc
KIND = SessionKind.COPILOT


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


def _session_json(repo, messages):
    return json.dumps({"workspace": str(repo), "messages": messages})


def test_discover_directory_entries(home, repo):
    session_dir = home / "session-1"
    session_dir.mkdir()
    (session_dir / "events.json").write_text(
        _session_json(repo, [{"role": "user", "content": "fix the failing test"}])
    )
    other = home / "other"
    other.mkdir()
    (other / "events.json").write_text('{"workspace":"/elsewhere","messages":[]}')
    found = discover_structured(str(home), str(repo), KIND)
    assert found == [Discovery(kind=KIND, source_path=str(session_dir), external_id="session-1")]


def test_discover_missing_root(tmp_path, repo):
    assert discover_structured(str(tmp_path / "nope"), str(repo), KIND) == []


def test_discover_root_file(home, repo):
    root = home / "only.jsonl"
    root.write_text(json.dumps({"cwd": str(repo)}) + "\n")
    found = discover_structured(str(root), str(repo), KIND)
    assert found == [Discovery(kind=KIND, source_path=str(root), external_id="only")]


def test_discover_skips_non_candidates_and_strips_dir_ext(home, repo):
    (home / "notes.bin").write_text(str(repo))
    session_dir = home / "sess.d"
    session_dir.mkdir()
    (session_dir / "a.txt").write_text(f"cwd {repo}")
    found = discover_structured(str(home), str(repo), KIND)
    assert [d.external_id for d in found] == ["sess"]


def test_ingest_json_messages(home, repo):
    path = home / "cursor-session.json"
    path.write_text(
        _session_json(
            repo,
            [
                {"role": "user", "content": "inspect the sidebar"},
                {"role": "assistant", "content": "found the layout issue"},
            ],
        )
    )
    ing = ingest_structured(str(path), KIND)
    assert [e.type for e in ing.events] == [
        SessionEventType.USER_MESSAGE,
        SessionEventType.ASSISTANT_MESSAGE,
    ]
    assert [e.content for e in ing.events] == ["inspect the sidebar", "found the layout issue"]
    assert [e.sequence for e in ing.events] == [0, 1]
    assert ing.session.external_id == "cursor-session"
    assert ing.session.status == SessionStatus.INGESTED
    assert ing.session.kind == KIND


def test_ingest_prompt_response_pair(home):
    path = home / "pair.json"
    stamp = "2026-05-14T10:00:00Z"
    path.write_text(json.dumps({"prompt": "p", "response": "r", "timestamp": stamp}))
    ing = ingest_structured(str(path), KIND)
    expected = parse_timestamp(stamp)
    assert [(e.type, e.content) for e in ing.events] == [
        (SessionEventType.USER_MESSAGE, "p"),
        (SessionEventType.ASSISTANT_MESSAGE, "r"),
    ]
    assert all(e.timestamp == expected for e in ing.events)
    assert ing.session.started_at == expected
    assert ing.session.ended_at == expected


def test_ingest_numeric_timestamps_and_content(home):
    path = home / "nums.json"
    path.write_text(
        json.dumps(
            [
                {"role": "user", "content": 42, "time": 1700000000},
                {"Role": "assistant", "Content": {"text": "hello"}, "time": 1700000000000},
            ]
        )
    )
    ing = ingest_structured(str(path), KIND)
    expected = datetime.fromtimestamp(1700000000, UTC)
    assert [e.content for e in ing.events] == ["42", "hello"]
    assert ing.events[0].timestamp == expected
    assert ing.events[1].timestamp == expected
    assert ing.events[1].type == SessionEventType.ASSISTANT_MESSAGE


def test_ingest_json_first_value_only(home):
    path = home / "trailing.json"
    path.write_text('{"role":"user","content":"a"} trailing junk')
    ing = ingest_structured(str(path), KIND)
    assert [e.content for e in ing.events] == ["a"]


def test_ingest_jsonl_lines(home):
    path = home / "log.jsonl"
    path.write_text(
        '{"role":"user","content":"one"}\nnot json\n{"role":"assistant","content":"two"}\n'
    )
    ing = ingest_structured(str(path), KIND)
    assert [e.content for e in ing.events] == ["one", "two"]


def test_ingest_prefixed_markdown(home):
    path = home / "chat.md"
    path.write_text("notes\nUser: hi\nmore\nAssistant: ok\n")
    ing = ingest_structured(str(path), KIND)
    assert [(e.type, e.content) for e in ing.events] == [
        (SessionEventType.USER_MESSAGE, "hi\nmore"),
        (SessionEventType.ASSISTANT_MESSAGE, "ok"),
    ]


def test_ingest_log_falls_back_to_text(home):
    path = home / "run.log"
    path.write_text("user: run tests\ntool: passed\n")
    ing = ingest_structured(str(path), KIND)
    assert [(e.type, e.content) for e in ing.events] == [
        (SessionEventType.USER_MESSAGE, "run tests"),
        (SessionEventType.TOOL_RESULT, "passed"),
    ]


def test_ingest_untimed_events_use_ingest_time(home):
    path = home / "chat.txt"
    path.write_text("user: hi\n")
    before = datetime.now(UTC)
    ing = ingest_structured(str(path), KIND)
    after = datetime.now(UTC)
    assert before <= ing.events[0].timestamp <= after
    assert ing.session.started_at == ing.events[0].timestamp
    assert ing.session.ended_at == ing.events[0].timestamp


def test_ingest_directory_is_bounded(home):
    session_dir = home / "big"
    session_dir.mkdir()
    for index in range(MAX_FILES + 5):
        (session_dir / f"{index:04d}.txt").write_text(f"user: message {index}\n")
    ing = ingest_structured(str(session_dir), KIND)
    assert len(ing.events) == MAX_FILES
    assert [e.sequence for e in ing.events] == list(range(MAX_FILES))


def test_ingest_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        ingest_structured(str(tmp_path / "absent"), KIND)