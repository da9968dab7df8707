# mnemo

mnemo finds the session transcripts that AI coding tools leave on disk and
turns them into one shared shape: a `Session` plus an ordered list of
`SessionEvent`s (user messages, assistant messages, tool calls and results,
thinking, system notes). It only reads those files and never changes them.

It is a library with no third-party dependencies.

## Supported tools

| Adapter           | Module                          | Where it looks                                   |
|-------------------|---------------------------------|--------------------------------------------------|
| `AiderAdapter`    | `mnemo.adapters.aider`          | `<repo>/.aider.chat.history.md`                  |
| `ClaudeAdapter`   | `mnemo.adapters.claude`         | `~/.claude/projects/<encoded-repo>/*.jsonl`      |
| `CodexAdapter`    | `mnemo.adapters.codex`          | `~/.codex/sessions/YYYY/MM/DD/rollout-*.jsonl`   |
| `ContinueAdapter` | `mnemo.adapters.continue_ide`   | `~/.continue/sessions/*.json`                    |
| `CopilotAdapter`  | `mnemo.adapters.copilot`        | `~/.copilot/session-state`                       |
| `CursorAdapter`   | `mnemo.adapters.cursor`         | `~/.cursor/agent`                                |
| `WindsurfAdapter` | `mnemo.adapters.windsurf`       | `~/.devin`, `~/.config/devin`                    |

All adapters except `AiderAdapter` take an optional `home_dir` that replaces
the default location. Every adapter has a `kind` and three methods:

- `discover(repo_root)` returns `Discovery` records for the transcripts that
  belong to a repository. A missing tool directory gives an empty list.
  `ClaudeAdapter` and `CodexAdapter` raise `ValueError` for an empty
  `repo_root`.
- `ingest(source_path)` parses one transcript into an `Ingestion`
  (`session` and `events`).
- `watch_dirs(repo_root)` lists the directories where new activity for the
  repository would appear. The directories need not exist yet.

Copilot, Cursor and Windsurf have no stable documented format, so their
adapters use the tolerant extractor in `mnemo.structured`
(`discover_structured`, `ingest_structured`). It reads `.json`, `.jsonl`,
`.md`, `.txt` and `.log` files, only accepts candidates whose contents mention
the repository path, and skips files larger than 8 MiB.

## Usage

```python
from mnemo.adapters.claude import ClaudeAdapter

adapter = ClaudeAdapter()
for found in adapter.discover("/path/to/repo"):
    ingestion = adapter.ingest(found.source_path)
    print(ingestion.session.message_count)
    for event in ingestion.events:
        print(event.sequence, event.type.value, event.content[:60])
```

### Agents and custom transcripts

A `Registry` (from `mnemo.registry`) holds the agents configured for a
project. An agent is a named instance of a kind. Known kinds use the provider
given for them. A custom agent names a generic parser (`jsonl`,
`jsonl-openai`, `jsonl-anthropic`, see `mnemo.generic.generic_parser`) and
gives its own source globs. A glob may start with `~`, contain a `{repo}`
token, and contain one `**` segment meaning "this directory and any
descendant".

```python
from mnemo.adapters.claude import ClaudeAdapter
from mnemo.models import Capability, SessionKind
from mnemo.registry import AgentConfig, new_registry

registry = new_registry(
    [
        AgentConfig(name="claude", kind="claude", capabilities=["resume.cli"]),
        AgentConfig(
            name="bot",
            kind="my-bot",
            parser="jsonl-openai",
            sources=["{repo}/logs/**/*.jsonl"],
        ),
    ],
    {SessionKind.CLAUDE: ClaudeAdapter()},
)

for found in registry.discover("/path/to/repo"):
    print(found.agent, found.source_path)

claude = registry.agents[0]
print(claude.has(Capability.RESUME_CLI))      # True
print(registry.watch_targets("/path/to/repo"))
```

`new_registry` raises `RegistryError` for a configuration it cannot use: a
missing name, a duplicate name, a missing kind, a custom agent with no parser
or no sources, or an unknown parser. `Registry.discover` raises
`RegistryError` naming the agent whose discovery failed.
`single_agent_registry(name, provider)` wraps one provider as a one-agent
registry.

### Sharing metadata safely

`mnemo.privacy.sanitize_session` returns a copy of a session whose source
path is reduced to its base name. `mnemo.privacy.sanitize_event` returns a
copy of an event without its content and structured payload. Run records
through them before they go to a shared store.

## What this package does not do

- It has no command line; it is used as a library.
- It does not watch directories itself; `watch_dirs` and
  `Registry.watch_targets` only say where to look.
- It does not store sessions anywhere. Ingestions are returned as plain
  dataclasses for the caller to keep.

## Tests

```
pip install -e ".[test]"
pytest
```