"""The project's effective agent set: configured agents over built-in providers."""

from __future__ import annotations

import os
import re
import stat
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from .generic import generic_parser
from .models import (
    Capability,
    DirWatcher,
    Discovery,
    Ingestion,
    Parser,
    Provider,
    SessionKind,
)

_META = "*?[" if os.sep == "\\" else "*?[\\"
_NOT_SEP = f"[^{re.escape(os.sep)}]"


class RegistryError(ValueError):
    """Raised for an invalid agent configuration or a failed discovery."""


@dataclass
class AgentConfig:
    """One configured agent entry."""

    name: str = ""
    kind: str = ""
    capabilities: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    parser: str = ""


def _as_kind(value: str) -> str:
    try:
        return SessionKind(value)
    except ValueError:
        return value


def _as_capability(value: str) -> str:
    try:
        return Capability(value)
    except ValueError:
        return value


def _parse_capabilities(values: Iterable[str]) -> list[str]:
    stripped = (str(value).strip() for value in values)
    return [_as_capability(value) for value in stripped if value]


@dataclass
class Agent:
    """A configured, named instance of a kind."""

    name: str
    kind: str
    parser: Parser = field(repr=False)
    capabilities: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    discoverer: Provider | None = field(default=None, repr=False)

    def has(self, capability: str) -> bool:
        """Report whether the agent declares ``capability``."""
        return capability in self.capabilities

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return the transcripts for this agent."""
        if self.sources:
            return [
                Discovery(agent=self.name, kind=self.kind, source_path=path)
                for path in _expand_sources(self.sources, self.kind, repo_root)
            ]
        if self.discoverer is None:
            raise RegistryError("no sources and no built-in discovery")
        found = list(self.discoverer.discover(repo_root) or [])
        for discovery in found:
            discovery.agent = self.name
            discovery.kind = self.kind
        return found

    def ingest(self, source_path: str) -> Ingestion:
        """Parse one discovered transcript with the agent's parser."""
        return self.parser.ingest(source_path)


@dataclass
class Registry:
    """Agents in declaration order."""

    agents: list[Agent] = field(default_factory=list)

    def discover(self, repo_root: str) -> list[Discovery]:
        """Return every transcript across all agents."""
        found: list[Discovery] = []
        for agent in self.agents:
            try:
                found.extend(agent.discover(repo_root))
            except (OSError, ValueError) as err:
                raise RegistryError(f"agent {agent.name!r}: {err}") from err
        return found

    def watch_targets(self, repo_root: str) -> list[str]:
        """Directories worth watching for new transcripts, without duplicates."""
        dirs: dict[str, None] = {}
        for agent in self.agents:
            if agent.sources:
                for src in agent.sources:
                    base = glob_base(expand_token(src, agent.kind, repo_root))
                    if base:
                        dirs.setdefault(base)
                continue
            if isinstance(agent.discoverer, DirWatcher):
                for directory in agent.discoverer.watch_dirs(repo_root):
                    if directory:
                        dirs.setdefault(directory)
        return list(dirs)


def new_registry(
    configs: Iterable[AgentConfig], providers: Mapping[Any, Provider] | None
) -> Registry:
    """Build a registry from configured agents and the built-in providers by kind."""
    known = {str(kind): provider for kind, provider in (providers or {}).items()}
    agents: list[Agent] = []
    seen: set[str] = set()
    for config in configs:
        name = config.name.strip()
        if not name:
            raise RegistryError("agent entry is missing a name")
        if name in seen:
            raise RegistryError(f"duplicate agent name {name!r}")
        seen.add(name)

        kind = str(config.kind).strip()
        if not kind:
            raise RegistryError(f"agent {name!r} is missing a kind")

        capabilities = _parse_capabilities(config.capabilities)
        sources = list(config.sources)
        provider = known.get(kind)
        if provider is not None:
            agents.append(
                Agent(
                    name=name,
                    kind=_as_kind(kind),
                    parser=provider,
                    capabilities=capabilities,
                    sources=sources,
                    discoverer=provider,
                )
            )
            continue

        parser_kind = str(config.parser).strip()
        if not parser_kind:
            raise RegistryError(f"custom agent {name!r} must set a parser")
        try:
            parser = generic_parser(parser_kind)
        except ValueError as err:
            raise RegistryError(f"agent {name!r}: {err}") from err
        if not sources:
            raise RegistryError(f"custom agent {name!r} must declare sources")
        agents.append(
            Agent(
                name=name,
                kind=_as_kind(kind),
                parser=parser,
                capabilities=capabilities,
                sources=sources,
            )
        )
    return Registry(agents=agents)


def single_agent_registry(name: str, provider: Provider) -> Registry:
    """Wrap one built-in provider as a one-agent registry."""
    return Registry(
        agents=[Agent(name=name, kind=provider.kind, parser=provider, discoverer=provider)]
    )


def expand_token(src: str, kind: str, repo_root: str) -> str:
    """Expand a leading ``~`` and the ``{repo}`` token in a source pattern."""
    expanded = src.strip()
    if expanded.startswith("~"):
        home = os.path.expanduser("~")
        if home == "~":
            raise RegistryError("cannot determine the home directory")
        expanded = os.path.normpath(os.path.join(home, expanded[1:].lstrip(os.sep)))
    if "{repo}" in expanded:
        replacement = os.path.abspath(repo_root)
        if kind == SessionKind.CLAUDE:
            # Claude names its projects dir after the repo path with "/" as "-".
            replacement = replacement.replace("/", "-")
        expanded = expanded.replace("{repo}", replacement)
    return expanded


def _expand_sources(sources: Iterable[str], kind: str, repo_root: str) -> list[str]:
    matched: list[str] = []
    for src in sources:
        matched.extend(glob_recursive(expand_token(src, kind, repo_root)))
    return matched


def _dir(path: str) -> str:
    return os.path.normpath(os.path.dirname(path) or ".")


def _bad_pattern(pattern: str) -> RegistryError:
    return RegistryError(f"syntax error in pattern {pattern!r}")


def _class_char(pattern: str, pos: int) -> tuple[str, int]:
    if pos >= len(pattern) or pattern[pos] in "-]":
        raise _bad_pattern(pattern)
    char = pattern[pos]
    if char == "\\" and os.sep != "\\":
        pos += 1
        if pos >= len(pattern):
            raise _bad_pattern(pattern)
        char = pattern[pos]
    return char, pos + 1


def _char_class(pattern: str, pos: int) -> tuple[str, int]:
    negate = pos < len(pattern) and pattern[pos] == "^"
    if negate:
        pos += 1
    ranges: list[str] = []
    count = 0
    while True:
        if pos < len(pattern) and pattern[pos] == "]" and count:
            pos += 1
            break
        low, pos = _class_char(pattern, pos)
        high = low
        if pos < len(pattern) and pattern[pos] == "-":
            high, pos = _class_char(pattern, pos + 1)
        count += 1
        if low <= high:
            ranges.append(f"{re.escape(low)}-{re.escape(high)}")
    body = "".join(ranges)
    if negate:
        return (f"[^{body}]" if body else "(?s:.)"), pos
    return (f"[{body}]" if body else "(?!)"), pos


def _compile(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    pos = 0
    while pos < len(pattern):
        char = pattern[pos]
        pos += 1
        if char == "*":
            parts.append(_NOT_SEP + "*")
        elif char == "?":
            parts.append(_NOT_SEP)
        elif char == "\\" and os.sep != "\\":
            if pos >= len(pattern):
                raise _bad_pattern(pattern)
            parts.append(re.escape(pattern[pos]))
            pos += 1
        elif char == "[":
            regex, pos = _char_class(pattern, pos)
            parts.append(regex)
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts) + r"\Z", re.DOTALL)


def _has_meta(path: str) -> bool:
    return any(char in path for char in _META)


def _glob_dir(directory: str, regex: re.Pattern[str]) -> list[str]:
    try:
        if not stat.S_ISDIR(os.stat(directory).st_mode):
            return []
        names = sorted(os.listdir(directory))
    except OSError:
        return []
    return [os.path.normpath(os.path.join(directory, name)) for name in names if regex.match(name)]


def _glob(pattern: str) -> list[str]:
    _compile(pattern)
    if not _has_meta(pattern):
        return [pattern] if os.path.lexists(pattern) else []
    directory, name = os.path.split(pattern)
    directory = directory or "."
    regex = _compile(name)
    if not _has_meta(directory):
        return _glob_dir(directory, regex)
    if directory == pattern:
        raise _bad_pattern(pattern)
    matches: list[str] = []
    for parent in _glob(directory):
        matches.extend(_glob_dir(parent, regex))
    return matches


def _walk_files(root: str) -> Iterator[str]:
    try:
        info = os.lstat(root)
    except OSError:
        return
    if not stat.S_ISDIR(info.st_mode):
        yield root
        return
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError:
        return
    for entry in entries:
        path = os.path.join(root, entry.name)
        if entry.is_dir(follow_symlinks=False):
            yield from _walk_files(path)
        else:
            yield path


def glob_recursive(pattern: str) -> list[str]:
    """Glob ``pattern``; a ``**`` segment means this directory and any descendant."""
    idx = pattern.find("**")
    if idx < 0:
        return _glob(pattern)
    base = _dir(pattern[:idx])
    tail = pattern[idx + 2 :].lstrip(os.sep)
    if not tail:
        return list(_walk_files(base))
    try:
        regex = _compile(tail)
    except RegistryError:
        return []
    return [path for path in _walk_files(base) if regex.match(os.path.basename(path))]


def glob_base(pattern: str) -> str:
    """The deepest non-glob ancestor directory of ``pattern``."""
    positions = [pattern.find(char) for char in "*?[" if char in pattern]
    if positions:
        return _dir(pattern[: min(positions)])
    return _dir(pattern)