"""Parsers for .nap request files and .naplist playlists."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterator
import re

from .errors import ParseError
from .models import (
    Assertion,
    AssertOp,
    HttpMethod,
    NapMeta,
    PlaylistDefinition,
    PlaylistStep,
    RequestBody,
    RequestDefinition,
    RequestSpec,
    ScriptHooks,
    StepKind,
)

REQUEST_SECTIONS = (
    "meta",
    "vars",
    "request",
    "request.headers",
    "request.body",
    "assert",
    "capture",
    "script",
)
PLAYLIST_SECTIONS = ("meta", "vars", "steps")
SCRIPT_SUFFIXES = (".py", ".sh", ".fsx", ".csx")
DEFAULT_CONTENT_TYPE = "application/json"
TRIPLE_QUOTE = '"""'

_METHODS = "|".join(method.value for method in HttpMethod)
_SHORTHAND_PATTERN = re.compile(rf"^[ \t]*({_METHODS})[ \t]+(\S.*?)\s*$", re.IGNORECASE)
_SECTION_PATTERN = re.compile(r"^\[([A-Za-z][A-Za-z.]*)\]\s*(?:#.*)?$")
_KEY_VALUE_PATTERN = re.compile(r"^([^=\[#\s][^=#]*?)\s*=\s*(.*)$")
_TRAILING_COMMENT = re.compile(r"\s+#.*$")
_ASSERT_OPS = {
    "=": AssertOp.EQUALS,
    "contains": AssertOp.CONTAINS,
    "matches": AssertOp.MATCHES,
    "<": AssertOp.LESS_THAN,
    ">": AssertOp.GREATER_THAN,
}


def parse_request(text: str) -> RequestDefinition:
    """Parse a .nap file, trying the one-line shorthand before the sectioned form."""

    shorthand = _parse_shorthand(text)
    if shorthand is not None:
        return shorthand
    return _parse_full(text)


def parse_playlist(text: str) -> PlaylistDefinition:
    """Parse a .naplist file line by line."""

    meta: dict[str, object] = {}
    env: str | None = None
    variables: dict[str, str] = {}
    steps: list[PlaylistStep] = []
    section: str | None = None

    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("["):
            section = _section_name(line, number, PLAYLIST_SECTIONS)
            continue
        if section is None:
            raise ParseError(f"line {number}: content outside of a section: {line!r}")

        if section == "steps":
            steps.append(classify_step(_TRAILING_COMMENT.sub("", line)))
            continue

        if "=" not in line:
            raise ParseError(f"line {number}: expected 'key = value' in [{section}]: {line!r}")
        key, value = (part.strip() for part in line.split("=", 1))
        value = _strip_comment(value).strip('"')
        if section == "vars":
            variables[key] = value
        elif key == "env":
            env = value or None
        elif key == "tags":
            meta["tags"] = _parse_tags(value)
        elif key in {"name", "description"}:
            meta[key] = value

    return PlaylistDefinition(meta=NapMeta(**meta), env=env, vars=variables, steps=steps)


def classify_step(line: str) -> PlaylistStep:
    """Classify a [steps] entry by its suffix."""

    if line.endswith(".naplist"):
        kind = StepKind.PLAYLIST
    elif line.endswith(".nap"):
        kind = StepKind.FILE
    elif line.lower().endswith(SCRIPT_SUFFIXES):
        kind = StepKind.SCRIPT
    elif "." not in PurePosixPath(line).name:
        kind = StepKind.FOLDER
    else:
        kind = StepKind.FILE
    return PlaylistStep(kind=kind, path=line)


def parse_assertion(line: str) -> Assertion | None:
    """Parse one [assert] line; returns None for lines of unknown shape."""

    parts = line.split(None, 2)
    if len(parts) == 2 and parts[1] == "exists":
        return Assertion(target=parts[0], op=AssertOp.EXISTS)
    if len(parts) == 3 and parts[1] in _ASSERT_OPS:
        value = parts[2].strip()
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        return Assertion(target=parts[0], op=_ASSERT_OPS[parts[1]], value=value)
    return None


def _parse_shorthand(text: str) -> RequestDefinition | None:
    content = [line for line in text.splitlines() if not _is_blank_or_comment(line)]
    if len(content) != 1:
        return None
    match = _SHORTHAND_PATTERN.match(content[0])
    if match is None:
        return None
    method, url = match.groups()
    return RequestDefinition(request=RequestSpec(method=HttpMethod(method.upper()), url=url))


def _parse_full(text: str) -> RequestDefinition:
    sections: dict[str, list[tuple[int, str]]] = {}
    blocks: list[str] = []
    current: str | None = None
    last_index = -1
    lines = _LineCursor(text)

    for number, raw in lines:
        stripped = raw.strip()
        if current == "request.body" and stripped.startswith(TRIPLE_QUOTE):
            if blocks:
                raise ParseError(f"line {number}: only one {TRIPLE_QUOTE} body block is allowed")
            blocks.append(_read_block(stripped, lines, number))
            continue
        if _is_blank_or_comment(raw):
            continue
        if stripped.startswith("["):
            name = _section_name(stripped, number, REQUEST_SECTIONS)
            index = REQUEST_SECTIONS.index(name)
            if index <= last_index:
                raise ParseError(f"line {number}: section [{name}] is repeated or out of order")
            current, last_index = name, index
            sections[name] = []
            continue
        if current is None:
            raise ParseError(f"line {number}: content outside of a section: {stripped!r}")
        sections[current].append((number, stripped))

    if "request" not in sections:
        raise ParseError("missing [request] section")

    meta = _build_meta(_key_values(sections.get("meta", []), "meta"))
    request = _build_request(
        _key_values(sections["request"], "request"),
        _key_values(sections.get("request.headers", []), "request.headers"),
        sections.get("request.body"),
        blocks,
    )
    assertions = [
        assertion
        for assertion in (parse_assertion(_strip_comment(line)) for _, line in sections.get("assert", []))
        if assertion is not None
    ]
    script = _key_values(sections.get("script", []), "script")
    return RequestDefinition(
        meta=meta,
        vars=_key_values(sections.get("vars", []), "vars"),
        request=request,
        assertions=assertions,
        captures=_key_values(sections.get("capture", []), "capture"),
        script=ScriptHooks(pre=script.get("pre"), post=script.get("post")),
    )


class _LineCursor:
    """Line iterator that lets the body-block reader consume lines ahead."""

    def __init__(self, text: str) -> None:
        self._lines = text.splitlines()
        self._position = 0

    def __iter__(self) -> Iterator[tuple[int, str]]:
        return self

    def __next__(self) -> tuple[int, str]:
        if self._position >= len(self._lines):
            raise StopIteration
        self._position += 1
        return self._position, self._lines[self._position - 1]


def _read_block(first: str, lines: _LineCursor, start: int) -> str:
    rest = first[len(TRIPLE_QUOTE):]
    collected: list[str] = []
    while True:
        end = rest.find(TRIPLE_QUOTE)
        if end >= 0:
            collected.append(rest[:end])
            trailing = rest[end + len(TRIPLE_QUOTE):].strip()
            if trailing and not trailing.startswith("#"):
                raise ParseError(f"line {start}: unexpected text after closing {TRIPLE_QUOTE}")
            return "\n".join(collected).strip()
        collected.append(rest)
        try:
            _, rest = next(lines)
        except StopIteration:
            raise ParseError(f"line {start}: unterminated {TRIPLE_QUOTE} body block") from None


def _key_values(entries: list[tuple[int, str]], section: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for number, line in entries:
        match = _KEY_VALUE_PATTERN.match(line)
        if match is None:
            raise ParseError(f"line {number}: expected 'key = value' in [{section}]: {line!r}")
        key, raw_value = match.groups()
        result[key] = _parse_value(raw_value, number)
    return result


def _parse_value(raw: str, number: int) -> str:
    if raw.startswith('"'):
        end = raw.find('"', 1)
        if end < 0:
            raise ParseError(f"line {number}: unterminated quoted value")
        trailing = raw[end + 1:].strip()
        if trailing and not trailing.startswith("#"):
            raise ParseError(f"line {number}: unexpected text after quoted value: {trailing!r}")
        return raw[1:end]
    return _strip_comment(raw)


def _build_meta(values: dict[str, str]) -> NapMeta:
    return NapMeta(
        name=values.get("name"),
        description=values.get("description"),
        tags=_parse_tags(values.get("tags", "")),
    )


def _build_request(
    values: dict[str, str],
    headers: dict[str, str],
    body_entries: list[tuple[int, str]] | None,
    blocks: list[str],
) -> RequestSpec:
    raw_method = values.get("method", HttpMethod.GET.value)
    try:
        method = HttpMethod(raw_method.upper())
    except ValueError:
        raise ParseError(f"unknown HTTP method: {raw_method}") from None
    url = values.get("url", "")
    if not url:
        raise ParseError("missing 'url' in [request] section")
    return RequestSpec(method=method, url=url, headers=headers, body=_build_body(body_entries, blocks))


def _build_body(entries: list[tuple[int, str]] | None, blocks: list[str]) -> RequestBody | None:
    if entries is None:
        return None
    values = _key_values(entries, "request.body")
    content_type = values.get("content-type", DEFAULT_CONTENT_TYPE)
    if blocks:
        return RequestBody(content_type=content_type, content=blocks[0])
    if "content" in values:
        return RequestBody(content_type=content_type, content=values["content"])
    return None


def _section_name(line: str, number: int, known: tuple[str, ...]) -> str:
    match = _SECTION_PATTERN.match(line)
    if match is None:
        raise ParseError(f"line {number}: malformed section header: {line!r}")
    name = match.group(1).lower()
    if name not in known:
        raise ParseError(f"line {number}: unknown section [{name}]")
    return name


def _parse_tags(value: str) -> list[str]:
    items = (item.strip().strip('"') for item in value.strip().strip("[]").split(","))
    return [item for item in items if item]


def _strip_comment(value: str) -> str:
    """Cut a ``#`` comment that is not inside double quotes."""

    quoted = False
    for index, char in enumerate(value):
        if char == '"':
            quoted = not quoted
        elif char == "#" and not quoted:
            return value[:index].strip()
    return value.strip()


def _is_blank_or_comment(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#")
