from __future__ import annotations

from pathlib import Path

from napper.environment import (
    interpolate,
    load_environment,
    merge_missing,
    parse_env_file,
    resolve_request,
    unresolved_placeholders,
)
from napper.parser import parse_request


def _write_env(directory: Path, name: str, lines: list[str]) -> None:
    (directory / name).write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_parse_env_file_skips_comments_and_strips_quotes() -> None:
    content = '# shared\nbaseUrl = "http://localhost"\n\ntoken=abc=def\nnot a pair\n'

    assert parse_env_file(content) == {"baseUrl": "http://localhost", "token": "abc=def"}


def test_load_environment_layers_in_precedence_order(tmp_path: Path) -> None:
    _write_env(tmp_path, ".napenv", ["b = base", "c = base", "d = base", "e = base"])
    _write_env(tmp_path, ".napenv.staging", ["c = staging", "d = staging", "e = staging"])
    _write_env(tmp_path, ".napenv.local", ["d = local", "e = local"])
    defaults = {key: "vars" for key in "abcde"}

    merged = load_environment(tmp_path, "staging", {"e": "override"}, defaults)

    assert merged == {"a": "vars", "b": "base", "c": "staging", "d": "local", "e": "override"}


def test_named_environment_is_only_read_when_selected(tmp_path: Path) -> None:
    _write_env(tmp_path, ".napenv", ["stage = base"])
    _write_env(tmp_path, ".napenv.staging", ["stage = staging"])

    assert load_environment(tmp_path, None, {}, {})["stage"] == "base"
    assert load_environment(tmp_path, "prod", {}, {})["stage"] == "base"


def test_missing_env_files_contribute_nothing(tmp_path: Path) -> None:
    merged = load_environment(tmp_path, "staging", {"x": "1"}, {"y": "2"})

    assert merged == {"x": "1", "y": "2"}


def test_interpolate_leaves_unknown_placeholders() -> None:
    variables = {"host": "localhost", "id": "7"}

    assert interpolate(variables, "http://{{host}}/users/{{id}}") == "http://localhost/users/7"
    assert interpolate(variables, "{{missing}}/{{id}}") == "{{missing}}/7"
    assert interpolate(variables, "{{ host }} {{host-name}}") == "{{ host }} {{host-name}}"


def test_interpolate_inserts_values_verbatim() -> None:
    assert interpolate({"a": "{{b}}", "b": "nope"}, "{{a}}") == "{{b}}"


def test_unresolved_placeholders_lists_names() -> None:
    assert unresolved_placeholders("{{baseUrl}}/x/{{id}}") == ["baseUrl", "id"]
    assert unresolved_placeholders("http://localhost") == []


def test_resolve_request_interpolates_templates_not_targets() -> None:
    definition = parse_request(
        "[request]\n"
        "method = POST\n"
        "url = {{baseUrl}}/users\n"
        "[request.headers]\n"
        "Authorization = Bearer {{token}}\n"
        "[request.body]\n"
        'content = "{{payload}}"\n'
        "[assert]\n"
        "body.{{field}} = {{expected}}\n"
    )
    variables = {
        "baseUrl": "http://api",
        "token": "t0k",
        "payload": "hello",
        "field": "name",
        "expected": "Ada",
    }

    resolved = resolve_request(variables, definition)

    assert resolved.request.url == "http://api/users"
    assert resolved.request.headers == {"Authorization": "Bearer t0k"}
    assert resolved.request.body is not None
    assert resolved.request.body.content == "hello"
    assert resolved.assertions[0].target == "body.{{field}}"
    assert resolved.assertions[0].value == "Ada"
    assert definition.request.url == "{{baseUrl}}/users"


def test_merge_missing_keeps_existing_keys() -> None:
    assert merge_missing({"a": "caller"}, {"a": "playlist", "b": "playlist"}) == {
        "a": "caller",
        "b": "playlist",
    }
