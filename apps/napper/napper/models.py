"""Definition, response and result models for the nap runtime."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HttpMethod(str, Enum):
    """HTTP methods accepted in request definitions."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class AssertOp(str, Enum):
    """Operators usable in an [assert] line."""

    EQUALS = "="
    EXISTS = "exists"
    CONTAINS = "contains"
    MATCHES = "matches"
    LESS_THAN = "<"
    GREATER_THAN = ">"


class StepKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"
    PLAYLIST = "playlist"
    SCRIPT = "script"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class NapMeta(_Frozen):
    """Optional [meta] block shared by requests and playlists."""

    name: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class RequestBody(_Frozen):
    content_type: str = "application/json"
    content: str


class RequestSpec(_Frozen):
    """The [request] block plus its headers and body."""

    method: HttpMethod = HttpMethod.GET
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[RequestBody] = None


class Assertion(_Frozen):
    """A single assertion line, e.g. ``status = 200`` or ``body.id exists``."""

    target: str
    op: AssertOp
    value: Optional[str] = None

    def describe(self) -> str:
        """Render the operator and operand back as written."""

        match self.op:
            case AssertOp.EXISTS:
                return "exists"
            case AssertOp.CONTAINS | AssertOp.MATCHES:
                return f'{self.op.value} "{self.value}"'
            case _:
                return f"{self.op.value} {self.value}"


class ScriptHooks(_Frozen):
    pre: Optional[str] = None
    post: Optional[str] = None


class RequestDefinition(_Frozen):
    """A fully parsed .nap file."""

    meta: NapMeta = Field(default_factory=NapMeta)
    vars: dict[str, str] = Field(default_factory=dict)
    request: RequestSpec
    assertions: list[Assertion] = Field(default_factory=list)
    captures: dict[str, str] = Field(default_factory=dict)
    script: ScriptHooks = Field(default_factory=ScriptHooks)


class PlaylistStep(_Frozen):
    """One entry of a [steps] block; ``path`` is relative to the declaring file."""

    kind: StepKind
    path: str


class PlaylistDefinition(_Frozen):
    """A parsed .naplist file."""

    meta: NapMeta = Field(default_factory=NapMeta)
    env: Optional[str] = None
    vars: dict[str, str] = Field(default_factory=dict)
    steps: list[PlaylistStep] = Field(default_factory=list)


class ResponseCapture(_Frozen):
    """HTTP response captured after running a request."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    duration_ms: float


class AssertionResult(_Frozen):
    assertion: Assertion
    passed: bool
    expected: str
    actual: str


class RunResult(BaseModel):
    """Outcome of one leaf step (request file or script)."""

    file: str
    request: Optional[RequestSpec] = None
    response: Optional[ResponseCapture] = None
    assertions: list[AssertionResult] = Field(default_factory=list)
    passed: bool
    error: Optional[str] = None
    log: list[str] = Field(default_factory=list)
    variables: dict[str, str] = Field(default_factory=dict)

    @property
    def failed_assertions(self) -> list[AssertionResult]:
        return [result for result in self.assertions if not result.passed]
