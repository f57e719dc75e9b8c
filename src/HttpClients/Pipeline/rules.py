"""Customization rules for outgoing requests and incoming responses.

Rules are small pydantic models selected by their ``action`` field. Each one is
a pure function over an immutable draft: it receives a :class:`RequestDraft`
or :class:`ResponseDraft` and returns a new draft, never touching the
``httpx`` objects owned by the caller. Unknown actions or malformed payloads
are rejected when the settings are validated.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, ClassVar, Literal, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Headers httpx derives from the URL and body; dropped when a draft is rebuilt.
_DERIVED_REQUEST_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})
# Draft bodies are already decoded, so Content-Encoding no longer applies.
_DERIVED_RESPONSE_HEADERS = frozenset({"content-length", "transfer-encoding", "content-encoding"})

Headers = tuple[tuple[str, str], ...]


def _encode_header(text: str, encoding: str) -> bytes:
    try:
        return text.encode(encoding)
    except UnicodeEncodeError:
        return text.encode("utf-8")


def _raw_headers(headers: Headers, encoding: str, derived: frozenset) -> list[tuple[bytes, bytes]]:
    """Encode draft headers back to bytes with the encoding they were decoded with.

    Values added by rules that do not fit that encoding are written as UTF-8.
    """
    return [
        (_encode_header(name, encoding), _encode_header(value, encoding))
        for name, value in headers
        if name.lower() not in derived
    ]


@dataclass(frozen=True)
class RequestDraft:
    """Immutable snapshot of a request being customized."""

    method: str
    url: httpx.URL
    headers: Headers
    content: bytes
    extensions: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    header_encoding: str = "ascii"

    @classmethod
    def from_request(cls, request: httpx.Request) -> "RequestDraft":
        return cls(
            method=request.method,
            url=request.url,
            headers=tuple(request.headers.multi_items()),
            content=request.read(),
            extensions=dict(request.extensions),
            header_encoding=request.headers.encoding,
        )

    def to_request(self) -> httpx.Request:
        return httpx.Request(
            self.method,
            self.url,
            headers=_raw_headers(self.headers, self.header_encoding, _DERIVED_REQUEST_HEADERS),
            content=self.content,
            extensions=dict(self.extensions),
        )


@dataclass(frozen=True)
class ResponseDraft:
    """Immutable snapshot of a response being customized."""

    status_code: int
    headers: Headers
    content: bytes
    extensions: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    header_encoding: str = "ascii"

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ResponseDraft":
        return cls(
            status_code=response.status_code,
            headers=tuple(response.headers.multi_items()),
            content=response.read(),
            extensions=dict(response.extensions),
            header_encoding=response.headers.encoding,
        )

    def to_response(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            self.status_code,
            headers=_raw_headers(self.headers, self.header_encoding, _DERIVED_RESPONSE_HEADERS),
            content=self.content,
            request=request,
            extensions=dict(self.extensions),
        )


def _without(headers: Headers, name: str) -> Headers:
    lowered = name.lower()
    return tuple((key, value) for key, value in headers if key.lower() != lowered)


class _Rule(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")


class _HeaderRule(_Rule):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v or any(ch in v for ch in " :\r\n"):
            raise ValueError(f"Invalid header name: {v!r}")
        return v


class SetHeaderRule(_HeaderRule):
    """Overwrite every value of a header with a single value."""

    action: Literal["set_header"] = "set_header"
    value: str

    def apply(self, draft):
        return dataclasses.replace(
            draft, headers=_without(draft.headers, self.name) + ((self.name, self.value),)
        )


class AddHeaderRule(_HeaderRule):
    """Append a header value, keeping existing ones."""

    action: Literal["add_header"] = "add_header"
    value: str

    def apply(self, draft):
        return dataclasses.replace(draft, headers=draft.headers + ((self.name, self.value),))


class RemoveHeaderRule(_HeaderRule):
    action: Literal["remove_header"] = "remove_header"

    def apply(self, draft):
        return dataclasses.replace(draft, headers=_without(draft.headers, self.name))


class SetQueryRule(_Rule):
    action: Literal["set_query"] = "set_query"
    name: str
    value: str

    def apply(self, draft: RequestDraft) -> RequestDraft:
        return dataclasses.replace(draft, url=draft.url.copy_set_param(self.name, self.value))


class AddQueryRule(_Rule):
    action: Literal["add_query"] = "add_query"
    name: str
    value: str

    def apply(self, draft: RequestDraft) -> RequestDraft:
        return dataclasses.replace(draft, url=draft.url.copy_add_param(self.name, self.value))


class RemoveQueryRule(_Rule):
    action: Literal["remove_query"] = "remove_query"
    name: str

    def apply(self, draft: RequestDraft) -> RequestDraft:
        return dataclasses.replace(draft, url=draft.url.copy_remove_param(self.name))


class RewritePathRule(_Rule):
    """Replace a leading path prefix, e.g. ``/v1/`` → ``/v2/``."""

    action: Literal["rewrite_path"] = "rewrite_path"
    prefix: str
    replacement: str

    @field_validator("prefix", "replacement")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Path prefixes must start with '/', got {v!r}")
        return v

    def apply(self, draft: RequestDraft) -> RequestDraft:
        path = draft.url.path
        if not path.startswith(self.prefix):
            return draft
        new_path = self.replacement + path[len(self.prefix) :]
        return dataclasses.replace(draft, url=draft.url.copy_with(path=new_path))


class SetRequestBodyRule(_Rule):
    action: Literal["set_body"] = "set_body"
    content: str
    content_type: Optional[str] = None

    def apply(self, draft: RequestDraft) -> RequestDraft:
        headers = draft.headers
        if self.content_type is not None:
            headers = _without(headers, "content-type") + (("content-type", self.content_type),)
        return dataclasses.replace(draft, headers=headers, content=self.content.encode("utf-8"))


class SetStatusRule(_Rule):
    action: Literal["set_status"] = "set_status"
    status: int = Field(ge=100, le=599)

    def apply(self, draft: ResponseDraft) -> ResponseDraft:
        extensions = {k: v for k, v in draft.extensions.items() if k != "reason_phrase"}
        return dataclasses.replace(draft, status_code=self.status, extensions=extensions)


class SetResponseBodyRule(_Rule):
    """Replace the response body with inline content or the bytes of a file."""

    action: Literal["set_body"] = "set_body"
    content: Optional[str] = None
    path: Optional[Path] = None
    content_type: Optional[str] = None

    @model_validator(mode="after")
    def validate_source(self) -> "SetResponseBodyRule":
        if (self.content is None) == (self.path is None):
            raise ValueError("set_body needs exactly one of 'content' or 'path'")
        if self.path is not None and not self.path.is_file():
            raise ValueError(f"set_body file not found: {self.path}")
        return self

    def apply(self, draft: ResponseDraft) -> ResponseDraft:
        if self.path is not None:
            body = self.path.read_bytes()
        else:
            body = (self.content or "").encode("utf-8")
        headers = draft.headers
        if self.content_type is not None:
            headers = _without(headers, "content-type") + (("content-type", self.content_type),)
        return dataclasses.replace(draft, headers=headers, content=body)


class ReplaceBodyTextRule(_Rule):
    action: Literal["replace_body_text"] = "replace_body_text"
    old: str = Field(min_length=1)
    new: str

    def apply(self, draft: ResponseDraft) -> ResponseDraft:
        content = draft.content.replace(self.old.encode("utf-8"), self.new.encode("utf-8"))
        return dataclasses.replace(draft, content=content)


RequestRule = Annotated[
    Union[
        SetHeaderRule,
        AddHeaderRule,
        RemoveHeaderRule,
        SetQueryRule,
        AddQueryRule,
        RemoveQueryRule,
        RewritePathRule,
        SetRequestBodyRule,
    ],
    Field(discriminator="action"),
]

ResponseRule = Annotated[
    Union[
        SetHeaderRule,
        AddHeaderRule,
        RemoveHeaderRule,
        SetStatusRule,
        SetResponseBodyRule,
        ReplaceBodyTextRule,
    ],
    Field(discriminator="action"),
]


__all__ = [
    "AddHeaderRule",
    "AddQueryRule",
    "RemoveHeaderRule",
    "RemoveQueryRule",
    "ReplaceBodyTextRule",
    "RequestDraft",
    "RequestRule",
    "ResponseDraft",
    "ResponseRule",
    "RewritePathRule",
    "SetHeaderRule",
    "SetQueryRule",
    "SetRequestBodyRule",
    "SetResponseBodyRule",
    "SetStatusRule",
]
