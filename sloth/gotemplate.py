"""A small renderer for the subset of Go text templates used in SLI queries."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from sloth.helpers import format_go_float

_FIELD_RE = re.compile(r"(?:\.[A-Za-z_][A-Za-z0-9_]*)+")
_NO_VALUE = "<no value>"


class TemplateError(ValueError):
    """Raised when a template can't be parsed or rendered."""


@dataclass(frozen=True)
class _Text:
    text: str


@dataclass(frozen=True)
class _Field:
    path: tuple[str, ...]


_Piece = Union[_Text, _Field]


def _find_action_end(text: str, start: int) -> int:
    i = start
    while i < len(text):
        ch = text[i]
        if ch == '"':
            i += 1
            while i < len(text) and text[i] != '"':
                if text[i] == "\\":
                    i += 1
                i += 1
            if i >= len(text):
                raise TemplateError("unterminated quoted string")
        elif ch == "`":
            end = text.find("`", i + 1)
            if end < 0:
                raise TemplateError("unterminated raw quoted string")
            i = end
        elif text.startswith("}}", i):
            return i
        i += 1
    raise TemplateError("unclosed action")


def _parse_action(content: str) -> _Piece | None:
    c = content.strip()
    if c.startswith("/*") and c.endswith("*/"):
        return None
    if not c:
        raise TemplateError("missing value for command")
    if c.startswith('"'):
        try:
            value = json.loads(c)
        except ValueError as exc:
            raise TemplateError(f"bad string literal {c}") from exc
        if not isinstance(value, str):
            raise TemplateError(f"bad string literal {c}")
        return _Text(value)
    if c.startswith("`") and c.endswith("`") and len(c) >= 2 and "`" not in c[1:-1]:
        return _Text(c[1:-1])
    if c == ".":
        return _Field(())
    if _FIELD_RE.fullmatch(c):
        return _Field(tuple(c[1:].split(".")))
    raise TemplateError(f"unsupported template action {c!r}")


def _format(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_go_float(value)
    if value is None:
        return "<nil>"
    return str(value)


class Template:
    """A parsed template with ``{{ .key }}`` fields and string literals."""

    def __init__(self, text: str, strict: bool = False) -> None:
        self.strict = strict
        self._pieces = self._parse(text)

    @staticmethod
    def _parse(text: str) -> list[_Piece]:
        pieces: list[_Piece] = []
        pos = 0
        trim_next = False
        while True:
            open_at = text.find("{{", pos)
            chunk = text[pos:] if open_at < 0 else text[pos:open_at]
            if trim_next:
                chunk = chunk.lstrip()
            if open_at < 0:
                if chunk:
                    pieces.append(_Text(chunk))
                return pieces
            start = open_at + 2
            if text.startswith("- ", start):
                chunk = chunk.rstrip()
                start += 2
            if chunk:
                pieces.append(_Text(chunk))
            end = _find_action_end(text, start)
            content = text[start:end]
            trim_next = content.endswith(" -")
            if trim_next:
                content = content[:-2]
            piece = _parse_action(content)
            if piece is not None:
                pieces.append(piece)
            pos = end + 2

    def _lookup(self, data: Any, path: tuple[str, ...]) -> str:
        value = data
        for key in path:
            if not isinstance(value, Mapping):
                raise TemplateError(f"can't evaluate field {key} in {type(value).__name__}")
            if key not in value:
                if self.strict:
                    raise TemplateError(f"map has no entry for key {key!r}")
                return _NO_VALUE
            value = value[key]
        return _format(value)

    def render(self, data: Any) -> str:
        """Render the template with ``data`` (usually a mapping)."""
        return "".join(
            piece.text if isinstance(piece, _Text) else self._lookup(data, piece.path)
            for piece in self._pieces
        )


def render_template(text: str, data: Any, strict: bool = False) -> str:
    """Parse and render ``text`` in one step."""
    return Template(text, strict).render(data)