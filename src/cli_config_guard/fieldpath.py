"""Field path addressing for configuration trees.

A path is an ordered tuple of segments (mapping keys as ``str``, list indices
as ``int``) with an optional file qualifier for tools that keep their config in
more than one file. The text form is what users type into blacklist and
sensitive-field lists and what change logs display:

    environment.auth-token
    hooks[0].command
    auth.json:OPENAI_API_KEY
    model_providers.*
    ["odd.key"].value

Keys containing ``.``, ``[``, ``]``, ``:`` or ``"`` are quoted in brackets, so
an unquoted ``:`` always separates the file qualifier.
"""

import json
from dataclasses import dataclass
from dataclasses import field

from .exceptions import ConfigValidationError

Segment = str | int

_SPECIAL_CHARS = set('.[]:"')
_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class FieldPath:
    """Address of a value inside a tool's file set.

    Attributes:
        file: File name the path points into (None for the tool's primary file)
        segments: Keys and indices from the tree root
        wildcard: True for ``prefix.*`` patterns
    """

    file: str | None = None
    segments: tuple[Segment, ...] = field(default_factory=tuple)
    wildcard: bool = False

    @classmethod
    def parse(cls, text: str) -> "FieldPath":
        """Parse the text form of a path or pattern.

        Args:
            text: Path text such as ``auth.json:model_providers.*``

        Returns:
            Parsed FieldPath

        Raises:
            ConfigValidationError: If the text is not a valid path
        """
        text = text.strip()
        if not text:
            raise ConfigValidationError("Field path must not be empty")

        file = None
        colon = text.find(":")
        bracket = text.find("[")
        if colon != -1 and (bracket == -1 or colon < bracket):
            file, text = text[:colon].strip(), text[colon + 1 :].strip()
            if not file:
                raise ConfigValidationError("File qualifier must not be empty")

        wildcard = False
        if text == "*":
            wildcard, text = True, ""
        elif text.endswith(".*"):
            wildcard, text = True, text[:-2]

        return cls(file=file, segments=_parse_segments(text), wildcard=wildcard)

    def child(self, segment: Segment) -> "FieldPath":
        """Return the path one level below this one."""
        return FieldPath(file=self.file, segments=self.segments + (segment,))

    def qualified(self, file: str | None) -> "FieldPath":
        """Return the same path pointing into another file."""
        return FieldPath(file=file, segments=self.segments, wildcard=self.wildcard)

    def is_within(self, other: "FieldPath") -> bool:
        """True if this path equals ``other`` or lies below it."""
        if self.file != other.file:
            return False
        return self.segments[: len(other.segments)] == other.segments

    def matches(self, pattern: "FieldPath") -> bool:
        """True if this path is covered by ``pattern``.

        Both ``a.b`` and ``a.b.*`` cover ``a.b`` and every path below it.
        """
        return self.is_within(pattern)

    def overlaps(self, pattern: "FieldPath") -> bool:
        """True if this path is covered by ``pattern`` or contains it.

        Used for sensitive fields: replacing the whole ``environment`` map
        changes ``environment.auth-token`` too.
        """
        return self.is_within(pattern) or pattern.is_within(self)

    def __str__(self) -> str:
        body = _format_segments(self.segments)
        if self.wildcard:
            body = f"{body}.*" if body else "*"
        if self.file is not None:
            return f"{self.file}:{body}"
        return body


def matches_any(path: FieldPath, patterns: list[FieldPath]) -> bool:
    """Check a path against a list of blacklist-style patterns."""
    return any(path.matches(pattern) for pattern in patterns)


def overlaps_any(path: FieldPath, patterns: list[FieldPath]) -> bool:
    """Check a path against a list of sensitive-field patterns."""
    return any(path.overlaps(pattern) for pattern in patterns)


def parse_patterns(patterns: list[str]) -> list[FieldPath]:
    """Parse a list of user-supplied path patterns."""
    return [FieldPath.parse(pattern) for pattern in patterns]


def _format_segments(segments: tuple[Segment, ...]) -> str:
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        elif not segment or segment == "*" or _SPECIAL_CHARS.intersection(segment):
            parts.append(f"[{json.dumps(segment, ensure_ascii=False)}]")
        elif parts:
            parts.append(f".{segment}")
        else:
            parts.append(segment)
    return "".join(parts)


def _parse_segments(text: str) -> tuple[Segment, ...]:
    segments: list[Segment] = []
    i = 0
    expect_key = True

    while i < len(text):
        ch = text[i]
        if ch == "[":
            if i + 1 < len(text) and text[i + 1] == '"':
                try:
                    key, end = _decoder.raw_decode(text, i + 1)
                except json.JSONDecodeError as e:
                    raise ConfigValidationError(f"Invalid quoted key in field path '{text}': {e}") from e
                segments.append(key)
            else:
                end = text.find("]", i)
                if end == -1 or not text[i + 1 : end].isdigit():
                    raise ConfigValidationError(f"Invalid index in field path '{text}'")
                segments.append(int(text[i + 1 : end]))
            if end >= len(text) or text[end] != "]":
                raise ConfigValidationError(f"Unclosed bracket in field path '{text}'")
            i = end + 1
            expect_key = False
        elif ch == ".":
            if expect_key:
                raise ConfigValidationError(f"Empty segment in field path '{text}'")
            i += 1
            expect_key = True
        else:
            if not expect_key:
                raise ConfigValidationError(f"Missing '.' before '{text[i:]}' in field path '{text}'")
            end = i
            while end < len(text) and text[end] not in ".[":
                end += 1
            key = text[i:end]
            if _SPECIAL_CHARS.intersection(key):
                raise ConfigValidationError(f"Key '{key}' must be quoted in field path '{text}'")
            segments.append(key)
            i = end
            expect_key = False

    if segments and expect_key:
        raise ConfigValidationError(f"Field path '{text}' ends with '.'")
    return tuple(segments)
