"""In-memory model of a git config file.

The model mirrors git's own view of configuration: named sections, each
holding options and named subsections, where an option key may repeat to
form a multi-valued setting. Section names and option keys compare
case-insensitively; subsection names are case-sensitive.

:func:`loads` parses config text (quoting, escapes, comments and line
continuations included) and :func:`dumps` renders a model back into the
canonical tab-indented form. Comments are not preserved by a round trip.

Examples
--------
>>> cfg = loads('[remote "github.com/acme/bar"]\\n\\turl = https://x\\n')
>>> cfg.get("remote.github.com/acme/bar.url")
'https://x'
>>> cfg.add("biome.owners", "github.com/acme")
>>> cfg.get_all("biome.owners")
['github.com/acme']

"""

from __future__ import annotations

import dataclasses
import re
import typing as typ

from .errors import ConfigSyntaxError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_SECTION_NAME = re.compile(r"[A-Za-z0-9.-]+")
_KEY_NAME = re.compile(r"[A-Za-z][A-Za-z0-9-]*")
_VALUE_ESCAPES = {"n": "\n", "t": "\t", "b": "\b", "\\": "\\", '"': '"'}
_COMMENT_CHARS = frozenset("#;")


@dataclasses.dataclass(slots=True)
class Option:
    """A single ``key = value`` line; ``value`` is None for a bare key."""

    key: str
    value: str | None

    def matches(self, key: str) -> bool:
        """Return True when this option has ``key`` (case-insensitive)."""
        return self.key.lower() == key.lower()


@dataclasses.dataclass(slots=True)
class _OptionHolder:
    options: list[Option] = dataclasses.field(default_factory=list)

    def has_option(self, key: str) -> bool:
        """Return True when ``key`` is set at least once."""
        return any(option.matches(key) for option in self.options)

    def option(self, key: str) -> str | None:
        """Return the last value of ``key``, git's effective value."""
        values = self.option_all(key)
        return values[-1] if values else None

    def option_all(self, key: str) -> list[str]:
        """Return every value of the repeatable ``key`` in file order."""
        return [
            "true" if option.value is None else option.value
            for option in self.options
            if option.matches(key)
        ]

    def add_option(self, key: str, value: str) -> None:
        """Append another value for ``key``."""
        self.options.append(Option(key, value))

    def set_option(self, key: str, value: str) -> None:
        """Replace every value of ``key`` with the single ``value``."""
        for index, option in enumerate(self.options):
            if option.matches(key):
                option.value = value
                self.options[index + 1 :] = [
                    other
                    for other in self.options[index + 1 :]
                    if not other.matches(key)
                ]
                return
        self.add_option(key, value)

    def remove_option(self, key: str) -> None:
        """Remove every value of ``key``."""
        self.options = [option for option in self.options if not option.matches(key)]


@dataclasses.dataclass(slots=True)
class Subsection(_OptionHolder):
    """A ``[section "name"]`` block."""

    name: str = ""


@dataclasses.dataclass(slots=True)
class Section(_OptionHolder):
    """A ``[section]`` block and the subsections declared under it."""

    name: str = ""
    subsections: list[Subsection] = dataclasses.field(default_factory=list)

    def matches(self, name: str) -> bool:
        """Return True when this section is ``name`` (case-insensitive)."""
        return self.name.lower() == name.lower()

    def has_subsection(self, name: str) -> bool:
        """Return True when the subsection ``name`` exists."""
        return any(sub.name == name for sub in self.subsections)

    def subsection(self, name: str) -> Subsection:
        """Return the subsection ``name``, creating it when missing."""
        for sub in self.subsections:
            if sub.name == name:
                return sub
        sub = Subsection(name=name)
        self.subsections.append(sub)
        return sub

    def remove_subsection(self, name: str) -> None:
        """Remove the subsection ``name`` and all of its options."""
        self.subsections = [sub for sub in self.subsections if sub.name != name]


def split_key(key: str) -> tuple[str, str | None, str]:
    """Split a dotted key into ``(section, subsection, option)``.

    The subsection is everything between the first and last dot, so it may
    itself contain dots.

    Raises
    ------
    ValueError
        If ``key`` has no section part.

    """
    section, dot, rest = key.partition(".")
    if not dot or not section or not rest:
        msg = f"key does not contain a section: {key!r}"
        raise ValueError(msg)
    subsection, dot, option = rest.rpartition(".")
    if not dot:
        return section, None, rest
    if not option:
        msg = f"key does not contain a variable name: {key!r}"
        raise ValueError(msg)
    return section, subsection, option


@dataclasses.dataclass(slots=True)
class GitConfig:
    """Ordered collection of config sections."""

    sections: list[Section] = dataclasses.field(default_factory=list)

    def has_section(self, name: str) -> bool:
        """Return True when the section ``name`` exists."""
        return any(section.matches(name) for section in self.sections)

    def section(self, name: str) -> Section:
        """Return the section ``name``, creating it when missing."""
        for section in self.sections:
            if section.matches(name):
                return section
        section = Section(name=name)
        self.sections.append(section)
        return section

    def remove_section(self, name: str) -> None:
        """Remove the section ``name`` and everything under it."""
        self.sections = [s for s in self.sections if not s.matches(name)]

    def remove_subsection(self, section: str, subsection: str) -> None:
        """Remove one subsection, leaving the rest of the section intact."""
        for candidate in self.sections:
            if candidate.matches(section):
                candidate.remove_subsection(subsection)

    def _holder(self, key: str, *, create: bool) -> tuple[_OptionHolder | None, str]:
        section_name, subsection_name, option = split_key(key)
        if not create and not self.has_section(section_name):
            return None, option
        section = self.section(section_name)
        if subsection_name is None:
            return section, option
        if not create and not section.has_subsection(subsection_name):
            return None, option
        return section.subsection(subsection_name), option

    def get(self, key: str) -> str | None:
        """Return the effective value of the dotted ``key``."""
        holder, option = self._holder(key, create=False)
        return holder.option(option) if holder is not None else None

    def get_all(self, key: str) -> list[str]:
        """Return every value of the dotted ``key``."""
        holder, option = self._holder(key, create=False)
        return holder.option_all(option) if holder is not None else []

    def set(self, key: str, value: str) -> None:
        """Set the dotted ``key`` to exactly one ``value``."""
        holder, option = self._holder(key, create=True)
        typ.cast("_OptionHolder", holder).set_option(option, value)

    def add(self, key: str, value: str) -> None:
        """Append ``value`` to the dotted, repeatable ``key``."""
        holder, option = self._holder(key, create=True)
        typ.cast("_OptionHolder", holder).add_option(option, value)

    def unset_all(self, key: str) -> None:
        """Remove every value of the dotted ``key``."""
        holder, option = self._holder(key, create=False)
        if holder is not None:
            holder.remove_option(option)


class _Parser:
    """Line-oriented parser for git config syntax."""

    def __init__(self, text: str) -> None:
        self._lines = text.removeprefix("\ufeff").splitlines()
        self._index = 0
        self._config = GitConfig()
        self._current: _OptionHolder | None = None

    def parse(self) -> GitConfig:
        while self._index < len(self._lines):
            line = self._lines[self._index]
            self._index += 1
            self._parse_line(line)
        return self._config

    @property
    def _line_no(self) -> int:
        return self._index

    def _parse_line(self, line: str) -> None:
        stripped = line.lstrip()
        if not stripped or stripped[0] in _COMMENT_CHARS:
            return
        if stripped.startswith("["):
            rest = self._parse_header(stripped)
            if rest.strip():
                self._parse_line(rest)
            return
        self._parse_option(stripped)

    def _parse_header(self, text: str) -> str:
        end = self._header_end(text)
        inner = text[1:end]
        name, _, quoted = inner.partition('"')
        name = name.strip()
        if quoted or inner.rstrip().endswith('"'):
            subsection = self._parse_subsection_name(quoted)
            self._start_section(name, subsection)
        elif "." in name:
            # Deprecated [section.subsection] syntax
            section_name, _, subsection = name.partition(".")
            self._start_section(section_name, subsection.lower())
        else:
            self._start_section(name, None)
        return text[end + 1 :]

    def _header_end(self, text: str) -> int:
        in_quotes = False
        escaped = False
        for index, char in enumerate(text[1:], start=1):
            if escaped:
                escaped = False
            elif char == "\\" and in_quotes:
                escaped = True
            elif char == '"':
                in_quotes = not in_quotes
            elif char == "]" and not in_quotes:
                return index
        raise ConfigSyntaxError(self._line_no, "unterminated section header")

    def _parse_subsection_name(self, quoted: str) -> str:
        closing = quoted.rstrip()
        if not closing.endswith('"'):
            raise ConfigSyntaxError(self._line_no, "unterminated subsection name")
        body = closing[:-1]
        chars: list[str] = []
        escaped = False
        for char in body:
            if escaped:
                chars.append(char)
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                raise ConfigSyntaxError(self._line_no, "unescaped quote in subsection")
            else:
                chars.append(char)
        return "".join(chars)

    def _start_section(self, name: str, subsection: str | None) -> None:
        if not _SECTION_NAME.fullmatch(name):
            raise ConfigSyntaxError(self._line_no, f"invalid section name {name!r}")
        section = self._config.section(name)
        self._current = (
            section if subsection is None else section.subsection(subsection)
        )

    def _parse_option(self, text: str) -> None:
        if self._current is None:
            raise ConfigSyntaxError(self._line_no, "option outside of a section")
        match = _KEY_NAME.match(text)
        if match is None:
            raise ConfigSyntaxError(self._line_no, f"invalid key in {text.strip()!r}")
        key = match.group()
        rest = text[match.end() :].lstrip(" \t")
        if not rest or rest[0] in _COMMENT_CHARS:
            self._current.options.append(Option(key, None))
            return
        if rest[0] != "=":
            raise ConfigSyntaxError(self._line_no, f"expected '=' after key {key!r}")
        self._current.options.append(Option(key, self._parse_value(rest[1:])))

    def _parse_value(self, text: str) -> str:
        chars: list[str] = []
        pending_space = 0
        in_quotes = False
        position = 0
        while True:
            if position >= len(text):
                if in_quotes:
                    raise ConfigSyntaxError(self._line_no, "unterminated quoted value")
                return "".join(chars)
            char = text[position]
            position += 1
            if char == "\\":
                if position >= len(text):
                    text = self._continuation()
                    position = 0
                    continue
                escape = text[position]
                position += 1
                if escape not in _VALUE_ESCAPES:
                    raise ConfigSyntaxError(
                        self._line_no, f"invalid escape sequence \\{escape}"
                    )
                chars.extend(" " * pending_space)
                pending_space = 0
                chars.append(_VALUE_ESCAPES[escape])
            elif char == '"':
                in_quotes = not in_quotes
            elif not in_quotes and char in _COMMENT_CHARS:
                return "".join(chars)
            elif not in_quotes and char.isspace():
                if chars:
                    pending_space += 1
            else:
                chars.extend(" " * pending_space)
                pending_space = 0
                chars.append(char)

    def _continuation(self) -> str:
        if self._index >= len(self._lines):
            raise ConfigSyntaxError(self._line_no, "line continuation at end of file")
        line = self._lines[self._index]
        self._index += 1
        return line


def loads(text: str) -> GitConfig:
    """Parse git config ``text`` into a :class:`GitConfig`.

    Raises
    ------
    ConfigSyntaxError
        If the text is not valid git config syntax.

    """
    return _Parser(text).parse()


def _quote_subsection(name: str) -> str:
    return name.replace("\\", "\\\\").replace('"', '\\"')


def _needs_quotes(value: str) -> bool:
    if value != value.strip():
        return True
    return any(char in _COMMENT_CHARS for char in value)


def _encode_value(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\b", "\\b")
    )
    return f'"{escaped}"' if _needs_quotes(value) else escaped


def _encode_options(options: cabc.Iterable[Option]) -> list[str]:
    lines = []
    for option in options:
        if option.value is None:
            lines.append(f"\t{option.key}\n")
        else:
            lines.append(f"\t{option.key} = {_encode_value(option.value)}\n")
    return lines


def dumps(config: GitConfig) -> str:
    """Render ``config`` as git config text.

    Sections without options are only written when they have no
    subsections either; subsections without options are dropped.
    """
    lines: list[str] = []
    for section in config.sections:
        if section.options or not section.subsections:
            lines.append(f"[{section.name}]\n")
            lines.extend(_encode_options(section.options))
        for sub in section.subsections:
            if not sub.options:
                continue
            lines.append(f'[{section.name} "{_quote_subsection(sub.name)}"]\n')
            lines.extend(_encode_options(sub.options))
    return "".join(lines)
