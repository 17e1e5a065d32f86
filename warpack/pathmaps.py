"""Source-to-archive path rewriting.

A :class:`PathTemplate` understands a small subset of rake's ``pathmap``
syntax::

    %p  full source path            %f  base name
    %n  base name, no extension     %x  extension (with the dot)
    %X  path without extension      %d  directory part
    %%  a literal percent sign

Any token may be prefixed with ``{pattern,replacement}`` to run a regular
expression substitution on its value before it is emitted, e.g.
``%{public/,}p`` drops a leading ``public/`` from the path.
"""

import posixpath
import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, Iterable, List, Literal, Tuple, Union, get_args

from warpack.errors import ConfigError, PathmapError


Category = Literal[
    "public_html",
    "java_libs",
    "java_classes",
    "application",
    "webinf",
    "gemspecs",
    "gems",
]

CATEGORIES: Tuple[str, ...] = get_args(Category)

# Categories whose templates embed the package-install path.
RELOCATABLE_CATEGORIES: Tuple[str, ...] = ("gemspecs", "gems")

_TOKENS = "pfnxXd"

Segment = Union[str, Tuple[str, Tuple[Tuple[re.Pattern, str], ...]]]


def _extname(path: str) -> str:
    return posixpath.splitext(posixpath.basename(path))[1]


def _component(token: str, path: str) -> str:
    if token == "p":
        return path
    if token == "f":
        return posixpath.basename(path)
    if token == "n":
        return posixpath.splitext(posixpath.basename(path))[0]
    if token == "x":
        return _extname(path)
    if token == "X":
        ext = _extname(path)
        return path[: -len(ext)] if ext else path
    # "d"
    return posixpath.dirname(path) or "."


def _compile_substitutions(pattern: str, body: str) -> Tuple[Tuple[re.Pattern, str], ...]:
    pairs = []
    for pair in body.split(";"):
        regex, _, replacement = pair.partition(",")
        try:
            pairs.append((re.compile(regex), replacement))
        except re.error as exc:
            raise PathmapError(
                f"Invalid substitution '{pair}' in pathmap '{pattern}': {exc}"
            ) from exc
    return tuple(pairs)


def _parse(pattern: str) -> Tuple[Segment, ...]:
    segments: List[Segment] = []
    literal: List[str] = []
    i = 0

    while i < len(pattern):
        char = pattern[i]
        if char != "%":
            literal.append(char)
            i += 1
            continue

        i += 1
        if i >= len(pattern):
            raise PathmapError(f"Dangling '%' at end of pathmap '{pattern}'")

        substitutions: Tuple[Tuple[re.Pattern, str], ...] = ()
        if pattern[i] == "{":
            end = pattern.find("}", i)
            if end < 0:
                raise PathmapError(f"Unterminated '%{{' in pathmap '{pattern}'")
            substitutions = _compile_substitutions(pattern, pattern[i + 1 : end])
            i = end + 1
            if i >= len(pattern):
                raise PathmapError(f"Missing token after substitution in pathmap '{pattern}'")

        token = pattern[i]
        i += 1
        if token == "%" and not substitutions:
            literal.append("%")
            continue
        if token not in _TOKENS:
            raise PathmapError(f"Unknown pathmap token '%{token}' in '{pattern}'")

        if literal:
            segments.append("".join(literal))
            literal = []
        segments.append((token, substitutions))

    if literal:
        segments.append("".join(literal))
    return tuple(segments)


@dataclass(frozen=True)
class PathTemplate:
    pattern: str
    _segments: Tuple[Segment, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_segments", _parse(self.pattern))

    def apply(self, source: Union[str, PurePath]) -> str:
        path = source.as_posix() if isinstance(source, PurePath) else str(source)
        parts: List[str] = []
        for segment in self._segments:
            if isinstance(segment, str):
                parts.append(segment)
                continue
            token, substitutions = segment
            value = _component(token, path)
            for regex, replacement in substitutions:
                value = regex.sub(replacement, value, count=1)
            parts.append(value)
        return "".join(parts)

    def __str__(self) -> str:
        return self.pattern


def _archive_relative(prefix: str) -> str:
    return prefix.lstrip("/")


def validate_archive_path(path: str) -> str:
    """Raise :class:`ConfigError` unless ``path`` can be used as an in-archive directory."""
    if not isinstance(path, str) or not path.strip():
        raise ConfigError("Package path must not be empty")
    if path != path.strip():
        raise ConfigError(f"Package path must not have surrounding whitespace: '{path}'")
    if "%" in path:
        raise ConfigError(f"Package path must not contain '%': '{path}'")
    if "\\" in path:
        raise ConfigError(f"Package path must use '/' separators: '{path}'")
    if ".." in path.split("/"):
        raise ConfigError(f"Package path must not contain '..': '{path}'")
    if not _archive_relative(path):
        raise ConfigError("Package path must not be the archive root")
    return path


class PathmapSet:
    """Category-keyed template lists.

    The lists are owned for the life of the set and only ever mutated in
    place, so a caller holding ``templates("gems")`` sees relocations.
    """

    def __init__(self, mapping: Dict[str, Iterable[str]]):
        self._templates: Dict[str, List[PathTemplate]] = {}
        for category in CATEGORIES:
            patterns = mapping.get(category)
            if not patterns:
                raise PathmapError(f"No pathmap given for category '{category}'")
            self._templates[category] = [_as_template(p) for p in patterns]

        unknown = set(mapping) - set(CATEGORIES)
        if unknown:
            raise PathmapError(
                "Unknown pathmap categories: " + ", ".join(sorted(unknown))
            )

    def categories(self) -> Tuple[str, ...]:
        return CATEGORIES

    def templates(self, category: str) -> List[PathTemplate]:
        try:
            return self._templates[category]
        except KeyError:
            raise PathmapError(f"Unknown pathmap category '{category}'") from None

    def apply(self, category: str, source: Union[str, PurePath]) -> str:
        return self.templates(category)[0].apply(source)

    def apply_all(self, category: str, source: Union[str, PurePath]) -> List[str]:
        return [template.apply(source) for template in self.templates(category)]

    def replace(self, category: str, patterns: Iterable[str]) -> None:
        templates = [_as_template(p) for p in patterns]
        if not templates:
            raise PathmapError(f"Pathmap category '{category}' needs at least one template")
        self.templates(category)[:] = templates

    def relocate(self, old_prefix: str, new_prefix: str) -> None:
        validate_archive_path(new_prefix)
        old = _archive_relative(old_prefix)
        new = _archive_relative(new_prefix)
        if old == new:
            return

        for category in RELOCATABLE_CATEGORIES:
            templates = self._templates[category]
            for index, template in enumerate(templates):
                if old in template.pattern:
                    templates[index] = PathTemplate(template.pattern.replace(old, new, 1))

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            category: [t.pattern for t in templates]
            for category, templates in self._templates.items()
        }

    def __repr__(self) -> str:
        return f"PathmapSet({self.to_dict()!r})"


def _as_template(pattern: Union[str, PathTemplate]) -> PathTemplate:
    if isinstance(pattern, PathTemplate):
        return pattern
    return PathTemplate(pattern)


def default_pathmaps(package_path: str) -> PathmapSet:
    relative = _archive_relative(package_path)
    return PathmapSet(
        {
            "public_html": ["%{public/,}p"],
            "java_libs": ["WEB-INF/lib/%f"],
            "java_classes": ["WEB-INF/classes/%p"],
            "application": ["WEB-INF/%p"],
            "webinf": ["WEB-INF/%{.erb$,}f"],
            "gemspecs": [f"{relative}/specifications/%f"],
            "gems": [f"{relative}/gems/%p"],
        }
    )
