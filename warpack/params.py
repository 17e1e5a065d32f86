"""Deployment descriptor parameters.

``ParamTree`` holds the values that end up as ``<context-param>`` entries in
``web.xml``. Nodes are created on first access, so ``tree.get("jruby.max.runtimes")``
is safe on a fresh tree; ``serialize()`` flattens whatever was actually set.
"""

import copy
import os
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from warpack.errors import ParamConflictError


RACK_LISTENER = "org.jruby.rack.RackServletContextListener"
MERB_LISTENER = "org.jruby.rack.merb.MerbServletContextListener"
RAILS_LISTENER = "org.jruby.rack.rails.RailsServletContextListener"

IGNORED_KEY = "ignored"

_HTML_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#39;",
    }
)

ParamPath = Union[str, Sequence[str]]


def escape_html(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        value = "true" if value else "false"
    elif isinstance(value, (list, tuple, set, frozenset)):
        value = ", ".join(str(v) for v in value)
    return str(value).translate(_HTML_ESCAPES)


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


UNSET = _Unset()


class ParamTree:
    def __init__(self, key: str = "webxml", *, _root: Optional["ParamTree"] = None):
        self.key = key
        self._root = _root or self
        self._value: Any = UNSET
        self._children: Dict[str, "ParamTree"] = {}

    # -- structure ---------------------------------------------------------

    @property
    def is_leaf(self) -> bool:
        return self._value is not UNSET

    @property
    def is_empty(self) -> bool:
        return self._value is UNSET and not self._children

    @property
    def value(self) -> Any:
        return None if self._value is UNSET else self._value

    def keys(self) -> List[str]:
        return list(self._children)

    def _split(self, path: ParamPath) -> List[str]:
        if isinstance(path, str):
            segments = path.split(".")
        else:
            segments = list(path)

        if not segments or any(not segment for segment in segments):
            raise ParamConflictError(f"Invalid parameter path: {path!r}")

        # Paths may be written relative to the root's own name ("webxml.rails.env").
        if self is self._root and len(segments) > 1 and segments[0] == self.key:
            segments = segments[1:]
        return segments

    def _child(self, segment: str, trail: List[str]) -> "ParamTree":
        if self.is_leaf:
            raise ParamConflictError(
                f"Cannot read '{'.'.join(trail + [segment])}': "
                f"'{'.'.join(trail) or self.key}' holds the value {self._value!r}"
            )
        node = self._children.get(segment)
        if node is None:
            node = ParamTree(segment, _root=self._root)
            self._children[segment] = node
        return node

    def node(self, path: ParamPath) -> "ParamTree":
        """Return the node at ``path``, creating empty nodes along the way."""
        node = self
        trail: List[str] = []
        for segment in self._split(path):
            node = node._child(segment, trail)
            trail.append(segment)
        return node

    # -- access ------------------------------------------------------------

    def get(self, path: ParamPath) -> Any:
        node = self.node(path)
        if node.is_leaf:
            return node._value
        return node

    def set(self, path: ParamPath, value: Any) -> None:
        node = self
        for segment in self._split(path):
            if node.is_leaf:
                # Writing below a scalar replaces it.
                node._value = UNSET
            node = node._child(segment, [])
        node._children = {}
        node._value = value

    def unset(self, path: ParamPath) -> None:
        segments = self._split(path)
        node = self
        for segment in segments[:-1]:
            node = node._children.get(segment)
            if node is None or node.is_leaf:
                return
        node._children.pop(segments[-1], None)

    def __contains__(self, path: ParamPath) -> bool:
        node = self
        for segment in self._split(path):
            if node.is_leaf:
                return False
            node = node._children.get(segment)
            if node is None:
                return False
        return not node.is_empty

    def __getitem__(self, path: ParamPath) -> Any:
        return self.get(path)

    def __setitem__(self, path: ParamPath, value: Any) -> None:
        self.set(path, value)

    def __iter__(self) -> Iterator[str]:
        return iter(self._children)

    def snapshot(self) -> "ParamTree":
        """Return a detached copy of the whole tree."""
        return copy.deepcopy(self._root)

    def restore(self, snapshot: "ParamTree") -> None:
        """Put the tree back to ``snapshot`` in place, keeping this root object."""
        root = self._root
        copied = copy.deepcopy(snapshot)
        root._value = copied._value
        root._children = copied._children
        root._adopt(root)

    def _adopt(self, root: "ParamTree") -> None:
        self._root = root
        for child in self._children.values():
            child._adopt(root)

    # -- descriptor output -------------------------------------------------

    @property
    def ignored(self) -> Iterable[str]:
        node = self._root._children.get(IGNORED_KEY)
        if node is None or not node.is_leaf or node._value is None:
            return frozenset()
        value = node._value
        if isinstance(value, str):
            return frozenset([value])
        return frozenset(str(v) for v in value)

    def _flatten(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for key, child in self._children.items():
            escaped_key = escape_html(key)
            if child.is_leaf:
                params[escaped_key] = escape_html(child._value)
                continue
            for nested_key, nested_value in child._flatten().items():
                params[f"{escaped_key}.{nested_key}"] = nested_value
        return params

    def serialize(self) -> Dict[str, str]:
        excluded = {IGNORED_KEY, *self.ignored}
        return {
            key: value
            for key, value in self._flatten().items()
            if key.rsplit(".", 1)[-1] not in excluded
        }

    def servlet_context_listener(self) -> str:
        booter = self._root._children.get("booter")
        kind = booter._value if booter is not None and booter.is_leaf else None
        if kind == "rack":
            return RACK_LISTENER
        if kind == "merb":
            return MERB_LISTENER
        return RAILS_LISTENER

    def __str__(self) -> str:
        if self.is_leaf:
            return str(self._value)
        return f"No value for '{self.key}' found"

    def __repr__(self) -> str:
        if self.is_leaf:
            return f"ParamTree({self.key!r}, value={self._value!r})"
        return f"ParamTree({self.key!r}, keys={self.keys()!r})"


def default_webxml(environ: Optional[Dict[str, str]] = None) -> ParamTree:
    env = os.environ if environ is None else environ
    tree = ParamTree("webxml")
    tree.set("rails.env", env.get("RAILS_ENV") or "production")
    tree.set("public.root", "/")
    tree.set("jndi", None)
    tree.set(IGNORED_KEY, {"jndi", "booter"})
    return tree
