"""Gems bundled into the archive."""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class Dependency:
    name: str
    requirement: Optional[str] = None

    def __str__(self) -> str:
        if self.requirement:
            return f"{self.name} ({self.requirement})"
        return self.name


DependencyLike = Union[str, Dependency, Tuple[str, Optional[str]]]


class DependencySet:
    """Ordered gem list; re-adding a name updates its requirement in place."""

    def __init__(
        self,
        initial: Union["DependencySet", Mapping[str, Optional[str]], Iterable[DependencyLike], None] = None,
    ):
        self._entries: Dict[str, Optional[str]] = {}
        if initial is None:
            return
        if isinstance(initial, Mapping):
            for name, requirement in initial.items():
                self.add(name, requirement)
        else:
            self.extend(initial)

    def add(self, name: str, requirement: Optional[str] = None) -> None:
        self._entries[name] = requirement or None

    def append(self, item: DependencyLike) -> None:
        if isinstance(item, Dependency):
            self.add(item.name, item.requirement)
        elif isinstance(item, str):
            self.add(item)
        else:
            name, requirement = item
            self.add(name, requirement)

    def extend(self, items: Iterable[DependencyLike]) -> None:
        for item in items:
            self.append(item)

    def remove(self, name: str) -> None:
        self._entries.pop(name, None)

    def clear(self) -> None:
        self._entries.clear()

    def names(self) -> List[str]:
        return list(self._entries)

    def __getitem__(self, name: str) -> Optional[str]:
        return self._entries[name]

    def __setitem__(self, name: str, requirement: Optional[str]) -> None:
        self.add(name, requirement)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[Dependency]:
        for name, requirement in self._entries.items():
            yield Dependency(name, requirement)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencySet):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:
        return f"DependencySet({[str(d) for d in self]!r})"
