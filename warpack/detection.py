"""Framework auto-detection.

Probes run in a fixed order (Rails, Merb, Rack) and the first one that
applies wins. A probe that raises is reported as an ``error`` result and the
cascade moves on to the next probe; detection never aborts a build.
"""

import logging
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    List,
    Literal,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

from warpack.errors import DetectionError

if TYPE_CHECKING:
    from warpack.config import BuildConfig


logger = logging.getLogger(__name__)

ProbeStatus = Literal["not_applicable", "applied", "error"]


@dataclass(frozen=True)
class ProbeResult:
    probe: str
    status: ProbeStatus
    kind: Optional[str] = None
    mutations: Tuple[str, ...] = ()
    error: Optional[DetectionError] = None

    @property
    def applied(self) -> bool:
        return self.status == "applied"


@dataclass
class FrameworkInfo:
    """What an activated framework environment reports about the app."""

    version: Optional[str] = None
    vendored: bool = False
    dependencies: Optional[List[Tuple[str, Optional[str]]]] = None
    threadsafe: bool = False


EnvironmentHook = Callable[[], Optional[FrameworkInfo]]


class Probe(Protocol):
    name: str

    def probe(self, config: "BuildConfig") -> ProbeResult:
        ...


def _not_applicable(name: str) -> ProbeResult:
    return ProbeResult(probe=name, status="not_applicable")


@dataclass
class _HookProbe:
    hook: Optional[EnvironmentHook] = None
    name: str = field(default="", init=False)

    def _activate(self) -> Optional[FrameworkInfo]:
        if self.hook is None:
            return None
        return self.hook()


def _gem_pairs(entries: Sequence[Any]) -> List[Tuple[str, Optional[str]]]:
    pairs: List[Tuple[str, Optional[str]]] = []
    for entry in entries:
        if isinstance(entry, str):
            pairs.append((entry, None))
        elif isinstance(entry, (tuple, list)) and len(entry) == 2 and isinstance(entry[0], str):
            pairs.append((entry[0], entry[1]))
        else:
            raise DetectionError(f"Unrecognized dependency entry: {entry!r}")
    return pairs


@dataclass
class RailsProbe(_HookProbe):
    name: str = field(default="rails", init=False)

    def probe(self, config: "BuildConfig") -> ProbeResult:
        info = self._activate()
        if info is None:
            return _not_applicable(self.name)

        root = config.project_root
        vendor_gems = root / "vendor" / "gems"
        gems: List[Tuple[str, Optional[str]]] = []

        vendored = info.vendored or (root / "vendor" / "rails").is_dir()
        if not vendored and info.version:
            gems.append(("rails", info.version))
        for name, requirement in _gem_pairs(info.dependencies or []):
            if vendor_gems.is_dir() and any(vendor_gems.glob(f"{name}*")):
                continue
            gems.append((name, requirement))

        mutations: List[str] = []
        if (root / "tmp").is_dir() and "tmp" not in config.dirs:
            config.dirs.append("tmp")
            mutations.append("dirs: tmp")

        config.webxml.set("booter", "rails")
        mutations.append("booter: rails")

        for name, requirement in gems:
            config.dependencies.add(name, requirement)
            mutations.append(f"dependency: {name}")

        if info.threadsafe:
            config.webxml.set("jruby.max.runtimes", 1)
            mutations.append("jruby.max.runtimes: 1")

        return ProbeResult(
            probe=self.name, status="applied", kind="rails", mutations=tuple(mutations)
        )


@dataclass
class MerbProbe(_HookProbe):
    name: str = field(default="merb", init=False)

    def probe(self, config: "BuildConfig") -> ProbeResult:
        info = self._activate()
        if info is None:
            return _not_applicable(self.name)

        if info.dependencies is None:
            logger.warning(
                "unable to auto-detect Merb dependencies; upgrade to Merb 1.0 or greater"
            )
            gems: List[Tuple[str, Optional[str]]] = []
        else:
            gems = _gem_pairs(info.dependencies)

        config.webxml.set("booter", "merb")
        mutations = ["booter: merb"]
        for name, requirement in gems:
            config.dependencies.add(name, requirement)
            mutations.append(f"dependency: {name}")

        return ProbeResult(
            probe=self.name, status="applied", kind="merb", mutations=tuple(mutations)
        )


class RackupProbe:
    name = "rack"
    rackup_file = "config.ru"

    def probe(self, config: "BuildConfig") -> ProbeResult:
        path = config.project_root / self.rackup_file
        if not path.is_file():
            return _not_applicable(self.name)

        config.webxml.set("booter", "rack")
        config.webxml.set("rackup", path.read_text())
        return ProbeResult(
            probe=self.name,
            status="applied",
            kind="rack",
            mutations=("booter: rack", "rackup"),
        )


class CallableProbe:
    """Adapts a ``(config) -> bool`` function to the probe interface."""

    def __init__(self, func: Callable[["BuildConfig"], bool], name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "probe")

    def probe(self, config: "BuildConfig") -> ProbeResult:
        if not self.func(config):
            return _not_applicable(self.name)
        kind = config.webxml.get("booter")
        return ProbeResult(
            probe=self.name,
            status="applied",
            kind=kind if isinstance(kind, str) else None,
        )


ProbeLike = Union[Probe, Callable[["BuildConfig"], bool]]


def default_probes(
    *,
    rails_hook: Optional[EnvironmentHook] = None,
    merb_hook: Optional[EnvironmentHook] = None,
) -> List[Probe]:
    return [RailsProbe(rails_hook), MerbProbe(merb_hook), RackupProbe()]


class _Checkpoint:
    """The parts of a config a probe may touch, restorable in place."""

    def __init__(self, config: "BuildConfig"):
        self.config = config
        self.webxml = config.webxml.snapshot()
        self.dependencies = list(config.dependencies)
        self.dirs = list(config.dirs)

    def restore(self) -> None:
        self.config.webxml.restore(self.webxml)
        self.config.dependencies.clear()
        self.config.dependencies.extend(self.dependencies)
        self.config.dirs[:] = self.dirs


def run_probe(probe: ProbeLike, config: "BuildConfig") -> ProbeResult:
    """Run one probe; anything short of ``applied`` leaves ``config`` as it was."""
    if not hasattr(probe, "probe"):
        probe = CallableProbe(probe)

    checkpoint = _Checkpoint(config)
    try:
        result = probe.probe(config)
    except Exception as exc:
        checkpoint.restore()
        error = DetectionError(f"Probe '{probe.name}' failed: {exc}")
        error.__cause__ = exc
        return ProbeResult(probe=probe.name, status="error", error=error)

    if not result.applied:
        checkpoint.restore()
    return result


def run_detection(
    config: "BuildConfig",
    probes: Sequence[ProbeLike],
) -> Optional[ProbeResult]:
    for probe in probes:
        result = run_probe(probe, config)

        if result.status == "error":
            logger.warning("%s; treating as not applicable", result.error)
            continue

        if result.applied:
            logger.debug(
                "Detected %s (%s)",
                result.kind or result.probe,
                ", ".join(result.mutations) or "no changes",
            )
            return result

        logger.debug("Probe %s not applicable", result.probe)

    return None
