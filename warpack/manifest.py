import logging
import re
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from warpack.errors import DependencyError


logger = logging.getLogger(__name__)

MANIFEST_FILE = "Gemfile"
LOCKFILE = "Gemfile.lock"

_SPEC_LINE = re.compile(r"^    (?P<name>[^\s(]+) \((?P<version>[^)]+)\)$")


class DependencyManifest(Protocol):
    def write_environment_file(self, package_path: str, *, suppress_reload: bool) -> None:
        ...

    def resolved_dependencies(self) -> Sequence[Tuple[str, str]]:
        ...


def find_manifest(project_root: Path) -> Optional[Path]:
    path = project_root / MANIFEST_FILE
    if path.is_file():
        return path
    return None


class LockfileManifest:
    """Reads the resolved gem set from ``Gemfile.lock``.

    The environment file is rendered to :attr:`environment` and left for
    the archive writer to place.
    """

    def __init__(self, project_root: Path):
        self.project_root = project_root
        self.lockfile = project_root / LOCKFILE
        self.environment: Optional[str] = None
        self._specs: Optional[List[Tuple[str, str]]] = None

    def _load(self) -> List[Tuple[str, str]]:
        try:
            content = self.lockfile.read_text()
        except OSError as exc:
            raise DependencyError(
                f"Failed to read lockfile: {self.lockfile} (run `bundle lock` first)"
            ) from exc

        specs: List[Tuple[str, str]] = []
        in_specs = False
        for line in content.splitlines():
            if line.strip() == "specs:":
                in_specs = True
                continue
            if not line.startswith("  "):
                in_specs = False
                continue
            if not in_specs:
                continue
            match = _SPEC_LINE.match(line)
            if match:
                specs.append((match.group("name"), match.group("version")))

        logger.debug("Loaded %d specs from %s", len(specs), self.lockfile)
        return specs

    def write_environment_file(self, package_path: str, *, suppress_reload: bool) -> None:
        if self._specs is None or not suppress_reload:
            self._specs = self._load()

        relative = package_path.lstrip("/")
        self.environment = "\n".join(
            [
                "# Generated by warpack; loaded by the archive at boot.",
                f"ENV['GEM_PATH'] = File.expand_path('../../{relative}', __FILE__)",
                "ENV['BUNDLE_WITHOUT'] = 'development:test'",
                "",
            ]
        )

    def resolved_dependencies(self) -> Sequence[Tuple[str, str]]:
        if self._specs is None:
            self._specs = self._load()
        return list(self._specs)
