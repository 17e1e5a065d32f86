import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, PrivateAttr, ValidationInfo, field_validator

from warpack.dependencies import DependencySet
from warpack.detection import ProbeLike, ProbeResult, default_probes, run_detection
from warpack.errors import ConfigError, DependencyError, WarpackError
from warpack.manifest import DependencyManifest, find_manifest
from warpack.params import ParamTree, default_webxml, escape_html
from warpack.pathmaps import PathmapSet, default_pathmaps, validate_archive_path


logger = logging.getLogger(__name__)

TOP_DIRS = ("app", "config", "lib", "log", "vendor")
DEFAULT_PACKAGE_PATH = "/WEB-INF/gems"
TOOL_HOME = Path(__file__).resolve().parent
DEFAULT_WEBXML_TEMPLATE = "web.xml.erb"

Override = Callable[["BuildConfig"], None]


class BuildConfig(BaseModel):
    project_root: Path = Field(
        default_factory=Path.cwd,
        description="Root directory of the web application",
    )
    tool_home: Path = Field(
        default=TOOL_HOME,
        description="Directory warpack itself is installed in",
    )

    archive_name: Optional[str] = Field(
        default=None,
        validate_default=True,
        description="Name of the archive without the .war extension; defaults to the project directory name",
    )
    default_package_path: str = Field(
        default=DEFAULT_PACKAGE_PATH,
        description="Built-in package path the default pathmaps were generated for",
    )
    package_path: str = Field(
        default=DEFAULT_PACKAGE_PATH,
        description="Directory inside the archive that holds bundled gems",
    )

    include_dependencies: bool = Field(
        default=True,
        description="Bundle the dependencies of each listed gem as well",
    )
    exclude_logs: bool = Field(
        default=True,
        description="Exclude **/*.log files from the archive",
    )
    use_dependency_manager: bool = Field(
        default=True,
        description="Take the gem list from the Gemfile when one is present",
    )

    features: List[str] = Field(default_factory=list)
    autodeploy_dir: Optional[Path] = Field(
        default=None,
        description="Directory the archive is written to; defaults to the project root",
    )
    manifest_file: Optional[str] = Field(
        default=None,
        description="MANIFEST.MF template to use",
    )

    dirs: List[str] = Field(default_factory=list)
    includes: List[str] = Field(default_factory=list)
    excludes: List[str] = Field(default_factory=list)
    java_libs: List[str] = Field(default_factory=list)
    java_classes: List[str] = Field(default_factory=list)
    public_html: List[str] = Field(default_factory=list)
    webinf_files: List[str] = Field(default_factory=list)

    pathmaps: PathmapSet = Field(
        default_factory=lambda: default_pathmaps(DEFAULT_PACKAGE_PATH)
    )
    webxml: ParamTree = Field(default_factory=default_webxml)
    dependencies: DependencySet = Field(default_factory=DependencySet)

    _detection: Optional[ProbeResult] = PrivateAttr(default=None)

    @field_validator("project_root")
    @classmethod
    def validate_project_root(cls, value: Path) -> Path:
        if not value.exists():
            raise ConfigError(f"Project root does not exist: {value}")
        if not value.is_dir():
            raise ConfigError(f"Project root is not a directory: {value}")
        return value

    @field_validator("archive_name")
    @classmethod
    def validate_archive_name(cls, value: Optional[str], info: ValidationInfo) -> str:
        if value is None:
            root = info.data.get("project_root") or Path.cwd()
            value = root.resolve().name
        if not value:
            raise ConfigError("Archive name cannot be empty")
        if "/" in value or "\\" in value:
            raise ConfigError("Archive name must not contain path separators")
        return value

    @field_validator("package_path", "default_package_path")
    @classmethod
    def validate_package_path(cls, value: str) -> str:
        return validate_archive_path(value)

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_dependencies(cls, value: Any) -> DependencySet:
        if isinstance(value, DependencySet):
            return value
        return DependencySet(value)

    @property
    def relative_package_path(self) -> str:
        return self.package_path.lstrip("/")

    @property
    def archive_file(self) -> str:
        return f"{self.archive_name}.war"

    @property
    def detection(self) -> Optional[ProbeResult]:
        return self._detection

    def servlet_context_listener(self) -> str:
        return self.webxml.servlet_context_listener()

    def descriptor_bindings(self) -> Dict[str, Any]:
        """Names the bundled web.xml.erb template is rendered with.

        Values are already escaped for XML.
        """
        jndi = self.webxml.get("jndi") if "jndi" in self.webxml else None
        if jndi is None or isinstance(jndi, ParamTree):
            resources: List[str] = []
        elif isinstance(jndi, (list, tuple, set, frozenset)):
            resources = [escape_html(name) for name in jndi]
        else:
            resources = [escape_html(jndi)]
        return {
            "context_params": self.webxml.serialize(),
            "servlet_context_listener": self.servlet_context_listener(),
            "jndi": resources,
        }

    @classmethod
    def initialize(
        cls,
        project_root: Optional[Path] = None,
        *,
        override: Optional[Override] = None,
        probes: Optional[Sequence[ProbeLike]] = None,
        manifest: Optional[DependencyManifest] = None,
        framework_detection: bool = True,
        default_package_path: str = DEFAULT_PACKAGE_PATH,
        tool_home: Path = TOOL_HOME,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BuildConfig":
        root = Path(project_root or Path.cwd()).resolve()

        config = cls(
            project_root=root,
            tool_home=tool_home,
            default_package_path=default_package_path,
            package_path=default_package_path,
            dirs=[d for d in TOP_DIRS if (root / d).is_dir()],
            java_libs=["lib/**/*.jar"],
            public_html=["public/**/*"],
            webinf_files=[_default_webinf_file(root, tool_home)],
            pathmaps=default_pathmaps(default_package_path),
            webxml=default_webxml(environ),
        )
        logger.debug("Seeded configuration for %s", root)

        if framework_detection:
            config._detection = run_detection(
                config, default_probes() if probes is None else probes
            )

        if override is not None:
            config._apply_override(override)

        config._update_package_path()
        config._resolve_manifest_dependencies(manifest)

        config.excludes.extend(config._tool_excludes())
        if config.exclude_logs:
            config.excludes.append("**/*.log")

        return config

    def _apply_override(self, override: Override) -> None:
        try:
            override(self)
        except WarpackError:
            raise
        except Exception as exc:
            raise ConfigError(f"Configuration override failed: {exc}") from exc

    def _update_package_path(self) -> None:
        if self.package_path == self.default_package_path:
            return

        if not self.package_path.startswith("/"):
            self.package_path = f"/{self.package_path}"

        logger.debug(
            "Relocating gems from %s to %s", self.default_package_path, self.package_path
        )
        self.pathmaps.relocate(self.default_package_path, self.package_path)
        self.webxml.set("gem.path", self.package_path)

    def _resolve_manifest_dependencies(
        self, manifest: Optional[DependencyManifest]
    ) -> None:
        marker = find_manifest(self.project_root)
        if not (self.use_dependency_manager and marker and manifest is not None):
            if self.use_dependency_manager:
                logger.debug("No dependency manifest in use; keeping configured gems")
            self.use_dependency_manager = False
            return

        self.dependencies.clear()
        # The manifest tracks transitive dependencies itself.
        self.include_dependencies = False

        try:
            manifest.write_environment_file(self.package_path, suppress_reload=True)
            resolved = list(manifest.resolved_dependencies())
        except DependencyError:
            raise
        except Exception as exc:
            raise DependencyError(
                f"Failed to resolve dependencies from {marker}: {exc}"
            ) from exc

        for name, version in resolved:
            self.dependencies.add(name, version)
        logger.debug("Resolved %d gems from %s", len(resolved), marker)

    def _tool_excludes(self) -> List[str]:
        tool = self.tool_home.resolve()
        try:
            relative = tool.relative_to(self.project_root.resolve())
        except ValueError:
            return []
        if relative == Path("."):
            return []
        return [relative.as_posix()]

    def summary(self) -> Dict[str, Any]:
        detection = self._detection
        return {
            "archive": self.archive_file,
            "project_root": str(self.project_root),
            "booter": self.webxml.get("booter") if "booter" in self.webxml else None,
            "detected": detection.kind if detection else None,
            "package_path": self.package_path,
            "include_dependencies": self.include_dependencies,
            "use_dependency_manager": self.use_dependency_manager,
            "dirs": list(self.dirs),
            "includes": list(self.includes),
            "excludes": list(self.excludes),
            "java_libs": list(self.java_libs),
            "java_classes": list(self.java_classes),
            "public_html": list(self.public_html),
            "webinf_files": list(self.webinf_files),
            "dependencies": [str(d) for d in self.dependencies],
            "pathmaps": self.pathmaps.to_dict(),
        }

    class Config:
        arbitrary_types_allowed = True
        validate_assignment = True


def _default_webinf_file(project_root: Path, tool_home: Path) -> str:
    for candidate in ("config/web.xml", "config/web.xml.erb"):
        if (project_root / candidate).is_file():
            return candidate
    return str(tool_home / DEFAULT_WEBXML_TEMPLATE)
