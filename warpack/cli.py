import sys
from pathlib import Path
from typing import List, Optional

import typer

from warpack.config import BuildConfig
from warpack.errors import WarpackError
from warpack.logger import setup_logger
from warpack.manifest import LockfileManifest
from warpack.overrides import find_override_file, override_from_file
from warpack.pathmaps import CATEGORIES


app = typer.Typer(
    name="warpack",
    help="warpack: resolve the layout of a Ruby web application archive",
    add_completion=False,
)

ProjectRootOption = typer.Option(
    Path("."),
    "--project-root",
    "-C",
    help="Root directory of the web application",
)
PackagePathOption = typer.Option(
    None,
    "--package-path",
    help="Directory inside the archive that holds bundled gems",
)
DetectOption = typer.Option(
    True,
    "--detect/--no-detect",
    help="Auto-detect Rails, Merb or Rack applications",
)
KeepLogsOption = typer.Option(
    False,
    "--keep-logs",
    help="Do not exclude **/*.log files",
)
OverridesOption = typer.Option(
    None,
    "--overrides",
    help="Override file to use instead of config/warpack.toml",
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log warnings and errors",
    ),
):

    setup_logger(verbose=verbose, quiet=quiet)


def _load_config(
    project_root: Path,
    package_path: Optional[str],
    detect: bool,
    keep_logs: bool,
    overrides: Optional[Path],
) -> BuildConfig:
    root = project_root.resolve()
    override_file = find_override_file(root, overrides)
    file_override = override_from_file(override_file) if override_file else None

    def override(config: BuildConfig) -> None:
        if file_override is not None:
            file_override(config)
        if package_path is not None:
            config.package_path = package_path
        if keep_logs:
            config.exclude_logs = False

    return BuildConfig.initialize(
        root,
        override=override,
        manifest=LockfileManifest(root),
        framework_detection=detect,
    )


def _fail(exc: WarpackError) -> None:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    sys.exit(exc.exit_code)


@app.command()
def config(
    project_root: Path = ProjectRootOption,
    package_path: Optional[str] = PackagePathOption,
    detect: bool = DetectOption,
    keep_logs: bool = KeepLogsOption,
    overrides: Optional[Path] = OverridesOption,
):
    """Print the resolved archive configuration."""

    try:
        build_config = _load_config(project_root, package_path, detect, keep_logs, overrides)
    except WarpackError as exc:
        _fail(exc)
        return

    summary = build_config.summary()
    pathmaps = summary.pop("pathmaps")

    for key, value in summary.items():
        if isinstance(value, list):
            typer.echo(f"{key}:")
            for item in value:
                typer.echo(f"  - {item}")
        else:
            typer.echo(f"{key}: {'' if value is None else value}")

    typer.echo("pathmaps:")
    for category, templates in pathmaps.items():
        typer.echo(f"  {category}: {', '.join(templates)}")


@app.command()
def params(
    project_root: Path = ProjectRootOption,
    package_path: Optional[str] = PackagePathOption,
    detect: bool = DetectOption,
    keep_logs: bool = KeepLogsOption,
    overrides: Optional[Path] = OverridesOption,
):
    """Print the web.xml context parameters."""

    try:
        build_config = _load_config(project_root, package_path, detect, keep_logs, overrides)
    except WarpackError as exc:
        _fail(exc)
        return

    for key, value in sorted(build_config.webxml.serialize().items()):
        typer.echo(f"{key} = {value}")
    typer.echo(f"listener = {build_config.servlet_context_listener()}")


@app.command()
def pathmap(
    category: str = typer.Argument(..., help="One of: " + ", ".join(CATEGORIES)),
    paths: List[str] = typer.Argument(..., help="Source paths to map"),
    project_root: Path = ProjectRootOption,
    package_path: Optional[str] = PackagePathOption,
    overrides: Optional[Path] = OverridesOption,
):
    """Show where source paths end up inside the archive."""

    try:
        build_config = _load_config(project_root, package_path, False, False, overrides)
        for path in paths:
            for destination in build_config.pathmaps.apply_all(category, path):
                typer.echo(f"{path} -> {destination}")
    except WarpackError as exc:
        _fail(exc)


def run_cli() -> None:
    app()


if __name__ == "__main__":
    run_cli()
