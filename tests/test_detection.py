import logging

from warpack.config import BuildConfig
from warpack.detection import (
    FrameworkInfo,
    MerbProbe,
    ProbeResult,
    RackupProbe,
    RailsProbe,
    run_detection,
    run_probe,
)


def _config(root):
    return BuildConfig.initialize(root, framework_detection=False)


class RecordingProbe:
    def __init__(self, name, applies, booter=None):
        self.name = name
        self.applies = applies
        self.booter = booter
        self.calls = 0

    def probe(self, config):
        self.calls += 1
        if not self.applies:
            return ProbeResult(probe=self.name, status="not_applicable")
        config.webxml.set("booter", self.booter)
        return ProbeResult(probe=self.name, status="applied", kind=self.booter)


def test_cascade_stops_at_first_success(project):
    """Verify later probes are never run once one applies."""
    config = _config(project)
    a = RecordingProbe("a", True, "rails")
    b = RecordingProbe("b", True, "merb")
    c = RecordingProbe("c", True, "rack")

    result = run_detection(config, [a, b, c])

    assert result.kind == "rails"
    assert (a.calls, b.calls, c.calls) == (1, 0, 0)
    assert config.webxml.get("booter") == "rails"


def test_cascade_falls_through_to_later_probe(project):
    """Verify a non-applicable probe hands over to the next."""
    config = _config(project)
    a = RecordingProbe("a", False)
    b = RecordingProbe("b", True, "merb")

    result = run_detection(config, [a, b])

    assert result.probe == "b"
    assert config.webxml.get("booter") == "merb"


def test_cascade_without_match_leaves_booter_unset(project):
    """Verify nothing is detected when no probe applies."""
    config = _config(project)
    assert run_detection(config, [RecordingProbe("a", False)]) is None
    assert "booter" not in config.webxml


def test_probe_errors_are_downgraded(project, caplog):
    """Verify a failing probe is logged and skipped."""
    config = _config(project)

    def broken_hook():
        raise RuntimeError("environment task exploded")

    with caplog.at_level(logging.WARNING, logger="warpack.detection"):
        result = run_detection(config, [RailsProbe(broken_hook), RackupProbe()])

    assert result is None
    assert "environment task exploded" in caplog.text

    failed = run_probe(RailsProbe(broken_hook), config)
    assert failed.status == "error"
    assert isinstance(failed.error.__cause__, RuntimeError)


def test_plain_callables_are_probes(project):
    """Verify a bool-returning function can take part in the cascade."""
    config = _config(project)

    def sinatra(cfg):
        cfg.webxml.set("booter", "rack")
        return True

    result = run_detection(config, [lambda cfg: False, sinatra])
    assert result.probe == "sinatra"
    assert result.kind == "rack"


def test_rails_probe_without_hook_is_not_applicable(project):
    """Verify the Rails probe needs an environment hook."""
    config = _config(project)
    assert run_probe(RailsProbe(), config).status == "not_applicable"
    assert run_probe(RailsProbe(lambda: None), config).status == "not_applicable"


def test_rails_probe_mutations(rails_project):
    """Verify the Rails probe records runtime dirs, gems and threading."""
    (rails_project / "vendor" / "gems" / "haml-2.2").mkdir(parents=True)
    config = _config(rails_project)
    info = FrameworkInfo(
        version="2.3.5",
        dependencies=[("haml", ">= 2.0"), ("json_pure", None)],
        threadsafe=True,
    )

    result = run_probe(RailsProbe(lambda: info), config)

    assert result.applied and result.kind == "rails"
    assert "tmp" in config.dirs
    assert config.webxml.get("booter") == "rails"
    assert config.dependencies.names() == ["rails", "json_pure"]
    assert config.dependencies["rails"] == "2.3.5"
    assert config.webxml.get("jruby.max.runtimes") == 1


def test_rails_probe_skips_vendored_rails(rails_project):
    """Verify vendored Rails is not added as a gem."""
    (rails_project / "vendor" / "rails").mkdir(parents=True)
    config = _config(rails_project)

    run_probe(RailsProbe(lambda: FrameworkInfo(version="2.3.5")), config)

    assert "rails" not in config.dependencies
    assert "jruby" not in config.webxml


def test_merb_probe_adds_dependencies(project):
    """Verify the Merb probe sets the booter and reported gems."""
    config = _config(project)
    info = FrameworkInfo(dependencies=[("merb-core", "1.0.15")])

    result = run_probe(MerbProbe(lambda: info), config)

    assert result.kind == "merb"
    assert config.dependencies["merb-core"] == "1.0.15"


def test_merb_probe_warns_without_dependency_list(project, caplog):
    """Verify old Merb versions still boot but log a warning."""
    config = _config(project)
    with caplog.at_level(logging.WARNING, logger="warpack.detection"):
        result = run_probe(MerbProbe(lambda: FrameworkInfo()), config)
    assert result.applied
    assert "unable to auto-detect Merb dependencies" in caplog.text


def test_rackup_probe_copies_config_ru(project):
    """Verify the rackup script is copied into the descriptor params."""
    (project / "config.ru").write_text("run Sinatra::Application\n")
    config = _config(project)

    result = run_probe(RackupProbe(), config)

    assert result.kind == "rack"
    assert config.webxml.get("rackup") == "run Sinatra::Application\n"
    assert config.servlet_context_listener() == "org.jruby.rack.RackServletContextListener"


def test_failed_rails_setup_leaves_no_trace(rails_project):
    """Verify a Rails environment that fails partway changes nothing."""
    config = _config(rails_project)
    info = FrameworkInfo(version="2.3.5", dependencies=[42])

    result = run_detection(config, [RailsProbe(lambda: info), RackupProbe()])

    assert result is None
    assert "tmp" not in config.dirs
    assert "rails" not in config.dependencies
    assert "booter" not in config.webxml


def test_failed_rails_setup_then_rack(rails_project):
    """Verify Rack detection sees a clean config after a Rails failure."""
    (rails_project / "config.ru").write_text("run App\n")
    config = _config(rails_project)
    info = FrameworkInfo(version="2.3.5", dependencies=[("haml", None), None])

    result = run_detection(config, [RailsProbe(lambda: info), RackupProbe()])

    assert result.kind == "rack"
    assert config.webxml.get("booter") == "rack"
    assert "rails" not in config.dependencies
    assert "haml" not in config.dependencies
    assert "tmp" not in config.dirs


def test_partial_changes_rolled_back_on_raise(project):
    """Verify changes made before an exception are undone."""
    config = _config(project)
    config.dependencies.add("rack", "1.0")
    before = config.webxml.serialize()

    def half_done(cfg):
        cfg.webxml.set("booter", "rails")
        cfg.webxml.set("jruby.max.runtimes", 1)
        cfg.dependencies.add("rails", "2.3.5")
        cfg.dependencies.add("rack", "9.9")
        cfg.dirs.append("tmp")
        raise RuntimeError("boot failed")

    result = run_probe(half_done, config)

    assert result.status == "error"
    assert "booter" not in config.webxml
    assert "jruby" not in config.webxml
    assert config.dependencies.names() == ["rack"]
    assert config.dependencies["rack"] == "1.0"
    assert "tmp" not in config.dirs
    assert config.webxml.serialize() == before


def test_not_applicable_callable_changes_rolled_back(project):
    """Verify a callable returning False cannot leave changes behind."""
    config = _config(project)

    def undecided(cfg):
        cfg.webxml.set("booter", "merb")
        cfg.dependencies.add("merb-core")
        return False

    result = run_probe(undecided, config)

    assert result.status == "not_applicable"
    assert "booter" not in config.webxml
    assert "merb-core" not in config.dependencies


def test_rolled_back_tree_stays_usable(project):
    """Verify the descriptor params keep working after a rollback."""
    config = _config(project)
    params = config.webxml

    def broken(cfg):
        cfg.webxml.set("jruby.min.runtimes", 2)
        raise RuntimeError("no")

    run_probe(broken, config)
    params.set("jruby.min.runtimes", 3)

    assert config.webxml is params
    assert config.webxml.serialize()["jruby.min.runtimes"] == "3"
    assert config.webxml["jruby"]["min.runtimes"] == 3


def test_rails_dependencies_accept_bare_names(rails_project):
    """Verify gem names without a requirement are accepted."""
    config = _config(rails_project)
    info = FrameworkInfo(version="2.3.5", dependencies=["haml"])

    result = run_probe(RailsProbe(lambda: info), config)

    assert result.applied
    assert config.dependencies.names() == ["rails", "haml"]
    assert config.dependencies["haml"] is None
