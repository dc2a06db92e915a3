"""
Tests for the discovery engine - staging, aggregation, failure isolation.
"""

import threading
from pathlib import Path
from typing import ClassVar

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors import default_detectors
from groundwork.core.services.detectors.base import Detector, Finding
from groundwork.core.services.discovery import compute_stages, discover
from tests.conftest import write_files

HIGH, MEDIUM, LOW = Confidence.HIGH, Confidence.MEDIUM, Confidence.LOW


class StaticDetector(Detector):
    """Returns fixed findings; records what it saw in the store."""

    provides: ClassVar[dict[str, FactKind]] = {
        "project.name": FactKind.STRING,
        "language.primary": FactKind.STRING,
        "commands.test": FactKind.STRING,
    }

    def __init__(self, name: str, findings: list[Finding], requires: tuple[str, ...] = ()):
        self.name = name
        self.requires = requires
        self._findings = findings
        self.seen: dict = {}

    def detect(self, root, facts):
        self.seen = {k: facts.value(k) for k in facts.keys()}
        return self._findings


class BrokenDetector(Detector):
    name = "broken"
    provides: ClassVar[dict[str, FactKind]] = {"project.name": FactKind.STRING}

    def detect(self, root, facts):
        raise RuntimeError("boom")


class TestStages:
    def test_requires_pushes_to_later_stage(self):
        lang = StaticDetector("lang", [])
        framework = StaticDetector("fw", [], requires=("language.primary",))
        # a detector never provides to itself
        assert compute_stages([lang, framework]) == [0, 1]

    def test_built_in_stages(self):
        detectors = default_detectors()
        stages = dict(zip([d.name for d in detectors], compute_stages(detectors)))
        assert stages["node-manifest"] == 0
        assert stages["readme-prose"] == 0
        assert stages["framework"] == 1
        assert stages["conventions"] == 1

    def test_later_stage_sees_earlier_facts(self, tmp_path: Path):
        lang = StaticDetector("lang", [Finding("language.primary", "go", HIGH)])
        reader = StaticDetector("reader", [], requires=("language.primary",))
        discover(tmp_path, [lang, reader])
        assert reader.seen == {"language.primary": "go"}

    def test_unmet_prerequisite_skips(self, tmp_path: Path):
        reader = StaticDetector("reader", [Finding("commands.test", "x", HIGH)], requires=("language.primary",))
        lang = StaticDetector("lang", [])
        store, report = discover(tmp_path, [lang, reader])
        assert report.run_for("reader").status == "skipped"
        assert "commands.test" not in store


class TestAggregation:
    def test_confidence_beats_order(self, tmp_path: Path):
        low = StaticDetector("first", [Finding("commands.test", "guess", LOW)])
        high = StaticDetector("second", [Finding("commands.test", "run-tests", HIGH)])
        store, report = discover(tmp_path, [low, high])
        assert store.value("commands.test") == "run-tests"
        assert store.get("commands.test").source == "second"
        assert len(report.conflicts) == 1

    def test_tie_goes_to_first_registered(self, tmp_path: Path):
        a = StaticDetector("a", [Finding("commands.test", "from-a", HIGH)])
        b = StaticDetector("b", [Finding("commands.test", "from-b", HIGH)])
        store, _ = discover(tmp_path, [a, b])
        assert store.value("commands.test") == "from-a"

    def test_user_facts_win_ties(self, tmp_path: Path):
        a = StaticDetector("a", [Finding("project.name", "detected", HIGH)])
        store, report = discover(tmp_path, [a], user_facts={"project.name": "chosen"})
        assert store.value("project.name") == "chosen"
        assert store.get("project.name").source == "groundwork.yml"
        assert report.user_facts == 1

    def test_ceiling_clamps(self, tmp_path: Path):
        class Guesser(StaticDetector):
            ceiling = LOW
        g = Guesser("g", [Finding("project.name", "x", HIGH)])
        store, _ = discover(tmp_path, [g])
        assert store.get("project.name").confidence is LOW

    def test_undeclared_key_rejected(self, tmp_path: Path):
        d = StaticDetector("d", [Finding("infra.docker", True, HIGH), Finding("project.name", "ok", HIGH)])
        store, report = discover(tmp_path, [d])
        assert "infra.docker" not in store
        assert store.value("project.name") == "ok"
        assert not report.ok

    def test_wrong_kind_rejected(self, tmp_path: Path):
        d = StaticDetector("d", [Finding("project.name", True, HIGH)])
        store, report = discover(tmp_path, [d])
        assert "project.name" not in store
        assert "expected string" in str(report.errors[0])

    def test_store_is_frozen(self, tmp_path: Path):
        store, _ = discover(tmp_path, [])
        assert store.frozen


class TestFailureIsolation:
    def test_broken_detector_contributes_nothing(self, tmp_path: Path):
        ok = StaticDetector("ok", [Finding("language.primary", "python", HIGH)])
        store, report = discover(tmp_path, [BrokenDetector(), ok])
        assert store.value("language.primary") == "python"
        assert "project.name" not in store
        [error] = report.errors
        assert error.detector == "broken"
        assert "boom" in str(error)
        assert report.run_for("broken").status == "error"

    def test_invalid_manifest_is_a_detector_error(self, tmp_path: Path):
        write_files(tmp_path, {"package.json": "{not json", "go.mod": "module example.com/m\n"})
        store, report = discover(tmp_path, default_detectors())
        assert report.run_for("node-manifest").status == "error"
        assert store.value("language.primary") == "go"

    def test_target_untouched(self, tmp_path: Path, node_project: Path):
        before = sorted(p.relative_to(node_project) for p in node_project.rglob("*"))
        discover(node_project, default_detectors())
        after = sorted(p.relative_to(node_project) for p in node_project.rglob("*"))
        assert before == after


class TestConcurrency:
    def test_stage_runs_in_parallel(self, tmp_path: Path):
        barrier = threading.Barrier(2, timeout=5)

        class Waiter(StaticDetector):
            def detect(self, root, facts):
                barrier.wait()
                return super().detect(root, facts)

        a = Waiter("a", [Finding("project.name", "a", HIGH)])
        b = Waiter("b", [Finding("commands.test", "b", HIGH)])
        store, report = discover(tmp_path, [a, b], max_workers=2)
        assert report.ok
        assert len(store) == 2


class TestEndToEnd:
    def test_node_project(self, node_project: Path):
        store, report = discover(node_project, default_detectors())
        assert store.value("commands.test") == "run-tests"
        assert store.value("project.name") == "node-app"
        assert store.value("framework.primary") == "express"
        assert store.value("language.primary") == "javascript"
        assert report.ok

    def test_makefile_outranks_conventional_command(self, tmp_path: Path):
        write_files(tmp_path, {
            "pyproject.toml": '[project]\nname = "svc"\ndependencies = ["pytest"]\n',
            "Makefile": "test:\n\tpytest -x\n",
        })
        store, _ = discover(tmp_path, default_detectors())
        assert store.value("commands.test") == "make test"
        assert store.get("commands.test").source == "Makefile"

    def test_prose_loses_to_manifest(self, tmp_path: Path):
        write_files(tmp_path, {
            "Cargo.toml": '[package]\nname = "crab"\n',
            "README.md": "# Crab Tool\n\nWritten in Python, apparently.\n",
        })
        store, report = discover(tmp_path, default_detectors())
        assert store.value("project.name") == "crab"
        assert store.value("language.primary") == "rust"
        assert any(c.key == "language.primary" for c in report.conflicts)
