"""End-to-end tests for the MQPkg facade using file repositories."""

import json
from unittest.mock import MagicMock

import pytest
import yaml

from mqpkg.config import Config
from mqpkg.core import MQPkg
from mqpkg.errors import TransportError
from mqpkg.pkgdb import MemoryLockRegistry
from mqpkg.resolver import ResolutionImpossible
from mqpkg.types import PackageName, PackageSpecifier


def release(deps=None):
    return {"dependencies": deps or {}, "urls": [], "digests": {}}


def setup_target(tmp_path, *repos):
    urls = []
    for idx, packages in enumerate(repos):
        path = tmp_path / f"repo{idx}.json"
        path.write_text(json.dumps({"meta": {"name": f"repo{idx}"}, "packages": packages}), encoding="utf-8")
        urls.append(path.as_uri())
    target = tmp_path / "target"
    target.mkdir()
    (target / "MQPackage.yml").write_text(yaml.safe_dump({"repositories": urls}), encoding="utf-8")
    return Config.load(target)


def specs(*texts):
    return [PackageSpecifier.parse(t) for t in texts]


def versions(solution):
    return {str(name): str(c.version) for name, c in solution.items()}


class TestInstall:
    """install() records requests and the resolved set atomically."""

    def test_install_resolves_and_persists(self, tmp_path):
        config = setup_target(
            tmp_path,
            {
                "a": {"1.0.0": release({"b": "^1.0"}), "2.0.0": release({"b": "^2.0"})},
                "b": {"1.0.0": release(), "2.0.0": release()},
            },
        )
        pkg = MQPkg(config, locks=MemoryLockRegistry())
        progress = MagicMock()

        solution = pkg.install(specs("a"), progress=progress)

        assert versions(solution) == {"a": "2.0.0", "b": "2.0.0"}
        assert progress.call_count == 1
        state = yaml.safe_load((config.target / "pkgdb" / "state.yml").read_text(encoding="utf-8"))
        assert state["requested"] == {"a": {"name": "a", "version": "*"}}
        assert state["resolved"]["b"]["version"] == "2.0.0"
        assert list(pkg.requested()) == [PackageName.parse("a")]

    def test_repository_order_breaks_ties(self, tmp_path):
        config = setup_target(
            tmp_path,
            {"a": {"1.0.0": release()}},
            {"a": {"1.0.0": release({"b": "*"})}},
        )
        solution = MQPkg(config, locks=MemoryLockRegistry()).install(specs("a"))
        assert solution[PackageName.parse("a")].source.discriminator == 0
        assert versions(solution) == {"a": "1.0.0"}

    def test_conflict_persists_nothing(self, tmp_path):
        config = setup_target(
            tmp_path,
            {
                "a": {"1.0.0": release({"c": ">=2.0"})},
                "b": {"1.0.0": release({"c": "<2.0"})},
                "c": {"1.0.0": release(), "2.0.0": release()},
            },
        )
        pkg = MQPkg(config, locks=MemoryLockRegistry())
        with pytest.raises(ResolutionImpossible) as excinfo:
            pkg.install(specs("a^1.0", "b^1.0"))
        assert excinfo.value.package == PackageName.parse("c")
        assert not (config.target / "pkgdb" / "state.yml").exists()
        assert pkg.requested() == {}

    def test_fetch_failure_persists_nothing(self, tmp_path):
        config = setup_target(tmp_path, {"a": {"1.0.0": release()}})
        pkg = MQPkg(config, locks=MemoryLockRegistry())
        pkg.install(specs("a"))
        state_file = config.target / "pkgdb" / "state.yml"
        before = state_file.read_bytes()

        (tmp_path / "repo0.json").unlink()
        with pytest.raises(TransportError):
            pkg.install(specs("b"))
        assert state_file.read_bytes() == before

    def test_install_accumulates_requests(self, tmp_path):
        config = setup_target(tmp_path, {"a": {"1.0.0": release()}, "b": {"1.0.0": release()}})
        pkg = MQPkg(config, locks=MemoryLockRegistry())
        pkg.install(specs("a"))
        solution = pkg.install(specs("b"))
        assert versions(solution) == {"a": "1.0.0", "b": "1.0.0"}
        assert sorted(str(n) for n in pkg.requested()) == ["a", "b"]


class TestRemove:
    """remove() drops requests and re-resolves."""

    def test_remove(self, tmp_path):
        config = setup_target(tmp_path, {"a": {"1.0.0": release()}, "b": {"1.0.0": release()}})
        pkg = MQPkg(config, locks=MemoryLockRegistry())
        pkg.install(specs("a", "b"))
        solution = pkg.remove([PackageName.parse("a"), PackageName.parse("zzz")])
        assert versions(solution) == {"b": "1.0.0"}
        assert list(pkg.requested()) == [PackageName.parse("b")]


class TestRequested:
    """requested() is a read-only view."""

    def test_reading_writes_nothing(self, tmp_path):
        config = setup_target(tmp_path, {"a": {"1.0.0": release()}})
        pkg = MQPkg(config, locks=MemoryLockRegistry())
        assert pkg.requested() == {}
        assert not (config.target / "pkgdb").exists()
