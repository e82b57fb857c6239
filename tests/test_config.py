"""Tests for configuration loading and discovery."""

import pytest

from mqpkg.config import Config, Repository
from mqpkg.errors import InvalidConfigError, InvalidURLError, NoConfigError, NoTargetDirectoryFound


def write_config(directory, text):
    (directory / "MQPackage.yml").write_text(text, encoding="utf-8")


class TestConfigLoad:
    """Loading MQPackage.yml from a target directory."""

    def test_load_mixed_repository_entries(self, tmp_path):
        write_config(
            tmp_path,
            "repositories:\n"
            "  - https://example.com/one.json\n"
            "  - name: local\n"
            "    url: file:///srv/two.json\n",
        )
        config = Config.load(tmp_path)
        assert config.target == tmp_path.resolve()
        assert config.repositories == (
            Repository(url="https://example.com/one.json"),
            Repository(url="file:///srv/two.json", name="local"),
        )
        assert [r.label for r in config.repositories] == ["https://example.com/one.json", "local"]

    def test_empty_config(self, tmp_path):
        write_config(tmp_path, "")
        assert Config.load(tmp_path).repositories == ()

    def test_missing_file(self, tmp_path):
        with pytest.raises(NoConfigError):
            Config.load(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(NoConfigError):
            Config.load(tmp_path / "nope")

    @pytest.mark.parametrize(
        "text",
        [
            "repositories: [unclosed",
            "- a list\n",
            "repositories: https://example.com\n",
            "repositories:\n  - 42\n",
            "repositories:\n  - name: nourl\n",
        ],
    )
    def test_invalid_config(self, tmp_path, text):
        write_config(tmp_path, text)
        with pytest.raises(InvalidConfigError):
            Config.load(tmp_path)

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/r.json", "https:///nohost"])
    def test_invalid_url(self, tmp_path, url):
        write_config(tmp_path, f"repositories:\n  - '{url}'\n")
        with pytest.raises(InvalidURLError):
            Config.load(tmp_path)


class TestConfigFind:
    """Walking up to the nearest directory with a config file."""

    def test_find_in_parent(self, tmp_path):
        write_config(tmp_path, "repositories: []\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert Config.find(nested).target == tmp_path.resolve()

    def test_find_prefers_nearest(self, tmp_path):
        write_config(tmp_path, "repositories: []\n")
        inner = tmp_path / "inner"
        inner.mkdir()
        write_config(inner, "repositories: []\n")
        assert Config.find(inner).target == inner.resolve()

    def test_not_found(self, tmp_path, monkeypatch):
        monkeypatch.setattr("mqpkg.config.Constants.CONFIG_FILENAME", "Unlikely-Config-Name.yml")
        with pytest.raises(NoTargetDirectoryFound):
            Config.find(tmp_path)
