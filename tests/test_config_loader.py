"""Tests for tract_sync.config_loader: discovery, includes, interpolation."""

import textwrap

import pytest
import yaml

from tract_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """No env override, empty fake home, CWD at tmp_path."""
    monkeypatch.delenv("TRACT_SYNC_CONFIG", raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    def test_set_var(self, monkeypatch):
        monkeypatch.setenv("JIRA_HOST", "jira.local")
        assert interpolate_env_vars("https://${JIRA_HOST}") == (
            "https://jira.local"
        )

    def test_unset_var_becomes_empty(self, monkeypatch):
        monkeypatch.delenv("TRACT_UNSET_XYZ", raising=False)
        assert interpolate_env_vars("${TRACT_UNSET_XYZ}") == ""

    @pytest.mark.parametrize("value", [None, ""])
    def test_default_for_unset_or_empty(self, monkeypatch, value):
        if value is None:
            monkeypatch.delenv("TRACT_MAYBE", raising=False)
        else:
            monkeypatch.setenv("TRACT_MAYBE", value)
        assert interpolate_env_vars("${TRACT_MAYBE:-300}") == "300"

    def test_unclosed_left_alone(self):
        assert interpolate_env_vars("${OPEN") == "${OPEN"

    def test_recursive(self, monkeypatch):
        monkeypatch.setenv("SYNC_NAME", "bot")
        data = {"identity": {"name": "${SYNC_NAME}", "n": 1}, "l": ["${SYNC_NAME}"]}
        assert _interpolate_recursive(data) == {
            "identity": {"name": "bot", "n": 1},
            "l": ["bot"],
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestInclude:
    def test_relative_include(self, tmp_path):
        write(tmp_path / "jira.yml", "url: https://jira.example.com\n")
        main = write(tmp_path / "config.yml", "jira: !include jira.yml\n")
        assert _load_yaml_with_includes(main) == {
            "jira": {"url": "https://jira.example.com"}
        }

    def test_missing_include(self, tmp_path):
        main = write(tmp_path / "config.yml", "jira: !include nope.yml\n")
        with pytest.raises(FileNotFoundError, match="nope.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include(self, tmp_path):
        write(tmp_path / "a.yml", "x: !include b.yml\n")
        write(tmp_path / "b.yml", "y: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_safe_loader_untouched(self, tmp_path):
        path = write(tmp_path / "c.yml", "x: !include other.yml\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            yaml.safe_load(path.read_text())


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_repository_config_before_global(self, isolated):
        repo = isolated / "tickets"
        project = write(repo / ".tract" / "config.yml", "{}\n")
        global_cfg = write(
            isolated / "home" / ".config" / "tract_sync" / "config.yml", "{}\n"
        )
        assert discover_config_files(repo) == [project, global_cfg]

    def test_cwd_used_without_repo_path(self, isolated):
        project = write(isolated / ".tract" / "config.yaml", "{}\n")
        assert discover_config_files() == [project]

    def test_env_override_first(self, isolated, monkeypatch):
        custom = write(isolated / "custom.yml", "{}\n")
        project = write(isolated / ".tract" / "config.yml", "{}\n")
        monkeypatch.setenv("TRACT_SYNC_CONFIG", str(custom))
        assert discover_config_files() == [custom.resolve(), project]


# -------------------------------------------------------------------------
# Hierarchical load
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_section_replaces_global(self, isolated):
        write(
            isolated / "home" / ".config" / "tract_sync" / "config.yml",
            """\
            jira:
              url: https://global.example.com
              username: global
            worklog:
              commit_delay: 60
            """,
        )
        write(
            isolated / ".tract" / "config.yml",
            """\
            jira:
              url: https://project.example.com
            """,
        )
        result = load_hierarchical_config()
        assert result["jira"] == {"url": "https://project.example.com"}
        assert result["worklog"] == {"commit_delay": 60}

    def test_interpolation_applied(self, isolated, monkeypatch):
        monkeypatch.setenv("TRACT_TEST_PASSWORD", "s3cret")
        write(
            isolated / ".tract" / "config.yml",
            """\
            jira:
              password: ${TRACT_TEST_PASSWORD}
            """,
        )
        assert load_hierarchical_config()["jira"]["password"] == "s3cret"

    def test_non_dict_root_skipped(self, isolated, caplog):
        write(isolated / ".tract" / "config.yml", "- a\n- b\n")
        assert load_hierarchical_config() == {}
        assert "non-dict root" in caplog.text

    def test_invalid_yaml_raises(self, isolated):
        write(isolated / ".tract" / "config.yml", "jira: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()
