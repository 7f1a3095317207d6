"""
Tests for configuration loading and the repository-local config store.
"""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from sagegit.core.config import (
    LocalConfigStore,
    SageConfig,
    clear_cache,
    get_user_config_path,
    load_config,
    parse_value,
)
from sagegit.core.config.env import load_layered_env
from sagegit.core.errors import ConfigError, PersistenceError


def write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture
def control_dir(tmp_path: Path) -> Path:
    path = tmp_path / "repo" / ".git" / "sage"
    path.mkdir(parents=True)
    return path


class TestLoadConfig:
    """Tests for the layered loader."""

    def test_defaults(self, control_dir: Path) -> None:
        config = load_config(control_dir)

        assert config.default_branch == "main"
        assert config.remote == "origin"
        assert config.sync.strategy == "merge"
        assert config.undo.cascade is True
        assert config.hooks.enabled_hooks == ["pre-push", "post-commit"]

    def test_user_config_overrides_defaults(self, control_dir: Path) -> None:
        write_json(get_user_config_path(), {"default_branch": "trunk"})

        assert load_config(control_dir).default_branch == "trunk"

    def test_repository_config_overrides_user(self, control_dir: Path) -> None:
        """Nested sections merge key by key."""
        write_json(get_user_config_path(), {"sync": {"strategy": "rebase", "stash_message": "u"}})
        write_json(control_dir / "config.json", {"sync": {"strategy": "merge"}})

        config = load_config(control_dir)

        assert config.sync.strategy == "merge"
        assert config.sync.stash_message == "u"

    def test_env_overrides_everything(self, control_dir: Path, monkeypatch) -> None:
        write_json(
            control_dir / "config.json", {"remote": "upstream", "git": {"timeout_seconds": 5}}
        )
        monkeypatch.setenv("SAGE_REMOTE", "fork")
        monkeypatch.setenv("SAGE_GIT_TIMEOUT", "60")
        monkeypatch.setenv("SAGE_UNDO_CASCADE", "off")

        config = load_config(control_dir)

        assert config.remote == "fork"
        assert config.git.timeout_seconds == 60
        assert config.undo.cascade is False

    def test_invalid_env_values_ignored(self, control_dir: Path, monkeypatch, caplog) -> None:
        monkeypatch.setenv("SAGE_SYNC_STRATEGY", "squash")
        monkeypatch.setenv("SAGE_GIT_TIMEOUT", "soon")

        config = load_config(control_dir)

        assert config.sync.strategy == "merge"
        assert config.git.timeout_seconds == 120
        assert "Invalid SAGE_SYNC_STRATEGY" in caplog.text

    def test_unreadable_file_falls_back(self, control_dir: Path) -> None:
        (control_dir / "config.json").write_text("{not json")

        assert load_config(control_dir).remote == "origin"

    def test_invalid_value_in_file_raises(self, control_dir: Path) -> None:
        write_json(control_dir / "config.json", {"sync": {"strategy": "squash"}})

        with pytest.raises(ValidationError):
            load_config(control_dir)

    def test_cache_per_control_dir(self, control_dir: Path) -> None:
        first = load_config(control_dir)
        write_json(control_dir / "config.json", {"remote": "upstream"})

        assert load_config(control_dir) is first

        clear_cache()
        assert load_config(control_dir).remote == "upstream"

    def test_without_repository(self) -> None:
        assert load_config(None) == SageConfig()


class TestLocalConfigStore:
    """Tests for LocalConfigStore."""

    def test_set_and_get(self, control_dir: Path) -> None:
        store = LocalConfigStore.for_control_dir(control_dir)

        store.set("sync.strategy", "rebase")

        assert store.get("sync.strategy") == "rebase"
        assert store.read() == {"sync": {"strategy": "rebase"}}

    def test_set_keeps_other_keys(self, control_dir: Path) -> None:
        store = LocalConfigStore.for_control_dir(control_dir)
        store.set("remote", "upstream")
        store.set("undo.cascade", False)

        assert store.read() == {"remote": "upstream", "undo": {"cascade": False}}

    def test_unknown_key(self, control_dir: Path) -> None:
        store = LocalConfigStore.for_control_dir(control_dir)

        with pytest.raises(ConfigError):
            store.set("sync.speed", "fast")
        with pytest.raises(ConfigError):
            store.set("remote.name", "x")

    def test_list_valued_key(self, control_dir: Path) -> None:
        store = LocalConfigStore.for_control_dir(control_dir)

        store.set("hooks.enabled_hooks", ["pre-push"])

        assert store.get("hooks.enabled_hooks") == ["pre-push"]

    def test_invalid_value_not_written(self, control_dir: Path) -> None:
        store = LocalConfigStore.for_control_dir(control_dir)
        store.set("sync.strategy", "rebase")

        with pytest.raises(ConfigError) as exc_info:
            store.set("sync.strategy", "squash")

        assert exc_info.value.context["key"] == "sync.strategy"
        assert store.get("sync.strategy") == "rebase"

    def test_unset(self, control_dir: Path) -> None:
        store = LocalConfigStore.for_control_dir(control_dir)
        store.set("remote", "upstream")

        assert store.unset("remote") is True
        assert store.unset("remote") is False
        assert store.read() == {}

    def test_get_missing_key(self, control_dir: Path) -> None:
        with pytest.raises(KeyError):
            LocalConfigStore.for_control_dir(control_dir).get("remote")

    def test_corrupt_store(self, control_dir: Path) -> None:
        (control_dir / "config.json").write_text("[1, 2]")

        with pytest.raises(PersistenceError):
            LocalConfigStore.for_control_dir(control_dir).read()


class TestParseValue:
    """Tests for CLI value parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("30", 30),
            ('["pre-push"]', ["pre-push"]),
            ("rebase", "rebase"),
            ('"quoted"', "quoted"),
        ],
    )
    def test_parse(self, raw: str, expected: object) -> None:
        assert parse_value(raw) == expected


class TestLayeredEnv:
    """Tests for .env loading."""

    @pytest.fixture(autouse=True)
    def restore_vars(self, monkeypatch):
        # setenv-then-delenv makes monkeypatch remove the vars again afterwards
        for var in ("SAGE_ENV_A", "SAGE_ENV_B", "SAGE_ENV_C", "DATABASE_URL"):
            monkeypatch.setenv(var, "placeholder")
            monkeypatch.delenv(var)

    @pytest.fixture
    def repo_root(self, tmp_path: Path) -> Path:
        root = tmp_path / "project"
        root.mkdir()
        return root

    @pytest.fixture
    def user_env(self, tmp_path: Path) -> Path:
        path = tmp_path / "xdg" / "sage" / ".env"
        path.parent.mkdir(parents=True)
        return path

    def test_precedence(self, repo_root: Path, user_env: Path) -> None:
        """.env.local beats .env, which beats the user file."""
        user_env.write_text("SAGE_ENV_A=user\nSAGE_ENV_B=user\nSAGE_ENV_C=user\n")
        (repo_root / ".env").write_text("SAGE_ENV_A=project\nSAGE_ENV_B=project\n")
        (repo_root / ".env.local").write_text("SAGE_ENV_A=local\n")

        applied = load_layered_env(repo_root)

        assert os.environ["SAGE_ENV_A"] == "local"
        assert os.environ["SAGE_ENV_B"] == "project"
        assert os.environ["SAGE_ENV_C"] == "user"
        assert applied == {
            "SAGE_ENV_A": repo_root / ".env.local",
            "SAGE_ENV_B": repo_root / ".env",
            "SAGE_ENV_C": user_env,
        }

    def test_shell_environment_wins(self, repo_root: Path, monkeypatch) -> None:
        monkeypatch.setenv("SAGE_ENV_A", "shell")
        (repo_root / ".env").write_text("SAGE_ENV_A=project\n")

        applied = load_layered_env(repo_root)

        assert os.environ["SAGE_ENV_A"] == "shell"
        assert applied == {}

    def test_project_keys_are_not_exported(self, repo_root: Path) -> None:
        """A repository's own settings stay out of the environment."""
        (repo_root / ".env").write_text("DATABASE_URL=postgres://db\nSAGE_ENV_A=yes\n")

        load_layered_env(repo_root)

        assert "DATABASE_URL" not in os.environ
        assert os.environ["SAGE_ENV_A"] == "yes"

    def test_outside_repository_reads_user_file_only(
        self, repo_root: Path, user_env: Path
    ) -> None:
        user_env.write_text("SAGE_ENV_A=user\n")
        (repo_root / ".env").write_text("SAGE_ENV_B=project\n")

        load_layered_env(None)

        assert os.environ["SAGE_ENV_A"] == "user"
        assert "SAGE_ENV_B" not in os.environ

    def test_explicit_files(self, tmp_path: Path) -> None:
        first, second = tmp_path / "a.env", tmp_path / "b.env"
        first.write_text("SAGE_ENV_A=first\n")
        second.write_text("SAGE_ENV_A=second\n")

        load_layered_env(files=[first, second])

        assert os.environ["SAGE_ENV_A"] == "second"
