"""Tests for configuration loading and path exclusion."""

from __future__ import annotations

import pytest

from codeproof.config import (
    DEFAULT_EXCLUDE_PATTERNS,
    CodeProofConfig,
    ConfigError,
    get_config_path,
    get_storage_dir,
    load_config,
)
from codeproof.pathfilter import PathFilter


def write_config(workspace, text: str) -> None:
    path = get_config_path(workspace)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config(tmp_path)
        assert config == CodeProofConfig()
        assert config.snapshot_interval == 30.0
        assert config.paste_threshold == 50
        assert config.auto_start is True

    def test_config_toml(self, tmp_path):
        write_config(
            tmp_path,
            'snapshot_interval = 10\n'
            'paste_threshold = 80\n'
            'exclude_patterns = ["*.log"]\n'
            'include_extensions = ["py", ".RS"]\n',
        )
        config = load_config(tmp_path)

        assert config.snapshot_interval == 10.0
        assert config.paste_threshold == 80
        assert config.exclude_patterns == ("*.log",)
        assert config.include_extensions == (".py", ".rs")

    def test_pyproject_table(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text(
            '[tool.codeproof]\nauto_start = false\nstorage_location = "evidence"\n',
            encoding="utf-8",
        )
        config = load_config(tmp_path)

        assert config.auto_start is False
        assert get_storage_dir(tmp_path, config) == tmp_path / "evidence"

    @pytest.mark.parametrize(
        "body",
        [
            "snapshot_interval = 0",
            "snapshot_interval = true",
            "paste_threshold = -1",
            "paste_threshold = 2.5",
            'exclude_patterns = "*.log"',
            'auto_start = "yes"',
            'storage_location = "/abs/path"',
            "not valid toml =",
        ],
    )
    def test_invalid_values(self, tmp_path, body):
        write_config(tmp_path, body + "\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_unknown_keys_ignored(self, tmp_path):
        write_config(tmp_path, "colour = 'blue'\n")
        assert load_config(tmp_path) == CodeProofConfig()


class TestPathFilter:
    def test_default_patterns(self):
        path_filter = PathFilter(DEFAULT_EXCLUDE_PATTERNS)

        assert path_filter.is_excluded("node_modules/react/index.js")
        assert path_filter.is_excluded("web/node_modules/x.js")
        assert path_filter.is_excluded(".git/HEAD")
        assert path_filter.is_excluded("dist/bundle.js")
        assert path_filter.is_excluded(".codeproof/snapshots.jsonl")
        assert not path_filter.is_excluded("src/main.py")
        assert not path_filter.is_excluded("distance.py")

    def test_windows_separators(self):
        assert PathFilter(["**/build/**"]).is_excluded("pkg\\build\\out.txt")

    def test_no_patterns(self):
        assert not PathFilter().is_excluded("anything")

    def test_storage_location_always_excluded(self):
        config = CodeProofConfig(storage_location="audit", exclude_patterns=("*.log",))
        path_filter = PathFilter(config.effective_exclude_patterns)

        assert config.effective_exclude_patterns == ("*.log", "audit/**")
        assert path_filter.is_excluded("audit/flags.json")
        assert not path_filter.is_excluded("auditing.py")
        assert CodeProofConfig().effective_exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
