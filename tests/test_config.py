"""Tests for .sdksync.yml loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from sdksync.config import DEFAULT_MODEL_PATHS, load_config
from sdksync.errors import ConfigError


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert config.root == tmp_path.resolve()
    assert config.model_paths == list(DEFAULT_MODEL_PATHS)
    assert config.handwritten_file == ".handwritten"
    assert config.manifest_file == "versions.toml"
    assert config.max_revisions is None
    assert config.build.retries == 2
    assert config.commit.push is False


def test_load_config_reads_all_sections(tmp_path: Path) -> None:
    (tmp_path / ".sdksync.yml").write_text(
        """
model_paths:
  - codegen/
  - aws/sdk/aws-models/
handwritten_file: .protected
max_revisions: 25
build:
  command: ["make", "sdk", "REV={generator_revision}"]
  output_dir: out/sdk
  timeout: 120
  retries: 0
  backoff_base: 1
bot:
  name: Sync Bot
  email: bot@example.com
commit:
  push: true
  remote: upstream
  branch: main
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path, environ={})

    assert config.model_paths == ["codegen/", "aws/sdk/aws-models/"]
    assert config.handwritten_file == ".protected"
    assert config.max_revisions == 25
    assert config.build.command == ["make", "sdk", "REV={generator_revision}"]
    assert config.build.output_dir == "out/sdk"
    assert config.build.timeout == 120.0
    assert config.build.retries == 0
    assert config.build.backoff_base == 1.0
    assert config.bot.name == "Sync Bot"
    assert config.bot.email == "bot@example.com"
    assert config.commit.push is True
    assert config.commit.remote == "upstream"
    assert config.commit.branch == "main"


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    (tmp_path / ".sdksync.yml").write_text("bot:\n  name: From File\n", encoding="utf-8")

    config = load_config(
        tmp_path,
        environ={
            "SDKSYNC_BOT_NAME": "From Env",
            "SDKSYNC_BOT_EMAIL": "env@example.com",
            "SDKSYNC_BUILD_TIMEOUT": "90",
        },
    )

    assert config.bot.name == "From Env"
    assert config.bot.email == "env@example.com"
    assert config.build.timeout == 90.0


@pytest.mark.parametrize(
    "content, message",
    [
        ("- just\n- a list\n", "mapping"),
        ("model_paths: []\n", "model_paths"),
        ("max_revisions: 0\n", "max_revisions"),
        ("build:\n  retries: -1\n", "build.retries"),
        ("build:\n  timeout: soon\n", "build.timeout"),
        ("key: [unclosed\n", "Failed to parse"),
    ],
)
def test_invalid_config_raises_config_error(tmp_path: Path, content: str, message: str) -> None:
    (tmp_path / ".sdksync.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path, environ={})


def test_invalid_timeout_override_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="SDKSYNC_BUILD_TIMEOUT"):
        load_config(tmp_path, environ={"SDKSYNC_BUILD_TIMEOUT": "-5"})
