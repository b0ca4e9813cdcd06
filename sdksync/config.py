"""Configuration loading for sdksync (.sdksync.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError
from .handwritten import HANDWRITTEN_FILENAME
from .manifest import MANIFEST_FILENAME

CONFIG_FILENAME = ".sdksync.yml"

DEFAULT_MODEL_PATHS: Sequence[str] = (
    "aws/sdk/aws-models/",
    "aws/sdk-codegen/",
    "aws/rust-runtime/",
    "aws/sdk/build.gradle.kts",
    "aws/sdk/gradle.properties",
    "aws/sdk/sdk-external-types.toml",
    "codegen/",
    "codegen-core/",
    "codegen-client/",
    "rust-runtime/",
    "buildSrc/",
    "gradle.properties",
)

DEFAULT_BUILD_COMMAND: Sequence[str] = (
    "./gradlew",
    "-Paws.fullsdk=true",
    "-Paws.sdk.examples.revision={examples_revision}",
    "-Paws.sdk.examples.path={examples_path}",
    "aws:sdk:assemble",
)

DEFAULT_COMMIT_TEMPLATE = """\
[smithy-rs] {{ subject }}
{% if body %}

{{ body }}
{% endif %}
{% if folded %}

Includes upstream commits:
{% for revision in folded %}
- {{ revision.short_id }} {{ revision.subject }} ({{ revision.author_name }})
{% endfor %}
{% endif %}
"""


@dataclass
class BuildConfig:
    """How the generator is invoked for one revision."""

    command: List[str] = field(default_factory=lambda: list(DEFAULT_BUILD_COMMAND))
    output_dir: str = "aws/sdk/build/aws-sdk"
    timeout: float = 3600.0
    retries: int = 2
    backoff_base: float = 5.0
    backoff_max: float = 60.0


@dataclass
class BotConfig:
    """Committer identity used for mirror commits."""

    name: str = "aws-sdk-rust-ci"
    email: str = "aws-sdk-rust-primary@amazon.com"


@dataclass
class CommitConfig:
    """Commit message and publishing settings."""

    template: str = DEFAULT_COMMIT_TEMPLATE
    push: bool = False
    remote: str = "origin"
    branch: Optional[str] = None


@dataclass
class SyncConfig:
    """Represents the settings defined in .sdksync.yml."""

    root: Path
    model_paths: List[str] = field(default_factory=lambda: list(DEFAULT_MODEL_PATHS))
    handwritten_file: str = HANDWRITTEN_FILENAME
    manifest_file: str = MANIFEST_FILENAME
    generated_record_file: str = ".generated-files"
    max_revisions: Optional[int] = None
    build: BuildConfig = field(default_factory=BuildConfig)
    bot: BotConfig = field(default_factory=BotConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)


def load_config(
    config_path: Path, *, environ: Optional[Mapping[str, str]] = None
) -> SyncConfig:
    """Load configuration from disk, applying ``SDKSYNC_*`` environment overrides."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()
    env = os.environ if environ is None else environ

    if not config_file.exists():
        config = SyncConfig(root=root)
        _apply_env_overrides(config, env)
        return config

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = SyncConfig(root=root)

    if "model_paths" in data:
        model_paths = _as_str_list(data.get("model_paths"))
        if not model_paths:
            raise ConfigError("`model_paths` must list at least one path prefix")
        config.model_paths = model_paths

    handwritten = _as_str(data.get("handwritten_file"))
    if handwritten:
        config.handwritten_file = handwritten
    manifest_file = _as_str(data.get("manifest_file"))
    if manifest_file:
        config.manifest_file = manifest_file
    record_file = _as_str(data.get("generated_record_file"))
    if record_file:
        config.generated_record_file = record_file
    if data.get("max_revisions") is not None:
        config.max_revisions = _positive_int(data.get("max_revisions"), "max_revisions")

    build_data = _as_dict(data.get("build"))
    if build_data:
        if "command" in build_data:
            command = _as_str_list(build_data.get("command"))
            if not command:
                raise ConfigError("`build.command` must be a non-empty list")
            config.build.command = command
        output_dir = _as_str(build_data.get("output_dir"))
        if output_dir:
            config.build.output_dir = output_dir
        if build_data.get("timeout") is not None:
            config.build.timeout = _positive_float(build_data.get("timeout"), "build.timeout")
        if build_data.get("retries") is not None:
            retries = _as_int(build_data.get("retries"))
            if retries is None or retries < 0:
                raise ConfigError("`build.retries` must be a non-negative integer")
            config.build.retries = retries
        if build_data.get("backoff_base") is not None:
            config.build.backoff_base = _positive_float(
                build_data.get("backoff_base"), "build.backoff_base"
            )
        if build_data.get("backoff_max") is not None:
            config.build.backoff_max = _positive_float(
                build_data.get("backoff_max"), "build.backoff_max"
            )

    bot_data = _as_dict(data.get("bot"))
    if bot_data:
        config.bot.name = _as_str(bot_data.get("name")) or config.bot.name
        config.bot.email = _as_str(bot_data.get("email")) or config.bot.email

    commit_data = _as_dict(data.get("commit"))
    if commit_data:
        template = _as_str(commit_data.get("template"))
        if template:
            config.commit.template = template
        push = _as_bool(commit_data.get("push"))
        if push is not None:
            config.commit.push = push
        config.commit.remote = _as_str(commit_data.get("remote")) or config.commit.remote
        config.commit.branch = _as_str(commit_data.get("branch")) or config.commit.branch

    _apply_env_overrides(config, env)
    return config


def _apply_env_overrides(config: SyncConfig, env: Mapping[str, str]) -> None:
    name = env.get("SDKSYNC_BOT_NAME")
    if name:
        config.bot.name = name
    email = env.get("SDKSYNC_BOT_EMAIL")
    if email:
        config.bot.email = email
    timeout = env.get("SDKSYNC_BUILD_TIMEOUT")
    if timeout:
        config.build.timeout = _positive_float(timeout, "SDKSYNC_BUILD_TIMEOUT")


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


def _positive_int(value: Any, key: str) -> int:
    result = _as_int(value)
    if result is None or result <= 0:
        raise ConfigError(f"`{key}` must be a positive integer")
    return result


def _positive_float(value: Any, key: str) -> float:
    result = _as_float(value)
    if result is None or result <= 0:
        raise ConfigError(f"`{key}` must be a positive number")
    return result


__all__ = [
    "BotConfig",
    "BuildConfig",
    "CONFIG_FILENAME",
    "CommitConfig",
    "DEFAULT_MODEL_PATHS",
    "SyncConfig",
    "load_config",
]
