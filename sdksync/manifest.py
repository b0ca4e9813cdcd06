"""Reading and writing the ``versions.toml`` version manifest."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import ConfigError

MANIFEST_FILENAME = "versions.toml"

SMITHY_RS_KEY = "smithy_rs_revision"
EXAMPLES_KEY = "aws_doc_sdk_examples_revision"

_FULL_REVISION = re.compile(r"^[0-9a-f]{40}$")


@dataclass(frozen=True)
class VersionManifest:
    """Pinned upstream revisions the target tree was generated from."""

    smithy_rs_revision: str
    aws_doc_sdk_examples_revision: str
    extra: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str, *, source: str = MANIFEST_FILENAME) -> "VersionManifest":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Failed to parse {source}: {exc}") from exc

        missing = [key for key in (SMITHY_RS_KEY, EXAMPLES_KEY) if key not in data]
        if missing:
            raise ConfigError(f"{source} is missing required keys: {', '.join(missing)}")

        values: Dict[str, str] = {}
        for key, value in data.items():
            if not isinstance(value, str):
                raise ConfigError(f"{source}: `{key}` must be a string")
            values[key] = value

        manifest = cls(
            smithy_rs_revision=values.pop(SMITHY_RS_KEY),
            aws_doc_sdk_examples_revision=values.pop(EXAMPLES_KEY),
            extra=values,
        )
        manifest.check_format(source=source)
        return manifest

    @classmethod
    def load(cls, path: Path) -> Optional["VersionManifest"]:
        """Return the manifest stored at ``path`` or ``None`` when absent."""
        if not path.exists():
            return None
        return cls.parse(path.read_text(encoding="utf-8"), source=path.name)

    def render(self) -> str:
        lines = [
            f'{SMITHY_RS_KEY} = "{self.smithy_rs_revision}"',
            f'{EXAMPLES_KEY} = "{self.aws_doc_sdk_examples_revision}"',
        ]
        for key, value in self.extra.items():
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            lines.append(f'{key} = "{escaped}"')
        return "\n".join(lines) + "\n"

    def with_revisions(self, smithy_rs: str, examples: str) -> "VersionManifest":
        return replace(
            self, smithy_rs_revision=smithy_rs, aws_doc_sdk_examples_revision=examples
        )

    def check_format(self, *, source: str = MANIFEST_FILENAME) -> None:
        for key, value in (
            (SMITHY_RS_KEY, self.smithy_rs_revision),
            (EXAMPLES_KEY, self.aws_doc_sdk_examples_revision),
        ):
            if not _FULL_REVISION.match(value):
                raise ConfigError(
                    f"{source}: `{key}` must be a full commit id, got {value!r}"
                )

    def validate(
        self,
        *,
        smithy_rs_resolves: Callable[[str], bool],
        examples_resolves: Callable[[str], bool],
    ) -> None:
        """Ensure both revisions exist in their source repositories."""
        self.check_format()
        if not smithy_rs_resolves(self.smithy_rs_revision):
            raise ConfigError(
                f"smithy-rs revision {self.smithy_rs_revision} does not resolve",
                revision=self.smithy_rs_revision,
            )
        if not examples_resolves(self.aws_doc_sdk_examples_revision):
            raise ConfigError(
                "aws-doc-sdk-examples revision "
                f"{self.aws_doc_sdk_examples_revision} does not resolve",
                revision=self.aws_doc_sdk_examples_revision,
            )


__all__ = ["EXAMPLES_KEY", "MANIFEST_FILENAME", "SMITHY_RS_KEY", "VersionManifest"]
