"""Composing mirror commits in the target repository."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from jinja2 import Environment, StrictUndefined, TemplateError

from ..config import DEFAULT_COMMIT_TEMPLATE, BotConfig
from ..errors import ConfigError
from ..logging import get_logger
from ..manifest import VersionManifest
from ..models import UpstreamRevision
from .repository import GitRepository, commit_env

SMITHY_RS_TRAILER = "Smithy-Rs-Revision"
EXAMPLES_TRAILER = "Aws-Doc-Sdk-Examples-Revision"
CHANGED_FILES_TRAILER = "Changed-Files"

_TRAILER_RE = re.compile(r"^(?P<key>[A-Za-z-]+):\s*(?P<value>\S+)\s*$")


@dataclass(frozen=True)
class MirrorTrailers:
    """Upstream revisions recorded in a mirror commit message."""

    smithy_rs_revision: str
    aws_doc_sdk_examples_revision: str
    changed_files: Optional[int] = None


def parse_trailers(message: str) -> Optional[MirrorTrailers]:
    """Return the mirror trailers of ``message`` or ``None`` for other commits."""
    values = {}
    for line in message.splitlines():
        match = _TRAILER_RE.match(line.strip())
        if match:
            values[match.group("key")] = match.group("value")
    smithy_rs = values.get(SMITHY_RS_TRAILER)
    examples = values.get(EXAMPLES_TRAILER)
    if not smithy_rs or not examples:
        return None
    changed = values.get(CHANGED_FILES_TRAILER)
    return MirrorTrailers(
        smithy_rs_revision=smithy_rs,
        aws_doc_sdk_examples_revision=examples,
        changed_files=int(changed) if changed and changed.isdigit() else None,
    )


class CommitComposer:
    """Stages the merged tree and records exactly one commit per mirrored revision."""

    def __init__(
        self,
        repository: GitRepository,
        *,
        bot: BotConfig | None = None,
        template: str = DEFAULT_COMMIT_TEMPLATE,
    ) -> None:
        self.repository = repository
        self.bot = bot or BotConfig()
        self.logger = get_logger("composer")
        env = Environment(
            autoescape=False, trim_blocks=True, lstrip_blocks=True, undefined=StrictUndefined
        )
        try:
            self._template = env.from_string(template)
        except TemplateError as exc:
            raise ConfigError(f"Invalid commit message template: {exc}") from exc

    def compose_message(
        self,
        manifest: VersionManifest,
        *,
        changed_files: int,
        revision: UpstreamRevision | None = None,
        folded: Sequence[UpstreamRevision] = (),
        subject: str | None = None,
    ) -> str:
        context = {
            "subject": subject or (revision.subject if revision else ""),
            "body": "" if subject or revision is None else revision.body,
            "revision": revision,
            "folded": list(folded),
            "manifest": manifest,
            "changed_files": changed_files,
        }
        try:
            rendered = self._template.render(**context)
        except TemplateError as exc:
            raise ConfigError(f"Failed to render commit message template: {exc}") from exc
        lines = [line.rstrip() for line in rendered.strip().splitlines()]
        body = "\n".join(lines) or f"Sync smithy-rs {manifest.smithy_rs_revision}"
        trailers = "\n".join(
            [
                f"{SMITHY_RS_TRAILER}: {manifest.smithy_rs_revision}",
                f"{EXAMPLES_TRAILER}: {manifest.aws_doc_sdk_examples_revision}",
                f"{CHANGED_FILES_TRAILER}: {changed_files}",
            ]
        )
        return f"{body}\n\n{trailers}\n"

    def commit(
        self,
        manifest: VersionManifest,
        *,
        changed_files: int,
        revision: UpstreamRevision | None = None,
        folded: Sequence[UpstreamRevision] = (),
        subject: str | None = None,
    ) -> Optional[str]:
        """Stage the working tree and commit; return ``None`` when nothing changed."""
        self.repository.stage_all()
        if not self.repository.has_staged_changes():
            return None

        message = self.compose_message(
            manifest,
            changed_files=changed_files,
            revision=revision,
            folded=folded,
            subject=subject,
        )
        if revision is not None:
            env = commit_env(
                author_name=revision.author_name,
                author_email=revision.author_email,
                author_date=revision.authored_at or None,
                committer_name=self.bot.name,
                committer_email=self.bot.email,
            )
        else:
            env = commit_env(
                author_name=self.bot.name,
                author_email=self.bot.email,
                committer_name=self.bot.name,
                committer_email=self.bot.email,
            )
        commit_id = self.repository.commit(message, env=env)
        self.logger.info(
            "Committed %s for smithy-rs %s (%d files)",
            commit_id[:10],
            manifest.smithy_rs_revision[:10],
            changed_files,
        )
        return commit_id

    def push(self, remote: str = "origin", branch: str | None = None) -> None:
        self.logger.info("Pushing target to %s%s", remote, f" ({branch})" if branch else "")
        self.repository.push(remote, branch)


__all__ = [
    "CHANGED_FILES_TRAILER",
    "CommitComposer",
    "EXAMPLES_TRAILER",
    "MirrorTrailers",
    "SMITHY_RS_TRAILER",
    "parse_trailers",
]
