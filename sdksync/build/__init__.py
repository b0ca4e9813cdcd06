"""Generator invocation adapters."""

from .builder import ArtifactBuilder, BuildResult, CommandArtifactBuilder, build_with_retry

__all__ = ["ArtifactBuilder", "BuildResult", "CommandArtifactBuilder", "build_with_retry"]
