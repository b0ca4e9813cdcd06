from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture
def repo_builder(tmp_path: Path) -> Callable[[str], RepoBuilder]:
    """Provide a factory for throwaway git repositories rooted at the pytest tmp_path."""

    def factory(name: str = "repo") -> RepoBuilder:
        return RepoBuilder(tmp_path, name)

    return factory
