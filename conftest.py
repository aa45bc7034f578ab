"""Conftest.py (root-level).

Fixtures come from :mod:`anvil.pytest_plugin`. Tests never touch the
process-wide defaults or job state of another test.
"""

from __future__ import annotations

import pytest

pytest_plugins = ["anvil.pytest_plugin"]


@pytest.fixture(autouse=True)
def setup_fn(
    clean_defaults: None,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Function-level test configuration fixtures for pytest."""
    monkeypatch.delenv("TMUX", raising=False)
