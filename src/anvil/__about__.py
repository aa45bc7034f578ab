"""Metadata for anvil package."""

from __future__ import annotations

__title__ = "anvil"
__package_name__ = "anvil"
__version__ = "0.3.0"
__description__ = "Run build and shell commands asynchronously in tmux or a terminal split"
__email__ = ""
__author__ = "Andrey Ugolnik"
__github__ = "https://github.com/reybits/anvil"
__docs__ = "https://github.com/reybits/anvil#readme"
__tracker__ = "https://github.com/reybits/anvil/issues"
__pypi__ = "https://pypi.org/project/anvil"
__license__ = "MIT"
__copyright__ = "Copyright 2024- Andrey Ugolnik"
