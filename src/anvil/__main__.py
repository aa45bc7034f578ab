"""Run anvil via ``python -m anvil``."""

from __future__ import annotations

import sys

from .cli import main

sys.exit(main())
