from __future__ import annotations

from aedmatch.ui.cli import run

run()
