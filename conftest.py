"""Pytest bootstrap: puts the local `src` directory on `sys.path`.

Lets the test suite import `group_relay` from a checkout that has not been
installed with `pip install -e .`.
"""

from __future__ import annotations

import sys
from pathlib import Path

_SRC = Path(__file__).parent.resolve() / "src"
if _SRC.exists() and str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))
