"""Root conftest.py: makes the local fixtureops package take precedence over any installed copy."""

from __future__ import annotations

import sys
from pathlib import Path

# Insert src/ at the front of sys.path so that `import fixtureops` always
# resolves to the local source tree, even if another copy is installed.
_src_root = str(Path(__file__).parent / "src")
if _src_root not in sys.path:
    sys.path.insert(0, _src_root)

pytest_plugins = ["pytester"]
