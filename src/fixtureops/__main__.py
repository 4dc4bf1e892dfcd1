"""fixtureops CLI entry point.

This module enables running fixtureops as:
    python -m fixtureops <command>
"""

from fixtureops.cli import main

if __name__ == "__main__":
    main()
