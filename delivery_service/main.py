"""Main entry point for delivery-service.

Runs the CLI; ``delivery-service run`` starts the workers.
"""

from __future__ import annotations

import sys
from typing import NoReturn


def main() -> NoReturn:
    """Run the CLI interface."""
    from delivery_service.cli.main import main as cli_main

    cli_main()
    sys.exit(0)


if __name__ == "__main__":
    main()
