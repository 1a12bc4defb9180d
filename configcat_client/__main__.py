"""Allow running the package as a module."""

import sys

from .cli import main


if __name__ == "__main__":  # pragma: no cover - module entrypoint
    sys.exit(main())
