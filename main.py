"""Command line entrypoint: renders a collage via smartcollage.main.

Kept at the repository root so ``python main.py IMAGE...`` works from a
checkout without installing the package.
"""

import sys

try:
    from smartcollage.main import main
except Exception as exc:
    # Provide a clear error if imports fail due to PYTHONPATH issues
    raise RuntimeError("Failed to import smartcollage. Ensure project root is on PYTHONPATH.") from exc


if __name__ == "__main__":
    sys.exit(main())
