from __future__ import annotations

import sys
from typing import List, Optional

from dsrpackager.packaging.cli import main as cli_main


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``dsrpackager`` console script."""
    return cli_main(argv)


if __name__ == '__main__':
    sys.exit(main())
