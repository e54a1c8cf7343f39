"""run-with-callback 入口点。

支持: python -m run_with_callback
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
