"""catsh 入口。

支持: python -m catsh
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
