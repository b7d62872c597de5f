"""Entry point: python -m xnote <command>"""

import sys

from xnote.cli import main

if __name__ == "__main__":
    sys.exit(main())
