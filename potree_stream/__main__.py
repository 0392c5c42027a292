"""Allow ``python -m potree_stream`` to launch the streaming service."""

import sys

from potree_stream import run

if __name__ == "__main__":
    raise SystemExit(run(sys.argv[1:]))
