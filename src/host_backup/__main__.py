# pyright: standard

"""host-backup: host_backup/__main__.py.

Back up a Linux host to an external mount point with rsync, full or
incremental, then verify, compress, rotate and report.
"""

import sys

from .cli.dispatcher import main as dispatch


def main() -> int:
    """Console script entry point."""
    return dispatch(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
