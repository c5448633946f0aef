# =============================================================================
# mailgate Entry Point for `python -m mailgate`
# =============================================================================
# This module allows mailgate to be run as a Python module:
#
#   python -m mailgate genkey
#
# This is equivalent to running the 'mailgate' command after installation.
# =============================================================================

import sys

from mailgate.cli import main

if __name__ == "__main__":
    sys.exit(main())
