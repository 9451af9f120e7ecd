"""Allow ``python -m devrel_gate``."""

import sys

from devrel_gate.main import cli_entrypoint

sys.exit(cli_entrypoint())
