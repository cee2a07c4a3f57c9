"""Exit-code contract for the irscope-taste CLI."""
from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Standardised CLI exit codes.

    0  success
    1  user error (bad arguments, nothing to do)
    """

    SUCCESS = 0
    USER_ERROR = 1
