"""Process exit codes.

The numeric values are part of the CLI contract (CI jobs branch on them) and
should remain stable:
- 0: Success
- 1: User error (bad input, invalid arguments)
- 2: Environment error (missing or invalid config, missing credentials)
- 3: Deploy error (publish, change set or promotion failed)
- 4: Network error (AWS endpoint unreachable)
- 5: I/O error (metadata or source directory unreadable)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    DEPLOY_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
