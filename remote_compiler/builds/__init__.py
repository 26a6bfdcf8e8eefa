"""Remote build orchestration module.

This module handles:
- Project manifest synthesis
- The single-flight build engine and its observable state
- Build records and history
"""

from remote_compiler.builds.engine import BuildEngine, BuildInProgressError
from remote_compiler.builds.models import BuildRecord

__all__ = ["BuildEngine", "BuildInProgressError", "BuildRecord"]
