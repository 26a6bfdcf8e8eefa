"""Remote Compiler - build apps from source text on a hosted CI service.

This package uploads a generated project manifest and a source file to a
repository, dispatches the build workflow, waits for the run to finish,
and downloads the resulting artifact.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
