"""
sandbox-batch — concurrency-bounded batch execution of inference calls and sandboxed commands.

Package root. Keep imports light: no config loading or logging setup at import time.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
