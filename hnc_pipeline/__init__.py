"""
hnc-pipeline builds, tests, packages and deploys the Hierarchical Namespace
Controller as a graph of named tasks.
"""

__all__ = [
    "builder",
    "config",
    "exceptions",
    "pipeline",
    "release",
    "task",
    "toolchain",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
