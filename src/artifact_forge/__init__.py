"""
artifact-forge: artifact storage, retention, and sandboxed execution.

Generated work products (code bundles, documents, charts, diagrams) are stored
per session and artifact, linked into runnable projects when they contain
markup, evicted under age and size pressure, and executed in a restricted,
time-bounded child process.

Importing the package has no side effects: no config loading, no logging init.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
