"""Sandboxed execution of Python code and stored artifacts."""

from artifact_forge.sandbox.interpreter import (
    InterpreterNotFoundError,
    InterpreterProbe,
    SandboxConfigurationError,
)
from artifact_forge.sandbox.prelude import build_script
from artifact_forge.sandbox.runner import (
    NO_OUTPUT_MESSAGE,
    ExecutionOptions,
    ExecutionResult,
    SandboxedRunner,
)

__all__ = [
    "NO_OUTPUT_MESSAGE",
    "ExecutionOptions",
    "ExecutionResult",
    "InterpreterNotFoundError",
    "InterpreterProbe",
    "SandboxConfigurationError",
    "SandboxedRunner",
    "build_script",
]
