"""Security prelude wrapped around user code before it is executed.

The generated script disables process spawning unconditionally, blocks
network primitives unless allowed, and arms an interval timer that raises
``TimeoutError`` inside the child. The timer is disarmed on every exit path.

This is source-level patching and can be bypassed by determined code (for
example through ``ctypes`` or ``_socket``). The supervisor kill in the runner
is the authoritative limit.
"""

from __future__ import annotations

from typing import Final

PROCESS_DENIED_MESSAGE: Final[str] = "Process execution is disabled in the sandbox"
NETWORK_DENIED_MESSAGE: Final[str] = "Network access is disabled in the sandbox"

_PRELUDE_BODY: Final[str] = '''
import builtins as _af_builtins
import os as _af_os
import signal as _af_signal
import socket as _af_socket
import subprocess as _af_subprocess
import sys as _af_sys
import types as _af_types


def _af_deny_process(*_args, **_kwargs):
    raise PermissionError(_AF_PROCESS_DENIED)


def _af_deny_network(*_args, **_kwargs):
    raise PermissionError(_AF_NETWORK_DENIED)


for _af_name in _AF_OS_SPAWNERS:
    if hasattr(_af_os, _af_name):
        setattr(_af_os, _af_name, _af_deny_process)
for _af_name in _AF_SUBPROCESS_SPAWNERS:
    if hasattr(_af_subprocess, _af_name):
        setattr(_af_subprocess, _af_name, _af_deny_process)

if not _AF_ALLOW_NETWORK:

    class _AfBlockedSocket(_af_socket.socket):
        def __init__(self, *_args, **_kwargs):
            _af_deny_network()

    _af_socket.socket = _AfBlockedSocket
    _af_socket.SocketType = _AfBlockedSocket
    _af_socket.create_connection = _af_deny_network
    _af_socket.create_server = _af_deny_network
    import urllib.request as _af_urllib_request

    _af_urllib_request.urlopen = _af_deny_network


def _af_on_alarm(_signum, _frame):
    raise TimeoutError("Execution timed out after %d ms" % _AF_TIMEOUT_MS)


_af_timer = hasattr(_af_signal, "setitimer") and hasattr(_af_signal, "SIGALRM")
if _af_timer:
    _af_signal.signal(_af_signal.SIGALRM, _af_on_alarm)
    _af_signal.setitimer(_af_signal.ITIMER_REAL, _AF_TIMEOUT_MS / 1000.0)

_af_status = 0
try:
    _af_code = compile(_AF_SOURCE, _AF_FILENAME, "exec")
    # User code gets its own __main__ so pickle and typing can find its classes.
    _af_main = _af_types.ModuleType("__main__")
    _af_main.__file__ = _AF_FILENAME
    _af_main.__builtins__ = _af_builtins
    _af_sys.modules["__main__"] = _af_main
    exec(_af_code, _af_main.__dict__)
except SystemExit:
    raise
except BaseException as _af_exc:
    print("%s: %s" % (type(_af_exc).__name__, _af_exc), file=_af_sys.stderr)
    _af_status = 1
finally:
    if _af_timer:
        _af_signal.setitimer(_af_signal.ITIMER_REAL, 0)

_af_sys.stdout.flush()
if _af_status:
    _af_sys.exit(_af_status)
'''

OS_SPAWNERS: Final[tuple[str, ...]] = (
    "system",
    "popen",
    "fork",
    "forkpty",
    "execl",
    "execle",
    "execlp",
    "execlpe",
    "execv",
    "execve",
    "execvp",
    "execvpe",
    "spawnl",
    "spawnle",
    "spawnlp",
    "spawnlpe",
    "spawnv",
    "spawnve",
    "spawnvp",
    "spawnvpe",
    "posix_spawn",
    "posix_spawnp",
    "startfile",
)

SUBPROCESS_SPAWNERS: Final[tuple[str, ...]] = (
    "Popen",
    "run",
    "call",
    "check_call",
    "check_output",
    "getoutput",
    "getstatusoutput",
)


def build_script(
    code: str,
    *,
    timeout_ms: int,
    allow_network_access: bool,
    filename: str = "<artifact>",
) -> str:
    """Return a standalone script that runs ``code`` under the prelude."""

    if not isinstance(code, str):
        raise ValueError("code must be a string")
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be > 0")

    header = "\n".join(
        (
            "# Generated sandbox wrapper.",
            f"_AF_SOURCE = {code!r}",
            f"_AF_FILENAME = {filename!r}",
            f"_AF_TIMEOUT_MS = {int(timeout_ms)!r}",
            f"_AF_ALLOW_NETWORK = {bool(allow_network_access)!r}",
            f"_AF_PROCESS_DENIED = {PROCESS_DENIED_MESSAGE!r}",
            f"_AF_NETWORK_DENIED = {NETWORK_DENIED_MESSAGE!r}",
            f"_AF_OS_SPAWNERS = {OS_SPAWNERS!r}",
            f"_AF_SUBPROCESS_SPAWNERS = {SUBPROCESS_SPAWNERS!r}",
        )
    )
    return header + "\n" + _PRELUDE_BODY


__all__ = [
    "NETWORK_DENIED_MESSAGE",
    "OS_SPAWNERS",
    "PROCESS_DENIED_MESSAGE",
    "SUBPROCESS_SPAWNERS",
    "build_script",
]
