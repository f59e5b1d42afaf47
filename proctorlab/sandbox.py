"""
Sandbox for executing student code with captured stdin/stdout.

A single process-wide InterpreterRuntime is created lazily on first use. Every
run starts a fresh child interpreter (isolated mode) on a bootstrap shim that
serves the stdin payload line by line to input() and captures everything the
program writes. Nothing survives from one run to the next.

Unix: uses the resource module for CPU time and memory limits.
Windows: relies on the wall-clock timeout only.
"""

import atexit
import platform
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import psutil


SUCCESS = "success"
RUNTIME_ERROR = "runtime_error"
TIMEOUT = "timeout"
MEMORY_ERROR = "memory_error"

PROGRAM_FILENAME = "main.py"

# Runs inside the child interpreter. argv[1] is the student program.
BOOTSTRAP_SOURCE = '''\
import builtins
import io
import runpy
import sys
import traceback


def _main():
    program_path = sys.argv[1]
    payload = sys.stdin.buffer.read().decode("utf-8", errors="replace")
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    lines = payload.split("\\n")
    cursor = [0]

    def _input(prompt=""):
        if cursor[0] < len(lines):
            value = lines[cursor[0]]
            cursor[0] += 1
            return value
        raise EOFError("EOF when reading a line")

    builtins.input = _input
    sys.stdin = io.StringIO(payload)
    sys.argv = [program_path]

    try:
        runpy.run_path(program_path, run_name="__main__")
    except SystemExit as exc:
        if exc.code is None or exc.code == 0:
            return 0
        if isinstance(exc.code, int):
            return exc.code
        sys.stderr.write(str(exc.code) + "\\n")
        return 1
    except BaseException:
        traceback.print_exc()
        return 1
    return 0


sys.exit(_main())
'''


@dataclass
class RunResult:
    """Outcome of one sandbox run."""
    status: str
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS


def get_python_executable() -> Tuple[str, List[str]]:
    """Get the Python executable path and isolation flags."""
    if getattr(sys, 'frozen', False):
        python_path = shutil.which('python')
        if not python_path:
            python_path = shutil.which('python3')

        if python_path:
            return python_path, ['-I', '-B']
        else:
            raise RuntimeError("Python executable not found. Please ensure Python is installed on this machine.")
    else:
        return sys.executable, ['-I', '-B']


def _last_error_line(stderr: str) -> str:
    """Return the final line of a traceback ("ValueError: ...")."""
    for line in reversed(stderr.strip().splitlines()):
        if line.strip():
            return line.strip()
    return "Program exited with an error"


def _kill_process_tree(pid: int):
    """Kill a child interpreter and anything it spawned."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    procs = parent.children(recursive=True) + [parent]
    for proc in procs:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    psutil.wait_procs(procs, timeout=1.0)


class InterpreterRuntime:
    """
    Process-wide interpreter used to run student programs.

    Initialization resolves the interpreter and writes the bootstrap shim to a
    private directory; it happens once, on first use.
    """

    def __init__(self, python_exe: Optional[str] = None, isolation_flags: Optional[List[str]] = None):
        self._python_exe = python_exe
        self._isolation_flags = isolation_flags
        self._runtime_dir: Optional[Path] = None
        self._bootstrap_path: Optional[Path] = None
        self._init_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._bootstrap_path is not None

    def initialize(self):
        """Prepare the runtime. Safe to call repeatedly and from several threads."""
        with self._init_lock:
            if self._bootstrap_path is not None:
                return

            if self._python_exe is None:
                self._python_exe, flags = get_python_executable()
                if self._isolation_flags is None:
                    self._isolation_flags = flags
            if self._isolation_flags is None:
                self._isolation_flags = ['-I', '-B']

            runtime_dir = Path(tempfile.mkdtemp(prefix="proctorlab_runtime_"))
            atexit.register(shutil.rmtree, runtime_dir, True)

            bootstrap_path = runtime_dir / "__bootstrap__.py"
            bootstrap_path.write_text(BOOTSTRAP_SOURCE, encoding='utf-8')

            self._runtime_dir = runtime_dir
            self._bootstrap_path = bootstrap_path

    def run(
        self,
        code: str,
        stdin: str = "",
        timeout_sec: float = 2.0,
        memory_limit_mb: int = 256
    ) -> RunResult:
        """
        Run a program against a stdin payload.

        Args:
            code: Student source code
            stdin: Newline-delimited input served to input()
            timeout_sec: Wall-clock timeout in seconds
            memory_limit_mb: Memory limit in MB (Unix only)

        Returns:
            RunResult with status "success", "timeout", "runtime_error" or "memory_error"
        """
        self.initialize()
        start_time = time.time()

        with tempfile.TemporaryDirectory(prefix="proctorlab_run_") as temp_dir:
            program_path = Path(temp_dir) / PROGRAM_FILENAME
            program_path.write_text(code, encoding='utf-8')

            command = [
                self._python_exe, *self._isolation_flags,
                str(self._bootstrap_path), str(program_path)
            ]

            popen_kwargs = {}
            if platform.system() != "Windows":
                popen_kwargs["preexec_fn"] = _limit_setter(timeout_sec, memory_limit_mb)

            try:
                proc = subprocess.Popen(
                    command,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    cwd=temp_dir,
                    **popen_kwargs
                )
            except OSError as e:
                return RunResult(
                    status=RUNTIME_ERROR,
                    error=f"Execution error: {e}",
                    elapsed_ms=_elapsed_ms(start_time)
                )

            try:
                stdout_bytes, stderr_bytes = proc.communicate(
                    input=stdin.encode('utf-8'),
                    timeout=timeout_sec
                )
            except subprocess.TimeoutExpired:
                _kill_process_tree(proc.pid)
                proc.communicate()
                return RunResult(
                    status=TIMEOUT,
                    error="Time limit exceeded",
                    elapsed_ms=_elapsed_ms(start_time)
                )

        elapsed_ms = _elapsed_ms(start_time)
        stdout = stdout_bytes.decode('utf-8', errors='replace')
        stderr = stderr_bytes.decode('utf-8', errors='replace')

        if proc.returncode == 0:
            return RunResult(status=SUCCESS, stdout=stdout, stderr=stderr, elapsed_ms=elapsed_ms)

        xcpu = getattr(signal, "SIGXCPU", None)
        if xcpu is not None and proc.returncode == -xcpu:
            return RunResult(status=TIMEOUT, stdout=stdout, stderr=stderr,
                             error="Time limit exceeded", elapsed_ms=elapsed_ms)

        if 'MemoryError' in stderr:
            return RunResult(status=MEMORY_ERROR, stdout=stdout, stderr=stderr,
                             error="Memory limit exceeded", elapsed_ms=elapsed_ms)

        return RunResult(status=RUNTIME_ERROR, stdout=stdout, stderr=stderr,
                         error=_last_error_line(stderr), elapsed_ms=elapsed_ms)


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


def _limit_setter(timeout_sec: float, memory_limit_mb: int):
    """Build the preexec_fn applying CPU and memory limits in the child."""
    def set_limits():
        try:
            import resource
            try:
                cpu_limit = int(timeout_sec) + 1
                resource.setrlimit(resource.RLIMIT_CPU, (cpu_limit, cpu_limit))
            except (ValueError, OSError):
                pass

            try:
                memory_bytes = memory_limit_mb * 1024 * 1024
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            except (ValueError, OSError):
                pass
        except ImportError:
            pass
    return set_limits


_runtime: Optional[InterpreterRuntime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> InterpreterRuntime:
    """Return the process-wide runtime, creating it on first use."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = InterpreterRuntime()
        return _runtime


def set_runtime(runtime) -> None:
    """Replace the process-wide runtime (tests substitute a fake here)."""
    global _runtime
    with _runtime_lock:
        _runtime = runtime


def reset_runtime() -> None:
    """Drop the process-wide runtime; the next run creates a new one."""
    set_runtime(None)


def run_code(
    code: str,
    stdin: str = "",
    timeout_sec: float = 2.0,
    memory_limit_mb: int = 256
) -> RunResult:
    """Run a program through the process-wide runtime."""
    return get_runtime().run(code, stdin, timeout_sec, memory_limit_mb)
