"""
Isolated JavaScript execution.

Submitted code never runs inside the API process. Each snippet gets its own
short-lived ``node`` child with:

- an empty environment and a throwaway working directory
- Node's permission model (no filesystem writes, no child processes, no
  workers) where the installed node supports it
- a V8 heap cap (the memory limit; V8 reserves more address space than it
  uses, so RLIMIT_AS is not usable), plus CPU-time and file-size rlimits on
  Linux, applied to the child with prlimit
- a wall-clock timeout and a cap on captured output
"""

import functools
import logging
import re
import resource
import shutil
import subprocess
import tempfile
import threading
from typing import Tuple

from fastapi import APIRouter

import settings
from errors import ExecutionError, ValidationError
from schemas import ExecuteCodeRequest

logger = logging.getLogger("tech_mastery.executor")

router = APIRouter(tags=["playground"])

SUPPORTED_LANGUAGES = ("javascript",)
DEFAULT_OUTPUT = "Code executed successfully!"
TRUNCATED_MARKER = "\n... [output truncated]"
MAX_CODE_LENGTH = 100_000
CHUNK_SIZE = 4096

_ERROR_LINE = re.compile(r"^(?:[A-Z]\w*)?Error(?:: (?P<message>.*))?$")
# Trailer lines node prints after an uncaught exception
NODE_NOISE = ("Node.js v", "(Use `node")


def _resolve_node() -> str:
    path = shutil.which(settings.NODE_BINARY)
    if not path:
        raise ExecutionError("JavaScript runtime not available")
    return path


@functools.lru_cache(maxsize=4)
def _permission_flags(node: str) -> Tuple[str, ...]:
    try:
        version = subprocess.run(
            [node, "--version"], capture_output=True, text=True, timeout=5, env={}
        ).stdout.strip()
    except (OSError, subprocess.SubprocessError):
        logger.warning("Could not determine node version", exc_info=True)
        return ()
    match = re.match(r"v(\d+)\.(\d+)", version)
    if not match:
        return ()
    major, minor = int(match.group(1)), int(match.group(2))
    if (major, minor) >= (22, 13) or major >= 23:
        return ("--permission",)
    if major >= 20:
        return ("--experimental-permission",)
    logger.warning("node %s has no permission model; relying on process limits only", version)
    return ()


def _limit_resources(pid: int):
    if not hasattr(resource, "prlimit"):
        return
    cpu = int(settings.EXECUTION_TIMEOUT) + 1
    try:
        resource.prlimit(pid, resource.RLIMIT_CPU, (cpu, cpu))
        resource.prlimit(pid, resource.RLIMIT_FSIZE, (0, 0))
        resource.prlimit(pid, resource.RLIMIT_CORE, (0, 0))
    except ProcessLookupError:
        pass  # already exited


def _drain(stream, sink: bytearray, limit: int, overflow: threading.Event, proc):
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            break
        room = limit - len(sink)
        if room > 0:
            sink.extend(chunk[:room])
        if len(chunk) > room:
            overflow.set()
            proc.kill()
            break
    stream.close()


def _run_node(code: str):
    """Run code in a fresh node process.

    Returns (returncode, stdout, stderr, truncated)."""
    node = _resolve_node()
    command = [
        node,
        *_permission_flags(node),
        f"--max-old-space-size={settings.EXECUTION_MEMORY_MB}",
        "-",
    ]
    limit = settings.EXECUTION_OUTPUT_LIMIT
    stdout, stderr = bytearray(), bytearray()
    overflow = threading.Event()

    with tempfile.TemporaryDirectory(prefix="exec-") as scratch:
        proc = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=scratch,
            env={},
        )
        _limit_resources(proc.pid)
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, stdout, limit, overflow, proc), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, stderr, limit, overflow, proc), daemon=True),
        ]
        for reader in readers:
            reader.start()
        try:
            proc.stdin.write(code.encode("utf-8"))
            proc.stdin.close()
        except BrokenPipeError:
            pass  # child exited before reading everything; its status tells us why
        try:
            returncode = proc.wait(timeout=settings.EXECUTION_TIMEOUT)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            logger.info("Execution timed out after %ss", settings.EXECUTION_TIMEOUT)
            raise ExecutionError(f"Execution timed out after {settings.EXECUTION_TIMEOUT:g}s")
        finally:
            for reader in readers:
                reader.join(timeout=1)

    return (
        returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
        overflow.is_set(),
    )


def error_message(stderr: str) -> str:
    """Pick the thrown error's message out of node's uncaught-exception dump."""
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    for line in lines:
        match = _ERROR_LINE.match(line)
        if match:
            return match.group("message") or line
    lines = [line for line in lines if not line.startswith(NODE_NOISE)]
    return lines[-1] if lines else "Execution failed"


def execute_code(code: str, language: str = "javascript") -> dict:
    if language not in SUPPORTED_LANGUAGES:
        raise ValidationError("Only JavaScript supported currently")
    if not code or not code.strip():
        raise ValidationError("Code required")
    if len(code) > MAX_CODE_LENGTH:
        raise ValidationError("Code too long")

    returncode, stdout, stderr, truncated = _run_node(code)

    if truncated:
        return {"success": True, "output": stdout.rstrip("\n") + TRUNCATED_MARKER}
    if returncode < 0:
        raise ExecutionError("Execution exceeded its resource limits")
    if returncode != 0:
        return {"success": False, "error": error_message(stderr)}
    return {"success": True, "output": stdout.rstrip("\n") or DEFAULT_OUTPUT}


# ---------- Routes ----------

@router.post("/api/execute-code")
def execute_code_route(payload: ExecuteCodeRequest):
    try:
        return execute_code(payload.code, payload.language)
    except ExecutionError as e:
        logger.warning("Code execution failed: %s", e.message)
        return {"success": False, "error": e.message}
