"""Claude Code CLI bridge: supervises one streaming process invocation at a time."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..config import config
from ..errors import AlreadyRunningError, BridgeTimeoutError, ProcessExitError, SpawnError
from ..models.jobs import OutputChunk
from .stream_parser import StreamParser

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10 * 60.0
_READ_SIZE = 64 * 1024
_VERSION_PROBE_TIMEOUT = 30.0

OutputHandler = Callable[[OutputChunk], None]


class BridgeState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(slots=True)
class ExecuteOptions:
    """Per-invocation options for the Claude Code process."""

    cwd: Path | str | None = None
    timeout: float | None = None
    allowed_tools: list[str] = field(default_factory=list)
    append_system_prompt: str | None = None


class ClaudeCodeBridge:
    """Runs ``claude --print`` with the prompt on stdin and parses its stream-json output.

    Only one execution may be in flight; callers that need queuing go through
    the job manager.
    """

    def __init__(
        self,
        command: Sequence[str] | None = None,
        *,
        default_timeout: float = DEFAULT_TIMEOUT,
        kill_grace: float = 5.0,
    ) -> None:
        self._command = list(command) if command else list(config.claude_command)
        self._default_timeout = default_timeout
        self._kill_grace = kill_grace
        self._process: asyncio.subprocess.Process | None = None
        self._state = BridgeState.IDLE
        # Set when kill() lands while the process is still being spawned
        self._kill_on_spawn = False

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is BridgeState.RUNNING

    async def is_available(self) -> bool:
        """Probe the executable with ``--version``. Never raises."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (OSError, ValueError) as exc:
            logger.debug("Claude Code not available: %s", exc)
            return False

        try:
            return await asyncio.wait_for(proc.wait(), timeout=_VERSION_PROBE_TIMEOUT) == 0
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            return False

    def build_args(self, options: ExecuteOptions) -> list[str]:
        args = [
            *self._command,
            "--print",
            "--verbose",
            "--output-format",
            "stream-json",
            "--dangerously-skip-permissions",
        ]
        if options.allowed_tools:
            args += ["--allowedTools", ",".join(options.allowed_tools)]
        if options.append_system_prompt:
            args += ["--append-system-prompt", options.append_system_prompt]
        return args

    async def execute(
        self,
        prompt: str,
        options: ExecuteOptions | None = None,
        on_output: OutputHandler | None = None,
    ) -> str:
        """Run one prompt to completion and return the accumulated result text.

        Every parsed chunk is passed to ``on_output`` as soon as it arrives.

        Raises:
            AlreadyRunningError: a previous execution has not terminated.
            SpawnError: the executable could not be launched.
            BridgeTimeoutError: the process outlived its timeout and was killed.
            ProcessExitError: the process exited with a non-zero code.
        """
        if self._state is BridgeState.RUNNING:
            raise AlreadyRunningError()

        options = options or ExecuteOptions()
        timeout = options.timeout if options.timeout is not None else self._default_timeout
        cwd = str(options.cwd or config.project_dir)
        args = self.build_args(options)

        logger.info("Executing Claude Code command (prompt length %d, cwd %s)", len(prompt), cwd)

        self._state = BridgeState.RUNNING
        self._kill_on_spawn = False
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=os.environ.copy(),
            )
        except (OSError, ValueError) as exc:
            self._state = BridgeState.IDLE
            logger.error("Claude Code process error: %s", exc)
            raise SpawnError(f"Failed to spawn Claude Code: {exc}") from exc
        except asyncio.CancelledError:
            self._state = BridgeState.IDLE
            raise

        if self._kill_on_spawn:
            self._kill_on_spawn = False
            self._terminate(process)
        else:
            self._process = process
        parser = StreamParser()
        try:
            stderr_text = await asyncio.wait_for(
                self._communicate(process, prompt, parser, on_output), timeout
            )
        except asyncio.TimeoutError:
            logger.error("Claude Code command timed out after %gs", timeout)
            self._abort(process)
            raise BridgeTimeoutError(timeout) from None
        except BaseException:
            # Cancellation or a failure while streaming; the child must not outlive the run
            self._abort(process)
            raise
        finally:
            if self._process is process:
                self._process = None
                self._state = BridgeState.IDLE

        result = parser.result
        if process.returncode == 0:
            logger.info("Claude Code command completed (output length %d)", len(result))
            return result

        stderr_text = stderr_text.strip()
        detail = result or parser.errors or stderr_text or "No output captured"
        logger.error("Claude Code command failed (code %s): %s", process.returncode, stderr_text)
        raise ProcessExitError(process.returncode, detail)

    def kill(self) -> None:
        """Terminate the active process, if any, and mark the bridge idle.

        The process gets SIGTERM now and SIGKILL after the grace period if it
        is still alive by then.
        """
        process, self._process = self._process, None
        if process is None:
            if self._state is BridgeState.RUNNING:
                self._kill_on_spawn = True
                self._state = BridgeState.IDLE
            return
        self._state = BridgeState.IDLE
        self._terminate(process)

    # ── Internal ──────────────────────────────────────────────────────────

    def _abort(self, process: asyncio.subprocess.Process) -> None:
        """Kill ``process``, going through ``kill()`` only while it is still the active one."""
        if self._process is process:
            self.kill()
        else:
            self._terminate(process)

    def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            asyncio.get_running_loop().call_later(self._kill_grace, self._force_kill, process)
        except RuntimeError:
            logger.warning("No running event loop; SIGKILL escalation not scheduled")
        logger.info("Claude Code process killed")

    @staticmethod
    def _force_kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        logger.warning("Claude Code process %s ignored SIGTERM; sending SIGKILL", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            pass

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        prompt: str,
        parser: StreamParser,
        on_output: OutputHandler | None,
    ) -> str:
        """Feed the prompt, stream stdout through the parser, and return stderr."""
        writer = asyncio.create_task(self._write_prompt(process, prompt))
        stderr_reader = asyncio.create_task(process.stderr.read())
        try:
            while True:
                data = await process.stdout.read(_READ_SIZE)
                if not data:
                    break
                self._dispatch(parser.feed(data), on_output)
            self._dispatch(parser.finish(), on_output)

            await writer
            stderr = (await stderr_reader).decode("utf-8", errors="replace")
            if stderr:
                logger.debug("Claude Code stderr: %s", stderr)
            await process.wait()
            return stderr
        finally:
            for task in (writer, stderr_reader):
                if not task.done():
                    task.cancel()

    @staticmethod
    async def _write_prompt(process: asyncio.subprocess.Process, prompt: str) -> None:
        stdin = process.stdin
        try:
            stdin.write(prompt.encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.debug("Claude Code closed stdin early: %s", exc)
        finally:
            stdin.close()

    @staticmethod
    def _dispatch(chunks: list[OutputChunk], on_output: OutputHandler | None) -> None:
        if on_output is None:
            return
        for chunk in chunks:
            try:
                on_output(chunk)
            except Exception:
                logger.exception("Output handler failed for %s chunk", chunk.kind.value)
