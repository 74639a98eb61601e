"""Shared fixtures and fakes for the ADE Gateway tests."""

from __future__ import annotations

import asyncio
import os
import sys

# Must be set before ade_gateway.config is imported, or a key file gets written to cwd
os.environ["ADE_API_KEY"] = "test-key"

import pytest

from ade_gateway.errors import AlreadyRunningError, ProcessExitError, TranslationServiceError
from ade_gateway.models.commands import ADECommand, CommandAction
from ade_gateway.models.jobs import ChunkKind, OutputChunk
from ade_gateway.services.claude_cli import BridgeState, ClaudeCodeBridge, ExecuteOptions
from ade_gateway.services.job_manager import JobManager

API_KEY = "test-key"

ECHO_SCRIPT = "import sys; sys.stdout.write(sys.stdin.read())"
FAIL_SCRIPT = "import sys; sys.stdin.read(); sys.stderr.write('boom'); sys.exit(1)"
SLEEP_SCRIPT = "import sys, time; sys.stdin.read(); time.sleep(30)"


async def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def python_bridge(script: str, **kwargs) -> ClaudeCodeBridge:
    """A real bridge whose 'executable' is a Python one-liner."""
    return ClaudeCodeBridge([sys.executable, "-c", script], **kwargs)


class FakeRun:
    """One execution on the FakeBridge, driven by the test."""

    def __init__(self, prompt: str, on_output) -> None:
        self.prompt = prompt
        self.on_output = on_output
        self.future: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    def emit(self, content: str, kind: ChunkKind = ChunkKind.TEXT) -> None:
        self.on_output(OutputChunk(kind=kind, content=content))

    def finish(self, result: str = "") -> None:
        self.future.set_result(result)

    def fail(self, exc: Exception) -> None:
        self.future.set_exception(exc)


class FakeBridge:
    """Stand-in for ClaudeCodeBridge that records runs instead of spawning processes.

    With ``auto_output`` set, every run emits those fragments and completes
    immediately; otherwise the test resolves each ``FakeRun`` itself.
    """

    def __init__(self, auto_output: list[str] | None = None) -> None:
        self._state = BridgeState.IDLE
        self.auto_output = auto_output
        self.available = True
        self.runs: list[FakeRun] = []
        self.kills = 0

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is BridgeState.RUNNING

    async def is_available(self) -> bool:
        return self.available

    async def execute(self, prompt: str, options: ExecuteOptions | None = None, on_output=None) -> str:
        if self._state is BridgeState.RUNNING:
            raise AlreadyRunningError()
        self._state = BridgeState.RUNNING
        run = FakeRun(prompt, on_output or (lambda chunk: None))
        self.runs.append(run)
        try:
            if self.auto_output is not None:
                for fragment in self.auto_output:
                    run.emit(fragment)
                return "\n".join(self.auto_output)
            return await run.future
        finally:
            if self.runs[-1] is run:
                self._state = BridgeState.IDLE

    def kill(self) -> None:
        self.kills += 1
        self._state = BridgeState.IDLE
        for run in self.runs:
            if not run.future.done():
                run.fail(ProcessExitError(-15, "No output captured"))


class FakeTranslator:
    """Translator double returning a fixed command and reply."""

    def __init__(self, command: ADECommand, reply: str = "All done.", fail_humanize: bool = False) -> None:
        self.command = command
        self.reply = reply
        self.fail_humanize = fail_humanize
        self.command_calls: list[tuple[str, str, list]] = []
        self.user_calls: list[tuple[str, str, str]] = []

    async def to_command(self, access_token, message, history=()):
        self.command_calls.append((access_token, message, list(history)))
        return self.command

    async def to_user(self, access_token, output, context=""):
        self.user_calls.append((access_token, output, context))
        if self.fail_humanize:
            raise TranslationServiceError("translation API down")
        return self.reply


def make_command(confidence: float = 0.9, action: CommandAction = CommandAction.EXECUTE, **kwargs) -> ADECommand:
    fields = {"agent": "dev", "command": "develop", "raw_prompt": "Implement the feature"}
    fields.update(kwargs)
    return ADECommand(action=action, confidence=confidence, **fields)


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
async def manager(fake_bridge):
    mgr = JobManager(bridge=fake_bridge, options=ExecuteOptions(timeout=5))
    yield mgr
    await mgr.shutdown()
