"""Engine: translate a user message, run it as a job, and humanize the result."""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass, field

from ..config import config
from ..models.commands import ADECommand, ChatMessage, CommandAction, EngineResult
from ..models.jobs import Job, JobProgressEvent, JobStatus
from ..services.events import ProgressListener
from ..services.job_manager import JobManager
from ..services.translator import Translator
from ..utils.message_splitter import split_message

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.7
MAX_HISTORY = 20
RAW_OUTPUT_LIMIT = 3000

DEFAULT_CLARIFICATION = "Could you clarify what you want me to do?"
JOB_FAILED_MESSAGE = "Job failed or was cancelled. Try again, or rephrase the request."
EMPTY_OUTPUT_MESSAGE = "The job finished without producing any output."
TRUNCATION_MARKER = "\n\n[Output truncated]"

# Messages matching any of these are development requests and always go to the translator.
_DEV_PATTERNS = [
    re.compile(r"\b(implement|create|build|develop|code|fix|bug|refactor|test|deploy|push|commit|merge|release)\b", re.I),
    re.compile(r"\b(implementa|cria|desenvolv|corrig|refator|publica)\w*", re.I),
    re.compile(r"\b(story|epic|prd|sprint|backlog|feature|issue|pr|pull.?request)\b", re.I),
    re.compile(r"\b(npm|node|git|docker|api|database|server|endpoint|route|component|module)\b", re.I),
    re.compile(r"\b(error|exception|stack.?trace|log|debug|lint|typecheck)\b", re.I),
    re.compile(r"\b(arquivo|pasta|diretório|função|classe|variável|método|banco|tabela)\b", re.I),
    re.compile(r"@(dev|qa|sm|po|pm|architect|devops|analyst)\b", re.I),
    re.compile(r"\*\w+"),
]

_QUICK_REPLIES: list[tuple[re.Pattern[str], list[str]]] = [
    (
        re.compile(r"^(hi|hello|hey|oi|olá|ola|good (morning|afternoon|evening)|bom dia|boa tarde|boa noite)\b", re.I),
        [
            "Hello! I'm your gateway to the ADE. I can implement stories, fix bugs, run tests and more. "
            "What do you need?",
            "Hi! Ready to help with development: implementing, fixing, testing, reviewing code...",
        ],
    ),
    (
        re.compile(r"^(how are you|how is it going|tudo bem|como vai)\b\??$", re.I),
        ["All good and ready to help. Tell me what you need built."],
    ),
    (
        re.compile(r"^(thanks|thank you|thx|obrigad[oa]|valeu)\b", re.I),
        ["You're welcome! Just ask if you need anything else."],
    ),
    (
        re.compile(r"^(help|what can you do|ajuda)\b\??$", re.I),
        [
            "I'm a bridge between you and the ADE (Autonomous Development Engine).\n\n"
            "I can help with:\n"
            "• Implementing user stories\n"
            "• Fixing bugs\n"
            "• Running tests and lint\n"
            "• Reviewing code\n"
            "• Any other development task\n\n"
            "Just describe what you need in plain language!"
        ],
    ),
]


def is_dev_message(text: str) -> bool:
    return any(pattern.search(text) for pattern in _DEV_PATTERNS)


def get_quick_response(text: str) -> str | None:
    """Canned reply for small talk, or None if the message needs the translator."""
    trimmed = text.strip()
    for pattern, replies in _QUICK_REPLIES:
        if pattern.search(trimmed):
            return random.choice(replies)
    return None


def truncate_output(output: str, limit: int = RAW_OUTPUT_LIMIT) -> str:
    if len(output) <= limit:
        return output
    return output[:limit] + TRUNCATION_MARKER


@dataclass
class ConversationContext:
    """Per-owner conversational memory."""

    owner: str
    access_token: str
    history: list[ChatMessage] = field(default_factory=list)
    active_agent: str | None = None

    def remember(self, role: str, content: str) -> None:
        self.history.append(ChatMessage(role=role, content=content))
        if len(self.history) > MAX_HISTORY:
            del self.history[:-MAX_HISTORY]


class Engine:
    """The per-message use case: translate, gate, execute, humanize."""

    def __init__(
        self,
        job_manager: JobManager | None = None,
        translator: Translator | None = None,
        *,
        max_message_length: int | None = None,
    ) -> None:
        self._jobs = job_manager or JobManager()
        self._translator = translator or Translator()
        self._max_message_length = max_message_length or config.max_message_length
        self._contexts: dict[str, ConversationContext] = {}

    @property
    def job_manager(self) -> JobManager:
        return self._jobs

    def get_or_create_context(self, owner: str, access_token: str) -> ConversationContext:
        ctx = self._contexts.get(owner)
        if ctx is None:
            ctx = ConversationContext(owner=owner, access_token=access_token)
            self._contexts[owner] = ctx
        ctx.access_token = access_token
        return ctx

    def reset_context(self, owner: str) -> bool:
        return self._contexts.pop(owner, None) is not None

    async def process_message(
        self,
        owner: str,
        access_token: str,
        text: str,
        on_progress: ProgressListener | None = None,
    ) -> EngineResult:
        ctx = self.get_or_create_context(owner, access_token)
        ctx.remember("user", text)

        logger.info("Processing message from %s (length %d)", owner, len(text))

        quick_reply = get_quick_response(text)
        if quick_reply and not is_dev_message(text):
            logger.info("Quick local response for %s", owner)
            ctx.remember("assistant", quick_reply)
            return EngineResult(messages=[quick_reply])

        command = await self._translator.to_command(access_token, text, ctx.history)
        logger.info(
            "Translation result for %s: action=%s agent=%s confidence=%.2f",
            owner,
            command.action.value,
            command.agent,
            command.confidence,
        )
        if command.agent:
            ctx.active_agent = command.agent

        # Written so that a NaN confidence fails the gate
        if command.action is CommandAction.CLARIFY or not command.confidence >= CONFIDENCE_THRESHOLD:
            clarification = command.clarification or DEFAULT_CLARIFICATION
            ctx.remember("assistant", clarification)
            return EngineResult(messages=self._split(clarification), command=command)

        job = self._jobs.create_job(owner, command.raw_prompt or text)
        progress = self._jobs.subscribe(on_progress, job_id=job.id) if on_progress else None
        try:
            finished = await self.wait_for_job(job.id)
        finally:
            if progress:
                progress.close()

        if finished is None or finished.status is not JobStatus.COMPLETED:
            return EngineResult(messages=[JOB_FAILED_MESSAGE], command=command, job_id=job.id)

        reply = await self._humanize(access_token, finished.result_text, command)
        ctx.remember("assistant", reply)
        return EngineResult(
            messages=self._split(reply) or [EMPTY_OUTPUT_MESSAGE],
            command=command,
            job_id=job.id,
        )

    async def wait_for_job(self, job_id: str) -> Job | None:
        """Suspend until the job reaches a terminal state and return its snapshot.

        Subscribes before checking the current state, so a terminal event can
        never slip between the check and the subscription.
        """
        done: asyncio.Future[Job] = asyncio.get_running_loop().create_future()

        def on_event(event: JobProgressEvent) -> None:
            if event.kind.is_terminal and not done.done():
                done.set_result(event.snapshot)

        with self._jobs.subscribe(on_event, job_id=job_id):
            job = self._jobs.get_job(job_id)
            if job is None:
                return None
            if job.status.is_terminal:
                return job
            return await done

    # ── Internal ──────────────────────────────────────────────────────────

    async def _humanize(self, access_token: str, output: str, command: ADECommand) -> str:
        try:
            return await self._translator.to_user(
                access_token, output, f"Agent: {command.agent}, Command: {command.command}"
            )
        except Exception as exc:
            logger.warning("Humanizing job output failed, returning raw output: %s", exc)
            return truncate_output(output)

    def _split(self, text: str) -> list[str]:
        return split_message(text, self._max_message_length)
