"""Adapters that bridge to a locally installed coding-agent CLI.

``claude-cli`` runs ``claude -p --output-format json``; ``codex-cli`` runs
``codex exec --json``.  Both receive the flattened conversation on stdin
and run with the configured workspace as their working directory.  The
CLI handles its own authentication, so no key is needed here.

If the awaiting task is cancelled, the child process is killed before the
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import abstractmethod
from typing import Any, Optional

from modelroute.exceptions import DecodeError, TransportError
from modelroute.models import LLMResult, UsageInfo
from modelroute.providers.base import ChatAdapter, Message, ToolDefinition, flatten_content

logger = logging.getLogger(__name__)

DEFAULT_CLI_TIMEOUT = 600.0


def flatten_conversation(messages: list[Message]) -> tuple[str, str]:
    """Render messages as ``(system prompt, transcript)`` for a text-only CLI.

    A single user message is passed through verbatim; longer conversations
    are prefixed with speaker labels.
    """
    system = "\n\n".join(
        flatten_content(m.get("content")) for m in messages if m.get("role") == "system"
    )
    turns = [m for m in messages if m.get("role") != "system"]
    if len(turns) == 1 and turns[0].get("role") == "user":
        return system, flatten_content(turns[0].get("content"))

    lines = []
    for msg in turns:
        role = msg.get("role", "user")
        text = flatten_content(msg.get("content"))
        if role == "tool":
            lines.append(f"Tool result ({msg.get('tool_call_id', '')}): {text}")
        else:
            lines.append(f"{role.capitalize()}: {text}")
    return system, "\n\n".join(lines)


def _usage(raw: Any) -> Optional[UsageInfo]:
    if not isinstance(raw, dict):
        return None
    prompt = int(raw.get("input_tokens", 0))
    completion = int(raw.get("output_tokens", 0))
    return UsageInfo(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


class CliBridgeAdapter(ChatAdapter):
    """Base class for adapters that spawn a CLI per chat call.

    Args:
        workspace: Working directory for the child process.
        executable: Program name or path.
        timeout: Seconds before the child is killed.
    """

    default_executable = ""

    def __init__(
        self,
        workspace: str = ".",
        executable: str = "",
        timeout: float = DEFAULT_CLI_TIMEOUT,
    ) -> None:
        self.workspace = workspace or "."
        self.executable = executable or self.default_executable
        self.timeout = timeout

    @abstractmethod
    def build_command(self, model: str, system: str) -> list[str]:
        """Return the argv for one call."""

    @abstractmethod
    def parse_output(self, stdout: str) -> LLMResult:
        """Turn the child's stdout into a result."""

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        model: str = "",
        options: Optional[dict[str, Any]] = None,
    ) -> LLMResult:
        if tools:
            logger.debug("%s ignores %d tool definitions", self.name, len(tools))
        system, prompt = flatten_conversation(messages)
        argv = self.build_command(model, system)
        stdout = await self._run(argv, prompt)
        return self.parse_output(stdout)

    async def _run(self, argv: list[str], prompt: str) -> str:
        logger.debug("Running %s in %s", argv[0], self.workspace)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=os.path.expanduser(self.workspace),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransportError(f"Cannot start {argv[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            await self._kill(proc)
            raise TransportError(f"{argv[0]} timed out after {self.timeout:.0f}s") from exc
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            body = stderr.decode("utf-8", errors="replace").strip()
            raise TransportError(
                f"{argv[0]} exited with status {proc.returncode}: {body}", body=body
            )
        return stdout.decode("utf-8", errors="replace")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()


class ClaudeCliAdapter(CliBridgeAdapter):
    """Bridge to the ``claude`` CLI in print mode."""

    default_executable = "claude"

    @property
    def name(self) -> str:
        return "claude-cli"

    def build_command(self, model: str, system: str) -> list[str]:
        argv = [self.executable, "-p", "--output-format", "json"]
        if model:
            argv += ["--model", model]
        if system:
            argv += ["--append-system-prompt", system]
        return argv

    def parse_output(self, stdout: str) -> LLMResult:
        try:
            data = json.loads(stdout)
        except ValueError as exc:
            raise DecodeError(f"claude returned non-JSON output: {exc}") from exc
        if not isinstance(data, dict):
            raise DecodeError("claude returned an unexpected JSON shape")
        if data.get("is_error"):
            detail = str(data.get("result", ""))
            raise TransportError(f"claude reported an error: {detail}", body=detail)
        return LLMResult(
            content=str(data.get("result", "")),
            finish_reason="stop",
            usage=_usage(data.get("usage")),
        )


class CodexCliAdapter(CliBridgeAdapter):
    """Bridge to ``codex exec`` with JSONL event output."""

    default_executable = "codex"

    @property
    def name(self) -> str:
        return "codex-cli"

    def build_command(self, model: str, system: str) -> list[str]:
        argv = [self.executable, "exec", "--json", "--skip-git-repo-check"]
        if model:
            argv += ["--model", model]
        if system:
            argv += ["--config", f"instructions={json.dumps(system)}"]
        argv.append("-")
        return argv

    def parse_output(self, stdout: str) -> LLMResult:
        messages: list[str] = []
        usage = None
        for line in stdout.splitlines():
            line = line.strip()
            if not line.startswith("{"):
                continue
            try:
                event = json.loads(line)
            except ValueError:
                logger.debug("Skipping malformed codex event: %s", line)
                continue

            event_type = event.get("type", "")
            if event_type == "item.completed":
                item = event.get("item") or {}
                if item.get("type") == "agent_message" and item.get("text"):
                    messages.append(item["text"])
            elif event_type == "turn.completed":
                usage = _usage(event.get("usage"))
            elif event_type in ("turn.failed", "error"):
                error = event.get("error") or {}
                detail = error.get("message") or event.get("message") or line
                raise TransportError(f"codex reported an error: {detail}", body=line)

        return LLMResult(content="\n".join(messages), finish_reason="stop", usage=usage)
