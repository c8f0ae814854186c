"""CodeExecTool — run Python code in a subprocess via asyncio."""

import asyncio
import sys
import time
from typing import Any

from agentorch.core.tools import Tool, ToolContext, ToolKind
from agentorch.tools.claude import ClaudeTools

DEFAULT_TIMEOUT = 120


class CodeExecTool:
    """Execute ``args['code']`` with the current interpreter and return stdout.

    When only ``args['prompt']`` is given, the code is first written by
    ``writer`` (a ``ClaudeTools``). Without a writer such a call fails.
    Artifacts: ``code_*`` (the script) and ``stdout_*`` (its output).
    A non-zero exit or a timeout raises.
    """

    def __init__(
        self,
        *,
        writer: ClaudeTools | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        cwd: str | None = None,
    ) -> None:
        self.writer = writer
        self.timeout = timeout
        self.cwd = cwd

    def registry(self) -> dict[str, Tool]:
        return {ToolKind.CODE_EXEC.value: self}

    async def __call__(self, args: dict[str, Any] | str, ctx: ToolContext) -> str:
        if isinstance(args, str):
            args = {"prompt": args}
        code = args.get("code")
        if not code:
            prompt = str(args.get("prompt") or "")
            if self.writer is None:
                raise ValueError("code.exec needs 'code' or a code writer for prompt-only calls")
            code = await self.writer.write_code(prompt, ctx)
        ctx.memory.put_doc(f"code_{time.time_ns()}", code)

        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-c",
            code,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise TimeoutError(f"Code execution timed out after {self.timeout}s") from None

        stdout_text = stdout.decode()
        stderr_text = stderr.decode()
        ctx.trace.info("tool.code_exec", returncode=proc.returncode, stdout_len=len(stdout_text))
        if proc.returncode != 0:
            raise RuntimeError(stderr_text.strip() or f"Exit code: {proc.returncode}")

        ctx.memory.put_doc(f"stdout_{time.time_ns()}", stdout_text)
        return stdout_text.strip()
