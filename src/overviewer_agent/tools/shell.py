"""Shell command tool with timeout, output cap and scrubbed environment."""

import asyncio
import logging
import os
import signal

from .base import Tool, ToolContext, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

# Only these variables reach commands; tokens and API keys stay behind
PASSTHROUGH_ENV = ("PATH", "HOME", "LANG", "LC_ALL", "LC_CTYPE", "TERM", "TMPDIR", "TZ", "USER", "SHELL")

_CHUNK = 64 * 1024


def scrubbed_env() -> dict[str, str]:
    env = {key: os.environ[key] for key in PASSTHROUGH_ENV if key in os.environ}
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["CI"] = "1"
    return env


async def _read_capped(stream: asyncio.StreamReader, cap: int) -> tuple[bytes, bool]:
    """Read a stream to EOF, keeping at most ``cap`` bytes."""
    kept = bytearray()
    truncated = False
    while True:
        chunk = await stream.read(_CHUNK)
        if not chunk:
            break
        room = cap - len(kept)
        if room > 0:
            kept.extend(chunk[:room])
        if len(chunk) > room:
            truncated = True
    return bytes(kept), truncated


def _decode(data: bytes, truncated: bool) -> str:
    text = data.decode("utf-8", errors="replace")
    return f"{text}\n[output truncated]" if truncated else text


class RunCommandTool(Tool):
    name = "run_command"
    description = "Execute a shell command in the repository directory"
    parameters = {
        "command": ToolParameter(type="string", description="Shell command to execute", required=True),
        "timeout": ToolParameter(
            type="number",
            description="Timeout in seconds (default: 30, max: 300)",
        ),
    }

    def __init__(self, default_timeout: int = 30, max_timeout: int = 300, max_output_bytes: int = 1024 * 1024):
        self.default_timeout = default_timeout
        self.max_timeout = max_timeout
        self.max_output_bytes = max_output_bytes

    def _timeout(self, value) -> float:
        if value is None:
            return float(self.default_timeout)
        timeout = float(value)
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {value}")
        return min(timeout, float(self.max_timeout))

    async def run(self, params: dict, context: ToolContext) -> ToolResult:
        try:
            timeout = self._timeout(params.get("timeout"))
        except (TypeError, ValueError) as e:
            return ToolResult.fail(f"Invalid timeout: {e}")

        command = str(params["command"])
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(context.workspace.root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=scrubbed_env(),
            start_new_session=True,
        )

        try:
            (stdout, out_cut), (stderr, err_cut), returncode = await asyncio.wait_for(
                asyncio.gather(
                    _read_capped(process.stdout, self.max_output_bytes),
                    _read_capped(process.stderr, self.max_output_bytes),
                    process.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            _kill_group(process)
            await process.wait()
            logger.warning(f"Command timed out after {timeout:.0f}s: {command}")
            return ToolResult.fail(f"Command timed out after {timeout:.0f}s: {command}")

        out_text = _decode(stdout, out_cut)
        err_text = _decode(stderr, err_cut)
        if returncode != 0:
            error = f"Command failed with exit code {returncode}: {command}"
            if err_text:
                error += f"\n{err_text}"
            return ToolResult.fail(error, output=out_text)

        return ToolResult.ok(out_text + (f"\nSTDERR:\n{err_text}" if err_text else ""))


def _kill_group(process: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
