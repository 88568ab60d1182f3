"""
Spawn the assistant CLI, stream its output, classify its exit.

Every assistant phase (implement, review, correct, commit, plan generation)
goes through run_claude_process: write prompt, stream events to the
callback, wait, return a StreamOutput. Expected failures (non-zero exit)
come back as values; only a failure to spawn raises.
"""

import json
import logging
import os
import subprocess
import threading
from pathlib import Path
from typing import Callable

from autom8.claude import stream
from autom8.claude.control import ControlRequest, PermissionHandler
from autom8.claude.types import StreamOutput
from autom8.lib.constants import CLAUDE_BINARY
from autom8.lib.errors import ClaudeError, ClaudeTimeout

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]

STREAM_ARGS = ["--print", "--output-format", "stream-json", "--verbose"]
STDIO_PERMISSION_ARGS = ["--input-format", "stream-json", "--permission-prompt-tool", "stdio"]


def claude_env() -> dict:
    # Remove ANTHROPIC_API_KEY so Claude uses OAuth credentials instead
    return {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}


def build_json_user_message(prompt: str) -> str:
    """Prompt framed for --input-format stream-json."""
    return json.dumps({"type": "user", "message": {"role": "user", "content": prompt}})


def _noop(_text: str) -> None:
    pass


def run_claude_process(
    prompt: str,
    cwd: Path,
    on_output: OutputCallback | None = None,
    args: list[str] | None = None,
    permission_handler: PermissionHandler | None = None,
    timeout: int | None = None,
) -> StreamOutput:
    """
    Run one assistant process to completion.

    Args:
        prompt: Prompt text
        cwd: Working directory for the child
        on_output: Receives each text fragment as it arrives
        args: Permission arguments placed before the stream flags
        permission_handler: Answer tool-permission prompts over stdio
        timeout: Seconds before the child is killed (None = wait forever)

    Returns:
        StreamOutput with the concatenated text, usage and exit status

    Raises:
        ClaudeError: If the process can't be spawned or its pipes fail
        ClaudeTimeout: If timeout expires
    """
    on_output = on_output or _noop
    cmd = [CLAUDE_BINARY, *(args or []), *STREAM_ARGS]
    if permission_handler is not None:
        cmd.extend(STDIO_PERMISSION_ARGS)

    logger.debug(f"Spawning {' '.join(cmd)} in {cwd}")
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
            env=claude_env(),
        )
    except OSError as e:
        raise ClaudeError(f"Failed to spawn claude: {e}") from None

    timed_out = threading.Event()
    timer = None
    if timeout is not None:
        def _kill():
            timed_out.set()
            proc.kill()
        timer = threading.Timer(timeout, _kill)
        timer.daemon = True
        timer.start()

    # stderr is drained on a side thread so a chatty child can't block on a full pipe
    stderr_chunks: list[str] = []
    stderr_thread = threading.Thread(target=lambda: stderr_chunks.append(proc.stderr.read()), daemon=True)
    stderr_thread.start()

    output = StreamOutput()
    texts: list[str] = []
    try:
        try:
            if permission_handler is not None:
                proc.stdin.write(build_json_user_message(prompt) + "\n")
                proc.stdin.flush()
            else:
                proc.stdin.write(prompt)
                proc.stdin.close()
        except (BrokenPipeError, OSError) as e:
            logger.warning(f"Failed to write prompt to claude: {e}")

        for line in proc.stdout:
            event = stream.parse_line(line)
            if event is None:
                continue

            if stream.is_control_request(event):
                request = ControlRequest.from_event(event)
                if request is not None and permission_handler is not None:
                    try:
                        proc.stdin.write(permission_handler.respond_line(request))
                        proc.stdin.flush()
                    except (BrokenPipeError, OSError) as e:
                        logger.warning(f"Failed to answer control request: {e}")
                    # A deny ends the run
                    if permission_handler.denied:
                        logger.warning(f"Stopping claude after denied tool {request.tool_name}")
                        proc.kill()
                        break
                continue

            text = stream.extract_text(event)
            if text:
                texts.append(text)
                on_output(text)

            if stream.is_result(event):
                result = event.get("result")
                if isinstance(result, str):
                    output.final_result = result
                output.usage = stream.extract_usage(event) or output.usage
                if permission_handler is not None and not proc.stdin.closed:
                    proc.stdin.close()

        proc.wait()
    finally:
        if timer is not None:
            timer.cancel()
        if proc.stdin and not proc.stdin.closed:
            try:
                proc.stdin.close()
            except OSError:
                pass
        stderr_thread.join(timeout=5)

    if timed_out.is_set():
        raise ClaudeTimeout(timeout)

    output.text = "".join(texts)
    output.exit_code = proc.returncode
    output.stderr = "".join(c for c in stderr_chunks if c)
    if permission_handler is not None:
        output.denied_tools = list(permission_handler.denied)
    if not output.success:
        logger.info(f"claude exited with {output.exit_code}")
    return output


def run_interactive(prompt: str, cwd: Path | None = None) -> int:
    """Run `claude "<prompt>"` attached to the terminal. Returns the exit code."""
    try:
        result = subprocess.run(
            [CLAUDE_BINARY, prompt],
            cwd=str(cwd) if cwd else None,
            env=claude_env(),
        )
    except OSError as e:
        raise ClaudeError(f"Failed to spawn claude: {e}") from None
    return result.returncode
