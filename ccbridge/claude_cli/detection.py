"""Claude CLI version detection."""

import asyncio
import re

from ccbridge.core.logging import get_logger


logger = get_logger(__name__)

_VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+(?:[-.][\w.]+)?)")


def parse_version_output(output: str) -> str:
    """Pull a semantic version out of ``--version`` output, else the first line."""
    match = _VERSION_PATTERN.search(output)
    if match:
        return match.group(1)
    return output.strip().splitlines()[0] if output.strip() else output


async def detect_cli_version(cli_path: str, timeout: float = 5.0) -> str | None:
    """Run ``<cli> --version``.

    Returns:
        Version string if the CLI answered, None otherwise.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            cli_path,
            "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug("cli_version_error", cli_path=cli_path, error=str(e))
        return None

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        logger.debug("cli_version_timeout", cli_path=cli_path, timeout=timeout)
        return None

    output = (stdout or stderr).decode("utf-8", errors="replace").strip()
    if process.returncode != 0 or not output:
        logger.debug(
            "cli_version_failed", cli_path=cli_path, exit_code=process.returncode
        )
        return None
    return parse_version_output(output)
