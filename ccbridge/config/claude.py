"""Claude CLI subprocess settings."""

import os
import shutil
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


DEFAULT_MODEL = "claude-sonnet-4"


def _common_cli_paths() -> list[Path]:
    return [
        # User-specific Claude installation
        Path.home() / ".claude" / "local" / "claude",
        # User's global node_modules (npm install -g)
        Path.home() / "node_modules" / ".bin" / "claude",
        # Current working directory node_modules
        Path.cwd() / "node_modules" / ".bin" / "claude",
        # System-wide installations
        Path("/usr/local/bin/claude"),
        Path("/opt/homebrew/bin/claude"),
    ]


class ClaudeSettings(BaseModel):
    """Settings for the Claude Code CLI backing process."""

    cli_path: str | None = Field(
        default=None,
        description="Path to Claude CLI executable (auto-detected when unset)",
    )

    cwd: str | None = Field(
        default=None,
        description="Working directory for the Claude CLI subprocess (defaults to the server's CWD)",
    )

    default_model: str = Field(
        default=DEFAULT_MODEL,
        description="Model name reported in streamed chunks until the CLI announces its own",
    )

    timeout_seconds: float = Field(
        default=300.0,
        description="Kill the CLI when no terminal event arrives within this many seconds (0 disables)",
        ge=0,
    )

    exit_grace_seconds: float = Field(
        default=5.0,
        description="How long to wait for the CLI to exit after its final result before killing it",
        ge=0,
    )

    disconnect_poll_interval: float = Field(
        default=0.5,
        description="Interval for client disconnect checks on non-streaming requests",
        gt=0,
    )

    event_queue_size: int = Field(
        default=256,
        description="Capacity of the per-request lifecycle event queue",
        ge=1,
    )

    @field_validator("cli_path")
    @classmethod
    def validate_cli_path(cls, v: str | None) -> str | None:
        """Validate Claude CLI path if provided."""
        if v is not None:
            path = Path(v)
            if not path.exists():
                raise ValueError(f"Claude CLI path does not exist: {v}")
            if not path.is_file():
                raise ValueError(f"Claude CLI path is not a file: {v}")
            if not os.access(path, os.X_OK):
                raise ValueError(f"Claude CLI path is not executable: {v}")
        return v

    def find_cli(self) -> str | None:
        """Find the Claude CLI executable in PATH or a known install location."""
        if self.cli_path:
            return self.cli_path

        found = shutil.which("claude")
        if found:
            return found

        for path in _common_cli_paths():
            if path.exists() and path.is_file() and os.access(path, os.X_OK):
                return str(path)

        return None

    def get_searched_paths(self) -> list[str]:
        """Get list of paths that would be searched for Claude CLI auto-detection."""
        return ["PATH environment variable"] + [str(p) for p in _common_cli_paths()]

    def resolve_cwd(self) -> str:
        return self.cwd or os.getcwd()
