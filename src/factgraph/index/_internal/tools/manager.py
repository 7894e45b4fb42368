"""CodeQL binary discovery and invocation.

Every call to the analysis tool goes through CodeQLTool.run(), which:
1. Runs the binary with CODEQL_HOME in its environment
2. Enforces a hard timeout
3. Turns failures into typed ExtractionError values (never returns a
   half-successful result)
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from factgraph.core.errors import ExtractionError

log = structlog.get_logger()

# Checked in order when no binary is configured
CANDIDATE_PATHS = (
    Path("~/codeql/codeql").expanduser(),
    Path("/usr/local/bin/codeql"),
    Path("/usr/bin/codeql"),
)

VERSION_TIMEOUT_SEC = 30.0


def find_codeql(configured: str | None = None) -> str:
    """Resolve the CodeQL binary.

    Order: configured path, well-known install locations, PATH. Falls back to
    the bare name so the failure surfaces as TOOL_NOT_FOUND at first use.
    """
    if configured:
        return str(Path(configured).expanduser())
    for candidate in CANDIDATE_PATHS:
        if candidate.is_file():
            return str(candidate)
    return shutil.which("codeql") or "codeql"


@dataclass
class ToolResult:
    """Output of a successful tool invocation."""

    stdout: str
    stderr: str
    duration_ms: int


class CodeQLTool:
    """
    Thin wrapper over the CodeQL command line.

    Usage::

        tool = CodeQLTool(find_codeql(), codeql_home=Path("~/codeql-home"))
        tool.query_run(query, database, bqrs_path, timeout=600)
        tool.bqrs_decode(bqrs_path, csv_path, timeout=600)
    """

    def __init__(self, binary: str, codeql_home: Path | None = None, threads: int = 0) -> None:
        self.binary = binary
        self.codeql_home = codeql_home
        self.threads = threads

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.codeql_home is not None:
            env["CODEQL_HOME"] = str(self.codeql_home)
        return env

    def run(self, args: list[str], timeout: float, cwd: Path | None = None) -> ToolResult:
        """Run ``codeql <args>``.

        Raises:
            ExtractionError: TOOL_NOT_FOUND, TOOL_FAILED (with stderr) or
                TOOL_TIMEOUT.
        """
        cmd = [self.binary, *args]
        printable = shlex.join(cmd)
        start = time.monotonic()
        log.debug("codeql_run", command=printable, timeout_sec=timeout)

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=self._env(),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise ExtractionError.tool_not_found(self.binary) from e
        except subprocess.TimeoutExpired as e:
            log.error("codeql_timeout", command=printable, timeout_sec=timeout)
            raise ExtractionError.tool_timeout(printable, timeout) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            log.error(
                "codeql_failed",
                command=printable,
                returncode=result.returncode,
                stderr=result.stderr[-2000:],
            )
            raise ExtractionError.tool_failed(printable, result.returncode, result.stderr)

        log.debug("codeql_done", command=printable, duration_ms=duration_ms)
        return ToolResult(stdout=result.stdout, stderr=result.stderr, duration_ms=duration_ms)

    def version(self) -> str | None:
        """First line of ``codeql version``, or None if the tool cannot run."""
        try:
            result = self.run(["version"], timeout=VERSION_TIMEOUT_SEC)
        except ExtractionError:
            return None
        first = result.stdout.strip().splitlines()
        return first[0] if first else None

    def is_available(self) -> bool:
        return self.version() is not None

    # -- Commands used by the extraction driver and corpus registry ---------

    def query_run(self, query: Path, database: Path, output: Path, timeout: float) -> ToolResult:
        return self.run(
            [
                "query",
                "run",
                str(query),
                "--database",
                str(database),
                "--output",
                str(output),
                f"--threads={self.threads}",
            ],
            timeout=timeout,
        )

    def bqrs_decode(self, bqrs: Path, output: Path, timeout: float) -> ToolResult:
        return self.run(
            ["bqrs", "decode", str(bqrs), "--format=csv", "--output", str(output)],
            timeout=timeout,
        )

    def database_create(
        self,
        database: Path,
        language: str,
        source_root: Path,
        timeout: float,
        command: str | None = None,
    ) -> ToolResult:
        args = [
            "database",
            "create",
            str(database),
            f"--language={language}",
            f"--source-root={source_root}",
            "--overwrite",
        ]
        if command:
            args.append(f"--command={command}")
        return self.run(args, timeout=timeout, cwd=source_root)

    def database_upgrade(self, database: Path, timeout: float) -> ToolResult:
        return self.run(["database", "upgrade", str(database)], timeout=timeout)
