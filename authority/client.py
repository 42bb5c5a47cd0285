"""
Inventory authority lookup.

Runs the configured shell command and turns its stdout (one content
identifier per line) into the set of descriptor filenames the authority
wants seeded.

Design notes:
- Exit 0 with empty output is a valid answer ("seed nothing"), not a failure.
- Nonzero exit, timeout, or a command that cannot start raises
  AuthorityUnavailable. stderr is logged, never returned.
- last_contacted only advances on success; garbage collection measures
  retention against it so nothing expires during an authority outage.
"""

from __future__ import annotations

import subprocess
import time
from typing import Optional

from shared.log import create_logger

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Authority")


class AuthorityUnavailable(Exception):
    """The authority command failed, timed out, or could not be started."""


class InventoryAuthorityClient:
    """
    Queries the inventory authority through an external command.

    Args:
        command: Shell command line printing identifiers, one per line
        suffix: Descriptor suffix appended to each identifier
        timeout: Seconds to wait for the command (None = no limit)
    """

    def __init__(self, command: str, suffix: str = ".torrent", timeout: Optional[float] = None):
        self.command = command
        self.suffix = suffix
        self.timeout = timeout
        self.last_contacted: Optional[float] = None

    def fetch_expected_names(self) -> set[str]:
        """
        Run the authority command and build the expected filename set.

        Returns:
            Set of "<identifier><suffix>" filenames (may be empty)

        Raises:
            AuthorityUnavailable: On nonzero exit, timeout, or launch failure
        """
        log_trace(f"Running authority command: {self.command}")
        try:
            result = subprocess.run(
                self.command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            log_error(f"Authority command timed out after {self.timeout}s")
            raise AuthorityUnavailable(f"timed out after {self.timeout}s") from e
        except OSError as e:
            log_error(f"Unable to run authority command: {e}")
            raise AuthorityUnavailable(str(e)) from e

        if result.returncode != 0:
            log_error(f"Unable to check the authority (exit code {result.returncode})")
            if result.stderr.strip():
                log_error(f"Authority STDERR: {result.stderr.strip()}")
            raise AuthorityUnavailable(f"exit code {result.returncode}")

        self.last_contacted = time.time()

        expected = self.parse_output(result.stdout)
        if not expected:
            log_debug("Authority lists no torrents")
        else:
            log_debug(f"Authority STDOUT: {result.stdout.strip()}")
        return expected

    def parse_output(self, output: str) -> set[str]:
        """Turn newline-delimited identifiers into descriptor filenames."""
        return {line.strip() + self.suffix for line in output.splitlines() if line.strip()}


__all__ = ['InventoryAuthorityClient', 'AuthorityUnavailable']
