"""
Async command gateway.

This module runs one command through the gateway's lifecycle:
- Validation and allow-list (no process is ever spawned for a rejection)
- Admission against the concurrency cap (immediate, no queueing)
- Executable resolution, a cmd.exe argument check for batch-script
  executables, spawn, and streaming of stdout/stderr
- A race between process exit, the timeout, and cancellation
- Sanitization of stdout and a single log record per outcome

Every path returns an ExecutionResult; only the caller's own task
cancellation propagates as an exception.

The gateway is driven by one asyncio event loop and is not thread-safe.
Killing a process is best-effort: a process still alive ``kill_grace``
seconds after the kill is logged and left behind.
"""

import asyncio
import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Mapping, Optional

from akv_gateway.executor.parser import base_command, split_command
from akv_gateway.executor.resolver import ExecutableResolver
from akv_gateway.executor.types import (
    CommandRequest,
    CommandStatus,
    ExecutionResult,
)
from akv_gateway.executor.validator import (
    DEFAULT_LOG_LIMIT,
    CommandValidator,
    is_batch_script,
    sanitize_command_for_log,
    sanitize_for_log,
    sanitize_output,
    validate_batch_arguments,
)
from akv_gateway.utils.logging import EVENT_ATTR, get_logger, log_security_event

logger = get_logger(__name__)

ProcessFactory = Callable[..., Awaitable[asyncio.subprocess.Process]]

_READ_CHUNK_SIZE = 64 * 1024


class BaseGateway(ABC):
    """
    Interface shared by every gateway variant.

    Callers depend only on this interface, never on the platform.
    """

    @abstractmethod
    async def execute(
        self,
        command: str,
        environment: Optional[Mapping[str, str]] = None,
        working_directory: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """Execute a command and return its result; never raises for command failures."""

    @property
    @abstractmethod
    def running_commands_count(self) -> int:
        """Number of commands currently admitted."""

    @abstractmethod
    def cancel_all(self) -> int:
        """Complete every admitted command as cancelled; returns how many."""

    async def run(
        self,
        request: CommandRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """Execute a CommandRequest."""
        return await self.execute(
            request.command,
            environment=request.environment,
            working_directory=request.working_directory,
            timeout=request.timeout,
            cancel_event=cancel_event,
        )


@dataclass
class _InFlightCommand:
    """Registry entry for one admitted command."""

    command: str
    cancelled: asyncio.Event
    process: Optional[asyncio.subprocess.Process] = None


class CommandGateway(BaseGateway):
    """
    Executes tool commands with security validation and resource limits.

    This class is the main entry point for command execution on desktop
    platforms. It:
    1. Validates commands and checks them against the allow-list
    2. Admits at most ``max_concurrent`` commands at a time
    3. Resolves the tool's executable and runs it without a shell
    4. Handles timeouts and cancellation
    5. Returns sanitized, structured results
    """

    def __init__(
        self,
        validator: CommandValidator,
        resolver: ExecutableResolver,
        default_timeout: float = 300,
        max_concurrent: int = 5,
        kill_grace: float = 5.0,
        tool_display_name: str = "Azure CLI",
        log_output_limit: int = DEFAULT_LOG_LIMIT,
        process_factory: Optional[ProcessFactory] = None,
    ):
        """
        Initialize the command gateway.

        Args:
            validator: Gate 1 and gate 2 checks (tool name and allow-list)
            resolver: Locates the tool's executable
            default_timeout: Default timeout in seconds
            max_concurrent: Maximum number of commands in flight
            kill_grace: Seconds to wait for a killed process to exit
            tool_display_name: Tool name used in user-facing messages
            log_output_limit: Characters of output kept in log records
            process_factory: Replacement for asyncio.create_subprocess_exec
        """
        self.validator = validator
        self.resolver = resolver
        self.default_timeout = default_timeout
        self.max_concurrent = max_concurrent
        self.kill_grace = kill_grace
        self.tool_display_name = tool_display_name
        self.log_output_limit = log_output_limit
        self._process_factory = process_factory or asyncio.create_subprocess_exec

        self._in_flight: dict[int, _InFlightCommand] = {}
        self._command_ids = itertools.count(1)

    @property
    def running_commands_count(self) -> int:
        return len(self._in_flight)

    async def execute(
        self,
        command: str,
        environment: Optional[Mapping[str, str]] = None,
        working_directory: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """
        Execute a command with validation and resource limits.

        Args:
            command: The command string to execute
            environment: Extra environment variables for the process
            working_directory: Directory to run the process in
            timeout: Optional timeout override in seconds
            cancel_event: Set it to cancel this command

        Returns:
            ExecutionResult; ``succeeded`` is the only field callers must branch on
        """
        started = time.monotonic()
        timeout = timeout if timeout and timeout > 0 else self.default_timeout

        # Gates 1 and 2
        validation = self.validator.validate(command)
        if not validation.allowed:
            if validation.rule == "validation":
                status = CommandStatus.VALIDATION_ERROR
                message = f"Security validation failed: {validation.reason}"
                event = "Command validation failed"
            else:
                status = CommandStatus.AUTHORIZATION_ERROR
                message = validation.reason or "Command not in allowed list"
                event = "Unauthorized command attempted"
            log_security_event(
                event,
                {
                    "status": status.value,
                    "command": sanitize_command_for_log(command, self.log_output_limit),
                    "reason": validation.reason,
                },
            )
            return ExecutionResult.failure(status, message, command, _elapsed(started))

        # Gate 3: check and register with no await in between
        if len(self._in_flight) >= self.max_concurrent:
            result = ExecutionResult.failure(
                CommandStatus.CONCURRENCY_LIMIT,
                f"Maximum concurrent operations limit reached ({self.max_concurrent})",
                command,
                _elapsed(started),
            )
            self._log_outcome(result)
            return result

        command_id = next(self._command_ids)
        entry = _InFlightCommand(command=command, cancelled=asyncio.Event())
        self._in_flight[command_id] = entry

        exc_info: Any = None
        try:
            result = await self._run_admitted(
                entry,
                environment=environment,
                working_directory=working_directory,
                timeout=timeout,
                cancel_event=cancel_event,
                started=started,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            exc_info = e
            result = ExecutionResult.failure(
                CommandStatus.EXECUTION_ERROR,
                f"Execution error: {e}",
                command,
                _elapsed(started),
            )
        finally:
            self._in_flight.pop(command_id, None)

        self._log_outcome(result, exc_info=exc_info)
        return result

    def cancel_all(self) -> int:
        """
        Cancel every admitted command.

        Each awaiting caller receives a CANCELLED result once its process
        has been killed. Tracking is cleared immediately.
        """
        entries = list(self._in_flight.values())
        for entry in entries:
            entry.cancelled.set()
        self._in_flight.clear()

        if entries:
            logger.warning("Cancelling %d running command(s)", len(entries))
        return len(entries)

    async def _run_admitted(
        self,
        entry: _InFlightCommand,
        environment: Optional[Mapping[str, str]],
        working_directory: Optional[str],
        timeout: float,
        cancel_event: Optional[asyncio.Event],
        started: float,
    ) -> ExecutionResult:
        """Resolve, spawn and wait for an admitted command."""
        command = entry.command

        executable = await self.resolver.resolve()
        if executable is None:
            return ExecutionResult.failure(
                CommandStatus.TOOL_NOT_FOUND,
                f"{self.tool_display_name} not found. {self.resolver.install_hint}",
                command,
                _elapsed(started),
            )

        if entry.cancelled.is_set() or (cancel_event is not None and cancel_event.is_set()):
            return ExecutionResult.failure(
                CommandStatus.CANCELLED, "Command cancelled", command, _elapsed(started)
            )

        args = split_command(command)
        args[0] = executable

        if is_batch_script(executable):
            reason = validate_batch_arguments(args[1:])
            if reason is not None:
                log_security_event(
                    "Command validation failed",
                    {
                        "status": CommandStatus.VALIDATION_ERROR.value,
                        "command": sanitize_command_for_log(command, self.log_output_limit),
                        "reason": reason,
                    },
                )
                return ExecutionResult.failure(
                    CommandStatus.VALIDATION_ERROR,
                    f"Security validation failed: {reason}",
                    command,
                    _elapsed(started),
                )

        process = await self._process_factory(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self.resolver.build_environment(environment),
            cwd=working_directory,
        )
        entry.process = process

        stdout_buffer = bytearray()
        stderr_buffer = bytearray()
        readers = [
            asyncio.ensure_future(_drain(process.stdout, stdout_buffer)),
            asyncio.ensure_future(_drain(process.stderr, stderr_buffer)),
        ]

        try:
            interrupted = await self._wait_for_exit(process, entry, cancel_event, timeout)
            await self._finish_readers(readers, raise_errors=interrupted is None)
        finally:
            if process.returncode is None:
                _kill(process)
            for reader in readers:
                if not reader.done():
                    reader.cancel()

        if interrupted is CommandStatus.TIMEOUT:
            return ExecutionResult.failure(
                CommandStatus.TIMEOUT,
                f"Operation timed out after {timeout:g}s",
                command,
                _elapsed(started),
            )
        if interrupted is CommandStatus.CANCELLED:
            return ExecutionResult.failure(
                CommandStatus.CANCELLED, "Command cancelled", command, _elapsed(started)
            )

        exit_code = process.returncode
        succeeded = exit_code == 0

        # stderr is returned as produced; the tool does not put secrets there
        return ExecutionResult(
            succeeded=succeeded,
            output=sanitize_output(stdout_buffer.decode("utf-8", errors="replace")),
            error=stderr_buffer.decode("utf-8", errors="replace"),
            exit_code=exit_code,
            elapsed=_elapsed(started),
            status=CommandStatus.SUCCESS if succeeded else CommandStatus.NON_ZERO_EXIT,
            command=command,
        )

    async def _wait_for_exit(
        self,
        process: asyncio.subprocess.Process,
        entry: _InFlightCommand,
        cancel_event: Optional[asyncio.Event],
        timeout: float,
    ) -> Optional[CommandStatus]:
        """
        Race process exit against the timeout and cancellation.

        Returns:
            None if the process exited on its own, otherwise TIMEOUT or
            CANCELLED after the process has been killed
        """
        exit_waiter = asyncio.ensure_future(process.wait())
        cancel_waiters = [asyncio.ensure_future(entry.cancelled.wait())]
        if cancel_event is not None:
            cancel_waiters.append(asyncio.ensure_future(cancel_event.wait()))

        try:
            done, _ = await asyncio.wait(
                [exit_waiter, *cancel_waiters],
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            exit_waiter.cancel()
            raise
        finally:
            for waiter in cancel_waiters:
                waiter.cancel()

        if exit_waiter in done:
            return None

        interrupted = (
            CommandStatus.CANCELLED
            if any(waiter in done for waiter in cancel_waiters)
            else CommandStatus.TIMEOUT
        )

        _kill(process)
        _, pending = await asyncio.wait([exit_waiter], timeout=self.kill_grace)
        if pending:
            exit_waiter.cancel()
            logger.warning(
                "Process %s did not exit within %ss of being killed and may still be running",
                process.pid,
                self.kill_grace,
            )
        return interrupted

    async def _finish_readers(self, readers: list[asyncio.Future], raise_errors: bool) -> None:
        """Wait for the output readers to reach EOF."""
        done, pending = await asyncio.wait(readers, timeout=self.kill_grace)
        for reader in pending:
            reader.cancel()
        if pending:
            # A grandchild process can hold the pipes open after exit
            logger.warning("Output streams still open after process exit; output may be incomplete")
        for reader in done:
            error = reader.exception()
            if error is not None and raise_errors:
                raise error

    def _log_outcome(self, result: ExecutionResult, exc_info: Any = None) -> None:
        """Emit the one log record for a command that passed gates 1 and 2."""
        if result.status.is_security_rejection:
            # Already logged as a security event
            return

        limit = self.log_output_limit
        event: dict[str, Any] = {
            "category": "cli",
            "status": result.status.value,
            "command": sanitize_command_for_log(result.command, limit),
            "base_command": base_command(result.command),
            "exit_code": result.exit_code,
            "elapsed_ms": int(result.elapsed.total_seconds() * 1000),
        }

        if result.succeeded:
            event["output"] = sanitize_for_log(result.output, limit)
            event["output_length"] = len(result.output)
            logger.info(
                "CLI command succeeded: %s",
                event["command"],
                extra={EVENT_ATTR: event},
            )
            return

        event["error"] = sanitize_for_log(result.error, limit)
        level = logging.ERROR if result.status is CommandStatus.EXECUTION_ERROR else logging.WARNING
        logger.log(
            level,
            "CLI command failed (%s): %s",
            result.status.value,
            event["command"],
            exc_info=exc_info,
            extra={EVENT_ATTR: event},
        )


class UnsupportedGateway(BaseGateway):
    """
    Gateway for sandboxed runtimes where processes cannot be spawned.

    Every command gets the same fixed result without resolution or spawn.
    """

    def __init__(self, tool_display_name: str = "Azure CLI"):
        self.message = (
            f"{tool_display_name} commands are not supported in this environment. "
            "Run the application on a desktop platform (Windows, macOS, or Linux) "
            f"with {tool_display_name} installed."
        )

    @property
    def running_commands_count(self) -> int:
        return 0

    async def execute(
        self,
        command: str,
        environment: Optional[Mapping[str, str]] = None,
        working_directory: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        logger.warning(
            "Command execution is not supported in this environment",
            extra={
                EVENT_ATTR: {
                    "category": "cli",
                    "status": CommandStatus.UNSUPPORTED.value,
                    "command": sanitize_command_for_log(command),
                }
            },
        )
        return ExecutionResult.failure(CommandStatus.UNSUPPORTED, self.message, command)

    def cancel_all(self) -> int:
        return 0


async def _drain(stream: Optional[asyncio.StreamReader], buffer: bytearray) -> None:
    """Append everything read from ``stream`` to ``buffer`` until EOF."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - started)
