"""
Executable discovery.

Desktop apps launched from a dock or start menu often inherit a minimal
PATH, so the tool cannot simply be spawned by name. Each resolver probes
the platform's conventional install locations first and then asks the
platform's locator (``which`` / ``where``) with a widened PATH.

A successful lookup is cached and re-checked on every use; a failed
lookup is never cached, so installing the tool while the app runs works.
"""

import asyncio
import os
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Optional, Sequence

from akv_gateway.utils.logging import get_logger

logger = get_logger(__name__)


class ExecutableResolver:
    """
    Locates the external tool's binary on the host filesystem.

    Subclasses provide the platform's candidate directories, locator
    program and install hint.
    """

    platform_name = "generic"
    # Directories searched, in order, for the executable
    default_search_dirs: Sequence[str] = ()
    # Helper that prints the path of a program found on PATH
    locator: Sequence[str] = ("which",)
    # File name suffixes tried for the executable
    executable_suffixes: Sequence[str] = ("",)
    default_install_hint = "Install the tool and make sure it is on PATH."

    def __init__(
        self,
        executable: str = "az",
        candidate_paths: Iterable[str] = (),
        search_dirs: Iterable[str] = (),
        locator_timeout: float = 10.0,
        install_hint: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize the resolver.

        Args:
            executable: Binary name to look for
            candidate_paths: Absolute paths probed before the platform defaults
            search_dirs: Directories searched before the platform defaults
            locator_timeout: Timeout in seconds for the locator fallback
            install_hint: Message shown when the tool cannot be found
            environ: Environment to widen (defaults to os.environ at call time)
        """
        self.executable = executable
        self.extra_candidates = [str(Path(p).expanduser()) for p in candidate_paths]
        self.extra_search_dirs = [str(Path(d).expanduser()) for d in search_dirs]
        self.locator_timeout = locator_timeout
        self.install_hint = install_hint or self.default_install_hint
        self._environ = environ
        self._cached_path: Optional[str] = None

    @property
    def search_dirs(self) -> list[str]:
        """Configured directories followed by the platform's, without duplicates."""
        dirs: list[str] = []
        for directory in [*self.extra_search_dirs, *self.default_search_dirs]:
            expanded = os.path.expandvars(os.path.expanduser(directory))
            if expanded not in dirs:
                dirs.append(expanded)
        return dirs

    def candidate_paths(self) -> list[str]:
        """Absolute paths probed, in order, before falling back to the locator."""
        candidates = list(self.extra_candidates)
        for directory in self.search_dirs:
            for suffix in self.executable_suffixes:
                candidates.append(os.path.join(directory, self.executable + suffix))
        return candidates

    def widen_environment(self, env: MutableMapping[str, str]) -> MutableMapping[str, str]:
        """
        Put the conventional install directories ahead of the inherited PATH.

        Modifies and returns ``env``.
        """
        inherited = env.get("PATH", "")
        parts = self.search_dirs
        parts.extend(p for p in inherited.split(os.pathsep) if p and p not in parts)
        env["PATH"] = os.pathsep.join(parts)
        return env

    def build_environment(self, overrides: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Inherited environment, widened, with caller overrides on top."""
        env = dict(os.environ if self._environ is None else self._environ)
        self.widen_environment(env)
        if overrides:
            env.update(overrides)
        return env

    async def resolve(self) -> Optional[str]:
        """
        Return the absolute path of the executable, or None if not installed.

        Never raises for a missing tool; None is the "not found" signal.
        """
        if self._cached_path and _is_executable_file(self._cached_path):
            return self._cached_path
        self._cached_path = None

        for path in self.candidate_paths():
            if _is_executable_file(path):
                logger.info("Found %s at: %s", self.executable, path)
                self._cached_path = path
                return path

        path = await self._locate()
        if path:
            logger.info("Found %s using %s: %s", self.executable, self.locator[0], path)
            self._cached_path = path
            return path

        logger.error("%s not found in any standard location", self.executable)
        return None

    async def _locate(self) -> Optional[str]:
        """Ask the platform locator for the executable, with a widened PATH."""
        env = self.build_environment()
        try:
            process = await asyncio.create_subprocess_exec(
                *self.locator,
                self.executable,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                env=env,
            )
        except OSError as e:
            logger.warning("Failed to run %s for %s: %s", self.locator[0], self.executable, e)
            return None

        try:
            stdout_bytes, _ = await asyncio.wait_for(
                process.communicate(), timeout=self.locator_timeout
            )
        except asyncio.TimeoutError:
            try:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
            logger.warning("%s timed out looking for %s", self.locator[0], self.executable)
            return None

        if process.returncode != 0:
            return None

        for line in stdout_bytes.decode("utf-8", errors="replace").splitlines():
            path = line.strip()
            if path and _is_executable_file(path):
                return path
        return None

    def invalidate(self) -> None:
        """Forget the cached location."""
        self._cached_path = None


class MacOSResolver(ExecutableResolver):
    """Homebrew (Apple Silicon and Intel) and system locations."""

    platform_name = "macos"
    default_search_dirs = ("/opt/homebrew/bin", "/usr/local/bin", "/usr/bin", "/bin")
    default_install_hint = "Install it using: brew install azure-cli"

    def widen_environment(self, env: MutableMapping[str, str]) -> MutableMapping[str, str]:
        super().widen_environment(env)
        # GUI launches can come without HOME, which the tool needs for its profile
        env.setdefault("HOME", os.path.expanduser("~"))
        return env


class LinuxResolver(ExecutableResolver):
    """Distribution packages, pip/pipx user installs and snaps."""

    platform_name = "linux"
    default_search_dirs = (
        "/usr/bin",
        "/usr/local/bin",
        "/bin",
        "/snap/bin",
        "~/.local/bin",
    )
    default_install_hint = (
        "Install it from https://learn.microsoft.com/cli/azure/install-azure-cli-linux"
    )


class WindowsResolver(ExecutableResolver):
    """MSI installs under Program Files."""

    platform_name = "windows"
    default_search_dirs = (
        r"%ProgramFiles%\Microsoft SDKs\Azure\CLI2\wbin",
        r"%ProgramFiles(x86)%\Microsoft SDKs\Azure\CLI2\wbin",
        r"%LOCALAPPDATA%\Programs\Azure CLI\wbin",
    )
    locator = ("where",)
    executable_suffixes = (".cmd", ".exe", "")
    default_install_hint = (
        "Install it from https://learn.microsoft.com/cli/azure/install-azure-cli-windows"
    )


def _is_executable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)
