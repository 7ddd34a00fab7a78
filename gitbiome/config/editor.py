"""Exclusive read-transform-write sessions over a repository's git config.

git already knows how to hand its config file to an editor and act on the
editor's exit status (``git config --local --edit``). :class:`ConfigEditor`
reuses that workflow but swaps the text editor for in-process logic:

1. A Unix socket server is started in a private temporary directory.
2. git is launched with ``GIT_EDITOR`` set to a small helper program
   (:mod:`gitbiome.config.helper`) plus the socket path.
3. The helper connects and reports the file path git gave it, then blocks.
4. The editor loads that file, runs the caller's transform once and, when
   asked to, writes the result back.
5. The helper is told the outcome and exits 0 (git keeps the edit) or 1
   (git reports the editor failure and the file is left as it was).

``git config --edit`` itself takes no lock, so each session holds the
repository's ``config.lock`` for its whole duration. Concurrent sessions
wait for it in turn; other git commands that write the config fail while
it is held.

Usage
-----
Add an owner to the biome config::

    editor = ConfigEditor(repo_path)

    async def add_owner(cfg: GitConfig) -> bool:
        cfg.add("biome.owners", "github.com/acme")
        return True

    await editor.edit(add_owner)

"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import os
import shlex
import sys
import tempfile
import typing as typ
from pathlib import Path

import msgspec

from gitbiome.git import GitEngine
from gitbiome.logging import get_logger, log_debug, log_warning

from .errors import (
    ConfigLoadError,
    ConfigLockedError,
    ConfigSaveError,
    ConfigSyntaxError,
    ConfigTransformError,
    EditCancelledError,
    EditCommitError,
    HelperDidNotConnectError,
)
from .model import GitConfig, dumps, loads
from .protocol import EditResponse, decode_request, encode_message

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

type EditCallback = cabc.Callable[[GitConfig], cabc.Awaitable[bool]]

_SOCKET_NAME = "editor.sock"

# git's own lock file for the repository config
_CONFIG_LOCK = "config.lock"
_LOCK_POLL_S = 0.05


def default_helper_command() -> tuple[str, ...]:
    """Return the command that runs the helper with this interpreter."""
    return (sys.executable, "-m", "gitbiome.config.helper")


@dataclasses.dataclass(frozen=True, slots=True)
class EditorOptions:
    """Settings for :class:`ConfigEditor` sessions.

    Attributes
    ----------
    helper_command
        Program and leading arguments git runs as its editor. The socket
        path and the config file path are appended.
    timeout_s
        Deadline for one session, from launching git until the transform
        has finished. ``None`` waits indefinitely.
    git_executable
        Name or path of the git executable.
    lock_wait_s
        How long to wait for another writer to release ``config.lock``
        before giving up.

    """

    helper_command: tuple[str, ...] = dataclasses.field(
        default_factory=default_helper_command
    )
    timeout_s: float | None = None
    git_executable: str = "git"
    lock_wait_s: float = 30.0

    @classmethod
    def from_env(cls) -> EditorOptions:
        """Build options, reading ``GITBIOME_EDIT_TIMEOUT_S`` when set."""
        raw = os.environ.get("GITBIOME_EDIT_TIMEOUT_S", "").strip()
        if not raw:
            return cls()
        try:
            timeout_s = float(raw)
        except ValueError as exc:
            msg = f"GITBIOME_EDIT_TIMEOUT_S must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if timeout_s <= 0:
            msg = f"GITBIOME_EDIT_TIMEOUT_S must be positive, got: {timeout_s}"
            raise ValueError(msg)
        return cls(timeout_s=timeout_s)


@dataclasses.dataclass(frozen=True, slots=True)
class CallbackReceived:
    """Rendezvous outcome: the helper reported the file to edit."""

    path: str


@dataclasses.dataclass(frozen=True, slots=True)
class SessionEnded:
    """Rendezvous outcome: git exited before the helper called back."""

    returncode: int | None
    output: str


type RendezvousOutcome = CallbackReceived | SessionEnded


class _RendezvousServer:
    """Accepts the single helper connection of one edit session."""

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self.path: asyncio.Future[str] = loop.create_future()
        self._response: asyncio.Future[EditResponse] = loop.create_future()

    async def handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            if self.path.done():
                await self._reply(writer, EditResponse(ok=False, error="session taken"))
                return
            try:
                request = decode_request(await reader.readline())
            except msgspec.DecodeError as exc:
                await self._reply(writer, EditResponse(ok=False, error=str(exc)))
                return
            self.path.set_result(request.path)
            await self._reply(writer, await self._response)
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()

    async def _reply(
        self, writer: asyncio.StreamWriter, response: EditResponse
    ) -> None:
        try:
            writer.write(encode_message(response))
            await writer.drain()
        except ConnectionError as exc:
            log_warning(logger, "Config edit helper went away: %s", exc)

    def finish(self, response: EditResponse) -> None:
        """Release the waiting helper with ``response``."""
        if not self._response.done():
            self._response.set_result(response)


class ConfigEditor:
    """Runs exclusive edit sessions against one repository's local config.

    Parameters
    ----------
    repo_path:
        Path of the repository whose config is edited.
    options:
        Helper command, deadline and git executable.

    """

    def __init__(
        self, repo_path: Path | str, options: EditorOptions | None = None
    ) -> None:
        """Configure the editor for ``repo_path``."""
        self.repo_path = Path(repo_path)
        self.options = options or EditorOptions()

    async def edit(self, transform: EditCallback) -> None:
        """Run ``transform`` once against the config, saving when it returns True.

        Raises
        ------
        HelperDidNotConnectError
            If git exits before the helper reports the file to edit.
        ConfigLoadError
            If the reported file cannot be read or parsed.
        ConfigTransformError
            If ``transform`` raises; the original error is the cause.
        ConfigSaveError
            If the edited config cannot be written.
        EditCancelledError
            If the session runs past ``options.timeout_s``.
        EditCommitError
            If git fails after the helper reported success.
        ConfigLockedError
            If another writer holds ``config.lock`` past ``options.lock_wait_s``.

        """
        git_dir = await GitEngine(self.options.git_executable).git_dir(self.repo_path)
        if git_dir is None:
            # git reports the missing repository itself
            await self._edit_unlocked(transform)
            return
        async with _config_lock(git_dir / _CONFIG_LOCK, self.options.lock_wait_s):
            await self._edit_unlocked(transform)

    async def _edit_unlocked(self, transform: EditCallback) -> None:
        with tempfile.TemporaryDirectory(prefix="gitbiome-") as tmp:
            socket_path = Path(tmp) / _SOCKET_NAME
            rendezvous = _RendezvousServer()
            server = await asyncio.start_unix_server(
                rendezvous.handle, path=str(socket_path)
            )
            async with server:
                await self._run_session(socket_path, rendezvous, transform)

    async def _run_session(
        self,
        socket_path: Path,
        rendezvous: _RendezvousServer,
        transform: EditCallback,
    ) -> None:
        argv = [
            self.options.git_executable,
            "-C",
            str(self.repo_path),
            "config",
            "--local",
            "--edit",
        ]
        command = shlex.join(argv)
        editor = shlex.join([*self.options.helper_command, str(socket_path)])
        log_debug(logger, "Starting %s with GIT_EDITOR=%s", command, editor)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env={**os.environ, "GIT_EDITOR": editor},
        )
        exited = asyncio.create_task(_collect_output(process))
        try:
            async with asyncio.timeout(self.options.timeout_s):
                outcome = await _rendezvous(rendezvous, process, exited)
                match outcome:
                    case SessionEnded(returncode=returncode, output=output):
                        raise HelperDidNotConnectError(command, returncode, output)
                    case CallbackReceived(path=path):
                        await self._apply(path, transform)
        except BaseException as exc:
            rendezvous.finish(EditResponse(ok=False, error=str(exc) or repr(exc)))
            await _reap(process, exited)
            if isinstance(exc, TimeoutError) and self.options.timeout_s is not None:
                raise EditCancelledError.deadline(self.options.timeout_s) from exc
            raise

        rendezvous.finish(EditResponse(ok=True))
        output = await exited
        if process.returncode != 0:
            raise EditCommitError(command, process.returncode, output)

    async def _apply(self, path: str, transform: EditCallback) -> None:
        log_debug(logger, "Editing config file %s", path)
        cfg = _load(path)
        try:
            save = await transform(cfg)
        except Exception as exc:
            raise ConfigTransformError(exc) from exc
        if save:
            _save(path, cfg)
            log_debug(logger, "Saved config file %s", path)


async def _rendezvous(
    rendezvous: _RendezvousServer,
    process: asyncio.subprocess.Process,
    exited: asyncio.Task[str],
) -> RendezvousOutcome:
    """Wait for the helper's callback or for git to exit, whichever is first."""
    await asyncio.wait({rendezvous.path, exited}, return_when=asyncio.FIRST_COMPLETED)
    if rendezvous.path.done():
        return CallbackReceived(path=rendezvous.path.result())
    return SessionEnded(returncode=process.returncode, output=exited.result())


async def _collect_output(process: asyncio.subprocess.Process) -> str:
    stdout, _ = await process.communicate()
    return stdout.decode("utf-8", errors="replace") if stdout else ""


async def _reap(process: asyncio.subprocess.Process, exited: asyncio.Task[str]) -> None:
    """Stop git and its output reader after a failed session."""
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
    exited.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await exited
    await process.wait()


def _load(path: str) -> GitConfig:
    try:
        return loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ConfigSyntaxError) as exc:
        raise ConfigLoadError(path, str(exc)) from exc


def _save(path: str, cfg: GitConfig) -> None:
    try:
        Path(path).write_text(dumps(cfg), encoding="utf-8")
    except OSError as exc:
        raise ConfigSaveError(path, str(exc)) from exc


@contextlib.asynccontextmanager
async def _config_lock(lock_path: Path, wait_s: float) -> cabc.AsyncIterator[None]:
    """Hold git's config lock file, polling while another writer has it."""
    loop = asyncio.get_running_loop()
    give_up_at = loop.time() + wait_s
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o666)
        except FileExistsError:
            if loop.time() >= give_up_at:
                raise ConfigLockedError(str(lock_path), wait_s) from None
            await asyncio.sleep(_LOCK_POLL_S)
            continue
        break
    os.close(fd)
    log_debug(logger, "Locked %s", lock_path)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)
