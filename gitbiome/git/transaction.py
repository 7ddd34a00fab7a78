"""All-or-nothing reference updates over ``git update-ref --stdin``.

A :class:`RefTransaction` owns one long-lived ``update-ref`` subprocess.
Commands are streamed to its standard input inside an explicit
``start``/``prepare``/``commit`` transaction, so no queued mutation is
visible to other readers until the commit succeeds. When the session is
abandoned the subprocess reads ``abort`` (or EOF after ``start``) and the
reference backend discards every queued update.

Usage
-----
Point a remote's HEAD at its default branch and drop a stale reference in
a single unit::

    async with await RefTransaction.open(repo_path) as tx:
        await tx.symref_update(
            "refs/remotes/github.com/acme/bar/HEAD",
            "refs/remotes/github.com/acme/bar/heads/main",
            no_deref=True,
        )
        await tx.delete("refs/remotes/github.com/acme/old/heads/main")

"""

from __future__ import annotations

import asyncio
import typing as typ

from gitbiome.logging import get_logger, log_debug

from .errors import GitExecutableNotFoundError, RefTransactionError

if typ.TYPE_CHECKING:
    import types
    from pathlib import Path

logger = get_logger(__name__)

_NO_DEREF = "option no-deref"


class RefTransaction:
    """Sequential reference-update session backed by ``update-ref --stdin``.

    Instances are created with :meth:`open`. Each queuing method sends one
    command (optionally preceded by the ``no-deref`` modifier); nothing is
    applied until :meth:`close` commits. Leaving an ``async with`` block
    through an exception aborts instead.
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: list[str]) -> None:
        """Wrap an already started ``update-ref --stdin`` subprocess."""
        self._process = process
        self._argv = argv
        self._closed = False
        self._commands = 0

    @classmethod
    async def open(
        cls,
        repo_path: Path | str,
        *,
        git_executable: str = "git",
    ) -> RefTransaction:
        """Start ``update-ref --stdin`` in ``repo_path`` and begin a transaction."""
        argv = [git_executable, "-C", str(repo_path), "update-ref", "--stdin"]
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            raise GitExecutableNotFoundError(git_executable) from exc
        tx = cls(process, argv)
        await tx._send("start")
        log_debug(logger, "Opened reference transaction in %s", repo_path)
        return tx

    @property
    def commands(self) -> int:
        """Return the number of reference commands queued so far."""
        return self._commands

    async def update(self, ref: str, target: str, *, no_deref: bool = False) -> None:
        """Queue ``ref`` to point directly at object ``target``."""
        await self._queue(f"update {ref} {target}", no_deref=no_deref)

    async def symref_update(
        self, ref: str, target: str, *, no_deref: bool = False
    ) -> None:
        """Queue ``ref`` to become a symbolic reference to ``target``."""
        await self._queue(f"symref-update {ref} {target}", no_deref=no_deref)

    async def delete(self, ref: str, *, no_deref: bool = False) -> None:
        """Queue deletion of ``ref``.

        With ``no_deref`` a symbolic reference is unlinked itself rather
        than deleting the reference it points to.
        """
        await self._queue(f"delete {ref}", no_deref=no_deref)

    async def symref_delete(self, ref: str, *, no_deref: bool = False) -> None:
        """Queue deletion of the symbolic reference ``ref``."""
        await self._queue(f"symref-delete {ref}", no_deref=no_deref)

    async def close(self) -> None:
        """Prepare and commit the transaction, then wait for git to exit.

        Raises
        ------
        RefTransactionError
            If the subprocess exits non-zero or stops reading early. In
            both cases the backend rejected the whole batch.

        """
        self._ensure_open()
        self._closed = True
        try:
            await self._send("prepare")
            await self._send("commit")
        except RefTransactionError:
            await self._terminate()
            raise
        output = await self._finish()
        returncode = self._process.returncode
        if returncode != 0:
            raise RefTransactionError.exited(returncode or -1, output)
        log_debug(
            logger, "Committed reference transaction with %d commands", self._commands
        )

    async def abort(self) -> None:
        """Discard every queued command and wait for git to exit."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._send("abort")
        except RefTransactionError:
            await self._terminate()
            return
        await self._finish()
        log_debug(logger, "Aborted reference transaction")

    async def __aenter__(self) -> RefTransaction:
        """Return the open transaction."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Commit on a clean exit, abort when the block raised."""
        if exc_type is None:
            await self.close()
        elif isinstance(exc, asyncio.CancelledError):
            await self._terminate()
        else:
            await self.abort()

    async def _queue(self, command: str, *, no_deref: bool) -> None:
        self._ensure_open()
        if no_deref:
            await self._send(_NO_DEREF)
        await self._send(command)
        self._commands += 1

    async def _send(self, line: str) -> None:
        stdin = self._process.stdin
        if stdin is None:
            raise RefTransactionError.terminated_early("")
        try:
            stdin.write(f"{line}\n".encode())
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            output = await self._finish()
            raise RefTransactionError.terminated_early(output) from exc

    async def _finish(self) -> str:
        try:
            stdout, _ = await self._process.communicate()
        except asyncio.CancelledError:
            await self._terminate()
            raise
        except (BrokenPipeError, ConnectionResetError):
            await self._process.wait()
            stdout = b""
        return stdout.decode("utf-8", errors="replace") if stdout else ""

    async def _terminate(self) -> None:
        self._closed = True
        if self._process.returncode is None:
            self._process.kill()
            await self._process.wait()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RefTransactionError.closed()
