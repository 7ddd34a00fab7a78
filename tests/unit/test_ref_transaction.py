"""Tests for all-or-nothing reference transactions."""

from __future__ import annotations

import typing as typ

import pytest

from gitbiome.git import (
    SYMREF_UPDATE_VERSION,
    GitEngine,
    GitVersionError,
    RefTransaction,
    RefTransactionError,
)
from tests.helpers import (
    git,
    git_ok,
    git_version,
    make_commit,
    requires_symref_update,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

_MISSING_OBJECT = "1" * 40


@pytest.mark.asyncio
async def test_updates_commit_together(bare_repo: Path) -> None:
    """Queued updates become visible once the transaction commits."""
    commit = make_commit(bare_repo)

    async with await RefTransaction.open(bare_repo) as tx:
        await tx.update("refs/remotes/github.com/acme/a/heads/main", commit)
        await tx.update("refs/remotes/github.com/acme/b/heads/main", commit)
        first = "refs/remotes/github.com/acme/a/heads/main"
        assert not git_ok(bare_repo, "rev-parse", "--verify", first), (
            "Expected nothing visible before commit"
        )
        assert tx.commands == 2, "Expected two queued commands"

    for name in ("a", "b"):
        ref = f"refs/remotes/github.com/acme/{name}/heads/main"
        assert git(bare_repo, "rev-parse", ref) == commit, f"Expected {ref} written"


@pytest.mark.asyncio
async def test_exception_in_block_aborts(bare_repo: Path) -> None:
    """Leaving the block through an exception discards every queued update."""
    commit = make_commit(bare_repo)

    with pytest.raises(RuntimeError, match="stop"):
        async with await RefTransaction.open(bare_repo) as tx:
            await tx.update("refs/heads/kept-out", commit)
            msg = "stop"
            raise RuntimeError(msg)

    assert not git_ok(bare_repo, "rev-parse", "--verify", "refs/heads/kept-out"), (
        "Expected the aborted update to be discarded"
    )


@pytest.mark.asyncio
async def test_rejected_update_fails_whole_batch(bare_repo: Path) -> None:
    """One invalid command rejects every command of the transaction."""
    commit = make_commit(bare_repo)

    with pytest.raises(RefTransactionError) as excinfo:
        async with await RefTransaction.open(bare_repo) as tx:
            await tx.update("refs/heads/good", commit)
            await tx.update("refs/heads/bad", _MISSING_OBJECT)

    assert excinfo.value.output, "Expected git's diagnostics on the error"
    assert not git_ok(bare_repo, "rev-parse", "--verify", "refs/heads/good"), (
        "Expected the valid update to be rolled back too"
    )


@pytest.mark.asyncio
async def test_no_deref_delete_removes_only_the_symref(bare_repo: Path) -> None:
    """Deleting a symbolic reference without dereferencing keeps its target."""
    commit = make_commit(bare_repo)
    base = "refs/remotes/github.com/acme/bar"
    git(bare_repo, "update-ref", f"{base}/heads/main", commit)
    git(bare_repo, "symbolic-ref", f"{base}/HEAD", f"{base}/heads/main")

    async with await RefTransaction.open(bare_repo) as tx:
        await tx.delete(f"{base}/HEAD", no_deref=True)

    assert not git_ok(bare_repo, "symbolic-ref", "--quiet", f"{base}/HEAD"), (
        "Expected the symbolic reference removed"
    )
    assert git(bare_repo, "rev-parse", f"{base}/heads/main") == commit, (
        "Expected the branch to survive"
    )


@requires_symref_update
@pytest.mark.asyncio
async def test_symref_update_points_head_at_unfetched_branch(bare_repo: Path) -> None:
    """A symbolic reference may target a branch that does not exist yet."""
    head = "refs/remotes/github.com/acme/bar/HEAD"
    target = "refs/remotes/github.com/acme/bar/heads/main"

    async with await RefTransaction.open(bare_repo) as tx:
        await tx.symref_update(head, target, no_deref=True)

    assert git(bare_repo, "symbolic-ref", head) == target, "Expected HEAD to be set"
    assert await GitEngine().read_symref(bare_repo, head) == target, (
        "Expected the engine to read the dangling symbolic reference"
    )


@pytest.mark.asyncio
async def test_empty_transaction_commits(bare_repo: Path) -> None:
    """A transaction with no commands commits cleanly."""
    tx = await RefTransaction.open(bare_repo)

    await tx.close()

    assert tx.commands == 0, "Expected no commands"


@pytest.mark.asyncio
async def test_closed_transaction_rejects_commands(bare_repo: Path) -> None:
    """Nothing may be queued once the transaction has finished."""
    tx = await RefTransaction.open(bare_repo)
    await tx.abort()

    with pytest.raises(RefTransactionError, match="already closed"):
        await tx.delete("refs/heads/main")

    await tx.abort()


@pytest.mark.asyncio
async def test_engine_lists_references_with_symbolic_targets(bare_repo: Path) -> None:
    """``query_refs`` reports names and symbolic targets under a prefix."""
    commit = make_commit(bare_repo)
    base = "refs/remotes/github.com/acme/bar"
    git(bare_repo, "update-ref", f"{base}/heads/main", commit)
    git(bare_repo, "symbolic-ref", f"{base}/HEAD", f"{base}/heads/main")
    git(bare_repo, "update-ref", "refs/remotes/github.com/acme/barn/heads/x", commit)

    records = await GitEngine().query_refs(bare_repo, base)

    assert {(r.name, r.symref) for r in records} == {
        (f"{base}/HEAD", f"{base}/heads/main"),
        (f"{base}/heads/main", ""),
    }, "Expected only references under the prefix"
    assert [r.is_symbolic for r in sorted(records, key=lambda r: r.name)] == [
        True,
        False,
    ], "Expected HEAD to be flagged symbolic"


@requires_symref_update
@pytest.mark.asyncio
async def test_symref_delete_removes_dangling_head(bare_repo: Path) -> None:
    """``symref-delete`` removes a symbolic reference whose target is missing."""
    head = "refs/remotes/github.com/acme/bar/HEAD"
    git(bare_repo, "symbolic-ref", head, "refs/remotes/github.com/acme/bar/heads/x")

    async with await RefTransaction.open(bare_repo) as tx:
        await tx.symref_delete(head)

    assert not git_ok(bare_repo, "symbolic-ref", "--quiet", head), (
        "Expected the dangling HEAD removed"
    )


@pytest.mark.asyncio
@pytest.mark.usefixtures("git_required")
async def test_engine_reports_installed_version() -> None:
    """``version`` parses the running git's version once."""
    engine = GitEngine()

    found = await engine.version()

    assert found == git_version(), "Expected the installed git version"
    assert await engine.version() is found, "Expected the version to be cached"


@pytest.mark.asyncio
async def test_require_version_rejects_older_git(old_git: str) -> None:
    """Features needing a newer git fail with a readable error."""
    engine = GitEngine(old_git)

    with pytest.raises(GitVersionError) as excinfo:
        await engine.require_version(SYMREF_UPDATE_VERSION, "symref-update")

    assert excinfo.value.found == (2, 39, 5), "Expected the reported version"
    assert "needs git 2.46.0 or newer, found 2.39.5" in str(excinfo.value), (
        "Expected both versions in the message"
    )
    await engine.require_version((2, 39, 0), "anything older")
