"""Git working-copy operations for the ticket repository.

All commits made by the engine go through ``GitRepo.commit()``, which

* stages exactly the given paths (additions, modifications and deletions),
* skips the commit when nothing in those paths changed,
* authors the commit as the sync identity and appends the
  ``Tract-Sync-Origin`` trailer so hooks can recognize engine commits.

git's index is shared by every writer in the working copy, so commits are
serialized by one lock per ``GitRepo``.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path

from ..exceptions import GitError

logger = logging.getLogger(__name__)

ORIGIN_TRAILER = "Tract-Sync-Origin"


def origin_trailer(name: str) -> str:
    return f"{ORIGIN_TRAILER}: {name}"


def has_origin_trailer(message: str, name: str) -> bool:
    """``True`` if *message* carries our trailer line (exact line match)."""
    expected = origin_trailer(name)
    return any(line.strip() == expected for line in message.splitlines())


class GitRepo:
    """Run git commands in *root* on behalf of the sync identity.

    Args:
        root: Working-copy root.
        author_name: Sync identity name.
        author_email: Sync identity email.
    """

    def __init__(self, root: Path, author_name: str, author_email: str) -> None:
        self.root = root
        self.author_name = author_name
        self.author_email = author_email
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        command = [
            "-c",
            f"user.name={self.author_name}",
            "-c",
            f"user.email={self.author_email}",
            *args,
        ]
        try:
            result = subprocess.run(
                ["git", *command],
                cwd=str(self.root),
                capture_output=True,
                text=True,
                timeout=60,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
            raise GitError(list(args), -1, str(exc)) from exc
        if check and result.returncode != 0:
            raise GitError(list(args), result.returncode, result.stderr)
        return result

    def _rel(self, path: Path | str) -> str:
        p = Path(path)
        if p.is_absolute():
            p = p.relative_to(self.root)
        return p.as_posix()

    def is_repo(self) -> bool:
        result = self._git("rev-parse", "--is-inside-work-tree", check=False)
        return result.returncode == 0 and result.stdout.strip() == "true"

    def init(self) -> None:
        """Create the repository if *root* is not one yet."""
        self.root.mkdir(parents=True, exist_ok=True)
        if not self.is_repo():
            self._git("init", "-q")

    def is_tracked(self, path: Path | str) -> bool:
        result = self._git(
            "ls-files", "--error-unmatch", "--", self._rel(path), check=False
        )
        return result.returncode == 0

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def changed_paths(self, prefix: str = "") -> list[str]:
        """Paths under *prefix* with uncommitted changes (porcelain v1)."""
        args = ["status", "--porcelain", "--untracked-files=all"]
        if prefix:
            args += ["--", prefix]
        result = self._git(*args)
        paths = []
        for line in result.stdout.splitlines():
            entry = line[3:]
            if " -> " in entry:
                entry = entry.split(" -> ", 1)[1]
            paths.append(entry.strip('"'))
        return paths

    def has_changes(self, prefix: str = "") -> bool:
        return bool(self.changed_paths(prefix))

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, subject: str, paths: list[Path | str]) -> str | None:
        """Stage *paths* and commit them as the sync identity.

        Paths may point at deleted files (a rename is the old path plus the
        new one).  Paths that neither exist nor are tracked are ignored.

        Returns:
            The new commit sha, or ``None`` if nothing changed.
        """
        with self._lock:
            rel_paths = [
                rel
                for rel in dict.fromkeys(self._rel(p) for p in paths)
                if (self.root / rel).exists() or self.is_tracked(rel)
            ]
            if not rel_paths:
                return None

            self._git("add", "-A", "--", *rel_paths)
            staged = self._git(
                "diff", "--cached", "--quiet", "--", *rel_paths, check=False
            )
            if staged.returncode == 0:
                logger.debug("Nothing to commit for %s", rel_paths)
                return None

            message = f"{subject}\n\n{origin_trailer(self.author_name)}"
            self._git(
                "commit",
                "-q",
                "-m",
                message,
                f"--author={self.author_name} <{self.author_email}>",
                "--",
                *rel_paths,
            )
            sha = self._git("rev-parse", "HEAD").stdout.strip()
            logger.info("Committed %s: %s", sha[:8], subject)
            return sha

    def last_commit(self) -> dict[str, str]:
        """Author name, email and message of HEAD."""
        result = self._git("log", "-1", "--format=%an%x00%ae%x00%B")
        name, email, message = result.stdout.split("\x00", 2)
        return {"name": name, "email": email, "message": message.strip()}
