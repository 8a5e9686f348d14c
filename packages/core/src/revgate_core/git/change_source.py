"""Thin wrappers around the git CLI.

Everything revgate knows about a change comes through here: the patch, its
statistics, the tracked-file set, file contents at a revision, and commit
messages. Context is read from the revision under review when one is given,
so a bare server-side repository (no working tree) works the same as a
developer checkout.
"""

from __future__ import annotations

import logging
import os
import subprocess

from revgate_core.errors import GitError

logger = logging.getLogger(__name__)

_DATA_DIR_NAME = ".revgate"


class ChangeSource:
    def __init__(self, cwd: str | None = None):
        self.cwd = cwd or os.getcwd()

    # ------------------------------------------------------------------ #
    # Plumbing                                                             #
    # ------------------------------------------------------------------ #

    def _run_bytes(self, args: list[str], input: bytes | None = None) -> bytes:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                input=input,
                capture_output=True,
            )
        except FileNotFoundError:
            raise GitError(args, "git executable not found")
        if result.returncode != 0:
            raise GitError(args, result.stderr.decode("utf-8", errors="replace"), result.returncode)
        return result.stdout

    def run(self, args: list[str], input: str | None = None) -> str:
        raw = self._run_bytes(args, input.encode("utf-8") if input is not None else None)
        return raw.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------ #
    # Repository layout                                                    #
    # ------------------------------------------------------------------ #

    def repo_root(self) -> str:
        return self.run(["rev-parse", "--show-toplevel"]).strip()

    def data_dir(self) -> str:
        """Return the per-repository data directory (jobs, reviews, intent).

        Bare repositories keep it inside the git dir. Hooks triggered during a
        push run inside $GIT_DIR where --show-toplevel can fail, so the work
        tree is derived from the git dir in that case.
        """
        try:
            if self.run(["rev-parse", "--is-bare-repository"]).strip() == "true":
                git_dir = self.run(["rev-parse", "--git-dir"]).strip()
                return os.path.join(os.path.abspath(os.path.join(self.cwd, git_dir)), _DATA_DIR_NAME)
            try:
                toplevel = self.repo_root()
                if toplevel:
                    return os.path.join(toplevel, _DATA_DIR_NAME)
            except GitError:
                pass
            git_dir = self.run(["rev-parse", "--git-dir"]).strip()
            abs_git_dir = os.path.abspath(os.path.join(self.cwd, git_dir))
            return os.path.join(os.path.dirname(abs_git_dir), _DATA_DIR_NAME)
        except GitError as e:
            fallback = os.path.join(self.cwd, _DATA_DIR_NAME)
            logger.warning("git rev-parse failed (%s). Falling back to %s", e, fallback)
            return fallback

    # ------------------------------------------------------------------ #
    # Revisions                                                            #
    # ------------------------------------------------------------------ #

    def empty_tree(self) -> str:
        """Object id of the empty tree, valid for both SHA-1 and SHA-256 repos."""
        return self.run(["hash-object", "-t", "tree", "-w", "--stdin"], input="").strip()

    def head_or_empty_tree(self) -> str:
        try:
            return self.run(["rev-parse", "--verify", "HEAD"]).strip()
        except GitError:
            # Unborn branch: nothing committed yet.
            return self.empty_tree()

    def write_index_tree(self) -> str:
        """Tree id of the staged index. Identifies staged content for job keys."""
        return self.run(["write-tree"]).strip()

    def merge_base(self, a: str, b: str) -> str | None:
        try:
            commit = self.run(["merge-base", a, b]).strip()
        except GitError as e:
            logger.debug("merge-base %s %s failed: %s", a, b, e)
            return None
        return commit or None

    def short(self, rev: str) -> str:
        try:
            return self.run(["rev-parse", "--short", rev]).strip()
        except GitError:
            return rev[:7]

    # ------------------------------------------------------------------ #
    # Diffs                                                                #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _diff_args(old: str | None, new: str | None, staged: bool) -> list[str]:
        if staged:
            return ["--cached"]
        if old and new:
            return [old, new]
        if old:
            return [old]
        return []

    def diff(self, old: str | None = None, new: str | None = None, staged: bool = False) -> str:
        args = ["diff", "--no-ext-diff", "--no-color", "--patch", "--binary"]
        return self.run(args + self._diff_args(old, new, staged))

    def diff_summary(self, old: str | None = None, new: str | None = None, staged: bool = False) -> tuple[int, int, int]:
        """Return (files, additions, deletions) from ``git diff --numstat``.

        Binary files report ``-`` for both counts; they still count as a file.
        """
        output = self.run(["diff", "--no-ext-diff", "--numstat"] + self._diff_args(old, new, staged))
        files = additions = deletions = 0
        for line in output.splitlines():
            parts = line.split("\t", 2)
            if len(parts) < 3:
                continue
            files += 1
            if parts[0].isdigit():
                additions += int(parts[0])
            if parts[1].isdigit():
                deletions += int(parts[1])
        return files, additions, deletions

    def patch_size(self, base: str, new: str) -> int:
        """Byte size of the full patch between two revisions, binary deltas included."""
        return len(self._run_bytes(["diff", "--no-ext-diff", "--no-color", "--patch", "--binary", base, new]))

    # ------------------------------------------------------------------ #
    # Tracked files                                                        #
    # ------------------------------------------------------------------ #

    def tracked_files(self, revision: str | None = None) -> list[str]:
        if revision:
            output = self.run(["ls-tree", "-r", "--name-only", revision])
        else:
            output = self.run(["ls-files"])
        return [line.strip() for line in output.splitlines() if line.strip()]

    def tracked_bytes(self, revision: str | None = None) -> int:
        if revision:
            total = 0
            for line in self.run(["ls-tree", "-r", "-l", revision]).splitlines():
                # <mode> <type> <object> <size>\t<path>
                meta = line.split("\t", 1)[0].split()
                if len(meta) == 4 and meta[3].isdigit():
                    total += int(meta[3])
            return total
        root = self.repo_root()
        total = 0
        for path in self.tracked_files():
            try:
                total += os.path.getsize(os.path.join(root, path))
            except OSError:
                continue
        return total

    def read_file(self, path: str, revision: str | None = None) -> str:
        """Return the text of a tracked file.

        Raises FileNotFoundError when the path does not exist at the revision
        (or on disk), IsADirectoryError for directories, and UnicodeDecodeError
        for content that is not UTF-8.
        """
        if revision:
            try:
                raw = self._run_bytes(["show", f"{revision}:{path}"])
            except GitError as e:
                raise FileNotFoundError(path) from e
            return raw.decode("utf-8")
        with open(os.path.join(self.repo_root(), path), encoding="utf-8") as f:
            return f.read()

    # ------------------------------------------------------------------ #
    # Commits                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _log_range(old: str | None, new: str | None) -> list[str]:
        if old and new:
            return [f"{old}..{new}"]
        if old:
            return [f"{old}..HEAD"]
        return [new] if new else []

    def commit_subjects(self, old: str | None, new: str | None, max_count: int = 50) -> list[str]:
        """Subject lines for old..new; an empty list when the range is not a commit range."""
        rng = self._log_range(old, new)
        if not rng:
            return []
        try:
            output = self.run(["log", "--no-color", f"--max-count={max_count}", "--pretty=format:%s", *rng])
        except GitError:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def commit_log(self, old: str | None, new: str | None, max_count: int = 50) -> list[tuple[str, str]]:
        """Return (short hash, full message) pairs for old..new, newest first."""
        rng = self._log_range(old, new)
        if not rng:
            return []
        output = self.run(["log", "--no-color", f"--max-count={max_count}", "--pretty=format:%h%x00%B%x00", *rng])
        parts = output.split("\x00")
        commits: list[tuple[str, str]] = []
        for i in range(0, len(parts) - 1, 2):
            commit_hash = parts[i].strip()
            message = parts[i + 1].replace("\r\n", "\n").replace("\r", "\n").rstrip()
            if commit_hash:
                commits.append((commit_hash, message))
        return commits
