"""
Git helpers for local repositories: branch and origin detection, nested
.gitignore loading.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional

import pathspec

logger = logging.getLogger(__name__)

# git@github.com:owner/repo.git, https://github.com/owner/repo(.git)
REMOTE_PATTERN = re.compile(r"[:/]([^/:]+)/([^/]+?)(?:\.git)?/?$")


def _git(repo_path: Path, *args: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        logger.debug(f"git {' '.join(args)} failed in {repo_path}")
        return None
    return result.stdout.strip()


class GitUtils:
    """Static helpers around the git command line."""

    @staticmethod
    def get_current_branch(repo_path: Path) -> Optional[str]:
        """
        Detect the checked-out branch.

        Returns:
            Branch name, `detached-<sha>` for a detached HEAD, None outside a repo
        """
        branch = _git(repo_path, "rev-parse", "--abbrev-ref", "HEAD")
        if branch == "HEAD":
            sha = _git(repo_path, "rev-parse", "--short", "HEAD")
            return f"detached-{sha}" if sha else None
        return branch

    @staticmethod
    def get_origin(repo_path: Path) -> Optional[tuple[str, str]]:
        """(owner, repo) parsed from the `origin` remote URL."""
        url = _git(repo_path, "remote", "get-url", "origin")
        if not url:
            return None
        match = REMOTE_PATTERN.search(url)
        if not match:
            logger.debug(f"Unrecognised remote URL: {url}")
            return None
        return match.group(1), match.group(2)

    @staticmethod
    def load_nested_gitignore(root_path: Path) -> Optional[pathspec.PathSpec]:
        """
        Merge every .gitignore in the tree into one PathSpec.

        Patterns from nested files are prefixed with their directory so they
        only apply below it.

        Args:
            root_path: Repository root

        Returns:
            PathSpec of all patterns, or None if there are no .gitignore files
        """
        all_patterns: list[str] = []
        gitignore_files = sorted(p for p in root_path.rglob(".gitignore") if p.is_file())
        if not gitignore_files:
            return None

        for gitignore_path in gitignore_files:
            try:
                patterns = gitignore_path.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                logger.warning(f"Failed to read {gitignore_path}: {e}")
                continue

            prefix = gitignore_path.parent.relative_to(root_path).as_posix()
            if prefix == ".":
                all_patterns.extend(patterns)
                continue

            for pattern in patterns:
                stripped = pattern.strip()
                if not stripped or stripped.startswith("#"):
                    continue
                if stripped.startswith("!"):
                    all_patterns.append(f"!{prefix}/{stripped[1:].lstrip('/')}")
                else:
                    all_patterns.append(f"{prefix}/{stripped.lstrip('/')}")

        logger.debug(f"Loaded {len(all_patterns)} patterns from {len(gitignore_files)} .gitignore files")
        return pathspec.PathSpec.from_lines("gitwildmatch", all_patterns)
