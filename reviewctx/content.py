"""
Content providers: where indexed source text comes from.

A provider is bound to one repository and returns repository-relative paths
(always with forward slashes) and file text.
"""

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx
import pathspec

from .errors import TransientProviderError
from .git_utils import GitUtils
from .models import RepoScope

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class ContentProvider(ABC):
    """Lists and reads the files of one repository."""

    @abstractmethod
    def list_files(self, ref: Optional[str] = None) -> list[str]:
        """All candidate file paths at ref."""

    @abstractmethod
    def get_file(self, path: str, ref: Optional[str] = None) -> Optional[str]:
        """
        Text of a file, or None if it does not exist at ref.

        Raises:
            TransientProviderError: The file could not be fetched
        """


class LocalContentProvider(ContentProvider):
    """Files of a working tree on disk; honours nested .gitignore files."""

    def __init__(self, root: Path, exclude_patterns: Optional[list[str]] = None):
        """
        Args:
            root: Repository root directory
            exclude_patterns: Extra gitwildmatch patterns to skip
        """
        self.root = Path(root).resolve()
        self.exclude_spec = pathspec.PathSpec.from_lines("gitwildmatch", exclude_patterns or [])

    def list_files(self, ref: Optional[str] = None) -> list[str]:
        gitignore_spec = GitUtils.load_nested_gitignore(self.root)
        files = []
        for file_path in self.root.rglob("*"):
            if not file_path.is_file():
                continue
            rel_path = file_path.relative_to(self.root).as_posix()
            if gitignore_spec and gitignore_spec.match_file(rel_path):
                continue
            if self.exclude_spec.match_file(rel_path):
                continue
            files.append(rel_path)
        return sorted(files)

    def get_file(self, path: str, ref: Optional[str] = None) -> Optional[str]:
        file_path = self.root / path
        if not file_path.is_file():
            return None
        try:
            # tolerate stray bytes in otherwise textual files
            return file_path.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            raise TransientProviderError(f"Failed to read {path}: {e}") from e

    def __repr__(self) -> str:
        return f"LocalContentProvider(root={self.root})"


class GitHubContentProvider(ContentProvider):
    """
    Files of a GitHub repository through the REST API.

    Authentication is the caller's concern; pass an installation or
    personal token.
    """

    def __init__(
        self,
        scope: RepoScope,
        token: Optional[str] = None,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.scope = scope
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(base_url=api_url, timeout=timeout)
        self._client.headers.update(headers)

    def _repo_url(self) -> str:
        return f"/repos/{self.scope.owner}/{self.scope.name}"

    def _get(self, url: str, params: dict) -> Optional[dict]:
        try:
            response = self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise TransientProviderError(f"GitHub request failed for {url}: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise TransientProviderError(
                f"GitHub request failed for {url}: HTTP {response.status_code}"
            )
        return response.json()

    def list_files(self, ref: Optional[str] = None) -> list[str]:
        ref = ref or self.scope.branch
        data = self._get(f"{self._repo_url()}/git/trees/{quote(ref, safe='')}", {"recursive": "1"})
        if data is None:
            raise TransientProviderError(f"Ref {ref} not found in {self.scope}")
        if data.get("truncated"):
            logger.warning(f"Tree listing for {self.scope}@{ref} was truncated by GitHub")
        return sorted(entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob")

    def get_file(self, path: str, ref: Optional[str] = None) -> Optional[str]:
        ref = ref or self.scope.branch
        data = self._get(f"{self._repo_url()}/contents/{quote(path)}", {"ref": ref})
        if data is None or not isinstance(data, dict) or data.get("type") != "file":
            return None
        if data.get("encoding") != "base64":
            logger.debug(f"Unsupported encoding for {path}: {data.get('encoding')}")
            return None
        try:
            return base64.b64decode(data.get("content", "")).decode("utf-8", errors="ignore")
        except (binascii.Error, ValueError) as e:
            raise TransientProviderError(f"Could not decode {path}: {e}") from e

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:
        return f"GitHubContentProvider(scope={self.scope})"
