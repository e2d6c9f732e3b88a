"""
Shared helpers: retry decorator, content hashing and path classification.
"""

import functools
import hashlib
import logging
import re
import time
from pathlib import PurePosixPath
from typing import Callable, Iterable, Type, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

LANGUAGE_BY_EXTENSION = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".py": "python",
    ".java": "java",
    ".cpp": "cpp",
    ".c": "c",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".md": "markdown",
}

TEST_DIR_NAMES = {"test", "tests", "__tests__", "spec", "specs"}
# test_foo.py, foo_test.go, foo.test.ts, foo.spec.js, tests.py
TEST_NAME_PATTERN = re.compile(r"(^|[._-])(test|spec)s?([._-]|$)")


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 0.5,
    exceptions: tuple[Type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """
    Retry the decorated callable on the given exceptions with linear backoff.

    The last exception is re-raised once all attempts are used.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}"
                    )
                    time.sleep(delay * attempt)
        return wrapper  # type: ignore[return-value]
    return decorator


def content_hash(text: str) -> str:
    """MD5 hex digest of text; used for change detection only."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def detect_language(file_path: str) -> str:
    """Language name derived from the file extension, `text` when unknown."""
    return LANGUAGE_BY_EXTENSION.get(PurePosixPath(file_path).suffix.lower(), "text")


def is_source_file(file_path: str, extensions: Iterable[str]) -> bool:
    return PurePosixPath(file_path).suffix.lower() in set(extensions)


def is_excluded_path(file_path: str, exclude_dirs: Iterable[str]) -> bool:
    """True when any directory component is excluded or hidden."""
    excluded = set(exclude_dirs)
    parts = PurePosixPath(file_path).parts[:-1]
    return any(part in excluded or part.startswith(".") for part in parts)


def is_test_path(file_path: str) -> bool:
    """Heuristic test-file detection from directory names and file name."""
    path = PurePosixPath(file_path)
    if any(part in TEST_DIR_NAMES for part in path.parts[:-1]):
        return True
    return TEST_NAME_PATTERN.search(path.name.lower()) is not None
