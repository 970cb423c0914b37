"""
Input validation for repository names and file paths.

Runs at the user-input boundary so malformed names never reach the sync
core.
"""

import re

from .errors import ValidationError

GITHUB_URL_PATTERN = re.compile(r"github\.com[/:]([^/\s]+)/([^/?#\s]+)")
FULL_NAME_PATTERN = re.compile(r"^([^/\s]+)/([^/\s]+)$")
NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def parse_repository(text: str) -> tuple[str, str]:
    """
    Parse "owner/repo" or a GitHub URL.

    Returns:
        (owner, repo)

    Raises:
        ValidationError: If the input matches neither form
    """
    trimmed = (text or "").strip()

    match = GITHUB_URL_PATTERN.search(trimmed) or FULL_NAME_PATTERN.match(trimmed)
    if not match:
        raise ValidationError('Invalid format. Use "owner/repo" or GitHub URL')

    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]

    if not NAME_PATTERN.match(owner) or not NAME_PATTERN.match(repo):
        raise ValidationError(f"Invalid repository name: {owner}/{repo}")
    return owner, repo


def validate_file_name(name: str) -> str:
    """Validate a single new file name; returns it stripped."""
    stripped = (name or "").strip()
    if not stripped:
        raise ValidationError("Please enter a filename")
    if "/" in stripped or "\\" in stripped:
        raise ValidationError(f"File name must not contain path separators: {stripped}")
    if stripped in (".", ".."):
        raise ValidationError(f"Invalid file name: {stripped}")
    if "\x00" in stripped:
        raise ValidationError("File name must not contain NUL")
    return stripped


def validate_path(path: str) -> str:
    """Validate a repository-relative file path."""
    if not path or not path.strip():
        raise ValidationError("Path must not be empty")
    if path.startswith("/"):
        raise ValidationError(f"Path must be relative to the repository root: {path}")
    if "\x00" in path:
        raise ValidationError("Path must not contain NUL")
    for segment in path.split("/"):
        if segment in ("", ".", ".."):
            raise ValidationError(f"Invalid path segment in {path!r}")
    return path


def join_path(directory: str, name: str) -> str:
    """Build the full path of a new file inside a directory."""
    name = validate_file_name(name)
    directory = directory.strip("/")
    return validate_path(f"{directory}/{name}" if directory else name)
