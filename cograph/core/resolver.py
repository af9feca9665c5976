"""Import path resolution against a repository path index.

Turns a raw import specifier (``./utils``, ``../lib``, ``@/components/x``)
into the repository-relative path of the file it refers to, or ``None``
when the import is external or cannot be matched.  Pure functions only;
the same resolver serves full rebuilds and one-off lookups.
"""

from __future__ import annotations

from collections.abc import Collection

# Tried in order, first for ``<base><ext>`` then for ``<base>/index<ext>``.
EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")

ALIAS_PREFIX = "@/"


def resolve_import_source(
    source: str,
    importing_file_path: str,
    path_index: Collection[str],
) -> str | None:
    """Resolve one import specifier to a known repository path.

    Only relative (``.``/``..``) and alias-prefixed (``@/``) sources are
    considered; anything else is a package import and yields ``None``.
    An alias is first mapped to ``src/`` and, failing that, to the
    repository root.

    Args:
        source: Raw import string as written in the importing file.
        importing_file_path: Repository-relative path of the importing file.
        path_index: Every known repository-relative path.

    Returns:
        The matching path from *path_index*, or ``None``.
    """
    if source.startswith(ALIAS_PREFIX):
        remainder = source[len(ALIAS_PREFIX):]
        match = find_with_extensions(f"src/{remainder}", path_index)
        if match is not None:
            return match
        return find_with_extensions(remainder, path_index)

    if source.startswith("."):
        return find_with_extensions(
            resolve_relative_path(source, importing_file_path), path_index
        )

    return None


def resolve_relative_path(source: str, importing_file_path: str) -> str:
    """Join *source* onto the directory of *importing_file_path*.

    ``.`` segments are dropped and ``..`` pops one directory; popping past
    the repository root is a no-op.

    >>> resolve_relative_path("../lib/x", "src/app/main.ts")
    'src/lib/x'
    """
    parts = importing_file_path.split("/")[:-1]

    for segment in source.split("/"):
        if segment in (".", ""):
            continue
        if segment == "..":
            if parts:
                parts.pop()
        else:
            parts.append(segment)

    return "/".join(parts)


def find_with_extensions(base: str, path_index: Collection[str]) -> str | None:
    """Look *base* up as-is, then with each extension, then as a directory index."""
    if base in path_index:
        return base

    for ext in EXTENSIONS:
        candidate = base + ext
        if candidate in path_index:
            return candidate

    for ext in EXTENSIONS:
        candidate = f"{base}/index{ext}"
        if candidate in path_index:
            return candidate

    return None
