"""Path utilities: materialized path computation for the item tree.

Rules shared by the item service and the tree index:
- A materialized path always starts with '/', never ends with '/';
- The owner root is represented by the empty string '';
- Storage keys are ``owner_id + path`` and must stay byte-compatible.
"""

from __future__ import annotations

from app.packages.drive.core.constants import FILE_NAME_SUFFIX, ITEM_TYPE_FILE


def norm_root(parent_path: str | None) -> str:
    s = (parent_path or "").strip()
    return "" if s in ("", "/") else s


def resolve_path(parent_path: str | None, name: str) -> str:
    return f"{norm_root(parent_path)}/{name}"


def is_ancestor(candidate_ancestor_path: str, path: str) -> bool:
    """``path`` equals the candidate or lies somewhere beneath it."""
    return path == candidate_ancestor_path or path.startswith(candidate_ancestor_path + "/")


def rewrite_descendant_path(old_prefix: str, new_prefix: str, descendant_path: str) -> str:
    # only the leading occurrence; "/a/x/a" moved from "/a" must not touch the tail
    if not descendant_path.startswith(old_prefix):
        return descendant_path
    return new_prefix + descendant_path[len(old_prefix):]


def canonical_name(name: str, item_type: str) -> str:
    s = (name or "").strip()
    if item_type == ITEM_TYPE_FILE and not s.endswith(FILE_NAME_SUFFIX):
        s = s + FILE_NAME_SUFFIX
    return s


def storage_key(owner_id: str, path: str) -> str:
    return f"{owner_id}{path}"
