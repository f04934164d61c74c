"""Path semantics shared by all filesystems.

Paths are strings starting with "/". A trailing "/" marks a directory,
anything else is a regular file. There is no other source of truth for
directory-ness.
"""

from notebookfs.errors import InvalidPathError

import posixpath


def dir_path(path):
    return path.endswith("/")


def assert_dir_path(path):
    if not dir_path(path):
        raise InvalidPathError(f"expected a directory path, got: {path!r}")


def assert_regular_path(path):
    if dir_path(path):
        raise InvalidPathError(f"expected a regular file path, got: {path!r}")


def assert_same_type(path1, path2):
    if dir_path(path1) != dir_path(path2):
        raise InvalidPathError(
            f"expected paths of the same type, got: {path1!r} and {path2!r}"
        )


def key_for(path):
    """Return the object key for an absolute path (leading "/" stripped)."""
    if not path.startswith("/"):
        raise InvalidPathError(f"expected an absolute path, got: {path!r}")
    return path[1:]


def path_for(key):
    return "/" + key


def resolve_unix_like_path(dir_path, subject):
    """Resolve `subject` against the directory `dir_path`.

    `subject` may be relative or absolute. "." and ".." segments are
    expanded, ".." never ascending above the root, and repeated
    separators collapse. The result is a directory path when the subject
    names a directory (trailing separator, "." or "..").
    """
    assert_dir_path(dir_path)

    if subject.startswith("/"):
        full = subject
    else:
        full = dir_path + subject

    segments = []
    for segment in full.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
        else:
            segments.append(segment)

    last = posixpath.basename(subject) if subject else "."
    is_dir = subject == "" or subject.endswith("/") or last in (".", "..")

    resolved = "/" + "/".join(segments)
    if is_dir and segments:
        resolved += "/"
    return resolved
