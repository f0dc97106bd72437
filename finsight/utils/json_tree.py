"""Structural traversal over JSON-compatible values.

Values are one of: mapping, list, str, bool, int/float, None. A visitor
rebuilds the tree bottom-up, so every transform returns a new structure and
never touches its input.
"""
from typing import Any, Iterator, Mapping, Optional, Tuple

from finsight.utils.logger import get_logger

logger = get_logger()


def join_path(path: str, key: Any) -> str:
    """Append a mapping key or list index to a dotted path."""
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def is_number(value: Any) -> bool:
    """True for int/float leaves; booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def unique_key(key: str, taken) -> str:
    """First of key_1, key_2, ... not already in taken."""
    index = 1
    while f"{key}_{index}" in taken:
        index += 1
    return f"{key}_{index}"


class JsonVisitor:
    """Identity transform over a JSON value. Override the hooks you need."""

    def visit(self, value: Any, path: str = "") -> Any:
        if isinstance(value, Mapping):
            return self.visit_object(value, path)
        if isinstance(value, (list, tuple)):
            return self.visit_array(value, path)
        if isinstance(value, str):
            return self.visit_string(value, path)
        if isinstance(value, bool):
            return self.visit_bool(value, path)
        if is_number(value):
            return self.visit_number(value, path)
        if value is None:
            return self.visit_null(path)
        return self.visit_other(value, path)

    def visit_key(self, key: str, path: str) -> Optional[str]:
        """Return the key to emit, or None to drop the entry."""
        return key

    def visit_object(self, value: Mapping, path: str) -> dict:
        result = {}
        for key, item in value.items():
            new_key = self.visit_key(str(key), path)
            if new_key is None:
                continue
            if new_key in result:
                # Never log the original key, it may be the sensitive part
                renamed = unique_key(new_key, result)
                logger.warning(f"Key collision on '{new_key}', keeping entry as '{renamed}'")
                new_key = renamed
            result[new_key] = self.visit(item, join_path(path, key))
        return result

    def visit_array(self, value, path: str) -> list:
        return [self.visit(item, join_path(path, i)) for i, item in enumerate(value)]

    def visit_string(self, value: str, path: str) -> Any:
        return value

    def visit_number(self, value, path: str) -> Any:
        return value

    def visit_bool(self, value: bool, path: str) -> Any:
        return value

    def visit_null(self, path: str) -> Any:
        return None

    def visit_other(self, value: Any, path: str) -> Any:
        return value


def copy_tree(value: Any) -> Any:
    """Structural copy of a JSON value."""
    return JsonVisitor().visit(value)


def walk(value: Any, path: str = "") -> Iterator[Tuple[str, Optional[str], Any]]:
    """Yield (path, key, value) for every node below the root.

    ``key`` is the mapping key for object members and None for array items.
    """
    if isinstance(value, Mapping):
        for key, item in value.items():
            child = join_path(path, key)
            yield child, str(key), item
            yield from walk(item, child)
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            child = join_path(path, i)
            yield child, None, item
            yield from walk(item, child)
