"""Format-aware placeholder substitution.

Content is classified as JSON, YAML or plain text and substituted
accordingly:

- TEXT: literal replacement of each placeholder substring
- JSON / YAML: the document is parsed into a tree, every string leaf is
  substituted in literal mode, and the tree is serialized again with the
  original key order

Structured substitution keeps the file valid whatever the secret contains
(quotes, newlines, backslashes), which literal replacement cannot guarantee.
"""
from __future__ import annotations

import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import yaml

from .exceptions import FormatError
from .placeholders import resolve_placeholder

logger = logging.getLogger(__name__)

_BOM = "\ufeff"

_EXTENSION_FORMATS = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".env": "text",
    ".dotenv": "text",
}


class FileFormat(str, Enum):
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


def extension_format(path: Path | str | None) -> Optional[FileFormat]:
    """Return the format implied by the extension of ``path``, if recognized."""
    if path is None:
        return None
    p = Path(path)
    suffix = p.suffix.lower()
    if not suffix and p.name.startswith("."):
        # Dotfiles such as ".env" have no suffix; the whole name is the extension.
        suffix = p.name.lower()
    name = _EXTENSION_FORMATS.get(suffix)
    return FileFormat(name) if name else None


def classify_format(path: Path | str | None, content: str) -> FileFormat:
    """Pick the substitution mode for a file.

    The extension wins when recognized. Otherwise content that opens with
    ``{`` is treated as JSON and everything else as plain text.
    """
    by_extension = extension_format(path)
    if by_extension is not None:
        return by_extension
    if _strip_bom(content).lstrip().startswith("{"):
        return FileFormat.JSON
    return FileFormat.TEXT


def _strip_bom(content: str) -> str:
    return content[1:] if content.startswith(_BOM) else content


def _bom_of(content: str) -> str:
    return _BOM if content.startswith(_BOM) else ""


def _active_replacements(
    secrets: Mapping[str, str], placeholders: Iterable[str]
) -> List[tuple[str, str]]:
    """Placeholders that resolve to a known secret, in input order."""
    pairs: List[tuple[str, str]] = []
    for placeholder in placeholders:
        if not placeholder:
            continue
        key = resolve_placeholder(placeholder)
        if key in secrets:
            pairs.append((placeholder, secrets[key]))
    return pairs


def _replace_all(text: str, replacements: Sequence[tuple[str, str]]) -> str:
    for placeholder, value in replacements:
        text = text.replace(placeholder, value)
    return text


def substitute_text(content: str, secrets: Mapping[str, str], placeholders: Iterable[str]) -> str:
    """Replace every occurrence of each placeholder that has a secret.

    Placeholders are applied in the order given. Placeholders without a
    matching secret are left in place untouched.
    """
    return _replace_all(content, _active_replacements(secrets, placeholders))


def _walk(value: Any, replacements: Sequence[tuple[str, str]]) -> Any:
    if isinstance(value, str):
        return _replace_all(value, replacements)
    if isinstance(value, dict):
        # Keys are kept as-is; dict preserves insertion order.
        return {key: _walk(item, replacements) for key, item in value.items()}
    if isinstance(value, list):
        return [_walk(item, replacements) for item in value]
    return value


def substitute_tree(value: Any, secrets: Mapping[str, str], placeholders: Iterable[str]) -> Any:
    """Return a copy of a parsed document with string leaves substituted.

    Numbers, booleans and nulls are returned untouched. Mapping order is
    preserved at every depth.
    """
    return _walk(value, _active_replacements(secrets, placeholders))


# ============================================================================
# JSON
# ============================================================================

_INDENT_RE = re.compile(r"\n([ \t]+)\S")


def _json_layout(body: str) -> dict[str, Any]:
    """Infer ``json.dumps`` layout options from the original document."""
    stripped = body.strip()
    if "\n" in stripped:
        match = _INDENT_RE.search(stripped)
        indent: Any = 2
        if match:
            ws = match.group(1)
            indent = "\t" if ws.startswith("\t") else len(ws)
        return {"indent": indent}

    key_sep = ": " if re.search(r'"\s*:\s', stripped) else ":"
    item_sep = ", " if re.search(r",\s", stripped) else ","
    return {"indent": None, "separators": (item_sep, key_sep)}


def _substitute_json(
    content: str,
    replacements: Sequence[tuple[str, str]],
    path: Path | str | None,
) -> Optional[str]:
    body = _strip_bom(content)
    try:
        document = json.loads(body)
    except json.JSONDecodeError as exc:
        raise FormatError(
            f"Failed to parse JSON in {path or '<content>'}: {exc}",
            path=path,
            diagnostic=str(exc),
        ) from exc

    substituted = _walk(document, replacements)
    if substituted == document:
        return None

    trailing = body[len(body.rstrip()):]
    rendered = json.dumps(substituted, ensure_ascii=False, **_json_layout(body))
    return _bom_of(content) + rendered + trailing


# ============================================================================
# YAML
# ============================================================================

class _BlockStyleDumper(yaml.SafeDumper):
    """SafeDumper that writes multiline strings in literal block style."""


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockStyleDumper.add_representer(str, _str_representer)


def _substitute_yaml(
    content: str,
    replacements: Sequence[tuple[str, str]],
    path: Path | str | None,
) -> Optional[str]:
    body = _strip_bom(content)
    try:
        documents = list(yaml.safe_load_all(body))
    except yaml.YAMLError as exc:
        raise FormatError(
            f"Failed to parse YAML in {path or '<content>'}: {exc}",
            path=path,
            diagnostic=str(exc),
        ) from exc

    substituted = [_walk(doc, replacements) for doc in documents]
    if substituted == documents:
        return None

    options: dict[str, Any] = {
        "Dumper": _BlockStyleDumper,
        "default_flow_style": False,
        "sort_keys": False,
        "allow_unicode": True,
        "width": float("inf"),
        "explicit_start": body.lstrip().startswith("---") or len(substituted) > 1,
    }
    return _bom_of(content) + yaml.dump_all(substituted, **options)


# ============================================================================
# Dispatch
# ============================================================================

def substitute(
    content: str,
    secrets: Mapping[str, str],
    placeholders: Iterable[str],
    *,
    path: Path | str | None = None,
    fmt: Optional[FileFormat] = None,
) -> str:
    """Substitute placeholders in ``content`` according to its format.

    Args:
        content: Original file content
        secrets: Secret key to value mapping
        placeholders: Placeholder tokens to replace (``$KEY`` / ``${KEY}``)
        path: Target path, used for format dispatch and error messages
        fmt: Explicit format, bypassing classification

    Returns:
        The substituted content. When nothing is replaced the original
        content is returned unchanged, byte for byte.

    Raises:
        FormatError: If a JSON/YAML file cannot be parsed.
    """
    placeholders = list(placeholders)
    strict = fmt is not None or extension_format(path) is not None
    if fmt is None:
        fmt = classify_format(path, content)

    replacements = _active_replacements(secrets, placeholders)
    missing = [p for p in placeholders if p and resolve_placeholder(p) not in secrets]
    if missing:
        logger.debug("No secret for placeholder(s) %s in %s; left as-is", missing, path)

    logger.debug("Substituting %d placeholder(s) in %s as %s", len(replacements), path, fmt.value)

    if fmt is FileFormat.TEXT:
        return _replace_all(content, replacements)

    try:
        if fmt is FileFormat.JSON:
            result = _substitute_json(content, replacements, path)
        else:
            result = _substitute_yaml(content, replacements, path)
    except FormatError:
        if strict:
            raise
        logger.warning("%s looks like JSON but does not parse; using text substitution", path)
        return _replace_all(content, replacements)

    return content if result is None else result


__all__ = [
    "FileFormat",
    "extension_format",
    "classify_format",
    "substitute_text",
    "substitute_tree",
    "substitute",
]
