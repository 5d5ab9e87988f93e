"""Payload formatting and filesystem helpers for session recordings."""

import io
import json
import logging
import shutil
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Optional

from defusedxml import ElementTree as SafeElementTree

logger = logging.getLogger(__name__)


def format_string(content: Optional[str]) -> Optional[str]:
    """Re-serialize XML or JSON payloads in a canonical indented form.

    Anything else, including malformed markup, is returned unchanged.
    Never raises.
    """
    if not content:
        return content
    if is_xml(content):
        return try_format_xml(content)
    if is_json(content):
        return try_format_json(content)
    return content


def _namespace_declarations(content: str) -> Dict[str, str]:
    """Prefix -> URI for the namespaces declared in ``content`` ("" is the default)."""
    declared: Dict[str, str] = {}
    for _, (prefix, uri) in SafeElementTree.iterparse(io.StringIO(content), events=("start-ns",)):
        declared.setdefault(prefix, uri)
    return declared


def try_format_xml(content: str) -> str:
    """Format the given XML with two-space indentation.

    Namespace prefixes declared in the document are kept, and a default
    namespace stays the default. Comments and the XML declaration are not
    carried over.

    Returns:
        The indented XML, or ``content`` unchanged if it does not parse
    """
    try:
        root = SafeElementTree.fromstring(content)
        ET.indent(root, space="  ")

        default_namespace = None
        if "xmlns" in content:
            namespaces = _namespace_declarations(content)
            default_namespace = namespaces.pop("", None)
            for prefix, uri in namespaces.items():
                try:
                    ET.register_namespace(prefix, uri)
                except ValueError:
                    # ns0-style prefixes are reserved; ElementTree generates its own
                    continue

        if default_namespace:
            try:
                return ET.tostring(root, encoding="unicode", default_namespace=default_namespace)
            except ValueError:
                # unqualified names next to a default namespace need generated prefixes
                pass
        return ET.tostring(root, encoding="unicode")
    except Exception:
        return content


def is_xml(content: str) -> bool:
    """Check whether ``content`` parses as an XML document."""
    if not content.lstrip().startswith("<"):
        return False
    try:
        SafeElementTree.fromstring(content)
        return True
    except Exception:
        return False


def try_format_json(content: str) -> str:
    try:
        parsed = json.loads(content)
        return json.dumps(parsed, indent=2, ensure_ascii=False)
    except Exception:
        # can't parse JSON (including nesting too deep to parse), return the original string
        return content


def is_json(content: str) -> bool:
    content = content.strip()
    return (content.startswith("{") and content.endswith("}")) or (
        content.startswith("[") and content.endswith("]")
    )


def ensure_directory_exists(path: str | Path) -> Path:
    """Create ``path`` (and parents) if missing."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def clean_directory(path: str | Path) -> int:
    """Delete everything inside ``path`` but keep the directory itself.

    Returns:
        Number of top-level entries removed (0 if the directory is missing)
    """
    path = Path(path)
    if not path.is_dir():
        return 0

    removed = 0
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
        removed += 1
    logger.info(f"Cleaned {removed} entries from {path}")
    return removed
