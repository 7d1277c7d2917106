"""
Render and parse remote item bodies.

A remote body carries a whole task tree in plain markdown:

    <!-- dex:task:id:abc123 -->
    <!-- dex:task:priority:1 -->
    ...

    Free-text description of the root task.

    ## Tasks

    <details>
    <summary>✅ └─ <b>Child task</b></summary>

    <!-- dex:subtask:id:def456 -->
    <!-- dex:subtask:parent:abc123 -->
    ...

    ### Description
    ...

    </details>

Root markers use the ``task`` kind and descendant markers the ``subtask``
kind. The ``## Tasks`` section is present only when the root has
descendants. Everything a marker carries round-trips exactly; free text is
preserved modulo surrounding whitespace. Inside a block, description and
result lines starting with ``### `` or a ``details`` tag get a leading
backslash so they cannot be mistaken for structure.
"""

from __future__ import annotations

import html
import json
import re
from collections.abc import Iterable
from datetime import datetime

from dex.core.sync.markers import decode_value, encode_value
from dex.core.sync.models import ParsedDescendant, ParsedDocument, ParsedTaskMetadata
from dex.core.tasks.models import CommitMetadata, Task, as_utc
from dex.core.tasks.tree import HierarchicalTask

NAMESPACE = "dex"
ROOT_KIND = "task"
DESCENDANT_KIND = "subtask"

TASKS_HEADER = "## Tasks"
LEGACY_TASKS_HEADER = "## Subtasks"

_NULL = "null"

_HEADER_RE = re.compile(r"^## (?:Tasks|Subtasks)[ \t]*$", re.MULTILINE)
_BLOCK_OPEN_RE = re.compile(r"^<details>(?=\s*<summary>)", re.MULTILINE | re.IGNORECASE)
_BLOCK_CLOSE_RE = re.compile(r"^</details>[ \t]*$", re.MULTILINE | re.IGNORECASE)
# Lines inside a block's free text that would read as structure get one extra
# leading backslash; rendering and parsing add and remove exactly one.
_RESERVED_LINE_RE = re.compile(r"^(\\*)(### |</?details>)", re.MULTILINE | re.IGNORECASE)
_ESCAPED_LINE_RE = re.compile(r"^\\(\\*)(### |</?details>)", re.MULTILINE | re.IGNORECASE)
_SUMMARY_RE = re.compile(r"<summary>(.*?)</summary>", re.DOTALL | re.IGNORECASE)
_SECTION_RE = re.compile(r"^### (Description|Context|Result)[ \t]*$", re.MULTILINE)
_NAME_RE = re.compile(r"<b>(.*?)</b>", re.DOTALL)
_LEGACY_CHECKBOX_RE = re.compile(r"^\s*\[([ xX])\]\s*")


def _marker_re(kind: str) -> re.Pattern[str]:
    return re.compile(rf"<!-- {NAMESPACE}:{kind}:(\w+):(.*?) -->")


_ROOT_MARKER_RE = _marker_re(ROOT_KIND)
_DESCENDANT_MARKER_RE = _marker_re(DESCENDANT_KIND)
_ROOT_MARKER_LINE_RE = re.compile(
    rf"^[ \t]*<!-- {NAMESPACE}:{ROOT_KIND}:\S.*? -->[ \t]*(?:\n|$)", re.MULTILINE
)
_ID_MARKER_RE = re.compile(rf"<!-- {NAMESPACE}:{ROOT_KIND}:id:([\w.-]+) -->")
_LEGACY_ID_MARKER_RE = re.compile(rf"<!-- {NAMESPACE}:{ROOT_KIND}:([\w.-]+) -->")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _format_timestamp(value: datetime | None) -> str:
    if value is None:
        return _NULL
    return as_utc(value).isoformat()


def _marker(kind: str, field: str, value: object) -> str:
    return f"<!-- {NAMESPACE}:{kind}:{field}:{value} -->"


def escape_block_text(text: str) -> str:
    r"""
    Escape lines that would be read as block structure.

    Example:
        >>> escape_block_text("Steps\n### Result\nok")
        'Steps\n\\### Result\nok'
    """
    return _RESERVED_LINE_RE.sub(r"\\\1\2", text)


def unescape_block_text(text: str) -> str:
    """Inverse of :func:`escape_block_text`."""
    return _ESCAPED_LINE_RE.sub(r"\1\2", text)


def render_metadata_block(
    task: Task, kind: str = ROOT_KIND, parent_id: str | None = None
) -> list[str]:
    """
    Render one marker line per round-tripped task field.

    Args:
        task: Task to render
        kind: ``task`` for the root of a document, ``subtask`` for descendants
        parent_id: Local ID of the immediate parent, if any

    Returns:
        Marker lines, in a stable order
    """
    lines = [_marker(kind, "id", task.id)]
    if parent_id:
        lines.append(_marker(kind, "parent", parent_id))
    lines.append(_marker(kind, "priority", task.priority))
    lines.append(_marker(kind, "completed", "true" if task.completed else "false"))
    lines.append(_marker(kind, "created_at", _format_timestamp(task.created_at)))
    lines.append(_marker(kind, "updated_at", _format_timestamp(task.updated_at)))
    lines.append(_marker(kind, "started_at", _format_timestamp(task.started_at)))
    lines.append(_marker(kind, "completed_at", _format_timestamp(task.completed_at)))
    lines.append(_marker(kind, "blockedBy", encode_value(json.dumps(task.blocked_by))))
    lines.append(_marker(kind, "blocks", encode_value(json.dumps(task.blocks))))

    # Descendants carry their result as a visible section instead
    if kind == ROOT_KIND and task.result:
        lines.append(_marker(kind, "result", encode_value(task.result)))

    commit = task.metadata.commit if task.metadata else None
    if commit and commit.sha:
        lines.append(_marker(kind, "commit_sha", commit.sha))
        if commit.message:
            lines.append(_marker(kind, "commit_message", encode_value(commit.message)))
        if commit.branch:
            lines.append(_marker(kind, "commit_branch", encode_value(commit.branch)))
        if commit.url:
            lines.append(_marker(kind, "commit_url", encode_value(commit.url)))
        if commit.timestamp:
            lines.append(_marker(kind, "commit_timestamp", encode_value(commit.timestamp)))

    return lines


def render_task_block(task: Task, depth: int, parent_id: str | None = None) -> str:
    """
    Render a descendant as a collapsible ``<details>`` block.

    The check mark and tree glyph in the summary are for people reading the
    remote item; the parser ignores them.
    """
    status = "✅ " if task.completed else ""
    glyph = "  " * (depth - 1) + "└─ " if depth > 0 else ""
    name = html.escape(task.name, quote=False)

    lines = [
        "<details>",
        f"<summary>{status}{glyph}<b>{name}</b></summary>",
        "",
        *render_metadata_block(task, DESCENDANT_KIND, parent_id),
        "",
    ]
    if task.description:
        lines.extend(["### Description", escape_block_text(task.description), ""])
    if task.result:
        lines.extend(["### Result", escape_block_text(task.result), ""])
    lines.append("</details>")
    return "\n".join(lines)


def render_hierarchical_body(free_text: str, descendants: Iterable[HierarchicalTask]) -> str:
    """Free text followed, when there are descendants, by the ``## Tasks`` section."""
    blocks = [
        render_task_block(item.task, item.depth, item.parent_id) for item in descendants
    ]
    if not blocks:
        return free_text
    return f"{free_text}\n\n{TASKS_HEADER}\n\n" + "\n\n".join(blocks) + "\n"


def render_document(root: Task, descendants: Iterable[HierarchicalTask] = ()) -> str:
    """
    Render a root task and its descendant tree into one remote body.

    Args:
        root: The task that owns the remote item
        descendants: Pre-order descendants of *root* (may be empty)

    Returns:
        Markdown body: root markers, blank line, description, optional tasks section
    """
    markers = "\n".join(render_metadata_block(root, ROOT_KIND, root.parent_id))
    return f"{markers}\n\n{render_hierarchical_body(root.description, descendants)}"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_timestamp(value: str) -> datetime | None:
    if not value or value == _NULL:
        return None
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def _parse_id_list(value: str) -> list[str]:
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [str(item) for item in data]


def _apply_markers(pairs: Iterable[tuple[str, str]], meta: ParsedTaskMetadata) -> bool:
    """Fold decoded marker pairs into *meta*. Returns True if any pair was seen."""
    commit: dict[str, str] = {}
    found = False

    for field, raw in pairs:
        found = True
        value = decode_value(raw)
        if field == "id":
            meta.id = value
        elif field in ("parent", "parent_id"):
            meta.parent_id = value or None
        elif field == "priority":
            try:
                meta.priority = int(value)
            except ValueError:
                pass
        elif field == "completed":
            meta.completed = value == "true"
        elif field == "status":
            meta.completed = value == "completed"
        elif field in ("created_at", "updated_at", "started_at", "completed_at"):
            setattr(meta, field, _parse_timestamp(value))
        elif field == "blockedBy":
            meta.blocked_by = _parse_id_list(value)
        elif field == "blocks":
            meta.blocks = _parse_id_list(value)
        elif field == "result":
            meta.result = value
        elif field.startswith("commit_"):
            commit[field.removeprefix("commit_")] = value

    if commit.get("sha"):
        meta.commit = CommitMetadata(**commit)
    return found


def extract_task_id(text: str) -> str | None:
    """
    Find the root task ID embedded in a remote body.

    Tries ``<!-- dex:task:id:<id> -->`` first, then the legacy
    ``<!-- dex:task:<id> -->`` form.
    """
    match = _ID_MARKER_RE.search(text or "")
    if match:
        return match.group(1)
    match = _LEGACY_ID_MARKER_RE.search(text or "")
    if match:
        return match.group(1)
    return None


def _split_root_region(text: str) -> tuple[str, str | None]:
    """Split *text* at the descendants header that introduces ``<details>`` blocks."""
    for match in _HEADER_RE.finditer(text):
        rest = text[match.end() :]
        if rest.lstrip().lower().startswith("<details>"):
            return text[: match.start()], rest
    return text, None


def parse_root_metadata(text: str | None) -> ParsedTaskMetadata | None:
    """
    Decode the root task's markers from a remote body.

    Returns:
        Parsed metadata, an ID-only result for legacy bodies, or None when
        the body carries no dex markers at all
    """
    if not text:
        return None
    region, _ = _split_root_region(text)
    meta = ParsedTaskMetadata()
    if _apply_markers(_ROOT_MARKER_RE.findall(region), meta):
        return meta

    legacy = _LEGACY_ID_MARKER_RE.search(region)
    if legacy:
        return ParsedTaskMetadata(id=legacy.group(1))
    return None


def _iter_detail_blocks(section: str) -> list[str]:
    """
    Inner text of each ``<details>`` block in the tasks section.

    A block opens at a line starting with ``<details>`` followed by its
    ``<summary>``, and its text runs to the last ``</details>`` line before
    the next opener. Tags mentioned inline in prose are not boundaries.
    """
    openers = list(_BLOCK_OPEN_RE.finditer(section))
    blocks: list[str] = []
    for index, opener in enumerate(openers):
        end = openers[index + 1].start() if index + 1 < len(openers) else len(section)
        chunk = section[opener.end() : end]
        closers = list(_BLOCK_CLOSE_RE.finditer(chunk))
        if closers:
            chunk = chunk[: closers[-1].start()]
        blocks.append(chunk)
    return blocks


def _parse_block(block: str) -> ParsedTaskMetadata:
    meta = ParsedTaskMetadata()

    summary = _SUMMARY_RE.search(block)
    content = block
    if summary:
        summary_text = summary.group(1)
        content = block[summary.end() :]

        checkbox = _LEGACY_CHECKBOX_RE.match(summary_text)
        if checkbox:
            meta.completed = checkbox.group(1).lower() == "x"
            summary_text = summary_text[checkbox.end() :]

        name = _NAME_RE.search(summary_text)
        raw_name = name.group(1) if name else summary_text.replace("✅", "").replace("└─", "")
        meta.name = html.unescape(raw_name.strip())

    sections = list(_SECTION_RE.finditer(content))
    marker_region = content[: sections[0].start()] if sections else content
    _apply_markers(_DESCENDANT_MARKER_RE.findall(marker_region), meta)

    # The description runs up to the first result header; the result to the end
    for index, section in enumerate(sections):
        title = section.group(1)
        if title in ("Description", "Context") and not meta.description:
            end = len(content)
            for later in sections[index + 1 :]:
                if later.group(1) == "Result":
                    end = later.start()
                    break
            meta.description = unescape_block_text(content[section.end() : end].strip())
        elif title == "Result" and meta.result is None:
            meta.result = unescape_block_text(content[section.end() :].strip()) or None
            break

    return meta


def parse_document(text: str | None) -> ParsedDocument:
    """
    Split a remote body into root metadata, free text and descendants.

    Never raises on malformed input: fields that cannot be decoded keep
    their defaults.

    Example:
        >>> doc = parse_document(render_document(root, tree.descendants(root.id)))
        >>> [d.task.id for d in doc.descendants]
        ['def456', 'ghi789']
    """
    if not text:
        return ParsedDocument()

    root_region, tasks_section = _split_root_region(text)
    root = parse_root_metadata(text)
    free_text = _ROOT_MARKER_LINE_RE.sub("", root_region).strip()
    if root is not None:
        root.description = free_text

    root_id = root.id if root else None
    descendants: list[ParsedDescendant] = []
    depths: dict[str, int] = {}

    for block in _iter_detail_blocks(tasks_section or ""):
        meta = _parse_block(block)
        if meta.parent_id is None:
            meta.parent_id = root_id
        if meta.parent_id is not None and meta.parent_id in depths:
            depth = depths[meta.parent_id] + 1
        else:
            depth = 1
        if meta.id:
            depths[meta.id] = depth
        descendants.append(ParsedDescendant(task=meta, depth=depth, parent_id=meta.parent_id))

    return ParsedDocument(root=root, free_text=free_text, descendants=descendants)
