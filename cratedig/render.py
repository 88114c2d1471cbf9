"""
Frame rendering for cratedig.

``render_frame`` turns a session into the lines of one screen. It never
writes to the terminal, so it can be called from tests.
"""
import re
import unicodedata
from functools import lru_cache
from typing import Dict, List, Optional, Sequence

from .items import ExportTarget, Item
from .keymap import DEFAULT_KEYMAP, KeyMap
from .state import Form, PromptState, SearchableListState, Session
from .windows import WindowKind

# =============================================================================
# Colors and icons
# =============================================================================
COLOR_MAP: Dict[str, str] = {
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "gray": "\033[90m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "reverse": "\033[7m",
    "reset": "\033[0m",
}

C_HEADER = COLOR_MAP["bold"]
C_SECONDARY = COLOR_MAP["gray"]
C_SELECTION = COLOR_MAP["reverse"]
C_ERROR = COLOR_MAP["yellow"]
C_RESET = COLOR_MAP["reset"]

HEADER_GLYPH = "⛏"
CURSOR_MARKER = ">"


class Icons:
    """Collection of Unicode icons used in the UI."""

    AUDIO: str = "\uf028"
    FOLDER: str = "\uf07b"
    COLLECTION: str = "\uf02c"
    EXPORT: str = "\uf56e"
    PLAY: str = "\uf04b"


# =============================================================================
# Width helpers
# =============================================================================
def _strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text for accurate length calculation."""
    return re.sub(r"\x1b\[[0-?]*[ -/]*[@-~]", "", text)


@lru_cache(maxsize=4096)
def _char_display_width(ch: str) -> int:
    """Return display width of a single Unicode character (0, 1 or 2)."""
    if not ch:
        return 0
    cat = unicodedata.category(ch)
    if cat in ("Mn", "Me", "Cf"):
        return 0
    ea = unicodedata.east_asian_width(ch)
    if ea in ("F", "W"):
        return 2
    return 1


@lru_cache(maxsize=4096)
def _display_width(text: str) -> int:
    """Return the visible terminal width of `text`, ignoring ANSI escapes."""
    s = _strip_ansi(text)
    return sum(_char_display_width(ch) for ch in s)


def _truncate_to_width(text: str, max_width: int, ellipsis: str = "...") -> str:
    """Truncate `text` (plain text) to fit in `max_width` display columns.

    Adds `ellipsis` when there's room; otherwise hard-truncates to fit.
    """
    if max_width <= 0:
        return ""
    if _display_width(text) <= max_width:
        return text

    e_width = _display_width(ellipsis)
    target = max_width if e_width >= max_width else max_width - e_width

    out = []
    cur = 0
    for ch in text:
        w = _char_display_width(ch)
        if cur + w > target:
            break
        out.append(ch)
        cur += w

    if e_width >= max_width:
        return "".join(out)
    return "".join(out) + ellipsis


# =============================================================================
# Sections
# =============================================================================
def _header(session: Session, now_playing: Optional[str]) -> str:
    header = f"{HEADER_GLYPH}  {C_HEADER}cratedig{C_RESET}  {C_SECONDARY}{session.window.title}{C_RESET}"
    if session.user is not None:
        header += f"  {C_SECONDARY}[{session.user.name}]{C_RESET}"
    if now_playing:
        header += f"  {Icons.PLAY} {now_playing}"
    return header


def _item_icon(item: Item) -> str:
    if item.is_directory:
        return Icons.FOLDER
    if item.is_file:
        return Icons.AUDIO
    if isinstance(item, ExportTarget):
        return Icons.EXPORT
    return Icons.COLLECTION


def scroll_offset(cursor: int, length: int, visible: int) -> int:
    """First visible row, keeping the cursor centered where possible."""
    if visible <= 0 or length <= visible:
        return 0
    return max(0, min(cursor - visible // 2, length - visible))


def _list_rows(items: Sequence[Item], session: Session, width: int, visible: int) -> List[str]:
    rows = []
    offset = scroll_offset(session.cursor, len(items), visible)
    for idx in range(offset, min(len(items), offset + visible)):
        item = items[idx]
        selected = idx == session.cursor
        marker = CURSOR_MARKER if selected else " "
        prefix = f"{marker} {_item_icon(item)}  "
        suffix = ""
        if session.show_collections and item.description:
            suffix = f"  {item.description}"
        name_width = width - _display_width(prefix) - _display_width(suffix)
        name = _truncate_to_width(item.name, max(name_width, 1))
        if selected:
            rows.append(f"{prefix}{C_SELECTION}{name}{C_RESET}{C_SECONDARY}{suffix}{C_RESET}")
        else:
            rows.append(f"{prefix}{name}{C_SECONDARY}{suffix}{C_RESET}")
    if not items:
        rows.append(f"  {C_SECONDARY}(empty){C_RESET}")
    return rows


def _form_rows(form: Form, width: int) -> List[str]:
    rows = [f"  {C_HEADER}{form.title}{C_RESET}", ""]
    label_width = max(len(f.name) for f in form.fields)
    for i, text_field in enumerate(form.fields):
        focused = i == form.focused_index
        caret = "_" if focused and form.writing else ""
        marker = CURSOR_MARKER if focused else " "
        label = f"{text_field.name:>{label_width}}"
        value = _truncate_to_width(text_field.value + caret, max(width - label_width - 6, 1))
        if focused:
            rows.append(f"{marker} {label}: {C_SELECTION}{value}{C_RESET}")
        else:
            rows.append(f"{marker} {label}: {value}")
    if form.subject_path:
        rows.append("")
        rows.append(f"  {C_SECONDARY}{_truncate_to_width(form.subject_path, width - 2)}{C_RESET}")
    return rows


def _prompt_rows(prompt: PromptState, width: int) -> List[str]:
    return ["", _truncate_to_width(f"  {prompt.prompt}{prompt.input.value}_", width)]


def _search_line(session: Session, search: SearchableListState) -> str:
    label = "/" if search.searching_locally else "search: "
    caret = "_" if session.writing else ""
    return f"{C_HEADER}{label}{C_RESET}{search.search.value}{caret}"


def _status_lines(session: Session, item_count: int, walking: bool) -> List[str]:
    user = session.user
    parts = []
    if user is not None:
        collection = user.target_collection_name or "-"
        parts.append(f"collection: {collection}")
        parts.append(f"subcollection: {user.target_subcollection or '/'}")
        parts.append(f"auto: {'on' if user.auto_audition else 'off'}")
    parts.append(f"{item_count} items{' …' if walking else ''}")
    mode = "-- INSERT --" if session.writing else ""
    lines = [f"{C_SECONDARY}{' | '.join(parts)}{C_RESET} {mode}".rstrip()]
    lines.append(f"{C_ERROR}{session.status}{C_RESET}" if session.status else "")
    return lines


def _help_rows(keymap: KeyMap) -> List[str]:
    rows = [f"  {C_HEADER}Keyboard Shortcuts{C_RESET}", ""]
    for group in keymap.full_help():
        for binding in group:
            rows.append(f"    {C_HEADER}{binding.label:>6}{C_RESET}  {binding.help}")
        rows.append("")
    rows.append(f"  Press {C_HEADER}?{C_RESET} to close help")
    return rows


def _short_help(keymap: KeyMap) -> str:
    return f"{C_SECONDARY}" + "  ".join(f"{b.label} {b.help}" for b in keymap.short_help()) + C_RESET


# =============================================================================
# Frame
# =============================================================================
def render_frame(session: Session, width: int, height: int, now_playing: Optional[str] = None,
                 walking: bool = False, keymap: KeyMap = DEFAULT_KEYMAP) -> List[str]:
    """Render one screen of ``height`` lines, each at most ``width`` columns wide."""
    width = max(width, 10)
    height = max(height, 6)
    lines = [_header(session, now_playing)]

    if session.show_help:
        lines.extend(_help_rows(keymap))
        return _fit(lines, width, height)

    items = session.store.snapshot() if session.kind is not WindowKind.PRE_SESSION_PROMPT else ()
    context = session.context
    search = context if isinstance(context, SearchableListState) else None
    footer = _status_lines(session, len(items), walking) + [_short_help(keymap)]

    body_height = height - len(lines) - len(footer) - (1 if search else 0)
    if session.kind is WindowKind.FORM and isinstance(context, Form):
        body = _form_rows(context, width)
    elif isinstance(context, PromptState):
        body = _prompt_rows(context, width)
    else:
        body = _list_rows(items, session, width, body_height)

    body = body[:body_height]
    body.extend([""] * (body_height - len(body)))
    lines.extend(body)
    if search is not None:
        lines.append(_search_line(session, search))
    lines.extend(footer)
    return _fit(lines, width, height)


def _fit(lines: List[str], width: int, height: int) -> List[str]:
    fitted = []
    for line in lines[:height]:
        if _display_width(line) > width:
            line = _truncate_to_width(_strip_ansi(line), width)
        fitted.append(line)
    fitted.extend([""] * (height - len(fitted)))
    return fitted
