"""
State management module for cratedig.

The session owns everything the controller mutates on the UI thread: the
current window, its transient context, the cursor and the user profile.
The item list itself lives in the navigation store.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from .items import CollectionSummary, Item
from .keymap import KeyMemory
from .logging_config import get_logger
from .navigation import NavigationState
from .windows import WindowKind, WindowName

logger = get_logger('state')


class SubMode(Enum):
    NAVIGATING = "navigating"
    WRITING = "writing"


@dataclass
class UserProfile:
    """The active user and their persisted preferences."""

    id: int
    name: str
    root: str = ""
    auto_audition: bool = False
    target_collection: Optional[CollectionSummary] = None
    target_subcollection: str = ""

    @property
    def target_collection_id(self) -> int:
        return self.target_collection.id if self.target_collection else 0

    @property
    def target_collection_name(self) -> str:
        return self.target_collection.name if self.target_collection else ""


@dataclass
class TextField:
    """A single editable text value."""

    name: str
    value: str = ""

    def insert(self, text: str) -> None:
        self.value += text

    def backspace(self) -> None:
        self.value = self.value[:-1]

    @property
    def filled(self) -> bool:
        return bool(self.value.strip())


@dataclass
class Form:
    """An ordered set of fields with one focused at a time.

    Attributes:
        title: Shown above the fields
        fields: Ordered text fields
        focused_index: Field receiving input
        writing: Whether keystrokes edit the focused field
        subject_path: File a tag form applies to
    """

    title: str
    fields: List[TextField]
    focused_index: int = 0
    writing: bool = False
    subject_path: str = ""

    @property
    def focused(self) -> TextField:
        return self.fields[self.focused_index]

    def focus_next(self) -> None:
        self.focused_index = min(self.focused_index + 1, len(self.fields) - 1)

    def focus_previous(self) -> None:
        self.focused_index = max(self.focused_index - 1, 0)

    def first_empty_index(self) -> Optional[int]:
        """Index of the first field without a value, if any."""
        for i, text_field in enumerate(self.fields):
            if not text_field.filled:
                return i
        return None

    def value(self, name: str) -> str:
        for text_field in self.fields:
            if text_field.name == name:
                return text_field.value.strip()
        raise KeyError(name)


@dataclass
class SearchableListState:
    """Search input of a searchable list window.

    ``searching_locally`` tells whether the field holds a local search over
    the shown items or a query sent to the item source.
    """

    search: TextField = field(default_factory=lambda: TextField("search"))
    searching_locally: bool = False


@dataclass
class PromptState:
    prompt: str
    input: TextField = field(default_factory=lambda: TextField("input"))


Context = Union[Form, SearchableListState, PromptState, None]


class Session:
    """Everything the controller mutates on the UI thread."""

    def __init__(self, store: NavigationState, user: Optional[UserProfile] = None,
                 window: WindowName = WindowName.HOME):
        self.store = store
        self.user = user
        self.window = window
        self.context: Context = None
        self.cursor = 0
        self.key_memory = KeyMemory()
        self.sub_mode = SubMode.NAVIGATING
        self.status = ""
        self.show_help = False
        self.show_collections = False
        self.quitting = False

    @property
    def kind(self) -> WindowKind:
        return self.window.kind

    @property
    def writing(self) -> bool:
        return self.sub_mode is SubMode.WRITING

    def current_item(self) -> Optional[Item]:
        return self.store.item_at(self.cursor)

    def clamp_cursor(self, length: Optional[int] = None) -> int:
        """Keep the cursor inside the item list, 0 when it is empty."""
        if length is None:
            length = len(self.store)
        if length == 0:
            self.cursor = 0
        else:
            self.cursor = max(0, min(self.cursor, length - 1))
        return self.cursor

    def clear_transient(self) -> None:
        """Drop the window context and return to navigating."""
        self.context = None
        self.sub_mode = SubMode.NAVIGATING
        self.cursor = 0
        logger.debug("Transient state cleared")

    def set_status(self, message: str) -> None:
        self.status = message
        if message:
            logger.debug(f"Status: {message}")

    def validate_state(self) -> List[str]:
        """Validate current state and return list of issues."""
        issues = []
        if self.cursor < 0:
            issues.append("Cursor is negative")
        if self.kind is WindowKind.FORM and not isinstance(self.context, Form):
            issues.append(f"Form window {self.window.title} has no form")
        if self.kind is WindowKind.SEARCHABLE_LIST and not isinstance(self.context, SearchableListState):
            issues.append(f"Searchable window {self.window.title} has no search field")
        if self.kind is WindowKind.PRE_SESSION_PROMPT and not isinstance(self.context, PromptState):
            issues.append(f"Prompt window {self.window.title} has no prompt")
        if self.writing and self.kind is WindowKind.LIST_SELECTION:
            issues.append("List selection windows cannot be written to")
        if issues:
            logger.warning(f"State validation issues: {issues}")
        return issues
