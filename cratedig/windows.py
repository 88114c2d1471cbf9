"""
Windows of the cratedig session.

A window has a name, saying what it is for, and a kind, saying how it
behaves. The mapping between the two is fixed.
"""
from enum import Enum
from typing import Dict


class WindowKind(Enum):
    NAVIGATION = "navigation"
    FORM = "form"
    LIST_SELECTION = "list selection"
    SEARCHABLE_LIST = "searchable list"
    PRE_SESSION_PROMPT = "pre-session prompt"


class WindowName(Enum):
    HOME = "home"
    NEW_COLLECTION = "create collection"
    NEW_TAG = "create tag"
    SET_TARGET_SUBCOLLECTION = "target subcollection"
    SET_TARGET_COLLECTION = "target collection"
    FUZZY_SEARCH_FROM_ROOT = "recursive search - root"
    FUZZY_SEARCH_FROM_CURRENT_DIR = "recursive search - current dir"
    CREATE_EXPORT = "create export"
    RUN_EXPORT = "run export"
    BROWSE_COLLECTION = "browse target collection"
    ENTER_USERNAME = "enter username"
    ENTER_ROOT = "enter root"

    @property
    def kind(self) -> WindowKind:
        return WINDOW_KINDS[self]

    @property
    def title(self) -> str:
        return self.value


WINDOW_KINDS: Dict[WindowName, WindowKind] = {
    WindowName.HOME: WindowKind.NAVIGATION,
    WindowName.NEW_COLLECTION: WindowKind.FORM,
    WindowName.NEW_TAG: WindowKind.FORM,
    WindowName.SET_TARGET_SUBCOLLECTION: WindowKind.SEARCHABLE_LIST,
    WindowName.SET_TARGET_COLLECTION: WindowKind.LIST_SELECTION,
    WindowName.FUZZY_SEARCH_FROM_ROOT: WindowKind.SEARCHABLE_LIST,
    WindowName.FUZZY_SEARCH_FROM_CURRENT_DIR: WindowKind.SEARCHABLE_LIST,
    WindowName.CREATE_EXPORT: WindowKind.FORM,
    WindowName.RUN_EXPORT: WindowKind.LIST_SELECTION,
    WindowName.BROWSE_COLLECTION: WindowKind.SEARCHABLE_LIST,
    WindowName.ENTER_USERNAME: WindowKind.PRE_SESSION_PROMPT,
    WindowName.ENTER_ROOT: WindowKind.PRE_SESSION_PROMPT,
}

FUZZY_WINDOWS = (WindowName.FUZZY_SEARCH_FROM_ROOT, WindowName.FUZZY_SEARCH_FROM_CURRENT_DIR)

# Windows whose search field re-issues a query instead of searching locally
REMOTE_QUERY_WINDOWS = FUZZY_WINDOWS + (WindowName.SET_TARGET_SUBCOLLECTION,)

PROMPTS: Dict[WindowName, str] = {
    WindowName.ENTER_USERNAME: "Please enter a username: ",
    WindowName.ENTER_ROOT: "Please enter the root directory where you store your samples: ",
}
