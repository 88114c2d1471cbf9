"""
Key bindings for cratedig.

Keys arrive as names decoded by the terminal loop: single printable
characters, or one of ``up``, ``down``, ``left``, ``right``, ``enter``,
``esc``, ``backspace``, ``tab``, ``ctrl+c``, ``ctrl+d``, ``ctrl+u``.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Binding:
    keys: Tuple[str, ...]
    label: str
    help: str

    def matches(self, key: str) -> bool:
        return key in self.keys


@dataclass(frozen=True)
class KeyMap:
    """All key bindings of the session."""

    up: Binding = Binding(("k", "up"), "↑/k", "move up")
    down: Binding = Binding(("j", "down"), "↓/j", "move down")
    quit: Binding = Binding(("q", "ctrl+c", "esc"), "q", "quit")
    jump_up: Binding = Binding(("ctrl+u",), "^u", "jump up")
    jump_down: Binding = Binding(("ctrl+d",), "^d", "jump down")
    jump_bottom: Binding = Binding(("G",), "G", "jump to bottom")
    jump_top: Binding = Binding(("g",), "gg", "jump to top")
    enter: Binding = Binding(("enter",), "enter", "select")
    insert_mode: Binding = Binding(("i",), "i", "text insert mode")
    backspace: Binding = Binding(("backspace",), "bksp", "delete")
    audition: Binding = Binding(("a",), "a", "audition sample")
    audition_random: Binding = Binding(("r",), "r", "audition random sample")
    toggle_auto_audition: Binding = Binding(("A",), "A", "auto audition")
    new_collection: Binding = Binding(("C",), "C", "new collection")
    set_target_collection: Binding = Binding(("c",), "c", "set target collection")
    clear_target_subcollection: Binding = Binding(("d",), "d", "no target subcollection")
    set_target_subcollection: Binding = Binding(("D",), "D", "target subcollection")
    create_quick_tag: Binding = Binding(("t",), "t", "quick tag")
    create_tag: Binding = Binding(("T",), "T", "editable tag")
    search: Binding = Binding(("/",), "/", "search window")
    fuzzy_search_from_root: Binding = Binding(("F",), "F", "search sounds from root")
    fuzzy_search_from_current: Binding = Binding(("f",), "f", "search sounds from current dir")
    toggle_show_collections: Binding = Binding(("K",), "K", "show collections")
    create_export: Binding = Binding(("E",), "E", "create export")
    run_export: Binding = Binding(("e",), "e", "run export")
    browse_collection: Binding = Binding(("b",), "b", "browse target collection")
    next_match: Binding = Binding(("n",), "n", "next local search result")
    previous_match: Binding = Binding(("p",), "p", "previous local search result")
    show_help: Binding = Binding(("?",), "?", "show help")

    def short_help(self) -> List[Binding]:
        return [self.quit, self.audition, self.create_quick_tag, self.create_export,
                self.run_export, self.show_help]

    def full_help(self) -> List[List[Binding]]:
        return [
            [self.up, self.down, self.jump_up, self.jump_down, self.jump_top, self.jump_bottom],
            [self.audition, self.audition_random, self.toggle_auto_audition, self.toggle_show_collections],
            [self.new_collection, self.set_target_collection, self.set_target_subcollection,
             self.clear_target_subcollection, self.browse_collection],
            [self.create_quick_tag, self.create_tag, self.create_export, self.run_export],
            [self.search, self.fuzzy_search_from_root, self.fuzzy_search_from_current, self.insert_mode],
            [self.next_match, self.previous_match, self.quit],
        ]


DEFAULT_KEYMAP = KeyMap()


class KeyMemory:
    """Remembers the previous keystroke so ``gg`` can jump to the top."""

    def __init__(self) -> None:
        self.last_key: Optional[str] = None

    def update(self, key: str) -> None:
        self.last_key = key

    def repeats(self, key: str) -> bool:
        """Whether ``key`` is an immediate repetition of the previous key."""
        return self.last_key == key
