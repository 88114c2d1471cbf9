"""
Navigable item store for cratedig.

One actor thread owns the item list and the local search matches. Every
producer (directory listings, recursive fuzzy walks, catalog queries) and
every reader talks to it through messages, so items land in the order they
were posted and nothing else ever mutates the list.
"""
import os
import queue
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .items import (
    FileSystemEntry,
    Item,
    TagRecord,
    is_audio_file,
    parent_entry,
)
from .logging_config import get_logger, FilesystemError, StateError

logger = get_logger('navigation')

NO_MATCH = -1

DEFAULT_SIDECAR_EXTENSIONS: Tuple[str, ...] = (".asd", ".nki", ".reapeaks")

TagLookup = Callable[[str], Sequence[TagRecord]]


def _no_tags(path: str) -> Sequence[TagRecord]:
    return ()


def query_tokens(query: str) -> List[str]:
    """Split a query on whitespace into lower-cased tokens."""
    return [token.lower() for token in query.split()]


def contains_all_tokens(text: str, tokens: Sequence[str]) -> bool:
    """Check that every token occurs in ``text``, ignoring case."""
    lowered = text.lower()
    return all(token in lowered for token in tokens)


# =============================================================================
# Actor messages
# =============================================================================
@dataclass
class _Reply:
    """One-shot reply slot for a synchronous request."""

    event: threading.Event = field(default_factory=threading.Event)
    value: Any = None

    def set(self, value: Any) -> None:
        self.value = value
        self.event.set()

    def wait(self) -> Any:
        self.event.wait()
        return self.value


@dataclass
class _Append:
    generation: int
    item: Item


@dataclass
class _Replace:
    items: List[Item]
    reply: _Reply


@dataclass
class _Search:
    query: str
    reply: _Reply


@dataclass
class _Snapshot:
    reply: _Reply


@dataclass
class _Stop:
    pass


# =============================================================================
# Store
# =============================================================================
class NavigationState:
    """Cursor-addressable item list owned by a single actor thread.

    Attributes:
        root_path: Top of the sample library; ``..`` never leaves it
        current_path: Directory listed in the Home window
        tag_lookup: Returns tag records stored under a directory path
        sidecar_extensions: Extensions skipped by fuzzy walks
    """

    def __init__(
        self,
        root_path: str,
        current_path: Optional[str] = None,
        tag_lookup: Optional[TagLookup] = None,
        sidecar_extensions: Sequence[str] = DEFAULT_SIDECAR_EXTENSIONS,
    ) -> None:
        self.root_path: str = os.path.normpath(root_path)
        self.current_path: str = os.path.normpath(current_path or root_path)
        self.tag_lookup: TagLookup = tag_lookup or _no_tags
        self.sidecar_extensions = tuple(ext.lower() for ext in sidecar_extensions)

        # Owned by the actor thread only
        self._items: List[Item] = []
        self._matching_indices: Tuple[int, ...] = ()
        self._generation = 0

        self._inbox: "queue.Queue[Any]" = queue.Queue()
        self._closed = False
        self._actor = threading.Thread(
            target=self._run, name="NavigationActor", daemon=True
        )
        self._actor.start()

    # -------------------------------------------------------------------------
    # Actor loop
    # -------------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            msg = self._inbox.get()
            if isinstance(msg, _Stop):
                logger.debug("Navigation actor stopped")
                return
            if isinstance(msg, _Append):
                if msg.generation == self._generation:
                    self._items.append(msg.item)
                else:
                    logger.debug(f"Dropped stale walk result: {msg.item.path}")
            elif isinstance(msg, _Replace):
                self._generation += 1
                self._items = list(msg.items)
                self._matching_indices = ()
                msg.reply.set(self._generation)
            elif isinstance(msg, _Search):
                self._matching_indices = self._match(msg.query)
                msg.reply.set(self._matching_indices)
            elif isinstance(msg, _Snapshot):
                msg.reply.set((self._generation, tuple(self._items), self._matching_indices))
            else:
                logger.error(f"Unknown navigation message: {msg!r}")

    def _match(self, query: str) -> Tuple[int, ...]:
        tokens = query_tokens(query)
        if not tokens:
            return ()
        return tuple(
            i for i, item in enumerate(self._items)
            if contains_all_tokens(item.name, tokens)
        )

    def _call(self, message: Any) -> Any:
        if self._closed:
            raise StateError("Navigation store is closed")
        self._inbox.put(message)
        return message.reply.wait()

    # -------------------------------------------------------------------------
    # Snapshot access
    # -------------------------------------------------------------------------
    def snapshot(self) -> Tuple[Item, ...]:
        """Return an immutable copy of the current items."""
        return self._call(_Snapshot(_Reply()))[1]

    @property
    def items(self) -> Tuple[Item, ...]:
        return self.snapshot()

    @property
    def matching_indices(self) -> Tuple[int, ...]:
        return self._call(_Snapshot(_Reply()))[2]

    @property
    def generation(self) -> int:
        return self._call(_Snapshot(_Reply()))[0]

    def __len__(self) -> int:
        return len(self.snapshot())

    def item_at(self, index: int) -> Optional[Item]:
        items = self.snapshot()
        if 0 <= index < len(items):
            return items[index]
        return None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------
    def replace(self, items: Sequence[Item]) -> int:
        """Replace the whole list. Returns the new generation."""
        return self._call(_Replace(list(items), _Reply()))

    def clear(self) -> int:
        return self.replace([])

    def push(self, item: Item, generation: int) -> None:
        """Append one item if ``generation`` is still current."""
        self._inbox.put(_Append(generation, item))

    def close(self) -> None:
        """Stop the actor thread."""
        if self._closed:
            return
        self._closed = True
        self._inbox.put(_Stop())
        self._actor.join(timeout=1.0)

    # -------------------------------------------------------------------------
    # Directory listing
    # -------------------------------------------------------------------------
    def list_directory(self, path: Optional[str] = None) -> List[Item]:
        """List a directory: subdirectories first, then audio files.

        Hidden entries are skipped. Both groups keep filesystem enumeration
        order. Files carry the tag records whose stored path contains the
        file's name. A ``..`` entry leads the list below the root.

        Args:
            path: Directory to list, defaults to ``current_path``

        Returns:
            List of items

        Raises:
            FilesystemError: If the directory cannot be read
        """
        path = os.path.normpath(path or self.current_path)
        dirs: List[Item] = []
        files: List[str] = []

        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    if entry.name.startswith("."):
                        continue
                    try:
                        if entry.is_dir():
                            dirs.append(FileSystemEntry(entry.path, directory=True))
                        elif entry.is_file() and is_audio_file(entry.name):
                            files.append(entry.path)
                    except OSError:
                        continue
        except OSError as e:
            logger.error(f"Failed to list {path}: {e}")
            raise FilesystemError(f"Cannot read {path}: {e.strerror or e}")

        tags = list(self.tag_lookup(path)) if files else []
        items: List[Item] = []
        if path != self.root_path:
            items.append(parent_entry(path))
        items.extend(dirs)
        for file_path in files:
            name = os.path.basename(file_path)
            matched = tuple(tag for tag in tags if name in tag.file_path)
            items.append(FileSystemEntry(file_path, directory=False, tags=matched))
        return items

    def refresh(self) -> None:
        """Re-list ``current_path`` and replace the items wholesale.

        On a read error the list keeps only the ``..`` entry so the user can
        back out, and the error propagates for display.
        """
        try:
            items = self.list_directory(self.current_path)
        except FilesystemError:
            fallback = [] if self.current_path == self.root_path else [parent_entry(self.current_path)]
            self.replace(fallback)
            raise
        self.replace(items)

    def change_directory(self, name: str) -> None:
        self.current_path = os.path.normpath(os.path.join(self.current_path, name))
        logger.debug(f"Changing to dir: {self.current_path}")
        self.refresh()

    def change_to_parent(self) -> None:
        if self.current_path != self.root_path:
            self.current_path = os.path.dirname(self.current_path)
        logger.debug(f"Changing to dir: {self.current_path}")
        self.refresh()

    def set_root(self, root_path: str) -> None:
        """Re-root the store at ``root_path`` and list it."""
        self.root_path = os.path.normpath(root_path)
        self.current_path = self.root_path
        self.refresh()

    # -------------------------------------------------------------------------
    # Recursive fuzzy walk
    # -------------------------------------------------------------------------
    def fuzzy_walk(self, start_dir: str, query: str) -> Optional[threading.Thread]:
        """Walk ``start_dir`` in the background, streaming matching files.

        A file matches when its name contains every whitespace-separated
        token of ``query``, ignoring case. Matches are posted to the actor as
        soon as they are found, tagged with the generation current at start;
        anything posted after the list was replaced is dropped.

        Returns:
            The walk thread, or None for an empty query
        """
        tokens = query_tokens(query)
        if not tokens:
            return None

        generation = self.generation
        tags = list(self.tag_lookup(start_dir))
        walker = threading.Thread(
            target=self._walk,
            args=(start_dir, tokens, generation, tags),
            name="FuzzyWalk",
            daemon=True,
        )
        logger.info(f"Fuzzy walk from {start_dir} for {query!r}")
        walker.start()
        return walker

    def _walk(self, start_dir: str, tokens: List[str], generation: int, tags: List[TagRecord]) -> None:
        found = 0
        for dirpath, dirnames, filenames in os.walk(start_dir, onerror=self._walk_error):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                if filename.startswith("."):
                    continue
                lowered = filename.lower()
                if lowered.endswith(self.sidecar_extensions) or not is_audio_file(filename):
                    continue
                if not contains_all_tokens(filename, tokens):
                    continue
                file_path = os.path.join(dirpath, filename)
                matched = tuple(tag for tag in tags if file_path in tag.file_path)
                self.push(FileSystemEntry(file_path, directory=False, tags=matched), generation)
                found += 1
        logger.info(f"Fuzzy walk from {start_dir} finished with {found} matches")

    @staticmethod
    def _walk_error(error: OSError) -> None:
        logger.warning(f"Fuzzy walk skipped unreadable directory: {error}")

    # -------------------------------------------------------------------------
    # Local search
    # -------------------------------------------------------------------------
    def recompute_local_search(self, query: str) -> Tuple[int, ...]:
        """Record the indices of items whose name contains every token.

        An empty or whitespace-only query clears the matches.
        """
        return self._call(_Search(query, _Reply()))

    def next_match(self, position: int) -> int:
        """First match after ``position``, wrapping to the first match."""
        matches = self.matching_indices
        if not matches:
            return NO_MATCH
        for index in matches:
            if index > position:
                return index
        return matches[0]

    def previous_match(self, position: int) -> int:
        """Last match before ``position``, wrapping to the last match."""
        matches = self.matching_indices
        if not matches:
            return NO_MATCH
        for index in reversed(matches):
            if index < position:
                return index
        return matches[-1]

    def random_audio_item_index(self) -> int:
        """Pick a random index among the non-directory items."""
        candidates = [i for i, item in enumerate(self.snapshot()) if not item.is_directory]
        if not candidates:
            return NO_MATCH
        return random.choice(candidates)
