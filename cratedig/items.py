"""
Items shown in the navigable list.

Every list window shows a sequence of items. Each variant is an immutable
dataclass sharing the capability surface of :class:`Item`, so the renderer
and the controller never need to know which variant they hold except where
a window selects a specific kind (a collection, an export target, ...).
"""
import os
from dataclasses import dataclass, field
from typing import Tuple

AUDIO_EXTENSIONS: Tuple[str, ...] = (".wav", ".mp3", ".flac")

PARENT_NAME = ".."


def is_audio_file(name: str) -> bool:
    """Check whether a file name has a supported audio extension."""
    return os.path.splitext(name)[1].lower() in AUDIO_EXTENSIONS


class Item:
    """Shared capability surface for every list item."""

    __slots__ = ()

    @property
    def id(self) -> int:
        return 0

    @property
    def name(self) -> str:
        raise NotImplementedError

    @property
    def path(self) -> str:
        return ""

    @property
    def description(self) -> str:
        return ""

    @property
    def is_directory(self) -> bool:
        return False

    @property
    def is_file(self) -> bool:
        return False


@dataclass(frozen=True)
class TagRecord(Item):
    """A file tagged into a collection, optionally under a subcollection."""

    tag_id: int
    tag_name: str
    file_path: str
    collection_name: str
    subcollection: str = ""

    @property
    def id(self) -> int:
        return self.tag_id

    @property
    def name(self) -> str:
        return self.tag_name

    @property
    def path(self) -> str:
        return self.file_path

    @property
    def description(self) -> str:
        return f"{self.collection_name}{self.subcollection}"

    @property
    def is_file(self) -> bool:
        return True


@dataclass(frozen=True)
class FileSystemEntry(Item):
    """A directory or audio file on disk, with the tags attached to it."""

    entry_path: str
    directory: bool = False
    tags: Tuple[TagRecord, ...] = field(default_factory=tuple)

    @property
    def name(self) -> str:
        return os.path.basename(self.entry_path.rstrip(os.sep)) or self.entry_path

    @property
    def path(self) -> str:
        return self.entry_path

    @property
    def description(self) -> str:
        return ", ".join(tag.description for tag in self.tags)

    @property
    def is_directory(self) -> bool:
        return self.directory

    @property
    def is_file(self) -> bool:
        return not self.directory


@dataclass(frozen=True)
class CollectionSummary(Item):
    collection_id: int
    collection_name: str
    collection_description: str = ""

    @property
    def id(self) -> int:
        return self.collection_id

    @property
    def name(self) -> str:
        return self.collection_name

    @property
    def description(self) -> str:
        return self.collection_description


@dataclass(frozen=True)
class SubcollectionLabel(Item):
    label: str

    @property
    def name(self) -> str:
        return self.label


@dataclass(frozen=True)
class ExportTarget(Item):
    """A saved export definition."""

    export_id: int
    export_name: str
    output_dir: str
    concrete: bool = False

    @property
    def id(self) -> int:
        return self.export_id

    @property
    def name(self) -> str:
        return self.export_name

    @property
    def description(self) -> str:
        return "concrete" if self.concrete else "abstract"



def parent_entry(current_path: str) -> FileSystemEntry:
    """Build the synthetic ``..`` entry for a directory listing."""
    return FileSystemEntry(os.path.join(current_path, PARENT_NAME), directory=True)
