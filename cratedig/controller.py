"""
Session controller for cratedig.

Turns key presses into state changes: window switches with their
population effects, cursor movement, text entry, and the side effects on
the catalog and the preview engine. Runs on the UI thread only.
"""
import os
import threading
from typing import Optional

from .catalog import Catalog
from .items import CollectionSummary, ExportTarget, Item, PARENT_NAME
from .keymap import DEFAULT_KEYMAP, KeyMap
from .logging_config import get_logger, CatalogError, CrateDigError, FilesystemError, StateError
from .navigation import NO_MATCH
from .preview import PreviewEngine
from .state import Form, PromptState, SearchableListState, Session, SubMode, TextField
from .windows import FUZZY_WINDOWS, PROMPTS, REMOTE_QUERY_WINDOWS, WindowKind, WindowName

logger = get_logger('controller')


def parse_concrete(value: str) -> bool:
    """Read a yes/no form value: true when it starts with ``t`` or is ``1``."""
    value = value.strip().lower()
    return value.startswith("t") or value == "1"


def is_printable(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


class Controller:
    """Dispatches keys against a :class:`Session`.

    Attributes:
        session: Mutable UI state
        catalog: Persistent store of users, collections, tags and exports
        engine: Preview engine auditions are sent to
        walker: Thread of the most recent fuzzy walk, if any
    """

    def __init__(self, session: Session, catalog: Catalog, engine: PreviewEngine,
                 keymap: KeyMap = DEFAULT_KEYMAP, jump_size: int = 8):
        self.session = session
        self.catalog = catalog
        self.engine = engine
        self.keymap = keymap
        self.jump_size = jump_size
        self.walker: Optional[threading.Thread] = None

    @property
    def store(self):
        return self.session.store

    @property
    def walking(self) -> bool:
        """Whether a fuzzy walk is still streaming results."""
        return self.walker is not None and self.walker.is_alive()

    def _require_user(self):
        if self.session.user is None:
            raise StateError("No user selected")
        return self.session.user

    def _require_target_collection(self) -> CollectionSummary:
        user = self._require_user()
        if user.target_collection is None:
            raise CatalogError("No target collection, press c to pick one or C to create one")
        return user.target_collection

    # =========================================================================
    # Windows
    # =========================================================================
    def go_home(self) -> None:
        """Return to the Home window and re-list the current directory."""
        self.session.clear_transient()
        self.walker = None
        self.session.window = WindowName.HOME
        self.store.clear()
        self.store.refresh()

    def set_window(self, target: WindowName) -> None:
        """Switch to ``target``, or go home when already there."""
        session = self.session
        if target is session.window or target is WindowName.HOME:
            self.go_home()
            return

        subject = session.current_item()
        self._check_preconditions(target, subject)

        logger.debug(f"Window {session.window.title} -> {target.title}")
        session.clear_transient()
        self.walker = None
        session.window = target
        self._populate(target, subject)
        session.cursor = 0

    def _check_preconditions(self, target: WindowName, subject: Optional[Item]) -> None:
        if target is WindowName.NEW_TAG:
            if subject is None or not subject.is_file:
                raise StateError("Select a file to tag")
            self._require_target_collection()
        elif target in (WindowName.SET_TARGET_SUBCOLLECTION, WindowName.BROWSE_COLLECTION,
                        WindowName.RUN_EXPORT):
            self._require_target_collection()
        elif target in (WindowName.NEW_COLLECTION, WindowName.SET_TARGET_COLLECTION,
                        WindowName.CREATE_EXPORT):
            self._require_user()

    def _populate(self, target: WindowName, subject: Optional[Item]) -> None:
        session = self.session
        user = session.user

        if target is WindowName.NEW_COLLECTION:
            self.store.clear()
            session.context = Form(target.title, [TextField("name"), TextField("description")])
        elif target is WindowName.NEW_TAG:
            self.store.clear()
            session.context = Form(
                target.title,
                [TextField("name", os.path.basename(subject.path)),
                 TextField("subcollection", user.target_subcollection)],
                subject_path=subject.path,
            )
        elif target is WindowName.CREATE_EXPORT:
            self.store.clear()
            session.context = Form(
                target.title,
                [TextField("name"), TextField("output_dir"), TextField("concrete")],
            )
        elif target is WindowName.SET_TARGET_SUBCOLLECTION:
            self.store.replace(self.catalog.list_subcollections(user.target_collection_id))
            session.context = SearchableListState()
        elif target is WindowName.SET_TARGET_COLLECTION:
            self.store.replace(self.catalog.list_collections(user.id))
        elif target in FUZZY_WINDOWS:
            self.store.clear()
            session.context = SearchableListState()
        elif target is WindowName.RUN_EXPORT:
            self.store.replace(self.catalog.list_export_definitions(user.id))
        elif target is WindowName.BROWSE_COLLECTION:
            self.store.replace(self.catalog.tags_for_collection(user.target_collection_id))
            session.context = SearchableListState()
        elif target in PROMPTS:
            self.store.clear()
            session.context = PromptState(PROMPTS[target])

    # =========================================================================
    # Key dispatch
    # =========================================================================
    def handle_key(self, key: str) -> None:
        """Apply one key press. Errors become the inline status."""
        session = self.session
        session.set_status("")
        try:
            self._dispatch(key)
        except CrateDigError as e:
            logger.warning(f"{type(e).__name__} on key {key!r}: {e}")
            session.set_status(str(e))
            session.clamp_cursor()
        finally:
            session.key_memory.update(key)

    def _dispatch(self, key: str) -> None:
        session = self.session
        if key == "ctrl+c":
            session.quitting = True
            return
        kind = session.kind
        if kind is WindowKind.PRE_SESSION_PROMPT:
            self._handle_prompt_key(key)
        elif session.writing:
            self._handle_writing_key(key)
        elif kind is WindowKind.FORM:
            self._handle_form_key(key)
        else:
            self._handle_list_key(key)

    def tick(self) -> bool:
        """Pick up engine messages. Returns True when the status changed."""
        messages = self.engine.drain_messages()
        if messages:
            self.session.set_status(messages[-1])
            return True
        return False

    # =========================================================================
    # Pre-session prompts
    # =========================================================================
    def _handle_prompt_key(self, key: str) -> None:
        prompt = self.session.context
        if not isinstance(prompt, PromptState):
            raise StateError(f"No prompt in {self.session.window.title}")
        if key == "esc":
            self.session.quitting = True
        elif key == "enter":
            self._submit_prompt(prompt.input.value.strip())
        elif key == "backspace":
            prompt.input.backspace()
        elif is_printable(key):
            prompt.input.insert(key)

    def _submit_prompt(self, value: str) -> None:
        session = self.session
        if session.window is WindowName.ENTER_USERNAME:
            session.user = self.catalog.get_or_create_user(value)
            logger.info(f"Session user: {session.user.name}")
            self.set_window(WindowName.ENTER_ROOT)
        elif session.window is WindowName.ENTER_ROOT:
            user = self._require_user()
            if not value:
                raise StateError("No root entered")
            root = os.path.abspath(os.path.expanduser(value))
            if not os.path.isdir(root):
                raise FilesystemError(f"Root does not exist: {root}")
            self.catalog.update_root(user.id, root)
            user.root = root
            self.store.set_root(root)
            logger.info(f"Root set to {root}")
            self.set_window(WindowName.NEW_COLLECTION)

    # =========================================================================
    # Writing sub-mode
    # =========================================================================
    def _edited_field(self) -> TextField:
        context = self.session.context
        if isinstance(context, Form):
            return context.focused
        if isinstance(context, SearchableListState):
            return context.search
        raise StateError("Nothing to write to")

    def _handle_writing_key(self, key: str) -> None:
        if key in ("enter", "esc"):
            self._commit()
        elif key == "backspace":
            self._edited_field().backspace()
            self._refilter()
        elif is_printable(key):
            self._edited_field().insert(key)
            self._refilter()

    def _searches_locally(self, context: SearchableListState) -> bool:
        return context.searching_locally or self.session.window is WindowName.BROWSE_COLLECTION

    def _refilter(self) -> None:
        """Update matches as the search text changes.

        Fuzzy walks only start on commit.
        """
        context = self.session.context
        if not isinstance(context, SearchableListState):
            return
        if self._searches_locally(context):
            self.store.recompute_local_search(context.search.value)
        elif self.session.window is WindowName.SET_TARGET_SUBCOLLECTION:
            self._query_subcollections(context.search.value)

    def _enter_writing(self) -> None:
        self.session.sub_mode = SubMode.WRITING
        if isinstance(self.session.context, Form):
            self.session.context.writing = True

    def _commit(self) -> None:
        session = self.session
        session.sub_mode = SubMode.NAVIGATING
        context = session.context
        if isinstance(context, Form):
            context.writing = False
            return
        if not isinstance(context, SearchableListState):
            return

        text = context.search.value
        if self._searches_locally(context):
            self._local_search(text)
        elif session.window in REMOTE_QUERY_WINDOWS:
            if session.window in FUZZY_WINDOWS:
                self._start_fuzzy_walk(text)
            else:
                self._query_subcollections(text)

    def _query_subcollections(self, text: str) -> None:
        user = self._require_user()
        self.store.replace(self.catalog.list_subcollections(user.target_collection_id, text.strip()))
        self.session.cursor = 0

    def _local_search(self, text: str) -> None:
        matches = self.store.recompute_local_search(text)
        if not matches:
            if text.strip():
                self.session.set_status(f"No matches for {text.strip()}")
            return
        index = self.store.next_match(self.session.cursor)
        if index != NO_MATCH:
            self._move_cursor(index)

    def _start_fuzzy_walk(self, text: str) -> None:
        if not text.strip():
            return
        self.store.clear()
        self.session.cursor = 0
        if self.session.window is WindowName.FUZZY_SEARCH_FROM_ROOT:
            start = self.store.root_path
        else:
            start = self.store.current_path
        self.walker = self.store.fuzzy_walk(start, text)

    # =========================================================================
    # Forms
    # =========================================================================
    def _handle_form_key(self, key: str) -> None:
        form = self.session.context
        if not isinstance(form, Form):
            raise StateError(f"No form in {self.session.window.title}")
        km = self.keymap
        if km.up.matches(key):
            form.focus_previous()
        elif km.down.matches(key):
            form.focus_next()
        elif km.insert_mode.matches(key):
            self._enter_writing()
        elif km.enter.matches(key):
            self._submit_form(form)
        elif km.show_help.matches(key):
            self.session.show_help = not self.session.show_help
        elif km.quit.matches(key):
            self.go_home()

    def _submit_form(self, form: Form) -> None:
        empty = form.first_empty_index()
        if empty is not None:
            form.focused_index = empty
            self.session.set_status(f"Please enter a {form.fields[empty].name}")
            return

        user = self._require_user()
        window = self.session.window
        if window is WindowName.NEW_COLLECTION:
            name, description = form.value("name"), form.value("description")
            collection_id = self.catalog.create_collection(user.id, name, description)
            self.catalog.update_target_collection(user.id, collection_id)
            user.target_collection = CollectionSummary(collection_id, name, description)
            user.target_subcollection = ""
            message = f"Created collection {name}"
        elif window is WindowName.NEW_TAG:
            collection = self._require_target_collection()
            self.catalog.create_tag(
                user.id, form.subject_path, collection.id,
                form.value("name"), form.value("subcollection"),
            )
            message = f"Tagged {form.value('name')} into {collection.name}"
        elif window is WindowName.CREATE_EXPORT:
            name = form.value("name")
            self.catalog.create_export_definition(
                user.id, name, form.value("output_dir"), parse_concrete(form.value("concrete"))
            )
            message = f"Created export {name}"
        else:
            raise StateError(f"Unknown form {window.title}")

        self.go_home()
        self.session.set_status(message)

    # =========================================================================
    # Lists
    # =========================================================================
    def _move_cursor(self, position: int) -> None:
        session = self.session
        length = len(self.store)
        previous = session.cursor
        session.cursor = position
        session.clamp_cursor(length)
        if session.cursor != previous and session.user is not None and session.user.auto_audition:
            self.audition(session.current_item())

    def audition(self, item: Optional[Item]) -> None:
        """Preview ``item`` when it is a file."""
        if item is None or not item.is_file or not item.path:
            return
        self.engine.request_play(item.path)

    def _handle_list_key(self, key: str) -> None:
        session = self.session
        km = self.keymap

        if km.up.matches(key):
            self._move_cursor(session.cursor - 1)
        elif km.down.matches(key):
            self._move_cursor(session.cursor + 1)
        elif km.jump_up.matches(key):
            self._move_cursor(session.cursor - self.jump_size)
        elif km.jump_down.matches(key):
            self._move_cursor(session.cursor + self.jump_size)
        elif km.jump_bottom.matches(key):
            self._move_cursor(len(self.store) - 1)
        elif km.jump_top.matches(key):
            if session.key_memory.repeats(key):
                self._move_cursor(0)
        elif km.enter.matches(key):
            self._select()
        elif km.insert_mode.matches(key):
            if isinstance(session.context, SearchableListState):
                session.context.searching_locally = False
                self._enter_writing()
        elif km.search.matches(key):
            if not isinstance(session.context, SearchableListState):
                session.context = SearchableListState()
            session.context.searching_locally = True
            session.context.search.value = ""
            self._enter_writing()
        elif km.next_match.matches(key):
            self._jump_to_match(self.store.next_match(session.cursor))
        elif km.previous_match.matches(key):
            self._jump_to_match(self.store.previous_match(session.cursor))
        elif km.audition.matches(key):
            self.audition(session.current_item())
        elif km.audition_random.matches(key):
            self._audition_random()
        elif km.toggle_auto_audition.matches(key):
            self._toggle_auto_audition()
        elif km.create_quick_tag.matches(key):
            self._quick_tag()
        elif km.create_tag.matches(key):
            self.set_window(WindowName.NEW_TAG)
        elif km.new_collection.matches(key):
            self.set_window(WindowName.NEW_COLLECTION)
        elif km.set_target_collection.matches(key):
            self.set_window(WindowName.SET_TARGET_COLLECTION)
        elif km.set_target_subcollection.matches(key):
            self.set_window(WindowName.SET_TARGET_SUBCOLLECTION)
        elif km.clear_target_subcollection.matches(key):
            self._set_target_subcollection("")
        elif km.fuzzy_search_from_root.matches(key):
            self.set_window(WindowName.FUZZY_SEARCH_FROM_ROOT)
        elif km.fuzzy_search_from_current.matches(key):
            self.set_window(WindowName.FUZZY_SEARCH_FROM_CURRENT_DIR)
        elif km.browse_collection.matches(key):
            self.set_window(WindowName.BROWSE_COLLECTION)
        elif km.create_export.matches(key):
            self.set_window(WindowName.CREATE_EXPORT)
        elif km.run_export.matches(key):
            self.set_window(WindowName.RUN_EXPORT)
        elif km.toggle_show_collections.matches(key):
            session.show_collections = not session.show_collections
        elif km.show_help.matches(key):
            session.show_help = not session.show_help
        elif km.quit.matches(key):
            if session.window is WindowName.HOME:
                session.quitting = True
            else:
                self.go_home()

    def _jump_to_match(self, index: int) -> None:
        if index == NO_MATCH:
            self.session.set_status("No search matches")
            return
        self._move_cursor(index)

    def _audition_random(self) -> None:
        index = self.store.random_audio_item_index()
        if index == NO_MATCH:
            self.session.set_status("No audio files here")
            return
        self.session.cursor = index
        self.session.clamp_cursor()
        self.audition(self.session.current_item())

    def _toggle_auto_audition(self) -> None:
        user = self._require_user()
        user.auto_audition = not user.auto_audition
        self.catalog.update_auto_audition(user.id, user.auto_audition)
        self.session.set_status(f"Auto audition {'on' if user.auto_audition else 'off'}")

    def _quick_tag(self) -> None:
        item = self.session.current_item()
        if item is None or not item.is_file:
            raise StateError("Select a file to tag")
        user = self._require_user()
        collection = self._require_target_collection()
        name = os.path.basename(item.path)
        self.catalog.create_tag(user.id, item.path, collection.id, name, user.target_subcollection)
        if self.session.window is WindowName.HOME:
            self.store.refresh()
            self.session.clamp_cursor()
        self.session.set_status(f"Tagged {name} into {collection.name}{user.target_subcollection}")

    def _set_target_subcollection(self, value: str) -> None:
        user = self._require_user()
        user.target_subcollection = self.catalog.update_target_subcollection(user.id, value)

    def _select(self) -> None:
        session = self.session
        window = session.window
        item = session.current_item()

        if window is WindowName.HOME:
            if item is None:
                return
            if item.is_directory:
                if item.name == PARENT_NAME:
                    self.store.change_to_parent()
                else:
                    self.store.change_directory(item.name)
                session.cursor = 0
            else:
                self.audition(item)
        elif window in FUZZY_WINDOWS or window is WindowName.BROWSE_COLLECTION:
            self.audition(item)
        elif window is WindowName.SET_TARGET_SUBCOLLECTION:
            context = session.context
            typed = context.search.value.strip() if isinstance(context, SearchableListState) else ""
            if item is None and typed:
                value = typed
            elif item is not None:
                value = item.name
            else:
                session.set_status("No subcollection selected")
                return
            self._set_target_subcollection(value)
            self.go_home()
        elif window is WindowName.SET_TARGET_COLLECTION:
            if not isinstance(item, CollectionSummary):
                session.set_status("No collection selected")
                return
            user = self._require_user()
            self.catalog.update_target_collection(user.id, item.id)
            user.target_collection = item
            user.target_subcollection = ""
            self.go_home()
        elif window is WindowName.RUN_EXPORT:
            if not isinstance(item, ExportTarget):
                session.set_status("No export selected")
                return
            collection = self._require_target_collection()
            count = self.catalog.run_export(collection.id, item.id)
            session.set_status(f"Exported {count} files from {collection.name} to {item.output_dir}")
