import os
import pytest

from cratedig.items import FileSystemEntry, SubcollectionLabel, TagRecord
from cratedig.logging_config import FilesystemError, StateError
from cratedig.navigation import NO_MATCH, NavigationState, contains_all_tokens, query_tokens


def names(items):
    return [item.name for item in items]


class TestListDirectory:
    """Tests for directory listing."""

    def test_root_lists_only_subdirectories(self, store, samples_dir):
        """At the root, Home lists the visible subdirectories and no parent entry."""
        items = store.list_directory(str(samples_dir))
        assert sorted(names(items)) == ["kicks", "snares"]
        assert all(item.is_directory for item in items)

    def test_deeper_path_starts_with_parent(self, store, samples_dir):
        """Below the root, the parent entry comes first."""
        items = store.list_directory(str(samples_dir / "kicks"))
        assert items[0].name == ".."
        assert items[0].is_directory

    def test_directories_before_files(self, store, samples_dir):
        """Subdirectories are listed before audio files."""
        (samples_dir / "kicks" / "layered").mkdir()
        items = store.list_directory(str(samples_dir / "kicks"))
        kinds = [item.is_directory for item in items]
        assert kinds == sorted(kinds, reverse=True)
        assert "layered" in names(items)

    def test_skips_hidden_and_non_audio(self, store, samples_dir):
        """Hidden entries, sidecars and non-audio files are not listed."""
        kicks = names(store.list_directory(str(samples_dir / "kicks")))
        assert ".hidden_kick.wav" not in kicks
        assert "kick_01.wav.asd" not in kicks
        snares = names(store.list_directory(str(samples_dir / "snares")))
        assert snares == ["..", "snare_01.mp3"]

    def test_audio_extension_case_insensitive(self, store, samples_dir):
        """Upper-case audio extensions are listed."""
        (samples_dir / "snares" / "LOUD.WAV").write_bytes(b"RIFF")
        assert "LOUD.WAV" in names(store.list_directory(str(samples_dir / "snares")))

    def test_listing_is_idempotent(self, store, samples_dir):
        """Listing an unchanged directory twice gives the same ordered result."""
        path = str(samples_dir / "kicks")
        assert store.list_directory(path) == store.list_directory(path)

    def test_unreadable_directory_raises(self, store, samples_dir):
        """A missing directory raises FilesystemError."""
        with pytest.raises(FilesystemError):
            store.list_directory(str(samples_dir / "missing"))

    def test_files_carry_matching_tags(self, samples_dir):
        """Files carry the tag records whose stored path contains their name."""
        kick = str(samples_dir / "kicks" / "kick_01.wav")
        tags = [TagRecord(1, "kick_01.wav", kick, "drums", "/kicks")]
        nav = NavigationState(str(samples_dir), tag_lookup=lambda path: tags)
        try:
            items = nav.list_directory(str(samples_dir / "kicks"))
            by_name = {item.name: item for item in items}
            assert by_name["kick_01.wav"].tags == tuple(tags)
            assert by_name["kick_01.wav"].description == "drums/kicks"
            assert by_name["snare_808.wav"].tags == ()
        finally:
            nav.close()


class TestDirectoryChanges:
    """Tests for moving around the tree."""

    def test_change_directory_and_back(self, store, samples_dir):
        """Entering a directory and going to the parent returns to the root listing."""
        store.change_directory("kicks")
        assert store.current_path == str(samples_dir / "kicks")
        assert store.items[0].name == ".."

        store.change_to_parent()
        assert store.current_path == str(samples_dir)
        assert sorted(names(store.items)) == ["kicks", "snares"]

    def test_parent_of_root_is_root(self, store, samples_dir):
        """Going up from the root stays at the root."""
        store.change_to_parent()
        assert store.current_path == str(samples_dir)

    def test_refresh_error_leaves_parent_entry(self, store, samples_dir):
        """A directory that vanished leaves only the parent entry."""
        store.current_path = str(samples_dir / "gone")
        with pytest.raises(FilesystemError):
            store.refresh()
        assert names(store.items) == [".."]

    def test_set_root(self, store, samples_dir):
        """Re-rooting lists the new root without a parent entry."""
        store.set_root(str(samples_dir / "snares"))
        assert store.root_path == str(samples_dir / "snares")
        assert names(store.items) == ["snare_01.mp3"]


class TestMutations:
    """Tests for the actor-owned item list."""

    def test_replace_bumps_generation(self, store):
        """Every replace starts a new generation and clears matches."""
        before = store.generation
        store.replace([SubcollectionLabel("/a")])
        store.recompute_local_search("a")
        assert store.matching_indices == (0,)

        generation = store.clear()
        assert generation == before + 2
        assert store.items == ()
        assert store.matching_indices == ()

    def test_push_with_stale_generation_is_dropped(self, store):
        """Items posted under an old generation never land."""
        old = store.clear()
        store.replace([])
        store.push(SubcollectionLabel("/late"), old)
        assert store.items == ()

    def test_push_with_current_generation_lands(self, store):
        """Items posted under the current generation are appended in order."""
        generation = store.clear()
        store.push(SubcollectionLabel("/one"), generation)
        store.push(SubcollectionLabel("/two"), generation)
        assert names(store.items) == ["/one", "/two"]

    def test_item_at_out_of_range(self, store):
        """Indices outside the list return None."""
        assert store.item_at(-1) is None
        assert store.item_at(len(store)) is None

    def test_closed_store_rejects_calls(self, samples_dir):
        """Synchronous calls after close raise StateError."""
        nav = NavigationState(str(samples_dir))
        nav.close()
        with pytest.raises(StateError):
            nav.snapshot()


class TestLocalSearch:
    """Tests for local search over the shown items."""

    def setup_method(self):
        self.nav = NavigationState("/")
        self.nav.replace([
            SubcollectionLabel("Kick Hard"),
            SubcollectionLabel("snare"),
            SubcollectionLabel("hard snare"),
            SubcollectionLabel("kick soft"),
        ])

    def teardown_method(self):
        self.nav.close()

    def test_and_of_tokens_case_insensitive(self):
        """Matches are the items containing every token, in any order and case."""
        assert self.nav.recompute_local_search("HARD kick") == (0,)
        assert self.nav.recompute_local_search("snare") == (1, 2)

    def test_empty_query_matches_nothing(self):
        """An empty or blank query records no matches."""
        assert self.nav.recompute_local_search("") == ()
        assert self.nav.recompute_local_search("   ") == ()
        assert self.nav.next_match(0) == NO_MATCH

    def test_no_matches(self):
        """Missing tokens give no matches and the sentinel from next/previous."""
        self.nav.recompute_local_search("clap")
        assert self.nav.next_match(0) == NO_MATCH
        assert self.nav.previous_match(0) == NO_MATCH

    def test_next_match_is_cyclic(self):
        """Repeated next_match visits every match once before repeating."""
        self.nav.recompute_local_search("kick")
        visited = []
        position = -1
        for _ in range(4):
            position = self.nav.next_match(position)
            visited.append(position)
        assert visited == [0, 3, 0, 3]

    def test_previous_match_wraps_to_last(self):
        """previous_match before the first match wraps to the last match."""
        self.nav.recompute_local_search("snare")
        assert self.nav.previous_match(2) == 1
        assert self.nav.previous_match(1) == 2
        assert self.nav.previous_match(0) == 2


class TestRandomAudioItem:
    """Tests for random_audio_item_index."""

    def test_never_picks_directories(self, store):
        """Random picks are always files."""
        store.change_directory("kicks")
        for _ in range(20):
            index = store.random_audio_item_index()
            assert not store.item_at(index).is_directory

    def test_sentinel_without_files(self, store):
        """With only directories the sentinel is returned."""
        assert store.random_audio_item_index() == NO_MATCH

    def test_sentinel_on_empty_list(self, store):
        """An empty list returns the sentinel."""
        store.clear()
        assert store.random_audio_item_index() == NO_MATCH


class TestTokens:
    """Tests for query token helpers."""

    def test_query_tokens(self):
        assert query_tokens("  808  Kick ") == ["808", "kick"]

    def test_contains_all_tokens(self):
        assert contains_all_tokens("808_KICK_long.wav", ["808", "kick"])
        assert not contains_all_tokens("snare_808.wav", ["808", "kick"])

    def test_entry_name_is_basename(self):
        entry = FileSystemEntry(os.path.join("a", "b", "c.wav"))
        assert entry.name == "c.wav"
        assert entry.is_file and not entry.is_directory
