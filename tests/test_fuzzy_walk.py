import threading

from cratedig.items import SubcollectionLabel, TagRecord
from cratedig.navigation import NavigationState


def walk(nav, start, query):
    thread = nav.fuzzy_walk(str(start), query)
    if thread is not None:
        thread.join(timeout=5)
    return sorted(item.name for item in nav.items)


class TestFuzzyWalk:
    """Tests for the recursive background search."""

    def test_and_of_tokens(self, store, samples_dir):
        """Both tokens must be present, in any order and case."""
        store.clear()
        found = walk(store, samples_dir, "808 kick")
        assert found == ["808_KICK_long.wav"]

    def test_single_token(self, store, samples_dir):
        """Hidden files, hidden directories and sidecars are skipped."""
        store.clear()
        found = walk(store, samples_dir, "kick")
        assert found == ["808_KICK_long.wav", "kick_01.wav"]

    def test_matches_base_name_only(self, store, samples_dir):
        """Directory names do not count towards a match."""
        store.clear()
        assert walk(store, samples_dir, "kicks") == []

    def test_from_subdirectory(self, store, samples_dir):
        """A walk only covers the subtree it starts from."""
        store.clear()
        assert walk(store, samples_dir / "snares", "snare") == ["snare_01.mp3"]

    def test_empty_query_does_not_walk(self, store, samples_dir):
        """A blank query starts no thread."""
        assert store.fuzzy_walk(str(samples_dir), "   ") is None

    def test_results_are_files(self, store, samples_dir):
        """Every streamed result is an audio file with its full path."""
        store.clear()
        walk(store, samples_dir, "wav")
        for item in store.items:
            assert item.is_file
            assert item.path.startswith(str(samples_dir))

    def test_results_carry_tags(self, samples_dir):
        """Tag records looked up before the walk are attached to matching files."""
        kick = str(samples_dir / "kicks" / "kick_01.wav")
        tags = [TagRecord(1, "kick_01.wav", kick, "drums", "")]
        nav = NavigationState(str(samples_dir), tag_lookup=lambda path: tags)
        try:
            walk(nav, samples_dir, "kick_01")
            assert nav.items[0].tags == tuple(tags)
        finally:
            nav.close()

    def test_stale_results_are_discarded(self, samples_dir):
        """Results of a walk that outlived its list never appear in the new one."""
        gate = threading.Event()

        nav = NavigationState(str(samples_dir))
        real_push = nav.push

        def gated_push(item, generation):
            gate.wait(timeout=5)
            real_push(item, generation)

        nav.push = gated_push
        try:
            nav.clear()
            thread = nav.fuzzy_walk(str(samples_dir), "kick")
            nav.replace([SubcollectionLabel("/fresh")])
            gate.set()
            thread.join(timeout=5)
            assert [item.name for item in nav.items] == ["/fresh"]
        finally:
            nav.close()
