import sys
import tempfile
import time
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from cratedig.audio import AudioStream
from cratedig.catalog import Catalog
from cratedig.controller import Controller
from cratedig.logging_config import DecodeError
from cratedig.navigation import NavigationState
from cratedig.state import Session


def wait_for(predicate, timeout=2.0):
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def type_keys(controller, text):
    for ch in text:
        controller.handle_key(ch)


class FakeStream(AudioStream):
    """Stream that "plays" until it is closed."""

    def __init__(self, path):
        super().__init__()
        self.path = path
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def close(self):
        self.closed = True
        self.finished.set()


class FakeCodec:
    """Codec producing fake streams; ``.bad`` files fail to decode."""

    def __init__(self):
        self.streams = []
        self.decode_gate = None

    def decode(self, handle, extension, output_format):
        if self.decode_gate is not None:
            self.decode_gate.wait(timeout=2.0)
        if extension == ".bad":
            raise DecodeError("corrupt file")
        stream = FakeStream(handle.name)
        self.streams.append(stream)
        return stream


class FakeEngine:
    """Records preview requests instead of playing them."""

    def __init__(self):
        self.requests = []
        self.messages = []
        self.closed = False

    def request_play(self, path):
        self.requests.append(path)

    def drain_messages(self):
        messages, self.messages = self.messages, []
        return messages

    def close(self):
        self.closed = True


@pytest.fixture
def samples_dir():
    """Create a temporary sample library.

    samples/
        kicks/808_KICK_long.wav, snare_808.wav, kick_01.wav,
              kick_01.wav.asd, .hidden_kick.wav
        snares/snare_01.mp3, readme.txt
        .secret/kick_secret.wav
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "samples"
        root.mkdir()

        (root / "kicks").mkdir()
        (root / "kicks" / "808_KICK_long.wav").write_bytes(b"RIFF")
        (root / "kicks" / "snare_808.wav").write_bytes(b"RIFF")
        (root / "kicks" / "kick_01.wav").write_bytes(b"RIFF")
        (root / "kicks" / "kick_01.wav.asd").write_bytes(b"")
        (root / "kicks" / ".hidden_kick.wav").write_bytes(b"RIFF")

        (root / "snares").mkdir()
        (root / "snares" / "snare_01.mp3").write_bytes(b"ID3")
        (root / "snares" / "readme.txt").write_text("not audio")

        (root / ".secret").mkdir()
        (root / ".secret" / "kick_secret.wav").write_bytes(b"RIFF")

        yield root


@pytest.fixture
def data_dir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "data"


@pytest.fixture
def catalog(data_dir):
    data_dir.mkdir(parents=True, exist_ok=True)
    cat = Catalog(data_dir / "test.db")
    yield cat
    cat.close()


@pytest.fixture
def store(samples_dir, catalog):
    nav = NavigationState(str(samples_dir), tag_lookup=catalog.tags_for_directory)
    nav.refresh()
    yield nav
    nav.close()


@pytest.fixture
def user(catalog, samples_dir):
    profile = catalog.get_or_create_user("tester")
    catalog.update_root(profile.id, str(samples_dir))
    return catalog.get_user(profile.id)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def controller(store, catalog, engine, user):
    session = Session(store, user)
    return Controller(session, catalog, engine)


@pytest.fixture
def collection(controller, catalog, user):
    """Make a collection the controller's target."""
    collection_id = catalog.create_collection(user.id, "drums", "all the drums")
    catalog.update_target_collection(user.id, collection_id)
    controller.session.user = catalog.get_user(user.id)
    return controller.session.user.target_collection
