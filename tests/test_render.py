from cratedig.render import CURSOR_MARKER, _strip_ansi, render_frame, scroll_offset
from cratedig.state import PromptState, Session
from cratedig.windows import WindowName


def plain(lines):
    return [_strip_ansi(line) for line in lines]


class TestScrollOffset:
    """Tests for list scrolling."""

    def test_short_list_does_not_scroll(self):
        assert scroll_offset(3, 5, 10) == 0

    def test_cursor_centered(self):
        """The cursor sits in the middle of the view when possible."""
        assert scroll_offset(50, 100, 10) == 45

    def test_clamped_at_end(self):
        assert scroll_offset(99, 100, 10) == 90


class TestRenderFrame:
    """Tests for whole-frame rendering."""

    def test_exact_height(self, controller):
        """A frame always has exactly ``height`` lines."""
        for height in (6, 12, 40):
            assert len(render_frame(controller.session, 80, height)) == height

    def test_cursor_row(self, controller):
        """The selected item is marked."""
        lines = plain(render_frame(controller.session, 80, 20))
        marked = [line for line in lines if line.startswith(CURSOR_MARKER)]
        assert len(marked) == 1
        assert controller.session.current_item().name in marked[0]

    def test_header_and_status(self, controller):
        """The header names the window and the status line shows messages."""
        controller.session.set_status("Tagged kick_01.wav into drums")
        lines = plain(render_frame(controller.session, 100, 20, now_playing="kick_01.wav"))
        assert WindowName.HOME.title in lines[0]
        assert "kick_01.wav" in lines[0]
        assert any("Tagged kick_01.wav into drums" in line for line in lines)
        assert any("2 items" in line for line in lines)

    def test_long_lines_fit_width(self, controller):
        """No line is wider than the terminal."""
        controller.session.set_status("x" * 200)
        for line in plain(render_frame(controller.session, 40, 20)):
            assert len(line) <= 40

    def test_help_overlay(self, controller):
        controller.session.show_help = True
        lines = plain(render_frame(controller.session, 80, 60))
        assert any("Keyboard Shortcuts" in line for line in lines)

    def test_form(self, controller):
        """Forms show their fields and the insert marker while writing."""
        controller.handle_key("C")
        controller.handle_key("i")
        controller.handle_key("x")
        lines = plain(render_frame(controller.session, 80, 20))
        assert any("name: x_" in line for line in lines)
        assert any("-- INSERT --" in line for line in lines)

    def test_prompt(self, store):
        session = Session(store)
        session.window = WindowName.ENTER_USERNAME
        session.context = PromptState("Please enter a username: ")
        lines = plain(render_frame(session, 80, 10))
        assert any("Please enter a username: _" in line for line in lines)

    def test_empty_list(self, controller):
        controller.set_window(WindowName.FUZZY_SEARCH_FROM_ROOT)
        lines = plain(render_frame(controller.session, 80, 20))
        assert any("(empty)" in line for line in lines)
        assert any(line.startswith("search: ") for line in lines)
