"""Window builtins talk to an injected host object."""

import io

import obstruct

GAME_LOOP = """
fn main(args: vec<<str>>) {
    init_window("demo");
    #@frames = 0;
    ^^ is_window_open() {
        draw_window();
        frames = frames + 1;
    }
    $$ frames;
}
"""


def test_game_loop_drives_the_host(fake_window):
    result = obstruct.run(GAME_LOOP, window=fake_window)
    assert result.exit_code == 0
    assert result.stdout == "3\n"
    assert fake_window.calls == ["init:demo", "draw", "draw", "draw"]


def test_closed_window_skips_the_loop(fake_window):
    fake_window.frames = 0
    result = obstruct.run(GAME_LOOP, window=fake_window)
    assert result.stdout == "0\n"
    assert fake_window.calls == ["init:demo"]


def test_missing_host_is_a_runtime_error():
    result = obstruct.run(GAME_LOOP)
    assert result.exit_code == 1
    assert result.stdout == ""
    assert "no window host available" in result.stderr


def test_output_streams_while_the_loop_runs(fake_window):
    out = io.StringIO()
    result = obstruct.run(GAME_LOOP, window=fake_window, out=out)
    assert out.getvalue() == result.stdout == "3\n"
