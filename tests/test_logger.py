import io

import pytest

from winemu.logger import Color, Logger, color_code


def _logger():
    stream = io.StringIO()
    return Logger(stream), stream


def test_color_codes():
    assert color_code(Color.RED) == "\033[0;91m"
    assert color_code(Color.GRAY) == "\033[0m"


@pytest.mark.parametrize(
    "method, color",
    [("info", Color.CYAN), ("warn", Color.YELLOW), ("error", Color.RED), ("success", Color.GREEN), ("log", Color.GRAY)],
)
def test_levels_use_their_colors(method, color):
    logger, stream = _logger()
    getattr(logger, method)("hello %s", "world")
    out = stream.getvalue()
    assert out.startswith(color_code(color))
    assert out.endswith(color_code(Color.GRAY))
    assert "hello world" in out


def test_print_layout():
    logger, stream = _logger()
    logger.print(Color.BLUE, "text")
    assert stream.getvalue() == color_code(Color.BLUE) + "text" + color_code(Color.GRAY)


def test_length_modifiers_are_accepted():
    logger, stream = _logger()
    logger.log("at 0x%llX (%d)", 255, 7)
    assert "at 0xFF (7)" in stream.getvalue()


def test_message_without_args_kept_verbatim():
    logger, stream = _logger()
    logger.log("100%")
    assert "100%" in stream.getvalue()


def test_disabled_output_writes_nothing():
    logger, stream = _logger()
    logger.disable_output(True)
    logger.error("boom %d", 1)
    assert stream.getvalue() == ""
    logger.disable_output(False)
    logger.error("boom %d", 1)
    assert "boom 1" in stream.getvalue()


def test_long_message_is_truncated():
    logger, stream = _logger()
    logger.log("%s", "a" * 10000)
    body = stream.getvalue()[len(color_code(Color.GRAY)):-len(color_code(Color.GRAY))]
    assert len(body) == 0x1000 - 1
    assert set(body) == {"a"}