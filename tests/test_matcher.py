import io

import pytest

from xvfs.matcher import grep, main, match


@pytest.mark.parametrize(
    "pattern,text,expected",
    [
        ("^ab", "abc", True),
        ("^bc", "abc", False),
        ("b.d", "abcd", True),
        ("c$", "abc", True),
        ("abc$", "abcd", False),
        ("a*b", "b", True),
        ("^a*$", "aaaa", True),
        ("^a*$", "aab", False),
        ("^.*z", "xyz", True),
        ("", "anything", True),
        ("x", "", False),
    ],
)
def test_match(pattern, text, expected):
    assert match(pattern, text) is expected


def test_grep_yields_matching_lines():
    stream = io.StringIO("alpha\nbeta\ngamma\n")
    assert list(grep("a$", stream)) == ["alpha\n", "beta\n", "gamma\n"]
    stream = io.StringIO("alpha\nbeta\ngamma\n")
    assert list(grep("^b", stream)) == ["beta\n"]


def test_grep_drops_unterminated_last_line():
    stream = io.StringIO("foo\nfoo")
    assert list(grep("foo", stream)) == ["foo\n"]


def test_grep_overlong_line_is_cut():
    stream = io.StringIO("x" * 1500 + "\nfoo\n")
    assert list(grep("foo", stream)) == ["foo\n"]
    stream = io.StringIO("x" * 1500 + "\nfoo\n")
    for line in grep("^x", stream):
        assert len(line) < 1500


def test_main_usage(capsys):
    assert main([]) == 1
    assert "usage: grep" in capsys.readouterr().err


def test_main_files(tmp_path, capsys):
    path = tmp_path / "words"
    path.write_text("one\ntwo\nthree\n")
    assert main(["^t", str(path)]) == 0
    assert capsys.readouterr().out == "two\nthree\n"


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "nope"
    assert main(["a", str(missing)]) == 1
    assert capsys.readouterr().out == f"grep: cannot open {missing}\n"