"""Tests for key=value parsing and .env loading."""
import os

from mobile_harness.env import load_dotenv, parse_key_value_lines


def test_parse_skips_comments_and_blank_lines():
    """Test that '#' and '!' comments and blank lines are ignored."""
    text = "# comment\n! also a comment\n\nplatform=android\n"
    assert parse_key_value_lines(text) == {"platform": "android"}


def test_parse_strips_export_and_quotes():
    """Test export prefix and surrounding quotes."""
    text = "export TOKEN='abc def'\nNAME=\"Pixel 7\"\n"
    assert parse_key_value_lines(text) == {"TOKEN": "abc def", "NAME": "Pixel 7"}


def test_parse_keeps_equals_in_value():
    """Test that only the first '=' separates key and value."""
    assert parse_key_value_lines("appium.server.url=http://h:4723/?a=b") == {
        "appium.server.url": "http://h:4723/?a=b"
    }


def test_parse_later_duplicates_win_and_junk_is_skipped():
    """Test duplicate keys and malformed lines."""
    text = "a=1\nno separator here\n=orphan\na=2\n"
    assert parse_key_value_lines(text) == {"a": "2"}


def test_load_dotenv_respects_existing_environment(tmp_path, monkeypatch):
    """Test that existing env vars are kept unless override=True."""
    env_file = tmp_path / ".env"
    env_file.write_text("HARNESS_A=from_file\nHARNESS_B=from_file\n", encoding="utf-8")
    monkeypatch.setenv("HARNESS_A", "from_env")
    monkeypatch.delenv("HARNESS_B", raising=False)

    loaded = load_dotenv(path=env_file)

    assert loaded == {"HARNESS_B": "from_file"}
    assert os.environ["HARNESS_A"] == "from_env"

    load_dotenv(path=env_file, override=True)
    assert os.environ["HARNESS_A"] == "from_file"


def test_load_dotenv_missing_file_is_noop(tmp_path):
    """Test loading a .env file that doesn't exist."""
    assert load_dotenv(path=tmp_path / "missing.env") == {}
