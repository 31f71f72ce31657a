"""Tests for configuration resolution."""
import threading
from datetime import timedelta

import pytest

from mobile_harness import config as config_module
from mobile_harness.config import (
    ConfigurationResolver,
    OverrideStore,
    env_var_name,
    get_resolver,
    load_base_config,
    parse_override_args,
    reset_resolver,
)
from mobile_harness.errors import ConfigurationError

from .conftest import make_resolver


def test_env_var_name():
    """Test the upper-snake form of a dotted key."""
    assert env_var_name("appium.server.url") == "APPIUM_SERVER_URL"
    assert env_var_name("browserstack.access.key") == "BROWSERSTACK_ACCESS_KEY"


def test_explicit_override_beats_environment_beats_base():
    """Test resolution order: explicit override, environment, base config."""
    environ = {"platform": "ios"}
    resolver = ConfigurationResolver({"platform": "android"}, OverrideStore(environ=environ))
    assert resolver.get("platform") == "ios"

    resolver.overrides.set("platform", "android")
    assert resolver.get("platform") == "android"

    resolver.overrides.remove("platform")
    assert resolver.get("platform") == "ios"


def test_environment_matches_upper_snake_form():
    """Test that APPIUM_SERVER_URL overrides appium.server.url."""
    resolver = make_resolver(environ={"APPIUM_SERVER_URL": "http://grid:4444"})
    assert resolver.appium_server_url() == "http://grid:4444"


def test_exact_key_environment_wins_over_upper_snake():
    """Test that an exact-key env var is consulted before the upper-snake one."""
    resolver = make_resolver(environ={"platform": "ios", "PLATFORM": "android"})
    assert resolver.platform() == "ios"


def test_overrides_are_read_on_every_call():
    """Test that an override set after a read is honoured by the next read."""
    environ: dict[str, str] = {}
    resolver = ConfigurationResolver({"thread.count": "3"}, OverrideStore(environ=environ))
    assert resolver.thread_count() == 3
    environ["THREAD_COUNT"] = "8"
    assert resolver.thread_count() == 8


def test_missing_key_returns_default():
    """Test get() with and without a default."""
    resolver = ConfigurationResolver({}, OverrideStore(environ={}))
    assert resolver.get("nope") is None
    assert resolver.get("nope", "fallback") == "fallback"


def test_blank_base_value_is_unset():
    """Test that `key=` in the properties file behaves like a missing key."""
    resolver = ConfigurationResolver({"browserstack.username": "  "}, OverrideStore(environ={}))
    assert resolver.cloud_username() is None


def test_blank_override_is_unset():
    """Test that blank overrides and env vars fall through to the next source."""
    environ = {"APPIUM_SERVER_URL": "", "appium.server.url": "   "}
    resolver = ConfigurationResolver(
        {"appium.server.url": "http://base:4723"},
        OverrideStore({"appium.server.url": "  "}, environ=environ),
    )
    assert resolver.appium_server_url() == "http://base:4723"

    environ["APPIUM_SERVER_URL"] = "http://grid:4444"
    assert resolver.appium_server_url() == "http://grid:4444"


def test_require_raises_for_missing_setting():
    """Test require() on an unconfigured key."""
    resolver = ConfigurationResolver({}, OverrideStore(environ={}))
    with pytest.raises(ConfigurationError, match="browserstack.username"):
        resolver.require("browserstack.username")


def test_get_int_rejects_non_numeric():
    """Test that a malformed integer fails immediately."""
    resolver = ConfigurationResolver({"thread.count": "three"}, OverrideStore(environ={}))
    with pytest.raises(ConfigurationError, match="thread.count"):
        resolver.thread_count()


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("YES", True), ("on", True), ("1", True), ("false", False), ("No", False), ("off", False), ("0", False)],
)
def test_get_bool_accepted_spellings(raw, expected):
    """Test the accepted boolean spellings."""
    resolver = ConfigurationResolver({"app.no.reset": raw}, OverrideStore(environ={}))
    assert resolver.no_reset() is expected


def test_get_bool_rejects_other_values():
    """Test that an unrecognised boolean fails."""
    resolver = ConfigurationResolver({"app.no.reset": "maybe"}, OverrideStore(environ={}))
    with pytest.raises(ConfigurationError):
        resolver.no_reset()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("30", timedelta(seconds=30)),
        ("1.5", timedelta(seconds=1.5)),
        ("500ms", timedelta(milliseconds=500)),
        ("45s", timedelta(seconds=45)),
        ("2m", timedelta(minutes=2)),
        ("1h", timedelta(hours=1)),
    ],
)
def test_get_duration_units(raw, expected):
    """Test bare and suffixed durations."""
    resolver = ConfigurationResolver({"explicit.wait": raw}, OverrideStore(environ={}))
    assert resolver.explicit_wait() == expected


def test_get_duration_rejects_garbage():
    """Test that a malformed duration fails immediately."""
    resolver = ConfigurationResolver({"implicit.wait": "soon"}, OverrideStore(environ={}))
    with pytest.raises(ConfigurationError, match="implicit.wait"):
        resolver.implicit_wait()


def test_named_accessor_defaults():
    """Test defaults when nothing is configured."""
    resolver = ConfigurationResolver({}, OverrideStore(environ={}))
    assert resolver.appium_server_url() == "http://127.0.0.1:4723"
    assert resolver.android_automation_name() == "UiAutomator2"
    assert resolver.ios_automation_name() == "XCUITest"
    assert resolver.ios_udid() == "auto"
    assert resolver.new_command_timeout() == timedelta(seconds=300)
    assert resolver.implicit_wait() == timedelta(seconds=10)
    assert resolver.explicit_wait() == timedelta(seconds=30)
    assert resolver.platform() == "android"
    assert resolver.execution_mode() == "local"
    assert resolver.auto_grant_permissions() is True
    assert resolver.no_reset() is False
    assert resolver.cloud_hub_url() == "https://hub-cloud.browserstack.com/wd/hub"
    assert resolver.cloud_console() == "errors"


def test_parse_override_args():
    """Test parsing of key=value command-line overrides."""
    assert parse_override_args(["platform=ios", "explicit.wait = 5s", "a=b=c"]) == {
        "platform": "ios",
        "explicit.wait": "5s",
        "a": "b=c",
    }


@pytest.mark.parametrize("raw", ["platform", "=ios"])
def test_parse_override_args_rejects_malformed(raw):
    """Test overrides without a key or an '='."""
    with pytest.raises(ConfigurationError):
        parse_override_args([raw])


def test_load_base_config_primary_file(tmp_path):
    """Test loading the primary properties file."""
    path = tmp_path / "config.properties"
    path.write_text("# test\nplatform=ios\nexplicit.wait=5\n", encoding="utf-8")
    assert load_base_config(path) == {"platform": "ios", "explicit.wait": "5"}


def test_load_base_config_honours_env_path(tmp_path, monkeypatch):
    """Test the MOBILE_HARNESS_CONFIG environment variable."""
    path = tmp_path / "custom.properties"
    path.write_text("platform=ios\n", encoding="utf-8")
    monkeypatch.setenv("MOBILE_HARNESS_CONFIG", str(path))
    assert load_base_config()["platform"] == "ios"


def test_load_base_config_falls_back_to_bundled(tmp_path):
    """Test that a missing primary file falls back to the bundled defaults."""
    values = load_base_config(tmp_path / "missing.properties")
    assert values["appium.server.url"] == "http://127.0.0.1:4723"
    assert "browserstack.hub.url" in values


def test_load_base_config_reads_iso_8859_1_file(tmp_path, caplog):
    """Test that a non-UTF-8 properties file is read as ISO-8859-1."""
    path = tmp_path / "config.properties"
    path.write_bytes(b"platform=ios\nbrowserstack.project=Caf\xe9 App\n")
    with caplog.at_level("WARNING", logger="mobile_harness.config"):
        values = load_base_config(path)
    assert values == {"platform": "ios", "browserstack.project": "Café App"}
    assert "ISO-8859-1" in caplog.text


def test_load_base_config_empty_when_everything_fails(tmp_path, monkeypatch):
    """Test that both sources failing yields an empty configuration."""

    def _missing():
        raise FileNotFoundError("bundled resource gone")

    monkeypatch.setattr(config_module, "_read_bundled", _missing)
    assert load_base_config(tmp_path / "missing.properties") == {}


def test_get_resolver_initialises_once(monkeypatch):
    """Test that concurrent first calls share one resolver."""
    calls = []

    def _from_file(cls, path=None, *, overrides=None):
        calls.append(path)
        return ConfigurationResolver({}, OverrideStore(environ={}))

    monkeypatch.setattr(ConfigurationResolver, "from_file", classmethod(_from_file))
    reset_resolver()

    results = []
    threads = [threading.Thread(target=lambda: results.append(get_resolver())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert all(r is results[0] for r in results)
