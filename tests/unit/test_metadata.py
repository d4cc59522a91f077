from datetime import timedelta

import pytest

from minion_hive.errors import HiveError, InvalidAgeFormatError, InvalidNameError, MinionNotFoundError
from minion_hive.metadata import STATUS_FILE, MetadataStore, parse_age, validate_name
from minion_hive.models import TaskStatus
from minion_hive.storage import MemoryStore


class TestValidateName:
    @pytest.mark.parametrize("name", ["a", "worker-1", "Build_2.final", "9lives", "x" * 128])
    def test_valid(self, name):
        assert validate_name(name) == name

    @pytest.mark.parametrize(
        "name",
        ["", "has space", ".dot", "-dash", "_under", "a@b", "a/b", "a$b", "x" * 129, "tab\there"],
    )
    def test_invalid(self, name):
        with pytest.raises(InvalidNameError):
            validate_name(name)

    def test_kind_appears_in_message(self):
        with pytest.raises(InvalidNameError, match="template"):
            validate_name("bad name", kind="Template")


class TestParseAge:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("7d", timedelta(days=7)),
            ("12h", timedelta(hours=12)),
            ("30m", timedelta(minutes=30)),
            ("0d", timedelta(0)),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_age(value) == expected

    @pytest.mark.parametrize("value", ["", "7", "d", "7w", "7 d", "-1d", "1.5h"])
    def test_invalid(self, value):
        with pytest.raises(InvalidAgeFormatError):
            parse_age(value)


class TestMetadataStore:
    @pytest.fixture
    def minions(self):
        store = MetadataStore(MemoryStore())
        store.create_workspace("w")
        return store

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("COMPLETE\n", TaskStatus.COMPLETE),
            ("  FAILED  ", TaskStatus.FAILED),
            ("WORKING", TaskStatus.WORKING),
            ("", None),
            ("DONE", None),
        ],
    )
    def test_read_signal(self, minions, raw, expected):
        minions.store.put(minions.key("w", STATUS_FILE), raw)
        assert minions.read_signal("w") == expected

    def test_missing_signal(self, minions):
        assert minions.read_signal("w") is None

    def test_load_missing_minion(self, minions):
        with pytest.raises(MinionNotFoundError):
            minions.load("ghost")

    def test_load_without_meta(self, minions):
        with pytest.raises(MinionNotFoundError, match="no metadata"):
            minions.load("w")

    def test_load_corrupt_meta(self, minions):
        minions.store.put(minions.key("w", "meta.json"), '{"name": "w"}')

        with pytest.raises(HiveError, match="unreadable"):
            minions.load("w")

    def test_clear_output_keeps_directory(self, minions):
        minions.store.put(minions.key("w", "output", "claude-output.log"), "text")

        minions.clear_output("w")

        assert minions.read_output("w") is None
        assert minions.store.exists(minions.key("w", "output"))

    def test_names(self, minions):
        minions.create_workspace("b")
        minions.create_workspace("a")

        assert minions.names() == ["a", "b", "w"]
