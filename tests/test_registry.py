"""
Tests for the file-backed tunnel registry.
"""

import json
import threading

import pytest

from subtunnel.errors import PortInUseError, RegistryError
from subtunnel.models.tunnel import TunnelEntry
from subtunnel.registry import tokens
from subtunnel.registry.store import TunnelRegistry
from subtunnel.registry.tokens import TOKEN_ALPHABET, TOKEN_LENGTH, generate_token


class TestLoad:
    """Tests for reading the registry file."""

    def test_missing_file_is_created_empty(self, registry, registry_path):
        assert not registry_path.exists()

        assert registry.load() == []
        assert json.loads(registry_path.read_text()) == {"tunnels": []}

    def test_blank_file_is_empty_registry(self, registry, registry_path):
        registry_path.write_text("  \n")

        assert registry.load() == []

    def test_reads_entries_in_order(self, registry, write_registry):
        write_registry([{"ABCDEFGHIJ": 8080}, {"KLMNOPQRST": 3000}])

        assert registry.load() == [
            TunnelEntry("ABCDEFGHIJ", 8080),
            TunnelEntry("KLMNOPQRST", 3000),
        ]

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[]",
            '{"other": []}',
            '{"tunnels": {"ABCDEFGHIJ": 8080}}',
            '{"tunnels": [{"ABCDEFGHIJ": 8080, "KLMNOPQRST": 3000}]}',
            '{"tunnels": [{"ABCDEFGHIJ": "8080"}]}',
            '{"tunnels": [{"ABCDEFGHIJ": true}]}',
            '{"tunnels": ["ABCDEFGHIJ"]}',
        ],
    )
    def test_malformed_registry_raises(self, registry, registry_path, content):
        registry_path.write_text(content)

        with pytest.raises(RegistryError):
            registry.load()


class TestAdd:
    """Tests for registering tunnels."""

    def test_add_persists_across_instances(self, registry, registry_path):
        registry.add("ABCDEFGHIJ", 8080)
        registry.add("KLMNOPQRST", 3000)

        reloaded = TunnelRegistry(registry_path).load()
        assert {entry.token: entry.port for entry in reloaded} == {
            "ABCDEFGHIJ": 8080,
            "KLMNOPQRST": 3000,
        }

    def test_persisted_format(self, registry, registry_path):
        registry.add("ABCDEFGHIJ", 8080)

        assert json.loads(registry_path.read_text()) == {
            "tunnels": [{"ABCDEFGHIJ": 8080}]
        }

    def test_duplicate_port_names_existing_token(self, registry):
        registry.add("ABCDEFGHIJ", 8080)

        with pytest.raises(PortInUseError) as exc_info:
            registry.add("KLMNOPQRST", 8080)

        assert exc_info.value.token == "ABCDEFGHIJ"
        assert exc_info.value.port == 8080
        assert "ABCDEFGHIJ" in str(exc_info.value)

    def test_duplicate_port_leaves_file_untouched(self, registry, registry_path):
        registry.add("ABCDEFGHIJ", 8080)
        before = registry_path.read_bytes()

        with pytest.raises(PortInUseError):
            registry.add("KLMNOPQRST", 8080)

        assert registry_path.read_bytes() == before

    def test_add_to_malformed_registry_does_not_overwrite(
        self, registry, registry_path
    ):
        registry_path.write_text("{broken")

        with pytest.raises(RegistryError):
            registry.add("ABCDEFGHIJ", 8080)

        assert registry_path.read_text() == "{broken"

    def test_open_tunnel_generates_token(self, registry):
        entry = registry.open_tunnel(8080)

        assert len(entry.token) == TOKEN_LENGTH
        assert set(entry.token) <= set(TOKEN_ALPHABET)
        assert registry.find_by_port(8080) == entry

    def test_concurrent_adds_are_all_kept(self, registry):
        ports = list(range(9000, 9020))
        threads = [
            threading.Thread(target=registry.open_tunnel, args=(port,))
            for port in ports
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(entry.port for entry in registry.load()) == ports

    def test_concurrent_registries_on_same_file(self, registry_path):
        # Separate instances only share the file lock
        def add(port):
            TunnelRegistry(registry_path).open_tunnel(port)

        threads = [threading.Thread(target=add, args=(p,)) for p in range(7000, 7010)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        loaded = TunnelRegistry(registry_path).load()
        assert sorted(entry.port for entry in loaded) == list(range(7000, 7010))


class TestRemove:
    """Tests for closing tunnels."""

    def test_remove_by_port(self, registry):
        registry.add("ABCDEFGHIJ", 8080)
        registry.add("KLMNOPQRST", 3000)

        removed = registry.remove(8080)

        assert removed == [TunnelEntry("ABCDEFGHIJ", 8080)]
        assert registry.load() == [TunnelEntry("KLMNOPQRST", 3000)]

    def test_remove_unknown_port_is_noop(self, registry):
        registry.add("ABCDEFGHIJ", 8080)

        assert registry.remove(1234) == []
        assert registry.load() == [TunnelEntry("ABCDEFGHIJ", 8080)]

    def test_remove_on_missing_file(self, registry, registry_path):
        assert registry.remove(8080) == []
        assert json.loads(registry_path.read_text()) == {"tunnels": []}

    def test_remove_drops_every_entry_for_port(self, registry, write_registry):
        write_registry([{"ABCDEFGHIJ": 8080}, {"KLMNOPQRST": 8080}, {"UVWXYZabcd": 1}])

        registry.remove(8080)

        assert registry.load() == [TunnelEntry("UVWXYZabcd", 1)]

    def test_round_trip_after_mixed_operations(self, registry, registry_path):
        registry.add("AAAAAAAAAA", 1001)
        registry.add("BBBBBBBBBB", 1002)
        registry.remove(1001)
        registry.add("CCCCCCCCCC", 1003)
        registry.remove(4242)
        registry.add("DDDDDDDDDD", 1001)

        reloaded = TunnelRegistry(registry_path).load()
        assert [(e.token, e.port) for e in reloaded] == [
            ("BBBBBBBBBB", 1002),
            ("CCCCCCCCCC", 1003),
            ("DDDDDDDDDD", 1001),
        ]


class TestTokens:
    """Tests for token generation."""

    def test_token_shape(self):
        token = generate_token()

        assert len(token) == 10
        assert token.isalpha() and token.isascii()

    def test_retries_on_collision(self, monkeypatch):
        letters = iter("a" * 10 + "b" * 10)
        monkeypatch.setattr(tokens.secrets, "choice", lambda alphabet: next(letters))

        assert generate_token(existing={"aaaaaaaaaa"}) == "bbbbbbbbbb"

    def test_gives_up_after_max_attempts(self, monkeypatch):
        monkeypatch.setattr(tokens.secrets, "choice", lambda alphabet: "a")

        with pytest.raises(RuntimeError):
            generate_token(existing={"aaaaaaaaaa"})
