"""
Tunnel registry storage.

The registry is a JSON file holding every tunnel:

    {"tunnels": [{"<token>": <port>}, ...]}

It is the only durable state. Readers load the whole file on every call so
that edits made by another process are picked up immediately; writers
rewrite the whole file. Writes are serialized with an in-process mutex and
an exclusive flock on a sidecar lock file, so concurrent CLI invocations
cannot lose each other's updates.
"""

import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path

from subtunnel.errors import PortInUseError, RegistryError
from subtunnel.models.tunnel import TunnelEntry
from subtunnel.registry.tokens import generate_token
from subtunnel.utils.logger import get_logger

logger = get_logger(__name__)

EMPTY_REGISTRY = {"tunnels": []}


# =============================================================================
# Parsing
# =============================================================================


def _parse_entry(item: object, index: int) -> TunnelEntry:
    """Parse one `{token: port}` element of the tunnels list."""
    if not isinstance(item, dict) or len(item) != 1:
        raise RegistryError(
            f"Tunnel #{index} must be a single-key object, got: {item!r}"
        )

    token, port = next(iter(item.items()))
    # bool is an int subclass; reject it explicitly
    if not isinstance(port, int) or isinstance(port, bool):
        raise RegistryError(f"Tunnel '{token}' has a non-integer port: {port!r}")

    return TunnelEntry(token=token, port=port)


def parse_registry(text: str) -> list[TunnelEntry]:
    """
    Parse the persisted registry text.

    Blank text is an empty registry. Anything that is not the expected
    structure raises RegistryError.
    """
    if not text.strip():
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise RegistryError(f"Registry is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("tunnels"), list):
        raise RegistryError("Registry must be an object with a 'tunnels' list")

    return [_parse_entry(item, i) for i, item in enumerate(data["tunnels"])]


def dump_registry(entries: list[TunnelEntry]) -> str:
    """Serialize entries to the persisted registry text."""
    return json.dumps({"tunnels": [entry.to_json() for entry in entries]})


# =============================================================================
# Registry
# =============================================================================


class TunnelRegistry:
    """
    File-backed tunnel registry.

    Args:
        path: Location of the registry file. Created empty on first use.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._mutex = threading.Lock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def load(self) -> list[TunnelEntry]:
        """Read all tunnels, creating an empty registry file if absent."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._create_empty()
            return []
        except OSError as e:
            raise RegistryError(f"Cannot read registry {self.path}: {e}") from e

        try:
            return parse_registry(text)
        except RegistryError as e:
            logger.error(f"Invalid registry file {self.path}: {e}")
            raise

    def find_by_port(self, port: int) -> TunnelEntry | None:
        """Get the tunnel forwarding to `port`, if any."""
        for entry in self.load():
            if entry.port == port:
                return entry
        return None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add(self, token: str, port: int) -> TunnelEntry:
        """
        Register a tunnel.

        Raises:
            PortInUseError: If a tunnel already forwards to `port`. The
                registry file is left untouched.
        """
        with self._write_lock():
            return self._add_locked(self.load(), token, port)

    def open_tunnel(self, port: int) -> TunnelEntry:
        """Register a tunnel to `port` under a freshly generated token."""
        with self._write_lock():
            entries = self.load()
            token = generate_token(existing=(entry.token for entry in entries))
            return self._add_locked(entries, token, port)

    def remove(self, port: int) -> list[TunnelEntry]:
        """
        Remove every tunnel forwarding to `port`.

        Removing a port that is not registered is a no-op.

        Returns:
            The removed entries.
        """
        with self._write_lock():
            entries = self.load()
            kept = [entry for entry in entries if entry.port != port]
            removed = [entry for entry in entries if entry.port == port]
            self.persist(kept)

        for entry in removed:
            logger.info(f"Removed tunnel {entry.token} -> port {entry.port}")
        return removed

    def persist(self, entries: list[TunnelEntry]) -> None:
        """Overwrite the registry file with `entries`."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write a sibling temp file and rename it over the registry
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(dump_registry(entries))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _add_locked(
        self, entries: list[TunnelEntry], token: str, port: int
    ) -> TunnelEntry:
        for entry in entries:
            if entry.port == port:
                raise PortInUseError(port, entry.token)

        new_entry = TunnelEntry(token=token, port=port)
        entries.append(new_entry)
        self.persist(entries)

        logger.info(f"Added tunnel {token} -> port {port}")
        return new_entry

    def _create_empty(self) -> None:
        """Create an empty registry unless another process got there first."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, "x", encoding="utf-8") as f:
                f.write(json.dumps(EMPTY_REGISTRY))
        except FileExistsError:
            pass

    @contextmanager
    def _write_lock(self):
        """Serialize load-modify-persist across threads and processes."""
        with self._mutex:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o600)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
