"""Unified persistence layer driven by ``config/storage.toml``.

All disk I/O for map records and lore books goes through :class:`DataStore`.
Collections are looked up from ``config/storage.toml`` which specifies their
relative path, optional section and schema version.  The datastore runs the
``migrations/<collection>/`` scripts whenever the version recorded in the
``schema_version.toml`` file next to the data lags behind the configured one.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
import math
import os
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional
from urllib.parse import quote, unquote

import tomllib

log = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def _is_site_packages(path: Path) -> bool:
    normalized = {part.lower() for part in path.parts}
    return "site-packages" in normalized or "dist-packages" in normalized


def resolve_storage_root(package_root: Path) -> Path:
    """Determine where mutable map data should live.

    A checkout keeps its data next to the sources.  An installed package (or a
    read-only tree) falls back to the working directory, and
    ``FASTMAP_DATA_ROOT`` / ``FASTMAP_STORAGE_ROOT`` override both.
    """

    override = os.getenv("FASTMAP_DATA_ROOT") or os.getenv("FASTMAP_STORAGE_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()

    return package_root


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def _normalize_for_toml(value: Any) -> Any:
    if isinstance(value, MappingProxyType):
        value = dict(value)
    if isinstance(value, Mapping):
        return {
            str(key): _normalize_for_toml(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (set, frozenset)):
        items = [_normalize_for_toml(item) for item in value if item is not None]
        return sorted(items, key=repr)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_toml(item) for item in value if item is not None]
    if isinstance(value, Enum):
        return value.value if isinstance(value.value, (str, bool, int)) else str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else 0.0
    if isinstance(value, bytes):
        return value.decode("utf8", "replace")
    return str(value)


def _quote_string(value: str) -> str:
    replacements = {
        "\\": "\\\\",
        '"': '\\"',
        "\b": "\\b",
        "\t": "\\t",
        "\n": "\\n",
        "\f": "\\f",
        "\r": "\\r",
    }

    def _escape_char(char: str) -> str:
        if char in replacements:
            return replacements[char]
        code = ord(char)
        if 0x20 <= code <= 0x7E:
            return char
        if code > 0xFFFF:
            return f"\\U{code:08x}"
        return f"\\u{code:04x}"

    return '"' + "".join(_escape_char(char) for char in value) + '"'


def _format_toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # repr round-trips exactly and always keeps a fractional or exponent part
        return repr(value)
    if isinstance(value, str):
        return _quote_string(value)
    if isinstance(value, list):
        if value and all(isinstance(item, Mapping) for item in value):
            raise TypeError("Nested table arrays handled separately")
        return "[" + ", ".join(_format_toml_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        raise TypeError("Mappings must be serialised via table handlers")
    return _quote_string(str(value))


def _serialize_table(
    data: Mapping[str, Any],
    *,
    parent: tuple[str, ...] = (),
    output: list[str],
) -> None:
    simple_items: list[tuple[str, Any]] = []
    tables: list[tuple[str, Mapping[str, Any]]] = []
    array_tables: list[tuple[str, list[Mapping[str, Any]]]] = []

    for key, value in sorted(data.items()):
        if isinstance(value, Mapping):
            tables.append((key, value))
        elif isinstance(value, list) and value and all(
            isinstance(item, Mapping) for item in value
        ):
            array_tables.append((key, value))
        else:
            simple_items.append((key, value))

    for key, value in simple_items:
        output.append(f"{_format_key(key)} = {_format_toml_value(value)}")

    for key, value in tables:
        path = (*parent, key)
        if output and output[-1] != "":
            output.append("")
        output.append(f"[{'.'.join(_format_key(part) for part in path)}]")
        _serialize_table(value, parent=path, output=output)

    for key, items in array_tables:
        path = (*parent, key)
        for item in items:
            if output and output[-1] != "":
                output.append("")
            output.append(f"[[{'.'.join(_format_key(part) for part in path)}]]")
            _serialize_table(item, parent=path, output=output)


def _format_key(key: str) -> str:
    if key and all(char.isascii() and (char.isalnum() or char in "-_") for char in key):
        return key
    return _quote_string(key)


def toml_dumps(data: Mapping[str, Any]) -> str:
    normalized = _normalize_for_toml(data)
    if not isinstance(normalized, Mapping):
        raise TypeError("Top level TOML document must be a mapping")
    output: list[str] = []
    _serialize_table(normalized, output=output)
    return "\n".join(output) + "\n"


def read_toml(path: Path) -> Any:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return None
    except (tomllib.TOMLDecodeError, OSError) as exc:
        log.warning("Unable to read %s: %s", path, exc)
        return None


def write_toml(path: Path, payload: Mapping[str, Any]) -> None:
    """Write ``payload`` to ``path`` through a temp file and ``os.replace``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    data = toml_dumps(payload)
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf8", dir=path.parent, delete=False
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass


# ---------------------------------------------------------------------------
# Configuration handling
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CollectionConfig:
    name: str
    path: str
    version: int
    section: str | None = None
    version_scope: str | None = None

    def requires_key(self) -> bool:
        return "{key}" in self.path

    def requires_guild(self) -> bool:
        return "{guild_id}" in self.path or (
            self.version_scope is not None and "{guild_id}" in self.version_scope
        )

    def resolve_path(
        self,
        base: Path,
        *,
        guild_id: str | None = None,
        key: str | None = None,
    ) -> Path:
        mapping: dict[str, str] = {}
        if "{guild_id}" in self.path:
            if guild_id is None:
                raise ValueError(f"Collection {self.name!r} requires a guild id")
            mapping["guild_id"] = guild_id
        if "{key}" in self.path:
            if key is None:
                raise ValueError(f"Collection {self.name!r} requires a key")
            mapping["key"] = key
        return base / self.path.format(**mapping)

    def resolve_scope_path(self, base: Path, *, guild_id: str | None = None) -> Path:
        template = self.version_scope or str(Path(self.path).parent)
        mapping: dict[str, str] = {}
        if "{guild_id}" in template:
            if guild_id is None:
                raise ValueError(f"Collection {self.name!r} requires a guild id")
            mapping["guild_id"] = guild_id
        return (base / template.format(**mapping)).resolve()

    def record_directory(self, base: Path, *, guild_id: str | None = None) -> Path:
        if not self.requires_key():
            raise ValueError(f"Collection {self.name!r} does not store records per key")
        return self.resolve_path(base, guild_id=guild_id, key="__record__").parent


def load_storage_config(path: Path) -> dict[str, CollectionConfig]:
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise RuntimeError(f"Missing storage configuration at {path}") from exc

    raw_collections = payload.get("collections")
    if not isinstance(raw_collections, Mapping):
        raise RuntimeError("storage configuration must define a [collections] table")

    collections: dict[str, CollectionConfig] = {}
    for name, options in raw_collections.items():
        if not isinstance(options, Mapping):
            continue
        path_value = str(options.get("path", "")).strip()
        if not path_value:
            raise RuntimeError(f"Collection {name!r} is missing a path entry")
        section = options.get("section")
        version_scope = options.get("version_scope")
        collections[str(name)] = CollectionConfig(
            name=str(name),
            path=path_value,
            version=int(options.get("version", 0)),
            section=str(section) if section is not None else None,
            version_scope=str(version_scope) if version_scope is not None else None,
        )
    return collections


# ---------------------------------------------------------------------------
# Migration runner
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MigrationModule:
    from_version: int
    to_version: int
    apply: Callable[["MigrationContext"], None]
    description: str


@dataclass(slots=True)
class MigrationContext:
    """Handed to each migration script's ``apply`` function."""

    guild_id: str | None
    collection: CollectionConfig
    base: Path
    scope_path: Path

    def records(self) -> list[Path]:
        """Every stored record file of a per-key collection in this scope."""

        if not self.collection.requires_key():
            return []
        directory = self.collection.record_directory(self.base, guild_id=self.guild_id)
        if not directory.is_dir():
            return []
        return sorted(directory.glob("*.toml"))

    def read(self, path: Path) -> Optional[dict[str, Any]]:
        payload = read_toml(path)
        return dict(payload) if isinstance(payload, Mapping) else None

    def write(self, path: Path, payload: Mapping[str, Any]) -> None:
        write_toml(path, payload)

    def log(self, message: str) -> None:
        log.info("[migration:%s] %s", self.collection.name, message)


class MissingMigrationError(RuntimeError):
    pass


class VersionManager:
    def __init__(
        self,
        *,
        base: Path,
        collections: Mapping[str, CollectionConfig],
        migrations_base: Path,
    ) -> None:
        self._base = base
        self._collections = collections
        self._migrations_base = migrations_base
        self._cache: dict[tuple[str, str | None], int] = {}
        self._modules: dict[str, list[MigrationModule]] = {}

    def ensure(self, collection: CollectionConfig, guild_id: str | None) -> None:
        scope_key = (collection.name, guild_id)
        current = self._cache.get(scope_key)
        if current is None:
            current = self._read_version(collection, guild_id)
            self._cache[scope_key] = current
        target = collection.version
        if current >= target:
            return

        migrations = self._load_migrations(collection.name)
        plan: list[MigrationModule] = []
        version = current
        while version < target:
            step = next((m for m in migrations if m.from_version == version), None)
            if step is None:
                raise MissingMigrationError(
                    f"Missing migration for {collection.name!r}: {version} -> {target}"
                )
            plan.append(step)
            version = step.to_version

        if version != target:
            raise MissingMigrationError(
                f"Incomplete migration chain for {collection.name!r}: {current} -> {target}"
            )

        scope_path = collection.resolve_scope_path(self._base, guild_id=guild_id)
        scope_path.mkdir(parents=True, exist_ok=True)
        context = MigrationContext(
            guild_id=guild_id,
            collection=collection,
            base=self._base,
            scope_path=scope_path,
        )
        for step in plan:
            log.info(
                "Migrating %s (%s) %d -> %d: %s",
                collection.name,
                guild_id or "global",
                step.from_version,
                step.to_version,
                step.description,
            )
            step.apply(context)
            self._cache[scope_key] = step.to_version
        self._write_version(collection, guild_id, target)
        self._cache[scope_key] = target

    def _versions_file(self, collection: CollectionConfig, guild_id: str | None) -> Path:
        scope_path = collection.resolve_scope_path(self._base, guild_id=guild_id)
        return scope_path / "schema_version.toml"

    def _read_version(self, collection: CollectionConfig, guild_id: str | None) -> int:
        payload = read_toml(self._versions_file(collection, guild_id))
        if not isinstance(payload, Mapping):
            return 0
        collections = payload.get("collections")
        if not isinstance(collections, Mapping):
            return 0
        try:
            return int(collections.get(collection.name, 0))
        except (TypeError, ValueError):
            return 0

    def _write_version(self, collection: CollectionConfig, guild_id: str | None, version: int) -> None:
        path = self._versions_file(collection, guild_id)
        payload = read_toml(path)
        if not isinstance(payload, MutableMapping):
            payload = {}
        collections = payload.get("collections")
        if not isinstance(collections, MutableMapping):
            collections = {}
            payload["collections"] = collections
        collections[collection.name] = int(version)
        write_toml(path, payload)

    def _load_migrations(self, collection: str) -> list[MigrationModule]:
        cached = self._modules.get(collection)
        if cached is not None:
            return cached
        directory = self._migrations_base / collection
        modules: list[MigrationModule] = []
        if directory.is_dir():
            for path in sorted(directory.glob("*.py")):
                if path.name.startswith("__"):
                    continue
                spec = importlib.util.spec_from_file_location(
                    f"migrations.{collection}.{path.stem}", path
                )
                if spec is None or spec.loader is None:
                    continue
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
                from_version = getattr(module, "FROM_VERSION", None)
                to_version = getattr(module, "TO_VERSION", None)
                apply = getattr(module, "apply", None)
                if not isinstance(from_version, int) or not isinstance(to_version, int):
                    log.warning("Ignoring migration %s without version markers", path)
                    continue
                if not callable(apply):
                    log.warning("Ignoring migration %s without apply()", path)
                    continue
                modules.append(
                    MigrationModule(
                        from_version=from_version,
                        to_version=to_version,
                        apply=apply,
                        description=str(getattr(module, "DESCRIPTION", path.stem)),
                    )
                )
        modules.sort(key=lambda module: module.from_version)
        self._modules[collection] = modules
        return modules


# ---------------------------------------------------------------------------
# DataStore implementation
# ---------------------------------------------------------------------------


class DataStore:
    """Asynchronous datastore routing collections based on configuration."""

    def __init__(
        self,
        *,
        root: Path | None = None,
        config_path: Path | None = None,
        migrations_path: Path | None = None,
    ) -> None:
        self._storage_root = root or resolve_storage_root(PACKAGE_ROOT)
        self._config_path = config_path or PACKAGE_ROOT / "config" / "storage.toml"
        self._collections = load_storage_config(self._config_path)
        self._versions = VersionManager(
            base=self._storage_root,
            collections=self._collections,
            migrations_base=migrations_path or PACKAGE_ROOT / "migrations",
        )
        self._lock = asyncio.Lock()

    @property
    def root(self) -> Path:
        return self._storage_root

    async def get(self, guild_id: int | str | None, collection: str) -> Mapping[str, Any]:
        """Every entry of ``collection`` for a guild, as a read-only mapping."""

        async with self._lock:
            config = self._collection(collection)
            guild_key = self._guild_key(guild_id, config)
            self._versions.ensure(config, guild_key)
            if config.requires_key():
                bucket = self._read_record_collection(config, guild_key)
            else:
                bucket = self._read_document_collection(config, guild_key)
            return MappingProxyType(bucket)

    async def get_record(
        self, guild_id: int | str | None, collection: str, key: str
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            config = self._collection(collection)
            guild_key = self._guild_key(guild_id, config)
            self._versions.ensure(config, guild_key)
            if not config.requires_key():
                value = self._read_document_collection(config, guild_key).get(str(key))
                return dict(value) if isinstance(value, Mapping) else None
            payload = read_toml(self._record_path(config, guild_key, str(key)))
            return dict(payload) if isinstance(payload, Mapping) else None

    async def set(
        self,
        guild_id: int | str | None,
        collection: str,
        key: str,
        value: Mapping[str, Any],
    ) -> None:
        async with self._lock:
            config = self._collection(collection)
            guild_key = self._guild_key(guild_id, config)
            self._versions.ensure(config, guild_key)
            payload = deepcopy(dict(value))
            if config.requires_key():
                write_toml(self._record_path(config, guild_key, str(key)), payload)
                return
            document, section = self._load_document(config, guild_key)
            section[str(key)] = payload
            write_toml(config.resolve_path(self._storage_root, guild_id=guild_key), document)

    async def delete(self, guild_id: int | str | None, collection: str, key: str) -> bool:
        async with self._lock:
            config = self._collection(collection)
            guild_key = self._guild_key(guild_id, config)
            self._versions.ensure(config, guild_key)
            if config.requires_key():
                try:
                    self._record_path(config, guild_key, str(key)).unlink()
                except FileNotFoundError:
                    return False
                return True
            document, section = self._load_document(config, guild_key)
            if str(key) not in section:
                return False
            section.pop(str(key))
            write_toml(config.resolve_path(self._storage_root, guild_id=guild_key), document)
            return True

    def _collection(self, name: str) -> CollectionConfig:
        try:
            return self._collections[name]
        except KeyError as exc:
            raise KeyError(f"Unknown collection: {name}") from exc

    @staticmethod
    def _guild_key(guild_id: int | str | None, config: CollectionConfig) -> str | None:
        if config.requires_guild() and guild_id is None:
            raise ValueError(f"Collection {config.name!r} requires a guild id")
        return str(guild_id) if guild_id is not None else None

    def _record_path(self, config: CollectionConfig, guild_id: str | None, key: str) -> Path:
        directory = config.record_directory(self._storage_root, guild_id=guild_id)
        return directory / f"{encode_collection_key(key)}.toml"

    def _read_document_collection(
        self, config: CollectionConfig, guild_id: str | None
    ) -> dict[str, Any]:
        _, section = self._load_document(config, guild_id)
        return {str(key): value for key, value in section.items()}

    def _read_record_collection(
        self, config: CollectionConfig, guild_id: str | None
    ) -> dict[str, Any]:
        directory = config.record_directory(self._storage_root, guild_id=guild_id)
        if not directory.exists():
            return {}
        result: dict[str, Any] = {}
        for path in sorted(directory.glob("*.toml")):
            if path.name == "schema_version.toml":
                continue
            payload = read_toml(path)
            if isinstance(payload, MutableMapping):
                result[decode_collection_key(path.stem)] = payload
        return result

    def _load_document(
        self, config: CollectionConfig, guild_id: str | None
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        path = config.resolve_path(self._storage_root, guild_id=guild_id)
        payload = read_toml(path)
        if not isinstance(payload, MutableMapping):
            payload = {}
        if not config.section:
            return payload, payload
        section = payload.get(config.section)
        if not isinstance(section, MutableMapping):
            section = {}
            payload[config.section] = section
        return payload, section


def encode_collection_key(key: str) -> str:
    return quote(str(key), safe="")


def decode_collection_key(filename: str) -> str:
    return unquote(filename)


__all__ = [
    "CollectionConfig",
    "DataStore",
    "MigrationContext",
    "MissingMigrationError",
    "load_storage_config",
    "read_toml",
    "resolve_storage_root",
    "toml_dumps",
    "write_toml",
]
