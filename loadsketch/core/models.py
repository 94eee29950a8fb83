from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from ..errors import TopologyError


class NodeType(str, enum.Enum):
    TRAFFIC_SOURCE = "traffic-source"
    LOAD_BALANCER = "load-balancer"
    CDN = "cdn"
    API_SERVER = "api-server"
    DATABASE = "database"
    OBJECT_STORE = "object-store"
    CACHE = "cache"
    QUEUE = "queue"
    ANNOTATION = "annotation"


class ConnectionType(str, enum.Enum):
    HTTP = "http"
    WEBSOCKET = "websocket"
    DATABASE = "database"
    CACHE = "cache"


class QueryKind(str, enum.Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ScalingMode(str, enum.Enum):
    SINGLE = "single"
    FIXED = "fixed"
    AUTO = "auto"


# Keys are lower-cased with spaces, dashes and underscores removed.
TYPE_ALIASES = {
    "trafficsource": NodeType.TRAFFIC_SOURCE,
    "user": NodeType.TRAFFIC_SOURCE,
    "client": NodeType.TRAFFIC_SOURCE,
    "loadbalancer": NodeType.LOAD_BALANCER,
    "lb": NodeType.LOAD_BALANCER,
    "cdn": NodeType.CDN,
    "apiserver": NodeType.API_SERVER,
    "server": NodeType.API_SERVER,
    "appserver": NodeType.API_SERVER,
    "database": NodeType.DATABASE,
    "postgresql": NodeType.DATABASE,
    "postgres": NodeType.DATABASE,
    "objectstore": NodeType.OBJECT_STORE,
    "s3bucket": NodeType.OBJECT_STORE,
    "s3": NodeType.OBJECT_STORE,
    "cache": NodeType.CACHE,
    "redis": NodeType.CACHE,
    "queue": NodeType.QUEUE,
    "messagequeue": NodeType.QUEUE,
    "annotation": NodeType.ANNOTATION,
    "stickynote": NodeType.ANNOTATION,
    "note": NodeType.ANNOTATION,
}


def _alias_key(raw: object) -> str:
    return str(raw).strip().lower().replace(" ", "").replace("-", "").replace("_", "")


def normalize_type(node_type: object) -> NodeType:
    if isinstance(node_type, NodeType):
        return node_type
    if not node_type:
        raise TopologyError("Node type is required.")
    resolved = TYPE_ALIASES.get(_alias_key(node_type))
    if resolved is None:
        raise TopologyError(f"Unknown node type: {node_type}")
    return resolved


def normalize_connection_type(connection_type: object) -> ConnectionType:
    if isinstance(connection_type, ConnectionType):
        return connection_type
    if not connection_type:
        return ConnectionType.HTTP
    try:
        return ConnectionType(str(connection_type).strip().lower())
    except ValueError as exc:
        raise TopologyError(f"Unknown connection type: {connection_type}") from exc


def _get(data: Mapping[str, object], *keys: str, default=None):
    """Return the first key present in ``data``; payloads use snake_case or camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise TopologyError(f"Expected an integer, got {value!r}") from exc


@dataclass(frozen=True)
class Column:
    id: str
    name: str
    type: str = "text"
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_nullable: bool = True
    is_unique: bool = False
    foreign_key_ref: Optional[Dict[str, str]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Column":
        column_id = str(data.get("id", "")).strip()
        name = str(data.get("name", "")).strip()
        if not column_id or not name:
            raise TopologyError("Columns must include an id and a name.")
        return cls(
            id=column_id,
            name=name,
            type=str(data.get("type", "text")),
            is_primary_key=bool(_get(data, "is_primary_key", "isPrimaryKey", default=False)),
            is_foreign_key=bool(_get(data, "is_foreign_key", "isForeignKey", default=False)),
            is_nullable=bool(_get(data, "is_nullable", "isNullable", default=True)),
            is_unique=bool(_get(data, "is_unique", "isUnique", default=False)),
            foreign_key_ref=_get(data, "foreign_key_ref", "foreignKeyRef"),
        )


@dataclass(frozen=True)
class Index:
    id: str
    name: str
    columns: List[str]
    is_unique: bool = False
    kind: str = "btree"
    include_columns: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Index":
        index_id = str(data.get("id", "")).strip()
        name = str(data.get("name", "")).strip() or index_id
        return cls(
            id=index_id,
            name=name,
            columns=[str(column) for column in data.get("columns", []) or []],
            is_unique=bool(_get(data, "is_unique", "isUnique", default=False)),
            kind=str(_get(data, "kind", "type", default="btree")),
            include_columns=[str(column) for column in _get(data, "include_columns", "includeColumns", default=[])],
        )


@dataclass(frozen=True)
class Table:
    id: str
    name: str
    columns: List[Column] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    estimated_rows: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object], row_counts: Optional[Mapping[str, object]] = None) -> "Table":
        table_id = str(data.get("id", "")).strip()
        name = str(data.get("name", "")).strip()
        if not table_id or not name:
            raise TopologyError("Tables must include an id and a name.")
        estimated_rows = _optional_int(_get(data, "estimated_rows", "estimatedRows"))
        if estimated_rows is None and row_counts:
            estimated_rows = _optional_int(row_counts.get(table_id))
        return cls(
            id=table_id,
            name=name,
            columns=[Column.from_dict(column) for column in data.get("columns", []) or []],
            indexes=[Index.from_dict(index) for index in data.get("indexes", []) or []],
            estimated_rows=estimated_rows,
        )

    def column_name(self, column_id: str) -> Optional[str]:
        for column in self.columns:
            if column.id == column_id:
                return column.name
        return None


@dataclass(frozen=True)
class LinkedQuery:
    id: str
    target_node_id: str
    target_table_id: str
    kind: QueryKind = QueryKind.SELECT
    where_columns: List[str] = field(default_factory=list)
    select_columns: List[str] = field(default_factory=list)
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "LinkedQuery":
        raw_kind = str(_get(data, "kind", "query_type", "queryType", default="SELECT")).upper()
        try:
            kind = QueryKind(raw_kind)
        except ValueError as exc:
            raise TopologyError(f"Unknown query kind: {raw_kind}") from exc
        return cls(
            id=str(data.get("id", "")),
            target_node_id=str(_get(data, "target_node_id", "targetNodeId", default="")),
            target_table_id=str(_get(data, "target_table_id", "targetTableId", default="")),
            kind=kind,
            where_columns=[str(column) for column in _get(data, "where_columns", "whereColumns", default=[])],
            select_columns=[str(column) for column in _get(data, "select_columns", "selectColumns", default=[])],
            description=str(data.get("description", "") or ""),
        )


@dataclass(frozen=True)
class Endpoint:
    id: str
    method: str = "GET"
    path: str = "/"
    linked_queries: List[LinkedQuery] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Endpoint":
        return cls(
            id=str(data.get("id", "")),
            method=str(data.get("method", "GET")).upper(),
            path=str(data.get("path", "/")),
            linked_queries=[
                LinkedQuery.from_dict(query) for query in _get(data, "linked_queries", "linkedQueries", default=[])
            ],
        )


@dataclass(frozen=True)
class CacheKey:
    id: str
    pattern: str
    value_type: str = "string"
    ttl: Optional[int] = None
    estimated_cardinality: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "CacheKey":
        pattern = str(data.get("pattern", "")).strip()
        if not pattern:
            raise TopologyError("Cache keys must include a pattern.")
        return cls(
            id=str(data.get("id", "") or pattern),
            pattern=pattern,
            value_type=str(_get(data, "value_type", "valueType", default="string")),
            ttl=_optional_int(data.get("ttl")),
            estimated_cardinality=_optional_int(_get(data, "estimated_cardinality", "estimatedCardinality")),
        )


@dataclass(frozen=True)
class ScalingConfig:
    mode: ScalingMode = ScalingMode.SINGLE
    instances: int = 1

    @classmethod
    def from_dict(cls, data: object) -> "ScalingConfig":
        if isinstance(data, str):
            data = {"type": data}
        if not isinstance(data, Mapping):
            raise TopologyError("Scaling must be an object.")
        raw_mode = str(_get(data, "type", "mode", default="single")).lower()
        try:
            mode = ScalingMode(raw_mode)
        except ValueError as exc:
            raise TopologyError(f"Unknown scaling mode: {raw_mode}") from exc
        if mode != ScalingMode.FIXED:
            return cls(mode=mode)
        instances = _optional_int(data.get("instances"))
        if instances is None or instances < 1:
            raise TopologyError("Fixed scaling requires at least one instance.")
        return cls(mode=mode, instances=instances)


@dataclass(frozen=True)
class Node:
    id: str
    type: NodeType
    label: str = ""
    position: Dict[str, float] = field(default_factory=dict)
    scaling: Optional[ScalingConfig] = None
    tables: List[Table] = field(default_factory=list)
    endpoints: List[Endpoint] = field(default_factory=list)
    keys: List[CacheKey] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Node":
        node_id = str(data.get("id", "") or "").strip()
        if not node_id:
            raise TopologyError("Each node must include a non-empty id.")
        node_type = normalize_type(data.get("type"))
        payload = _get(data, "data", "config", default={}) or {}
        if not isinstance(payload, Mapping):
            raise TopologyError(f"Node {node_id} data must be an object.")

        scaling_raw = payload.get("scaling")
        row_counts = _get(payload, "estimated_row_counts", "estimatedRowCounts", default={})

        return cls(
            id=node_id,
            type=node_type,
            label=str(payload.get("label", "") or node_id),
            position=dict(data.get("position", {}) or {}),
            scaling=ScalingConfig.from_dict(scaling_raw) if scaling_raw else None,
            tables=[Table.from_dict(table, row_counts) for table in payload.get("tables", []) or []],
            endpoints=[Endpoint.from_dict(endpoint) for endpoint in payload.get("endpoints", []) or []],
            keys=[CacheKey.from_dict(key) for key in payload.get("keys", []) or []],
        )


@dataclass(frozen=True)
class Edge:
    id: str
    source: str
    target: str
    connection_type: ConnectionType = ConnectionType.HTTP

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Edge":
        source = str(data.get("source", "") or "")
        target = str(data.get("target", "") or "")
        edge_data = data.get("data", {}) or {}
        connection_type = _get(data, "connection_type", "connectionType") or _get(
            edge_data, "connection_type", "connectionType"
        )
        return cls(
            id=str(data.get("id", "") or f"{source}->{target}"),
            source=source,
            target=target,
            connection_type=normalize_connection_type(connection_type),
        )
