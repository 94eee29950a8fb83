"""Query cost estimation against a table's declared indexes.

Index matching is a strict leftmost-prefix comparison by column name, the way
a B-tree can only be entered from its first column. The order in which WHERE
columns are supplied therefore matters.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Index, LinkedQuery, Table

SEQ_SCAN = "seq_scan"
INDEX_SCAN = "index_scan"
INDEX_ONLY_SCAN = "index_only_scan"

FULL = "full"
PARTIAL = "partial"
NONE = "none"

# Milliseconds per 1K rows.
COST_PER_1K_ROWS = {
    SEQ_SCAN: 10,
    INDEX_SCAN: 0.1,
    INDEX_ONLY_SCAN: 0.05,
}

DEFAULT_ESTIMATED_ROWS = 1000
LARGE_TABLE_THRESHOLD = 100000


@dataclass(frozen=True)
class QueryWarning:
    type: str
    message: str
    suggestion: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "message": self.message, "suggestion": self.suggestion}


@dataclass(frozen=True)
class QueryAnalysis:
    query_id: str
    scan_type: str
    estimated_rows_scanned: float
    estimated_cost_ms: float
    used_index: Optional[str] = None
    warnings: List[QueryWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "query_id": self.query_id,
            "scan_type": self.scan_type,
            "estimated_rows_scanned": self.estimated_rows_scanned,
            "estimated_cost_ms": self.estimated_cost_ms,
            "used_index": self.used_index,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


def _column_names(column_ids: Iterable[str], table: Table) -> List[str]:
    names = (table.column_name(column_id) for column_id in column_ids)
    return [name for name in names if name is not None]


def index_coverage(index: Index, where_columns: List[str], table: Table) -> str:
    if not where_columns:
        return NONE

    where_names = _column_names(where_columns, table)
    index_names = _column_names(index.columns, table)

    matched = 0
    for where_name, index_name in zip(where_names, index_names):
        if where_name != index_name:
            break
        matched += 1

    if matched == 0:
        return NONE
    if matched == len(where_names):
        return FULL
    return PARTIAL


def is_covering_index(index: Index, select_columns: List[str], where_columns: List[str], table: Table) -> bool:
    if not select_columns:
        return False
    index_column_ids = set(index.columns) | set(index.include_columns)
    all_selected = all(column_id in index_column_ids for column_id in select_columns)
    return all_selected and index_coverage(index, where_columns, table) == FULL


def find_best_index(query: LinkedQuery, table: Table) -> Tuple[Optional[Index], str, bool]:
    if not query.where_columns:
        return None, NONE, False

    best_index: Optional[Index] = None
    best_coverage = NONE
    best_covering = False

    for index in table.indexes:
        coverage = index_coverage(index, query.where_columns, table)
        if coverage == NONE:
            continue
        covering = is_covering_index(index, query.select_columns, query.where_columns, table)
        is_better = (
            (covering and not best_covering)
            or (coverage == FULL and best_coverage != FULL)
            or (coverage == PARTIAL and best_coverage == NONE)
        )
        if is_better or best_index is None:
            best_index = index
            best_coverage = coverage
            best_covering = covering

    return best_index, best_coverage, best_covering


def generate_index_suggestion(query: LinkedQuery, table: Table) -> str:
    if not query.where_columns:
        return ""
    where_names = _column_names(query.where_columns, table)
    if not where_names:
        return ""

    index_name = f"idx_{table.name}_{'_'.join(where_names)}"
    suggestion = f"CREATE INDEX {index_name} ON {table.name}({', '.join(where_names)})"

    include_names = _column_names(
        [column_id for column_id in query.select_columns if column_id not in query.where_columns], table
    )
    if include_names:
        suggestion += f" INCLUDE ({', '.join(include_names)})"
    return suggestion


def estimate_cost(scan_type: str, estimated_rows: float) -> float:
    if scan_type == SEQ_SCAN:
        return COST_PER_1K_ROWS[SEQ_SCAN] * (estimated_rows / 1000)
    # B-tree descent: the per-1K constant is scaled by log2(rows), not rows / 1000.
    log_factor = max(1.0, math.log2(estimated_rows)) if estimated_rows > 0 else 1.0
    return COST_PER_1K_ROWS[scan_type] * log_factor


def _rows_scanned(scan_type: str, estimated_rows: float) -> float:
    if scan_type == SEQ_SCAN:
        return estimated_rows
    if estimated_rows <= 0:
        return 1
    return max(1, math.log2(estimated_rows) * 10)


def analyze_query(query: LinkedQuery, table: Table) -> QueryAnalysis:
    estimated_rows = table.estimated_rows or DEFAULT_ESTIMATED_ROWS
    warnings: List[QueryWarning] = []

    index, coverage, covering = find_best_index(query, table)
    used_index: Optional[str] = None

    if index is None or coverage == NONE:
        scan_type = SEQ_SCAN
        if estimated_rows >= LARGE_TABLE_THRESHOLD and query.where_columns:
            suggestion = generate_index_suggestion(query, table)
            warnings.append(
                QueryWarning(
                    type="seq_scan_large_table",
                    message=f"Sequential scan on {table.name} with {estimated_rows:,} rows",
                    suggestion=suggestion or "Consider adding an index on frequently queried columns",
                )
            )
        if query.where_columns:
            suggestion = generate_index_suggestion(query, table)
            if suggestion:
                warnings.append(
                    QueryWarning(
                        type="missing_index",
                        message="No index found for WHERE clause columns",
                        suggestion=suggestion,
                    )
                )
    elif covering:
        scan_type = INDEX_ONLY_SCAN
        used_index = index.name
    elif coverage == PARTIAL:
        scan_type = INDEX_SCAN
        used_index = index.name
        warnings.append(
            QueryWarning(
                type="partial_index_match",
                message=f"Index {index.name} only partially matches query",
                suggestion=generate_index_suggestion(query, table),
            )
        )
    else:
        scan_type = INDEX_SCAN
        used_index = index.name

    return QueryAnalysis(
        query_id=query.id,
        scan_type=scan_type,
        estimated_rows_scanned=_rows_scanned(scan_type, estimated_rows),
        estimated_cost_ms=estimate_cost(scan_type, estimated_rows),
        used_index=used_index,
        warnings=warnings,
    )


def analyze_queries_for_table(queries: Iterable[LinkedQuery], table: Table) -> List[QueryAnalysis]:
    return [analyze_query(query, table) for query in queries if query.target_table_id == table.id]
