"""Re-keying and grouping of result rows.

Both helpers key their output by the raw column value, so ``1`` and ``"1"``
stay distinct here; callers that correlate rows with identifiers compare
string forms.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

Row = Mapping[str, Any]


def index_by(rows: Sequence[Row], column: Optional[str]) -> Union[Sequence[Row], Dict[Any, Row]]:
    """Key rows by ``column``.

    Example:
        index_by([{"id": 1, "name": "a"}, {"id": 2, "name": "b"}], "id")
        => {1: {"id": 1, "name": "a"}, 2: {"id": 2, "name": "b"}}

    Returns ``rows`` unchanged when ``column`` is empty or any row lacks it.
    Later rows win when two rows share a value.
    """
    if not column:
        return rows

    indexed: Dict[Any, Row] = {}
    for row in rows:
        if column not in row or row[column] is None:
            return rows
        indexed[row[column]] = row
    return indexed


def group_by(rows: Sequence[Row], column: str, projection: Optional[Sequence[str]] = None,
             direct_value: bool = False) -> Dict[Any, List[Any]]:
    """Group rows by ``column``, optionally keeping only ``projection`` columns.

    Args:
        rows: Rows to group, in order.
        column: Column whose value becomes the group key.
        projection: Columns kept in each grouped unit. None keeps full rows.
        direct_value: With a projection, store the bare value of the first
            projected column present in the row instead of a sub-row.

    Scanning stops at the first row that lacks ``column``; groups built from
    earlier rows are returned as they are.
    """
    groups: Dict[Any, List[Any]] = {}

    for row in rows:
        if column not in row or row[column] is None:
            break

        if not projection:
            unit: Any = dict(row)
        else:
            unit = {}
            for col in projection:
                if col not in row or row[col] is None:
                    continue
                if direct_value:
                    unit = row[col]
                    break
                unit[col] = row[col]

        groups.setdefault(row[column], []).append(unit)

    return groups
