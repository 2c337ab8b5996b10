# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Internal pandas helpers"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

import pandas as pd

from ..common.constants import ETAG_PROPERTY, PARTITION_KEY_PROPERTY, ROW_KEY_PROPERTY
from ..models.entity import Entity


def entities_to_dataframe(entities: Iterable[Entity], include_etag: bool = False) -> pd.DataFrame:
    """Flatten entities into a DataFrame with ``PartitionKey`` and ``RowKey`` leading columns.

    :param entities: Entities, e.g. the result of ``await table.retrieve_all(pk).to_list()``.
    :param include_etag: Add an ``etag`` column.
    """
    rows: List[Dict[str, Any]] = []
    for entity in entities:
        row = entity.to_dict()
        if include_etag:
            row[ETAG_PROPERTY] = entity.etag
        rows.append(row)
    leading = [PARTITION_KEY_PROPERTY, ROW_KEY_PROPERTY] + ([ETAG_PROPERTY] if include_etag else [])
    df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=leading)
    rest = [c for c in df.columns if c not in leading]
    return df[leading + rest]


def dataframe_to_entities(df: pd.DataFrame, na_as_null: bool = False) -> List[Entity]:
    """Convert DataFrame rows to entities, converting Timestamps to ISO strings.

    Every row must provide ``PartitionKey`` and ``RowKey``.

    :param df: Input DataFrame.
    :param na_as_null: When False (default), missing values are omitted from each entity.
        When True, missing values are included as None.
    """
    entities = []
    for row in df.to_dict(orient="records"):
        clean = {}
        for k, v in row.items():
            if pd.notna(v):
                clean[k] = v.isoformat() if isinstance(v, pd.Timestamp) else v
            elif na_as_null:
                clean[k] = None
        entities.append(Entity.from_dict(clean))
    return entities
