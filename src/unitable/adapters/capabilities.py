# src/unitable/adapters/capabilities.py
from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag


class AdapterCapabilities(IntFlag):
    """
    Bitmask describing which optional operations a source adapter implements.

    Callers check `adapter.supports(cap)` before invoking the matching method;
    an adapter without a capability is treated as a no-op for that operation.

    Bits:
      - LIST_TABLES      : browse tables under a path
      - GET_TABLE        : describe one table (fields, key)
      - GET_DATA         : return a data source descriptor
      - GET_DATA_STREAM  : yield rows one at a time
      - ADD_ROW / UPDATE_ROW / DELETE_ROW : row writes
      - AUTHORIZE        : exchange auth params for a connection secret
      - AUTH_URL         : provide an external login URL
      - SCHEMA_STORE     : persist schema documents
    """
    NONE            = 0
    LIST_TABLES     = 1 << 0
    GET_TABLE       = 1 << 1
    GET_DATA        = 1 << 2
    GET_DATA_STREAM = 1 << 3
    ADD_ROW         = 1 << 4
    UPDATE_ROW      = 1 << 5
    DELETE_ROW      = 1 << 6
    AUTHORIZE       = 1 << 7
    AUTH_URL        = 1 << 8
    SCHEMA_STORE    = 1 << 9

    ROW_WRITES = ADD_ROW | UPDATE_ROW | DELETE_ROW


AC = AdapterCapabilities


@dataclass(frozen=True)
class QueryCapabilities:
    """
    Which parts of a query the source can evaluate natively.

    The query engine applies everything itself regardless; this is reported
    to callers that want to push work down.
    """
    filter: bool = False
    limit: bool = False
    offset: bool = False
