# For licensing see accompanying LICENSE file.
# Copyright (C) 2024-2025 Apple Inc. All Rights Reserved.
#
import contextlib
import copy
import datetime
import enum
import functools
import logging
import threading
from typing import Any, Iterator, Self, cast

import polars as pl
from polars.exceptions import NoDataError

from cowork.simulation.database_schemas import (
    DATABASE_SCHEMAS,
    ID_COLUMNS,
    DatabaseNamespace,
)

logger = logging.getLogger(__name__)


def _storable(value: Any) -> Any:
    # polars stores enum members by their value
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _synchronized(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class ExecutionContext:
    """In-memory state of the co-working space.

    Each ExecutionContext object is a full encapsulation of the world state: one
    polars DataFrame per `DatabaseNamespace` (rooms, reservations, notifications).
    DataFrames are immutable, so every mutation swaps in a new frame and old
    frames can be kept around as snapshots.

    All database also contains a null row as "headguard".
    """

    # Database schema. Declared as class attributes so that it could be available prior to init
    dbs_schemas: dict[DatabaseNamespace, dict[str, Any]] = DATABASE_SCHEMAS

    def __init__(
        self,
    ):
        """Init function for ExecutionContext"""
        # Each database starts with a full null headguard
        self._dbs: dict[str, pl.DataFrame] = {
            namespace: pl.DataFrame(
                {k: None for k in self.dbs_schemas[namespace]},
                schema=self.dbs_schemas[namespace],
            )
            for namespace in self.dbs_schemas
        }
        # writes and transactions from different threads are applied one at a time
        self._lock = threading.RLock()

    def to_dict(self) -> dict[str, Any]:
        """Serializes to a dictionary

        We aim to make this serialization reversible, while still somewhat readable.

        Returns:
            A serialized dict.
        """

        def convert_datetime(value: Any) -> Any:
            if isinstance(value, (datetime.date, datetime.datetime)):
                return value.isoformat()
            return value

        return {
            "_dbs": {
                str(namespace): [
                    {k: convert_datetime(v) for k, v in record.items()}
                    for record in self.drop_headguard(database).to_dicts()
                ]
                for namespace, database in self._dbs.items()
            },
        }

    @classmethod
    def from_dict(cls, serialized_dict: dict[str, Any]) -> Self:
        """Load a serialized dict produced by to_dict.

        Args:
            serialized_dict:    Serialized dict object.

        Returns:
            ExecutionContext object.
        """

        def convert_datetime(value, schema: dict[str, Any], key: str):
            if schema[key] is pl.Datetime:
                return datetime.datetime.fromisoformat(value) if value else None
            if schema[key] is pl.Date:
                return datetime.date.fromisoformat(value) if value else None
            return value

        execution_context = cls()
        for name, records in serialized_dict["_dbs"].items():
            namespace = DatabaseNamespace(name)
            schema = cls.dbs_schemas[namespace]
            records = [
                {k: convert_datetime(v, schema, k) for k, v in record.items()}
                for record in records
            ]
            if records:
                execution_context.add_to_database(namespace, records)
        return execution_context

    @staticmethod
    def headguard_predicate(column_names: set[str]) -> pl.Expr:
        """A polars expression matching headguard rows

        Specifically this looks for rows where all columns are None

        Args:
            column_names:   Column names in the dataframe
        Returns:
            A polars expression matching headguard rows
        """
        # Hacky way to make bitwise and work in a loop
        return pl.lit(True).and_(
            *[pl.col(column_name).is_null() for column_name in column_names]
        )

    @classmethod
    def drop_headguard(cls, dataframe: pl.DataFrame) -> pl.DataFrame:
        """Drops the all None headguard row

        Args:
            dataframe:  Dataframe to drop headguard row from.

        Returns:
            Dataframe with headguard dropped.
        """
        return dataframe.filter(
            ~cls.headguard_predicate(column_names=set(dataframe.columns))
        )

    def get_database(
        self,
        namespace: DatabaseNamespace,
        drop_headguard: bool = True,
    ) -> pl.DataFrame:
        """Get a database given the namespace

        Note that the database returned is a subview of the original database.
        Please treat it as an immutable object to avoid unintended effect.
        Use add / update / remove functions to modify database if needed.

        Parameters
        ----------
        namespace:
            Database namespace
        drop_headguard
            Drop the null headguard entry. Should only be turned off for debugging purposes

        Returns
        -------
            Requested database
        """
        dataframe = self._dbs[namespace]
        if drop_headguard:
            dataframe = self.drop_headguard(dataframe)
        return dataframe

    def next_id(self, namespace: DatabaseNamespace) -> int:
        """Identity for the next row of `namespace`: one more than the
        largest existing id, or 1 for an empty table."""
        ids = self.get_database(namespace).get_column(ID_COLUMNS[namespace])
        if ids.is_empty():
            return 1
        return max(cast(int, ids.max()), 0) + 1

    @_synchronized
    def add_to_database(
        self,
        namespace: DatabaseNamespace,
        rows: list[dict[str, Any]],
    ) -> None:
        """Add multiple rows to a database.

        Parameters
        ----------
        namespace
            Database namespace
        rows
            List of rows to be added, each item should be a Dict of column and value

        Returns
        -------

        Raises
        ------
        KeyError:   When provided column names in rows does not match given schema
        ValueError: When entry is all None. All None is reserved for headguard
        """
        # Check if column name in rows are found in namespace schema
        rows_column_names = {x for row in rows for x in row.keys()}
        schema_column_names = set(self.dbs_schemas[namespace].keys())
        if rows_column_names - schema_column_names:
            raise KeyError(
                f"Only column names {schema_column_names} are allowed for namespace {namespace}. "
                f"Found unknown column name {rows_column_names - schema_column_names}"
            )
        # Check if values are all None in some rows
        for row in rows:
            if all(row.get(column_name) is None for column_name in schema_column_names):
                raise ValueError(
                    "Cannot add row with all None values. "
                    "All None values are reserved for headguard"
                )
        id_column = ID_COLUMNS[namespace]
        existing_ids = set(self.get_database(namespace).get_column(id_column).to_list())
        new_ids = [row.get(id_column) for row in rows]
        assert len(set(new_ids)) == len(new_ids) and not (
            existing_ids & set(new_ids)
        ), f"Duplicate {id_column} in {namespace}: {new_ids}"
        rows = [
            {k: _storable(v) for k, v in row.items()} for row in copy.deepcopy(rows)
        ]
        self._dbs[namespace] = self._dbs[namespace].vstack(
            pl.DataFrame(rows, schema=self.dbs_schemas[namespace])
        )

    @_synchronized
    def update_database(
        self,
        namespace: DatabaseNamespace,
        predicate: pl.Expr,
        values: dict[str, Any],
    ) -> int:
        """Overwrite columns of the rows matching `predicate`.

        Parameters
        ----------
        namespace
            Database namespace
        predicate
            A polars predicate that evaluates to boolean, used to identify the rows to update
        values
            Maps column names to their new values

        Returns
        -------
            The number of rows updated

        Raises
        ------
        NoDataError: If no matching rows where found
        KeyError: When provided column names do not match given schema
        """
        schema = self.dbs_schemas[namespace]
        if unknown := set(values) - set(schema):
            raise KeyError(
                f"Only column names {set(schema)} are allowed for namespace {namespace}. "
                f"Found unknown column name {unknown}"
            )
        dataframe = self._dbs[namespace]
        headguard = self.headguard_predicate(column_names=set(dataframe.columns))
        matched = (
            dataframe.select((predicate & ~headguard).fill_null(False))
            .to_series()
            .to_list()
        )
        if not any(matched):
            raise NoDataError(f"No db entry matching {predicate=} found")
        records = dataframe.to_dicts()
        for record, is_match in zip(records, matched):
            if is_match:
                record.update(
                    {k: _storable(v) for k, v in copy.deepcopy(values).items()}
                )
        self._dbs[namespace] = pl.DataFrame(records, schema=schema)
        return sum(matched)

    @_synchronized
    def remove_from_database(
        self,
        namespace: DatabaseNamespace,
        predicate: pl.Expr,
    ) -> None:
        """Remove multiple rows from a database.

        Parameters
        ----------
        namespace
            Database namespace
        predicate
            A polars predicate that evaluates to boolean, used to identify the rows to remove

        Returns
        -------

        Raises
        ------
        NoDataError: If no matching rows where found
        """
        if self.get_database(namespace).filter(predicate).is_empty():
            raise NoDataError(f"No db entry matching {predicate=} found")
        # Remove entries that match predicate, except for headguard
        self._dbs[namespace] = self._dbs[namespace].filter(
            ~predicate
            | self.headguard_predicate(column_names=set(self._dbs[namespace].columns))
        )

    @contextlib.contextmanager
    def transaction(self) -> Iterator[Self]:
        """Snapshot every database and restore the snapshot if the block raises,
        so that a multi-step mutation is applied completely or not at all.
        Writes from other threads wait until the block exits."""
        with self._lock:
            snapshot = dict(self._dbs)
            try:
                yield self
            except BaseException:
                logger.debug("Rolling back execution context to snapshot")
                self._dbs = snapshot
                raise


def _create_global_execution_context() -> ExecutionContext:
    """Set up the global execution context.

    Lazily evaluated so that importing this module does not build the
    databases, following https://stackoverflow.com/a/54616590 .
    """
    execution_context = ExecutionContext()
    globals()["_global_execution_context"] = execution_context
    return execution_context


def get_current_context() -> ExecutionContext:
    """Getter for global execution context variable

    Returns
        global execution context object

    """
    # Just doing `global _global_execution_context` caused some tests to fail when
    # running them in parallel using pytest-xdist. As a simple workaround we
    # explicitly check if the global variable exists here and if not we create it.
    global_execution_context = globals().get("_global_execution_context")
    if global_execution_context is None:
        return _create_global_execution_context()

    return cast(ExecutionContext, global_execution_context)


def set_current_context(execution_context: ExecutionContext) -> None:
    """Setter for global execution context variable

    Args:
        execution_context: new context to be applied as global execution context

    Returns:

    """
    globals()["_global_execution_context"] = execution_context


@contextlib.contextmanager
def new_context(context: ExecutionContext) -> Iterator[ExecutionContext]:
    """Handy context manager which patches _global_execution_context with context,
    and reverts after context exit

    Parameters
    ----------
    context
        Context to apply

    Returns
    -------

    """
    original_context = get_current_context()
    try:
        set_current_context(context)
        yield context
    # Release resource even when exceptions are raised
    finally:
        # Reset original context
        set_current_context(original_context)
