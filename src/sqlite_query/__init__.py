from .classes import Database, Query, Statement, StepStatus, FieldType
from .utils import *
from .exceptions import (
    DatabaseNotConnected,
    UnknownColumn,
    ColumnOutOfRange,
    NoActiveResult,
    NoRowFetched,
    ResultAlreadyOpen,
    FieldTypeNotSupported,
)

__all__ = [
    "Database",
    "Query",
    "Statement",
    "StepStatus",
    "FieldType",
    "StorageClass",
    "setup_logger",
    "DatabaseNotConnected",
    "UnknownColumn",
    "ColumnOutOfRange",
    "NoActiveResult",
    "NoRowFetched",
    "ResultAlreadyOpen",
    "FieldTypeNotSupported",
]
