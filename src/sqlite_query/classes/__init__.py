from .database import Database
from .field_type import FieldType
from .query import Query
from .statement import Statement, StepStatus

__all__ = [
    "Database",
    "FieldType",
    "Query",
    "Statement",
    "StepStatus",
]
