"""
Base schemas with standardized field types for consistent API responses.
"""
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema


class StandardizedModel(BaseModel):
    """Base model for responses built from ORM rows or service results."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictModel(BaseModel):
    """Strict base for request bodies: forbid extras, validate defaults and assignments."""

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        validate_assignment=True,
        use_enum_values=False,
    )


class Hours(Decimal):
    """Credit-hour amount: accepts numbers or strings, always serializes as float."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_hours(value: Any) -> Decimal:
            if isinstance(value, bool):
                raise ValueError("Hours must be a number")
            if isinstance(value, (int, float)):
                return Decimal(str(value))
            if isinstance(value, str):
                try:
                    return Decimal(value)
                except InvalidOperation as exc:
                    raise ValueError(f"Invalid hours value: {value!r}") from exc
            if isinstance(value, Decimal):
                return value
            raise ValueError(f"Cannot convert {type(value)} to Hours")

        return core_schema.no_info_after_validator_function(
            validate_hours,
            core_schema.union_schema(
                [
                    core_schema.int_schema(),
                    core_schema.float_schema(),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(Decimal),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                float,
                info_arg=False,
                return_schema=core_schema.float_schema(),
            ),
        )
