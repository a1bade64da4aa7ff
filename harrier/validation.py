"""
Schema validation for extracted parameters.

A schema may be:
- a pydantic model class (validated with model_validate)
- any other type pydantic understands (TypedDict, dataclass, int, list[str],
  Annotated constraints, ...), validated through a cached TypeAdapter
- an object with a ``validate(value)`` method, sync or async, returning the
  coerced value
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

from .faults import ValidationFault

logger = logging.getLogger("harrier.validation")


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def fault_from_pydantic(exc: ValidationError, source: Optional[str] = None) -> ValidationFault:
    """Convert a pydantic ValidationError into a ValidationFault (first error leads)."""
    errors: List[Dict[str, Any]] = [
        {"field": _field_path(err.get("loc", ())), "reason": err.get("msg", ""), "type": err.get("type")}
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "reason": str(exc)}
    return ValidationFault(first["field"], first["reason"], errors=errors, source=source)


class SchemaValidator:
    """Validates values against declared schemas, caching TypeAdapters."""

    def __init__(self):
        self._adapters: Dict[Any, TypeAdapter] = {}

    def _adapter(self, schema: Any) -> TypeAdapter:
        try:
            adapter = self._adapters.get(schema)
        except TypeError:
            # Unhashable schema objects are not cached
            return TypeAdapter(schema)
        if adapter is None:
            adapter = TypeAdapter(schema)
            self._adapters[schema] = adapter
        return adapter

    async def validate(self, schema: Any, value: Any, *, source: Optional[str] = None) -> Any:
        """
        Validate value and return the (possibly coerced) result.

        Raises:
            ValidationFault: schema rejected the value
        """
        try:
            if inspect.isclass(schema) and issubclass(schema, BaseModel):
                return schema.model_validate(value)

            custom = getattr(schema, "validate", None)
            if custom is not None and not inspect.isclass(schema):
                try:
                    result = custom(value)
                    if inspect.isawaitable(result):
                        result = await result
                except (ValidationFault, ValidationError):
                    raise
                except (TypeError, ValueError) as exc:
                    raise ValidationFault("", str(exc), source=source) from exc
                return result

            return self._adapter(schema).validate_python(value)
        except ValidationError as exc:
            fault = fault_from_pydantic(exc, source)
            logger.debug(f"Validation failed for {source or 'value'}: {fault.message}")
            raise fault from exc
