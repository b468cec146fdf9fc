"""
Base class for documents kept in the backing store.

Store documents use camelCase field names; Python code uses snake_case.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_doc(cls, doc: Optional[dict]):
        return cls.model_validate(doc or {})

    def to_doc(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def coerce_int(value: Any) -> int:
    """Numeric-ish value to int; anything unparseable becomes 0."""
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number)
