"""
Project identifier scoping a drive authorization attempt.
"""

import uuid
from dataclasses import dataclass
from typing import Any

from oauth_gateway.common.exceptions import ProjectIdError


@dataclass(frozen=True)
class ProjectId:
    value: uuid.UUID

    @classmethod
    def parse(cls, raw: Any) -> "ProjectId":
        """Parse a UUID-shaped string; anything else raises ProjectIdError."""
        if isinstance(raw, ProjectId):
            return raw
        if isinstance(raw, uuid.UUID):
            return cls(raw)
        try:
            return cls(uuid.UUID(str(raw)))
        except (ValueError, TypeError, AttributeError):
            raise ProjectIdError(context=f"not a project id: {str(raw)[:64]!r}") from None

    def __str__(self) -> str:
        return str(self.value)
