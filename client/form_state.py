from enum import Enum
from typing import Optional
from pydantic import BaseModel

from models.explain_models import ExplainCodeResponse


class FormStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class FormState(BaseModel):
    """What the form shows: idle -> pending -> (success | failure)"""

    status: FormStatus = FormStatus.IDLE
    data: Optional[ExplainCodeResponse] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == FormStatus.PENDING

    @property
    def success(self) -> Optional[bool]:
        if self.status == FormStatus.SUCCESS:
            return True
        if self.status == FormStatus.FAILURE:
            return False
        return None

    def start(self) -> "FormState":
        if self.is_pending:
            raise ValueError("An explanation request is already in progress")
        return FormState(status=FormStatus.PENDING)

    def resolve(self, result: "FormState") -> "FormState":
        if not self.is_pending:
            raise ValueError("No explanation request is in progress")
        if result.status not in (FormStatus.SUCCESS, FormStatus.FAILURE):
            raise ValueError(f"Cannot resolve a request to {result.status.value}")
        return result

    @classmethod
    def succeeded(cls, data: ExplainCodeResponse) -> "FormState":
        return cls(status=FormStatus.SUCCESS, data=data)

    @classmethod
    def failed(cls, error: str) -> "FormState":
        return cls(status=FormStatus.FAILURE, error=error)
