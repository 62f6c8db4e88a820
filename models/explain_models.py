from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional


SupportedLanguage = Literal["javascript", "python", "java"]


class ExplainCodeRequest(BaseModel):
    # Optional so that a missing snippet is reported as "Code is required"
    code: Optional[str] = Field(None, description="Source code to explain")
    language: Optional[SupportedLanguage] = Field(None, description="Language of the snippet")

    @field_validator("language", mode="before")
    @classmethod
    def blank_language_is_unset(cls, value):
        if isinstance(value, str) and not value:
            return None
        return value


class ExplainCodeResponse(BaseModel):
    explanation: str
    language: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
    timestamp: str = Field(..., description="ISO-8601 time of the probe")
    hasApiKey: bool = Field(..., description="Whether the completion service credential is configured")
    uptime: float = Field(..., description="Seconds since the gateway started")
