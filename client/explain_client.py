import logging
import os
from typing import Any, Dict, Optional
import requests
from dotenv import load_dotenv
from pydantic import ValidationError

from client.form_state import FormState
from models.explain_models import ExplainCodeResponse

load_dotenv(override=True)

logger = logging.getLogger(__name__)

GATEWAY_URL = os.getenv("GATEWAY_URL", "http://localhost:3002")


class ExplainClient:
    """Talks to the explanation gateway on behalf of the form"""

    def __init__(self, base_url: str = GATEWAY_URL, timeout: float = 60, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            # Rate limit rejections come back as plain text
            return response.text.strip() or f"Request failed with status {response.status_code}"

        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"Request failed with status {response.status_code}"

    def explain(self, code: str, language: Optional[str] = None) -> FormState:
        payload: Dict[str, Any] = {"code": code}
        if language:
            payload["language"] = language

        try:
            response = self.session.post(
                f"{self.base_url}/api/explain-code",
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Explain request failed: {e}")
            return FormState.failed("Could not reach the explanation service. Please try again.")

        if not response.ok:
            return FormState.failed(self._error_message(response))

        try:
            data = ExplainCodeResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unexpected explain response: {e}")
            return FormState.failed("The explanation service returned an unexpected response.")

        return FormState.succeeded(data)

    def health(self) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(f"{self.base_url}/api/health", timeout=2)
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError):
            return None
