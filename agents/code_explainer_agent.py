import asyncio
import time
from typing import List, Optional
from langchain.chat_models import init_chat_model
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate

from utils.config import Settings
from utils.errors import EmptyCompletionError, UpstreamError, UpstreamTimeoutError
from utils.logging import log_ai_request


EXPLAIN_PROMPT = "Please explain this {language} code in simple terms:\n\n```{language}\n{code}\n```"


def build_prompt(code: str, language: Optional[str] = None) -> str:
    """Formats the single user turn sent to the completion service."""
    return EXPLAIN_PROMPT.format(language=language or "", code=code)


def extract_text(response) -> str:
    content = getattr(response, "content", None)
    if isinstance(content, list):
        # Some providers return content as a list of typed parts
        content = "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return content or ""


class CodeExplainerAgent:
    def __init__(self, settings: Settings, llm_model=None, http_async_client=None):
        """
        Initialize the explainer against an OpenAI-compatible chat completion service.

        The chat model is built lazily so the gateway can start (and report
        hasApiKey=false) without a credential.
        """
        self.settings = settings
        self.llm_model = llm_model
        self.http_async_client = http_async_client
        self.prompt_template = ChatPromptTemplate.from_messages([
            ("human", EXPLAIN_PROMPT),
        ])

    def _get_model(self):
        if self.llm_model is None:
            model_kwargs = {}
            if self.http_async_client is not None:
                model_kwargs["http_async_client"] = self.http_async_client

            # max_tokens goes in the body as-is; the constructor argument is sent as max_completion_tokens
            self.llm_model = init_chat_model(
                self.settings.llm_model,
                model_provider="openai",
                base_url=self.settings.llm_base_url,
                api_key=self.settings.api_key,
                temperature=self.settings.llm_temperature,
                extra_body={"max_tokens": self.settings.llm_max_tokens},
                max_retries=0,
                **model_kwargs,
            )
        return self.llm_model

    def build_messages(self, code: str, language: Optional[str] = None) -> List[BaseMessage]:
        return self.prompt_template.format_messages(language=language or "", code=code)

    async def explain_code(self, code: str, language: Optional[str] = None) -> str:
        """
        Asks the completion service to explain a code snippet.

        Args:
            code (str): The snippet to explain.
            language (str, optional): javascript, python or java.

        Returns:
            str: The text of the first completion.

        Raises:
            UpstreamTimeoutError: No answer within llm_timeout_seconds; the call is cancelled.
            EmptyCompletionError: The service answered without choices or without content.
            UpstreamError: Transport, credential or response-format failure.
        """
        messages = self.build_messages(code, language)
        timeout = self.settings.llm_timeout_seconds
        language_label = language or "unknown"
        start_time = time.time()

        try:
            result = await asyncio.wait_for(self._get_model().agenerate([messages]), timeout=timeout)
        except asyncio.TimeoutError as e:
            duration_ms = (time.time() - start_time) * 1000
            log_ai_request(self.settings.llm_model, language_label, len(code), duration_ms, success=False)
            raise UpstreamTimeoutError(f"No response from completion service within {timeout}s") from e
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_ai_request(self.settings.llm_model, language_label, len(code), duration_ms, success=False)
            raise UpstreamError(f"{type(e).__name__}: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        generations = result.generations[0] if result.generations else []
        explanation = extract_text(generations[0].message) if generations else ""
        if not explanation:
            log_ai_request(self.settings.llm_model, language_label, len(code), duration_ms, success=False)
            raise EmptyCompletionError("Completion service returned no content")

        log_ai_request(self.settings.llm_model, language_label, len(code), duration_ms)
        return explanation
