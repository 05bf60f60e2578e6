from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from .config import AWSSettings
from .research.composer import AnswerComposer
from .research.errors import AnswerComposerError, ConfigurationError

logger = logging.getLogger(__name__)


class BedrockAnswerComposer(AnswerComposer):
    """Answer composer backed by the Bedrock Converse API.

    Uses the default credential/provider chain when no explicit profile or
    region is configured. Missing credentials fail construction rather than
    the first question.
    """

    def __init__(self, settings: AWSSettings, session: boto3.Session | None = None):
        if not settings.use_bedrock:
            raise ConfigurationError("Bedrock is disabled (RULEMASTER_AWS_USE_BEDROCK=false)")
        if not settings.answer_model_id:
            raise ConfigurationError("RULEMASTER_AWS_ANSWER_MODEL_ID is required")

        self._settings = settings
        self._session = session or boto3.Session(
            profile_name=settings.profile_name or None,
            region_name=settings.region_name or None,
        )
        if self._session.get_credentials() is None:
            raise ConfigurationError("AWS credentials are not configured for Bedrock")
        self._runtime: BaseClient | None = None

    @property
    def model_id(self) -> str:
        return self._settings.answer_model_id

    def _client(self) -> BaseClient:
        if self._runtime is None:
            self._runtime = self._session.client("bedrock-runtime")
        return self._runtime

    def _converse(self, prompt: str) -> str:
        try:
            resp: dict[str, Any] = self._client().converse(
                modelId=self.model_id,
                messages=[{"role": "user", "content": [{"text": prompt}]}],
                inferenceConfig={
                    "maxTokens": self._settings.max_tokens,
                    "temperature": self._settings.temperature,
                },
            )
        except ClientError as exc:
            error = exc.response.get("Error", {})
            status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise AnswerComposerError(
                error.get("Message") or str(exc),
                status_code=status_code,
                status_text=error.get("Code"),
            ) from exc
        except BotoCoreError as exc:
            raise AnswerComposerError(str(exc)) from exc

        content = resp.get("output", {}).get("message", {}).get("content") or []
        texts = [block["text"] for block in content if isinstance(block, dict) and isinstance(block.get("text"), str)]
        if not texts:
            raise AnswerComposerError("Bedrock returned no text content", status_text=resp.get("stopReason"))
        return "".join(texts)

    async def ask_game_question(self, game_title: str, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        logger.debug(f"Invoking {self.model_id} for '{game_title}' ({len(prompt)} prompt chars)")
        return await loop.run_in_executor(None, partial(self._converse, prompt))
