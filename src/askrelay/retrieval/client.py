"""
Knowledge-base retrieval — Bedrock RetrieveAndGenerate with a two-stage query.

Stage A sends the preprocessed query. If A's answer is long enough (> 50
chars) it wins outright. Otherwise stage B sends the synonym-expanded form of
the original text and the longer of the two answers is kept, citations
travelling with their text.

Retrieval is strictly optional: no knowledge base configured, or both stages
failing at the transport level, returns the caller's fallback context and no
citations. Errors never propagate to the caller.

The boto3 client is created once and shared read-only by every session;
calls run in a worker thread so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from askrelay.core.metrics import metrics
from askrelay.credentials import ResolvedCredentials
from askrelay.errors import RetrievalTransportError
from askrelay.retrieval import optimizer

logger = logging.getLogger(__name__)

MIN_USEFUL_RESPONSE_CHARS = 50
EXCERPT_CHARS = 200

_REQUEST_PREFIX = re.compile(r"^User Request:\s*", re.IGNORECASE)


@dataclass(frozen=True)
class Citation:
    source_id: str
    excerpt: str
    score: float = 0.0


@dataclass
class RetrievalResult:
    text: str
    citations: list[Citation] = field(default_factory=list)


def render_citations(citations: list[Citation]) -> str:
    if not citations:
        return ""
    lines = [f"[{i}] {c.source_id}" for i, c in enumerate(citations, start=1)]
    return "\n\nCITATIONS:\n" + "\n".join(lines)


def model_arn(model_id: str, region: str) -> str:
    """Foundation-model ARN; cross-region "us." inference prefixes are dropped."""
    return f"arn:aws:bedrock:{region}::foundation-model/{model_id.replace('us.', '', 1)}"


def _extract_citations(response: dict[str, Any]) -> list[Citation]:
    citations: list[Citation] = []
    for citation in response.get("citations") or []:
        for ref in citation.get("retrievedReferences") or []:
            text = (ref.get("content") or {}).get("text") or ""
            location = (ref.get("location") or {}).get("s3Location") or {}
            score = (ref.get("metadata") or {}).get("score") or 0
            citations.append(
                Citation(
                    source_id=location.get("uri") or "Unknown",
                    excerpt=f"{text[:EXCERPT_CHARS]}..." if text else "",
                    score=float(score),
                )
            )
    return citations


class KnowledgeBaseClient:
    """Queries one Bedrock knowledge base."""

    def __init__(
        self,
        knowledge_base_id: str | None,
        credentials: ResolvedCredentials,
        client: Any = None,
    ):
        self.knowledge_base_id = knowledge_base_id
        self.region = credentials.region or "us-east-1"
        self.default_model_id = credentials.model_id
        if client is None and knowledge_base_id:
            client = boto3.client(
                "bedrock-agent-runtime",
                region_name=self.region,
                aws_access_key_id=credentials.access_key_id,
                aws_secret_access_key=credentials.secret_access_key,
                aws_session_token=credentials.session_token,
            )
            if credentials.session_token:
                logger.info("Knowledge base client using session credentials")
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.knowledge_base_id and self._client is not None)

    async def query(
        self, text: str, model_id: str | None = None, fallback: str = ""
    ) -> tuple[str, list[Citation]]:
        """Return (context_text, citations) for a user query."""
        if not self.configured:
            return fallback, []

        model_id = model_id or self.default_model_id
        clean_query = _REQUEST_PREFIX.sub("", text).strip()
        processed = optimizer.preprocess(clean_query)
        logger.info(
            "KB query: original=%r processed=%r", clean_query[:50], processed[:50]
        )

        first = await self._attempt(clean_query, processed, model_id, stage="processed")
        if first is not None and len(first.text) > MIN_USEFUL_RESPONSE_CHARS:
            return first.text + render_citations(first.citations), first.citations

        first_len = len(first.text) if first is not None else 0
        logger.info(
            "KB returned insufficient context (%d chars), trying expanded query", first_len
        )

        expanded = optimizer.expand(clean_query)
        second = await self._attempt(clean_query, expanded, model_id, stage="expanded")

        if first is None and second is None:
            return fallback, []
        if second is not None and (first is None or len(second.text) > len(first.text)):
            logger.info(
                "Expanded query yielded better results: %d vs %d chars",
                len(second.text),
                first_len,
            )
            return second.text or fallback, second.citations
        return first.text or fallback, first.citations

    async def _attempt(
        self, original: str, query_text: str, model_id: str, stage: str
    ) -> RetrievalResult | None:
        """One RetrieveAndGenerate call; None when the transport failed."""
        started = time.monotonic()
        metrics.inc("retrieval.attempts", labels={"stage": stage})
        try:
            result = await self._retrieve(query_text, model_id)
        except RetrievalTransportError as e:
            metrics.inc("retrieval.errors", labels={"stage": stage})
            logger.warning("KB %s query failed: %s", stage, e.message)
            return None

        elapsed_ms = (time.monotonic() - started) * 1000
        metrics.observe("retrieval.latency_ms", elapsed_ms, labels={"stage": stage})
        report = optimizer.diagnostics(original, query_text, result.text, result.citations)
        logger.info(
            "KB %s diagnostics: %s",
            stage,
            report.as_dict(),
            extra={"kind": "retrieval", "attempt": stage, "duration_ms": round(elapsed_ms)},
        )
        return result

    async def _retrieve(self, query_text: str, model_id: str) -> RetrievalResult:
        request = {
            "input": {"text": query_text},
            "retrieveAndGenerateConfiguration": {
                "type": "KNOWLEDGE_BASE",
                "knowledgeBaseConfiguration": {
                    "knowledgeBaseId": self.knowledge_base_id,
                    "modelArn": model_arn(model_id, self.region),
                },
            },
        }
        try:
            response = await asyncio.to_thread(self._client.retrieve_and_generate, **request)
        except (ClientError, BotoCoreError) as e:
            raise RetrievalTransportError(str(e)) from e
        text = (response.get("output") or {}).get("text") or ""
        return RetrievalResult(text=text, citations=_extract_citations(response))
