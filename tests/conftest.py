"""Shared fixtures: environment, config and in-memory fakes of the remote providers.

The fakes speak the providers' HTTP dialects and are plugged into the real
clients through ``httpx.MockTransport``.
"""

import json
import logging
import os

# must be set before the API module configures logging at import time
os.environ.setdefault("LOG_TO_FILE", "false")

import httpx
import pytest

from shared.helper.HelperConfig import HelperConfig

PINECONE_HOST = "index.test"
OPENAI_HOST = "api.openai.com"
VECTOR_SIZE = 4


class FakePineconeIndex:
    """In-memory Pinecone data plane."""

    def __init__(self) -> None:
        self.records: dict[str, dict] = {}
        self.requests: list[tuple[str, dict]] = []
        self.filtered_delete_supported = True
        self.fail_stats = 0
        self.fail_upsert_calls: set[int] = set()
        self.fail_queries = False
        self.upsert_calls = 0
        self.scores: dict[str, float] = {}

    def ids_for(self, document_id: str) -> list[str]:
        return sorted(rid for rid, rec in self.records.items() if rec["metadata"].get("documentId") == document_id)

    def _matches_filter(self, record: dict, flt: dict | None) -> bool:
        if not flt:
            return True
        condition = flt.get("documentId", {})
        value = record["metadata"].get("documentId")
        if "$in" in condition:
            return value in condition["$in"]
        if "$eq" in condition:
            return value == condition["$eq"]
        return True

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else {}
        self.requests.append((path, body))

        if path == "/describe_index_stats":
            if self.fail_stats > 0:
                self.fail_stats -= 1
                return httpx.Response(503, json={"message": "unavailable"})
            return httpx.Response(200, json={"dimension": VECTOR_SIZE, "totalVectorCount": len(self.records)})

        if path == "/vectors/upsert":
            self.upsert_calls += 1
            if self.upsert_calls in self.fail_upsert_calls:
                return httpx.Response(500, json={"message": "write failed"})
            for vector in body["vectors"]:
                self.records[vector["id"]] = {"values": vector["values"], "metadata": vector["metadata"]}
            return httpx.Response(200, json={"upsertedCount": len(body["vectors"])})

        if path == "/query":
            if self.fail_queries:
                return httpx.Response(500, json={"message": "query failed"})
            hits = [
                {"id": rid, "score": self.scores.get(rid, 0.5), "metadata": rec["metadata"]}
                for rid, rec in sorted(self.records.items())
                if self._matches_filter(rec, body.get("filter"))
            ]
            hits.sort(key=lambda hit: hit["score"], reverse=True)
            return httpx.Response(200, json={"matches": hits[:body["topK"]]})

        if path == "/vectors/delete":
            if "filter" in body:
                if not self.filtered_delete_supported:
                    return httpx.Response(400, json={"message": "delete by metadata is not supported"})
                for rid in [rid for rid, rec in self.records.items() if self._matches_filter(rec, body["filter"])]:
                    del self.records[rid]
            for rid in body.get("ids", []):
                self.records.pop(rid, None)
            return httpx.Response(200, json={})

        return httpx.Response(404, json={"message": f"unknown path {path}"})


class FakeOpenAI:
    """Embeddings and chat completions with scriptable failures."""

    def __init__(self) -> None:
        self.embedding_failures: list[int] = []
        self.embedding_calls: list[list[str]] = []
        self.chat_responses: list[httpx.Response | dict] = []
        self.chat_calls: list[dict] = []

    @staticmethod
    def vector_for(text: str) -> list[float]:
        return [float(len(text) % 7) + 1.0, 0.5, 0.25, 0.125]

    @staticmethod
    def completion(content: str = "Answer.", model: str = "gpt-4", finish_reason: str = "stop") -> dict:
        return {
            "model": model,
            "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": finish_reason}],
            "usage": {"total_tokens": 42},
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path.endswith("/embeddings"):
            self.embedding_calls.append(list(body["input"]))
            if self.embedding_failures:
                return httpx.Response(self.embedding_failures.pop(0), json={"error": {"message": "scripted"}})
            data = [{"index": i, "embedding": self.vector_for(text)} for i, text in enumerate(body["input"])]
            # out of order on purpose, clients must sort by index
            return httpx.Response(200, json={"data": list(reversed(data)), "model": body["model"]})

        if path.endswith("/chat/completions"):
            self.chat_calls.append(body)
            if self.chat_responses:
                scripted = self.chat_responses.pop(0)
                if isinstance(scripted, httpx.Response):
                    return scripted
                return httpx.Response(200, json=scripted)
            return httpx.Response(200, json=self.completion(model=body["model"]))

        return httpx.Response(404, json={"error": {"message": f"unknown path {path}"}})


@pytest.fixture(autouse=True)
def pipeline_env(monkeypatch, tmp_path):
    """Minimal provider configuration pointing at the fakes."""
    values = {
        "LOG_TO_FILE": "false",
        "EMBED_ENGINE": "openai",
        "EMBED_OPENAI_API_KEY": "sk-embed-test",
        "LLM_ENGINE": "openai",
        "LLM_OPENAI_API_KEY": "sk-llm-test",
        "RAG_ENGINE": "pinecone",
        "RAG_PINECONE_INDEX_HOST": f"https://{PINECONE_HOST}",
        "RAG_PINECONE_API_KEY": "pc-test",
        "RAG_VECTOR_SIZE": str(VECTOR_SIZE),
        "RAG_UPSERT_DELAY": "0",
        "EMBED_BATCH_DELAY": "0",
        "EMBED_RETRY_BASE_DELAY": "0",
        "ANSWER_RETRY_BASE_DELAY": "0",
        "MEMORY_RELIEF_PAUSE_BEFORE": "0",
        "MEMORY_RELIEF_PAUSE_AFTER": "0",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return values


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=logging.getLogger("tests"))


@pytest.fixture
def fake_index() -> FakePineconeIndex:
    return FakePineconeIndex()


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def transport(fake_index, fake_openai) -> httpx.MockTransport:
    """One transport for all providers, dispatching by host."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == PINECONE_HOST:
            return fake_index.handle(request)
        if request.url.host == OPENAI_HOST:
            return fake_openai.handle(request)
        return httpx.Response(404)

    return httpx.MockTransport(handler)
