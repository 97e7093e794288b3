"""Shared pytest fixtures: an in-memory Pinecone data plane behind the real gateway."""

from __future__ import annotations

from typing import Any

import pytest

from codecontext.db.pinecone import PineconeGateway


def matches_filter(metadata: dict[str, Any], flt: dict[str, Any] | None) -> bool:
    """Evaluate a Pinecone metadata filter ($eq $ne $in $nin $and $or)."""
    if not flt:
        return True
    for key, cond in flt.items():
        if key == "$and":
            if not all(matches_filter(metadata, sub) for sub in cond):
                return False
        elif key == "$or":
            if not any(matches_filter(metadata, sub) for sub in cond):
                return False
        elif isinstance(cond, dict):
            value = metadata.get(key)
            for op, operand in cond.items():
                if op == "$eq" and value != operand:
                    return False
                if op == "$ne" and value == operand:
                    return False
                if op == "$in" and value not in operand:
                    return False
                if op == "$nin" and value in operand:
                    return False
        elif metadata.get(key) != cond:
            return False
    return True


class FakePinecone:
    """Namespaced record store answering the four data-plane endpoints.

    ``lag`` makes the next N query calls return no matches, to simulate an
    index that has not caught up with recent writes yet.
    """

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.lag = 0
        self.fail_on: dict[str, Exception] = {}

    def records(self, namespace: str = "") -> list[dict[str, Any]]:
        return list(self.namespaces.get(namespace, {}).values())

    def handle(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((path, payload))
        if path in self.fail_on:
            raise self.fail_on[path]
        namespace = payload.get("namespace", "")

        if path == "/vectors/upsert":
            store = self.namespaces.setdefault(namespace, {})
            for vector in payload["vectors"]:
                store[vector["id"]] = dict(vector)
            return {"upsertedCount": len(payload["vectors"])}

        if path == "/query":
            if self.lag > 0:
                self.lag -= 1
                return {"matches": []}
            hits = [
                r for r in self.records(namespace)
                if matches_filter(r.get("metadata") or {}, payload.get("filter"))
            ]
            out = []
            for r in hits[: payload.get("topK", 10_000)]:
                match = {"id": r["id"], "score": 0.5, "metadata": dict(r.get("metadata") or {})}
                if payload.get("includeValues"):
                    match["values"] = r["values"]
                out.append(match)
            return {"matches": out, "namespace": namespace}

        if path == "/describe_index_stats":
            counts = {ns: {"vectorCount": len(rs)} for ns, rs in self.namespaces.items() if rs}
            return {
                "namespaces": counts,
                "dimension": 1536,
                "totalVectorCount": sum(c["vectorCount"] for c in counts.values()),
            }

        if path == "/vectors/delete":
            if payload.get("deleteAll"):
                self.namespaces.pop(namespace, None)
            else:
                store = self.namespaces.get(namespace, {})
                for record_id in payload.get("ids", []):
                    store.pop(record_id, None)
            return {}

        raise AssertionError(f"unexpected data-plane path {path}")


class FakeGateway(PineconeGateway):
    """Real gateway logic over a FakePinecone data plane."""

    def __init__(self, fake: FakePinecone) -> None:
        super().__init__(api_key="pc-test", index_name="test-index")
        self.fake = fake
        self._host = "test-index.svc.pinecone.io"

    def _data(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self.fake.handle(path, payload)


def fake_embed(text: str) -> list[float]:
    """Deterministic three-dimensional embedding."""
    return [float(len(text) % 7), 0.5, 1.0]


@pytest.fixture
def fake_index() -> FakePinecone:
    return FakePinecone()


@pytest.fixture
def gateway(fake_index) -> FakeGateway:
    return FakeGateway(fake_index)


@pytest.fixture
def embedder():
    return fake_embed


@pytest.fixture
def cli_env(tmp_path, monkeypatch, gateway):
    """Run CLI commands from *tmp_path* against the in-memory index.

    Keys come from the environment, plan polling is limited to one read and
    the embedder is replaced by ``fake_embed``.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PINECONE_API_KEY", "pc-test")
    monkeypatch.setenv("VOYAGE_API_KEY", "vo-test")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setenv("CODECONTEXT_INDEX_NAME", "test-index")
    monkeypatch.setenv("COLUMNS", "200")
    for var in ("CODECONTEXT_GENERATION_MODEL", "CODECONTEXT_EMBEDDING_MODEL", "CODECONTEXT_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("codecontext.config._GLOBAL_CONFIG_PATH", tmp_path / "global-config.yaml")
    (tmp_path / "codecontext.yaml").write_text("plans:\n  poll_attempts: 1\n", encoding="utf-8")

    monkeypatch.setattr(PineconeGateway, "from_config", classmethod(lambda cls, cfg: gateway))
    monkeypatch.setattr("codecontext.cli.common.Embedder", lambda model, api_key=None: fake_embed)
    return tmp_path
