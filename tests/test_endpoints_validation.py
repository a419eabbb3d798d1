"""Validation tests for the HTTP endpoints."""
import pytest

from conftest import SAMPLE_WIKI_JSON, FakeBackend, Recorder
from errors import ConfigurationMissing, MetadataNotFound, PersistenceError
from indexer import IndexerServices


@pytest.fixture
def services(fake_store, fake_storage, sample_metadata, monkeypatch):
    """Route the app through in-memory collaborators."""
    import indexer

    services = IndexerServices(
        store=fake_store,
        storage=fake_storage,
        backends={"anthropic": FakeBackend("anthropic", response=SAMPLE_WIKI_JSON)},
        priority=["anthropic", "openai", "gemini"],
        fetch_metadata=Recorder(sample_metadata),
        fetch_pdf=Recorder(b"%PDF origin"),
        deadline_seconds=60,
    )
    monkeypatch.setattr(indexer, "build_default_services", lambda model_overrides=None: services)
    return services


def test_health(client):
    """GET /health answers without touching configuration."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_index_requires_arxiv_id(client):
    """POST /papers/index without an identifier is a 400."""
    response = client.post("/papers/index", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing arxiv_id"


def test_index_rejects_unknown_provider(client):
    """provider must be one of the known backends."""
    response = client.post("/papers/index", json={"arxiv_id": "1706.03762", "provider": "mistral"})
    assert response.status_code == 422
    body = response.json()
    assert body["error"].startswith("Invalid request: body.provider")
    assert body["debug"]["notes"][0]["note"] == "invalid request"
    assert "detail" not in body


def test_index_rejects_non_boolean_force(client):
    """force must be a boolean."""
    response = client.post("/papers/index", json={"arxiv_id": "1706.03762", "force": "sometimes"})
    assert response.status_code == 422
    assert "body.force" in response.json()["error"]


def test_index_rejects_malformed_json(client):
    """A body that is not JSON gets the error shape too."""
    response = client.post(
        "/papers/index", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"].startswith("Invalid request")
    assert "t0" in body["debug"]


def test_index_success_body(client, services, sample_arxiv_id):
    """A fresh paper is indexed and returned with provider details."""
    response = client.post("/papers/index", json={"arxiv_id": f"https://arxiv.org/abs/{sample_arxiv_id}v5"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["alreadyIndexed"] is False
    assert body["provider"] == "anthropic"
    assert body["providerErrors"] == {}
    assert body["data"]["arxiv_id"] == sample_arxiv_id
    assert body["data"]["status"] == "cached"
    assert "debug" not in body


def test_index_already_indexed(client, services, sample_arxiv_id):
    """Second call returns the stored row without regenerating."""
    client.post("/papers/index", json={"arxiv_id": sample_arxiv_id})
    response = client.post("/papers/index", json={"arxiv_id": sample_arxiv_id})

    assert response.status_code == 200
    body = response.json()
    assert body["alreadyIndexed"] is True
    assert "provider" not in body
    assert services.backends["anthropic"].calls == 1


def test_index_debug_trace(client, services, sample_arxiv_id):
    """debug=true attaches the request trace."""
    response = client.post("/papers/index", json={"arxiv_id": sample_arxiv_id, "debug": True})

    debug = response.json()["debug"]
    assert isinstance(debug["t0"], int)
    notes = [item["note"] for item in debug["notes"]]
    assert notes[0] == "env summary"
    assert notes[-1] == "done"


def test_index_fatal_error_includes_trace(client, services, sample_arxiv_id):
    """Fatal failures answer with the error and the trace so far."""
    services.fetch_metadata = Recorder(error=MetadataNotFound(f"No arXiv entry found for {sample_arxiv_id}"))

    response = client.post("/papers/index", json={"arxiv_id": sample_arxiv_id})

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == f"No arXiv entry found for {sample_arxiv_id}"
    assert body["debug"]["notes"][-1]["note"] == "fatal"


def test_index_missing_configuration(client, monkeypatch):
    """Missing storage secrets are a 500 with an actionable message."""
    import indexer

    def factory(model_overrides=None):
        raise ConfigurationMissing("Missing storage secrets: set SERVICE_ROLE_KEY and PROJECT_URL (or SUPABASE_URL)")

    monkeypatch.setattr(indexer, "build_default_services", factory)
    response = client.post("/papers/index", json={"arxiv_id": "1706.03762"})

    assert response.status_code == 500
    assert "SERVICE_ROLE_KEY" in response.json()["error"]


def test_index_unexpected_error_is_500(client, services, sample_arxiv_id):
    """Unexpected exceptions keep the same response shape."""
    services.fetch_metadata = Recorder(error=KeyError("title"))

    response = client.post("/papers/index", json={"arxiv_id": sample_arxiv_id})

    assert response.status_code == 500
    assert "debug" in response.json()


def test_get_paper(client, monkeypatch, sample_arxiv_id):
    """GET /papers/{arxiv_id} normalizes the identifier before lookup."""
    import db

    lookups = []

    def fake_lookup(arxiv_id):
        lookups.append(arxiv_id)
        return {"id": 1, "arxiv_id": arxiv_id, "title": "Attention Is All You Need"}

    monkeypatch.setattr(db, "get_paper_by_arxiv_id", fake_lookup)
    response = client.get(f"/papers/arXiv:{sample_arxiv_id}v2")

    assert response.status_code == 200
    assert response.json()["title"] == "Attention Is All You Need"
    assert lookups == [sample_arxiv_id]


def test_get_paper_not_found(client, monkeypatch):
    """Unknown papers are a 404."""
    import db

    monkeypatch.setattr(db, "get_paper_by_arxiv_id", lambda arxiv_id: None)
    response = client.get("/papers/0000.00000")
    assert response.status_code == 404


def test_get_paper_database_error(client, monkeypatch):
    """Database failures surface with their status."""
    import db

    def broken(arxiv_id):
        raise PersistenceError("connection refused")

    monkeypatch.setattr(db, "get_paper_by_arxiv_id", broken)
    response = client.get("/papers/1706.03762")
    assert response.status_code == 500
