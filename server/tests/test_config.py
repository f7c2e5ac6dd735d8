import pytest
from fastapi.testclient import TestClient

from conftest import FakeProvider, shifted
from faceverify import config
from faceverify.main import create_app
from faceverify.services.face_store import InMemoryFaceStore


def test_defaults_are_valid_without_supabase():
    config.validate_config(require_supabase=False)


@pytest.mark.parametrize(
    "name, value",
    [
        ("MATCH_THRESHOLD", -0.1),
        ("MATCH_THRESHOLD", float("nan")),
        ("MATCH_THRESHOLD", float("inf")),
        ("MATCH_STRATEGY", "random"),
        ("FACE_STORE", "redis"),
        ("FACE_DETECTION_MODEL", "mtcnn"),
        ("REQUEST_TIMEOUT_SECONDS", 0.0),
        ("REQUEST_TIMEOUT_SECONDS", float("nan")),
        ("CAMERA_WARMUP_SECONDS", float("inf")),
    ],
)
def test_unusable_settings_are_rejected(monkeypatch, name, value):
    monkeypatch.setattr(config, name, value)
    with pytest.raises(ValueError):
        config.validate_config(require_supabase=False)


def test_supabase_store_needs_credentials(monkeypatch):
    monkeypatch.setattr(config, "FACE_STORE", "supabase")
    monkeypatch.setattr(config, "SUPABASE_URL", None)
    monkeypatch.setattr(config, "SUPABASE_KEY", "key")

    with pytest.raises(ValueError):
        config.validate_config()
    config.validate_config(require_supabase=False)


def test_memory_store_needs_no_credentials(monkeypatch):
    monkeypatch.setattr(config, "FACE_STORE", "memory")
    monkeypatch.setattr(config, "SUPABASE_URL", None)
    monkeypatch.setattr(config, "SUPABASE_KEY", None)
    config.validate_config()


def test_app_uses_configured_strategy(monkeypatch, alice):
    monkeypatch.setattr(config, "MATCH_STRATEGY", "closest")
    store = InMemoryFaceStore([shifted(alice, 0.5), shifted(alice, 0.1)])

    with TestClient(create_app(provider=FakeProvider({b"alice": alice}), store=store)) as client:
        resp = client.post(
            "/v1/verify",
            files={"file": ("face.jpg", b"alice", "image/jpeg")},
            data={"client_id": "tab-1"},
        )

    assert resp.json()["status"] == "matched"
    # "first" would have stopped at the 0.5 candidate.
    assert resp.json()["distance"] == pytest.approx(0.1)
