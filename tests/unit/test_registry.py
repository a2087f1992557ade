"""
Unit tests for EndpointRegistry.
Uses SQLite in-memory database - no docker required.
"""

import pytest

from portal.services.shared.errors import NotFoundError, ValidationError
from portal.services.shared.models import AccessLogEntry, ManagedEndpoint
from portal.services.shared.schemas import EndpointOut


def make_endpoint_data(**kwargs) -> dict:
    defaults = {
        "name":     "db1",
        "hostname": "10.0.0.5",
        "port":     9090,
        "username": "admin",
        "secret":   "s3cret",
        "use_tls":  False,
    }
    defaults.update(kwargs)
    return defaults


# ── Create / read / update (basic lifecycle) ───────────────────────────────────

def test_create_list_update_keeps_secret(registry, codec):
    """Create, list, then update without a secret: the stored secret survives."""
    row = registry.create(make_endpoint_data(), created_by="alice")

    rows = registry.list()
    assert len(rows) == 1
    out = EndpointOut.model_validate(rows[0]).model_dump()
    assert out["name"] == "db1"
    assert "secret" not in out
    assert "secret_encrypted" not in out

    registry.update(row.id, {"port": 9443, "use_tls": True}, updated_by="alice")

    fetched = registry.get(row.id)
    assert fetched.port == 9443
    assert fetched.use_tls is True
    assert codec.decrypt(fetched.secret_encrypted) == "s3cret"


def test_create_stores_ciphertext_only(registry, db):
    row = registry.create(make_endpoint_data(), created_by="alice")
    stored = db.query(ManagedEndpoint).filter_by(id=row.id).one().secret_encrypted
    assert stored != "s3cret"
    assert "s3cret" not in stored


def test_create_sets_audit_fields(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    assert row.created_by == "alice"
    assert row.created_at is not None
    assert row.updated_by is None
    assert row.last_accessed is None


def test_create_uses_default_port_when_omitted(registry):
    row = registry.create(make_endpoint_data(port=None), created_by="alice")
    assert row.port == 9090


def test_create_strips_text_fields(registry):
    row = registry.create(make_endpoint_data(name="  db1 ", hostname=" 10.0.0.5"), created_by="alice")
    assert row.name == "db1"
    assert row.hostname == "10.0.0.5"


def test_reads_are_side_effect_free(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    first = EndpointOut.model_validate(registry.get(row.id)).model_dump()
    registry.list()
    second = EndpointOut.model_validate(registry.get(row.id)).model_dump()
    assert first == second


def test_list_ordered_by_name(registry):
    for name in ("web", "app", "db"):
        registry.create(make_endpoint_data(name=name), created_by="alice")
    assert [r.name for r in registry.list()] == ["app", "db", "web"]


def test_reveal_secret_decrypts(registry):
    row = registry.create(make_endpoint_data(secret="p@ss:word"), created_by="alice")
    assert registry.reveal_secret(row) == "p@ss:word"


# ── Validation ─────────────────────────────────────────────────────────────────

def test_create_missing_fields_reports_each(registry):
    with pytest.raises(ValidationError) as exc_info:
        registry.create({"port": 9090}, created_by="alice")
    assert set(exc_info.value.errors) == {"name", "hostname", "username", "secret"}


@pytest.mark.parametrize("port", [0, 65536, -1, True, "abc", 12.5])
def test_create_rejects_bad_port(registry, port):
    with pytest.raises(ValidationError) as exc_info:
        registry.create(make_endpoint_data(port=port), created_by="alice")
    assert "port" in exc_info.value.errors


@pytest.mark.parametrize("port", [1, 65535, "8080"])
def test_create_accepts_boundary_ports(registry, port):
    row = registry.create(make_endpoint_data(port=port), created_by="alice")
    assert row.port == int(port)


def test_create_rejects_overlong_name(registry):
    with pytest.raises(ValidationError) as exc_info:
        registry.create(make_endpoint_data(name="x" * 101), created_by="alice")
    assert "name" in exc_info.value.errors


def test_create_rejects_secret_mismatch(registry, db):
    with pytest.raises(ValidationError) as exc_info:
        registry.create(make_endpoint_data(confirm_secret="other"), created_by="alice")
    assert "confirm_secret" in exc_info.value.errors
    assert db.query(ManagedEndpoint).count() == 0


def test_create_rejects_empty_secret(registry):
    with pytest.raises(ValidationError) as exc_info:
        registry.create(make_endpoint_data(secret=""), created_by="alice")
    assert "secret" in exc_info.value.errors


@pytest.mark.parametrize("hostname", [
    "10.0.0.5/evil?#",
    "host name",
    "user@10.0.0.5",
    "10.0.0.5:9090",
    "[fd00::5]",
    "fe80::1%eth0",
])
def test_create_rejects_hostname_with_url_delimiters(registry, db, hostname):
    with pytest.raises(ValidationError) as exc_info:
        registry.create(make_endpoint_data(hostname=hostname), created_by="alice")
    assert "hostname" in exc_info.value.errors
    assert db.query(ManagedEndpoint).count() == 0


@pytest.mark.parametrize("hostname", ["fd00::5", "10.0.0.5", "cockpit-01.example.com"])
def test_create_accepts_ip_and_dns_hostnames(registry, hostname):
    assert registry.create(make_endpoint_data(hostname=hostname), created_by="alice").hostname == hostname


def test_update_rejects_hostname_with_url_delimiters(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    with pytest.raises(ValidationError) as exc_info:
        registry.update(row.id, {"hostname": "10.0.0.6/x"}, updated_by="alice")
    assert "hostname" in exc_info.value.errors
    assert registry.get(row.id).hostname == "10.0.0.5"


@pytest.mark.parametrize("use_tls", ["false", "true", 0, 1])
def test_create_rejects_non_boolean_use_tls(registry, use_tls):
    with pytest.raises(ValidationError) as exc_info:
        registry.create(make_endpoint_data(use_tls=use_tls), created_by="alice")
    assert "use_tls" in exc_info.value.errors


def test_update_rejects_non_boolean_use_tls(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    with pytest.raises(ValidationError) as exc_info:
        registry.update(row.id, {"use_tls": "false"}, updated_by="alice")
    assert "use_tls" in exc_info.value.errors
    assert registry.get(row.id).use_tls is False


def test_create_use_tls_defaults_to_false(registry):
    data = make_endpoint_data()
    del data["use_tls"]
    assert registry.create(data, created_by="alice").use_tls is False


def test_update_rejects_unknown_field(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    with pytest.raises(ValidationError) as exc_info:
        registry.update(row.id, {"owner": "mallory"}, updated_by="alice")
    assert exc_info.value.errors == {"owner": "unknown field"}


def test_update_failure_leaves_row_unchanged(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    with pytest.raises(ValidationError):
        registry.update(row.id, {"name": "renamed", "port": 0}, updated_by="alice")
    assert registry.get(row.id).name == "db1"


# ── Update semantics ───────────────────────────────────────────────────────────

def test_update_empty_secret_keeps_ciphertext(registry):
    row = registry.create(make_endpoint_data(), created_by="alice")
    before = row.secret_encrypted
    registry.update(row.id, {"secret": "", "description": "primary"}, updated_by="bob")
    after = registry.get(row.id)
    assert after.secret_encrypted == before
    assert after.description == "primary"
    assert after.updated_by == "bob"
    assert after.updated_at is not None


def test_update_new_secret_reencrypts(registry, codec):
    row = registry.create(make_endpoint_data(), created_by="alice")
    before = row.secret_encrypted
    registry.update(row.id, {"secret": "n3w", "confirm_secret": "n3w"}, updated_by="alice")
    after = registry.get(row.id)
    assert after.secret_encrypted != before
    assert codec.decrypt(after.secret_encrypted) == "n3w"


def test_update_can_clear_description(registry):
    row = registry.create(make_endpoint_data(description="old"), created_by="alice")
    registry.update(row.id, {"description": None}, updated_by="alice")
    assert registry.get(row.id).description is None


def test_update_unknown_id_raises(registry):
    with pytest.raises(NotFoundError):
        registry.update(999, {"name": "x"}, updated_by="alice")


# ── Delete / not found ─────────────────────────────────────────────────────────

def test_get_unknown_id_raises(registry):
    with pytest.raises(NotFoundError):
        registry.get(999)


def test_delete_unknown_id_changes_nothing(registry, access_log, db):
    """Deleting a missing id raises and leaves endpoints and log as they were."""
    row = registry.create(make_endpoint_data(), created_by="alice")
    access_log.append(row.id, "alice", success=True)

    with pytest.raises(NotFoundError):
        registry.delete(999)

    assert db.query(ManagedEndpoint).count() == 1
    assert db.query(AccessLogEntry).count() == 1


def test_delete_cascades_access_log(registry, access_log, db):
    keep = registry.create(make_endpoint_data(name="keep"), created_by="alice")
    gone = registry.create(make_endpoint_data(name="gone"), created_by="alice")
    access_log.append(keep.id, "alice", success=True)
    access_log.append(gone.id, "alice", success=True)
    access_log.append(gone.id, "bob", success=False)

    registry.delete(gone.id)

    with pytest.raises(NotFoundError):
        registry.get(gone.id)
    remaining = db.query(AccessLogEntry).all()
    assert [e.endpoint_id for e in remaining] == [keep.id]


# ── Recent for principal ───────────────────────────────────────────────────────

def test_recent_for_principal_empty(registry):
    assert registry.recent_for_principal("alice") == []


def test_recent_for_principal_returns_rows_in_log_order(registry, access_log, monkeypatch):
    a = registry.create(make_endpoint_data(name="a"), created_by="alice")
    b = registry.create(make_endpoint_data(name="b"), created_by="alice")
    monkeypatch.setattr(access_log, "recent_endpoint_ids", lambda principal_id, limit: [b.id, a.id])
    assert [r.name for r in registry.recent_for_principal("alice", 5)] == ["b", "a"]


def test_recent_for_principal_skips_deleted(registry, access_log):
    a = registry.create(make_endpoint_data(name="a"), created_by="alice")
    b = registry.create(make_endpoint_data(name="b"), created_by="alice")
    access_log.append(a.id, "alice", success=True)
    access_log.append(b.id, "alice", success=True)
    registry.delete(b.id)
    assert [r.id for r in registry.recent_for_principal("alice")] == [a.id]
