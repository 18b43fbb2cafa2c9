import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.fleet.tenancy import (
    belongs_to_tenant,
    entry_belongs_to_tenant,
    has_tenant_prefix,
    make_worker_id,
    owner_of,
)


def test_make_worker_id_and_owner_round_trip():
    worker_id = make_worker_id("alice@example.com", "3f9c2a")
    assert worker_id == "alice@example.com_3f9c2a"
    assert owner_of(worker_id, "default") == "alice@example.com"


def test_owner_of_without_separator_is_legacy_tenant():
    assert owner_of("legacytrader", "default") == "default"
    assert owner_of("_leading", "default") == "default"


def test_owner_of_uses_last_separator():
    assert owner_of("ops_team_abc123", "default") == "ops_team"


def test_belongs_to_tenant_by_literal_prefix():
    assert belongs_to_tenant("alice@example.com_w1", "alice@example.com", "default")
    assert not belongs_to_tenant("bob@example.com_w1", "alice@example.com", "default")


def test_legacy_tenant_owns_ids_without_email_prefix():
    assert belongs_to_tenant("binance_deepseek_1700000000", "default", "default")
    assert belongs_to_tenant("plainid", "default", "default")
    assert not belongs_to_tenant("alice@example.com_w1", "default", "default")


def test_email_prefix_detection_stops_at_first_separator():
    assert has_tenant_prefix("a@b.c_w1")
    assert not has_tenant_prefix("uuid_a@b.c")
    # A separator in position 0 does not end the scan
    assert has_tenant_prefix("_a@b.c")


def test_explicit_entry_tenant_wins_over_prefix():
    # Prefix says "ann", explicit tenant says "anna"
    assert not entry_belongs_to_tenant("anna_w1", "anna", "ann", "default")
    assert entry_belongs_to_tenant("anna_w1", "anna", "anna", "default")
    # Known ambiguity of the fallback: "ann" is a literal prefix of "anna_w1"
    assert entry_belongs_to_tenant("anna_w1", None, "ann", "default")
