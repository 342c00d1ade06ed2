import pytest

from mpbot.errors import NotFoundError, StorageError, ValidationError
from mpbot.schemas import BOUND_TO_OTHER, Conflict, License, LicenseUpsert
from mpbot.services import LicenseService


def actions(licenses, key):
    return [h.action for h in licenses.list_license_history(key)]


def test_upsert_creates_with_defaults(licenses):
    lic = licenses.upsert_license(LicenseUpsert(key="ABCD"))
    assert isinstance(lic, License)
    assert (lic.plan, lic.uid, lic.uids, lic.expires_at, lic.max_devices, lic.active) == (
        "pro", None, [], None, 1, True,
    )
    assert actions(licenses, "ABCD") == ["create"]


def test_upsert_updates_only_supplied_fields(licenses):
    licenses.upsert_license(LicenseUpsert(key="K", plan="basic", expires_at=5_000))
    licenses.set_license_target_uid("K", "dev1")
    lic = licenses.upsert_license(LicenseUpsert(key="K", max_devices=3))
    assert lic.plan == "basic"
    assert lic.expires_at == 5_000
    assert lic.max_devices == 3
    assert lic.uid == "dev1"
    assert actions(licenses, "K") == ["upsert", "bind", "create"]


def test_upsert_with_uid_binds(licenses):
    lic = licenses.upsert_license(LicenseUpsert(key="K", uid="dev1"))
    assert lic.uid == "dev1"
    assert actions(licenses, "K") == ["bind", "create"]


def test_upsert_with_other_uid_returns_conflict(licenses):
    licenses.upsert_license(LicenseUpsert(key="K", uid="dev1"))
    result = licenses.upsert_license(LicenseUpsert(key="K", plan="max", uid="dev2"))
    assert isinstance(result, Conflict)
    lic = licenses.get_license_by_key("K")
    assert lic.plan == "max"
    assert lic.uids == ["dev1"]


def test_bind_once(licenses):
    licenses.upsert_license(LicenseUpsert(key="L"))
    assert licenses.set_license_target_uid("L", "A").uid == "A"
    result = licenses.set_license_target_uid("L", "B")
    assert isinstance(result, Conflict)
    assert result.reason == BOUND_TO_OTHER
    assert result.uids == ["A"]
    assert licenses.get_license_by_key("L").uid == "A"


def test_bind_same_uid_is_idempotent(licenses):
    licenses.upsert_license(LicenseUpsert(key="L"))
    licenses.set_license_target_uid("L", "A")
    assert licenses.set_license_target_uid("L", "A").uid == "A"
    assert actions(licenses, "L") == ["bind", "create"]


def test_bind_unknown_key(licenses):
    with pytest.raises(NotFoundError):
        licenses.set_license_target_uid("missing", "A")


def test_transfer_requires_matching_from_uid(licenses):
    licenses.upsert_license(LicenseUpsert(key="L", uid="A"))
    assert isinstance(licenses.transfer_license("L", "C", "B"), Conflict)
    assert isinstance(licenses.transfer_license("L", "C", "A"), Conflict)
    assert licenses.get_license_by_key("L").uid == "A"

    moved = licenses.transfer_license("L", "A", "B")
    assert moved.uid == "B"
    last = licenses.list_license_history("L", limit=1)[0]
    assert (last.action, last.from_uid, last.to_uid) == ("transfer", "A", "B")


def test_transfer_with_from_uid_on_unbound_license(licenses):
    licenses.upsert_license(LicenseUpsert(key="L"))
    assert licenses.transfer_license("L", "ghost", "B").uid == "B"
    assert actions(licenses, "L")[0] == "transfer"
    # a seat that is taken is not handed over by an unknown from_uid
    assert isinstance(licenses.transfer_license("L", "ghost", "C"), Conflict)


def test_auto_bind_on_first_use(licenses):
    licenses.upsert_license(LicenseUpsert(key="L"))
    assert licenses.transfer_license("L", None, "A").uid == "A"
    # the same device polling again changes nothing
    assert licenses.transfer_license("L", None, "A").uid == "A"
    assert isinstance(licenses.transfer_license("L", None, "B"), Conflict)
    assert licenses.get_license_by_key("L").uid == "A"
    assert actions(licenses, "L") == ["transfer", "create"]


def test_transfer_validation(licenses):
    licenses.upsert_license(LicenseUpsert(key="L"))
    with pytest.raises(ValidationError):
        licenses.transfer_license("L", None, "")
    with pytest.raises(ValidationError):
        licenses.transfer_license("L", None, None)
    with pytest.raises(NotFoundError):
        licenses.transfer_license("nope", None, "A")


def test_end_to_end_scenario(licenses):
    licenses.upsert_license(LicenseUpsert(key="ABCD", plan="pro"))
    assert licenses.check_license("device1").status == "not_found"

    assert licenses.transfer_license("ABCD", None, "device1").uid == "device1"

    st = licenses.check_license("device1")
    assert (st.ok, st.status, st.plan, st.key) == (True, "valid", "pro", "ABCD")
    assert st.expires_at is None

    assert isinstance(licenses.transfer_license("ABCD", None, "device2"), Conflict)
    assert licenses.get_license_by_key("ABCD").uids == ["device1"]


def test_check_inactive(licenses):
    licenses.upsert_license(LicenseUpsert(key="L", uid="A"))
    licenses.deactivate_license("L")
    st = licenses.check_license("A")
    assert (st.ok, st.status) == (False, "inactive")
    assert licenses.get_license_by_uid("A") is None

    licenses.activate_license("L")
    assert licenses.check_license("A").status == "valid"
    assert licenses.get_license_by_uid("A").key == "L"
    assert actions(licenses, "L")[:2] == ["activate", "deactivate"]


def test_check_prefers_active_license_after_reissue(licenses):
    licenses.upsert_license(LicenseUpsert(key="OLD", uid="dev1"))
    licenses.deactivate_license("OLD")
    licenses.upsert_license(LicenseUpsert(key="NEW"))
    assert licenses.transfer_license("NEW", None, "dev1").uid == "dev1"

    st = licenses.check_license("dev1")
    assert (st.ok, st.status, st.key) == (True, "valid", "NEW")
    assert licenses.get_license_by_uid("dev1").key == "NEW"

    licenses.deactivate_license("NEW")
    assert licenses.check_license("dev1").status == "inactive"


def test_expiry_boundary(licenses, clock):
    expires = clock.now + 10_000
    licenses.upsert_license(LicenseUpsert(key="L", uid="A", expires_at=expires))

    clock.now = expires - 1
    assert licenses.check_license("A").status == "valid"

    clock.now = expires
    assert licenses.check_license("A").status == "valid"

    clock.now = expires + 1
    st = licenses.check_license("A")
    assert (st.ok, st.status, st.plan, st.expires_at) == (False, "expired", "pro", expires)


def test_unparseable_expiry_never_expires(licenses):
    lic = licenses.upsert_license(LicenseUpsert(key="L", uid="A", expires_at="not a date"))
    assert lic.expires_at is None
    assert licenses.check_license("A").ok


def test_iso_expiry_is_converted(licenses):
    lic = licenses.upsert_license(LicenseUpsert(key="L", expires_at="2030-01-01T00:00:00Z"))
    assert lic.expires_at == 1_893_456_000_000


def test_renew(licenses, clock):
    licenses.upsert_license(LicenseUpsert(key="L", uid="A", expires_at=clock.now - 1))
    assert licenses.check_license("A").status == "expired"
    licenses.renew_license("L", None)
    assert licenses.check_license("A").status == "valid"
    assert actions(licenses, "L")[0] == "renew"
    with pytest.raises(NotFoundError):
        licenses.renew_license("nope", None)
    with pytest.raises(ValidationError):
        licenses.renew_license("L", "tomorrow")


def test_max_devices_caps_bindings(licenses):
    licenses.upsert_license(LicenseUpsert(key="L", max_devices=2))
    licenses.set_license_target_uid("L", "A")
    licenses.set_license_target_uid("L", "B")
    assert isinstance(licenses.set_license_target_uid("L", "C"), Conflict)
    assert isinstance(licenses.transfer_license("L", None, "C"), Conflict)

    lic = licenses.transfer_license("L", "A", "C")
    assert lic.uids == ["C", "B"]
    assert lic.uid == "C"
    assert licenses.check_license("B").ok
    assert licenses.check_license("A").status == "not_found"


def test_lowering_max_devices_keeps_existing_seats(licenses):
    licenses.upsert_license(LicenseUpsert(key="L", max_devices=2))
    licenses.set_license_target_uid("L", "A")
    licenses.set_license_target_uid("L", "B")
    lic = licenses.upsert_license(LicenseUpsert(key="L", max_devices=1))
    assert lic.uids == ["A", "B"]
    licenses.release_license("L", "B")
    assert isinstance(licenses.set_license_target_uid("L", "B"), Conflict)


def test_release(licenses):
    licenses.upsert_license(LicenseUpsert(key="L", uid="A"))
    assert licenses.release_license("L").uids == []
    assert licenses.set_license_target_uid("L", "B").uid == "B"
    assert licenses.release_license("L", "zzz").uids == ["B"]
    assert actions(licenses, "L") == ["bind", "release", "bind", "create"]
    with pytest.raises(NotFoundError):
        licenses.release_license("nope")


def test_history_newest_first_and_limited(licenses):
    licenses.upsert_license(LicenseUpsert(key="L"))
    licenses.deactivate_license("L")
    licenses.activate_license("L")
    assert actions(licenses, "L") == ["activate", "deactivate", "create"]
    assert [h.action for h in licenses.list_license_history("L", limit=1)] == ["activate"]
    assert licenses.list_license_history("unknown") == []


def test_list_licenses_newest_first(licenses):
    licenses.upsert_license(LicenseUpsert(key="first"))
    licenses.upsert_license(LicenseUpsert(key="second"))
    assert [lic.key for lic in licenses.list_licenses()] == ["second", "first"]


class RacingStore:
    """Lets a rival writer bind a device right before our first write."""

    def __init__(self, inner, rival):
        self.inner = inner
        self.rival = rival
        self.raced = False

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update_license(self, lic, expected_version, history=None):
        if not self.raced:
            self.raced = True
            self.rival()
        return self.inner.update_license(lic, expected_version, history)


def test_racing_binds_only_one_wins(store, clock):
    setup = LicenseService(store, clock=clock)
    setup.upsert_license(LicenseUpsert(key="L"))

    racing = RacingStore(store, lambda: setup.transfer_license("L", None, "rival"))
    result = LicenseService(racing, clock=clock).transfer_license("L", None, "me")

    assert isinstance(result, Conflict)
    assert store.get_license("L").uids == ["rival"]
    assert [h.to_uid for h in setup.list_license_history("L") if h.action == "transfer"] == ["rival"]


class AlwaysStale:
    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update_license(self, lic, expected_version, history=None):
        return False


def test_mutation_gives_up_when_it_never_settles(store, clock):
    LicenseService(store, clock=clock).upsert_license(LicenseUpsert(key="L"))
    with pytest.raises(StorageError):
        LicenseService(AlwaysStale(store), clock=clock).set_license_target_uid("L", "A")
