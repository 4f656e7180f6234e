import threading

import pytest

from tcpchat.constants import MSG_NAME_TAKEN, MSG_SERVER_FULL
from tcpchat.errors import CapacityExceeded, NameConflict
from tcpchat.roster import Roster


def test_register_and_lookup(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    b, _ = conn_pair()

    roster.register(a, "alice")
    roster.register(b, "bob")

    assert roster.count == 2
    assert roster.find_by_name("alice") is a
    assert roster.find_by_name("bob") is b
    assert roster.name_of(a) == "alice"
    assert roster.all_occupied() == [(a, "alice"), (b, "bob")]


def test_duplicate_name_is_rejected_and_existing_entry_kept(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    b, _ = conn_pair()
    roster.register(a, "alice")

    with pytest.raises(NameConflict) as exc:
        roster.register(b, "alice")

    assert exc.value.reply == MSG_NAME_TAKEN
    assert roster.find_by_name("alice") is a
    assert b not in roster
    assert roster.count == 1


def test_names_are_case_sensitive(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    b, _ = conn_pair()
    roster.register(a, "alice")
    roster.register(b, "Alice")
    assert roster.count == 2


def test_capacity_exceeded(conn_pair) -> None:
    roster = Roster(capacity=1)
    a, _ = conn_pair()
    b, _ = conn_pair()
    roster.register(a, "alice")

    with pytest.raises(CapacityExceeded) as exc:
        roster.register(b, "bob")
    assert exc.value.reply == MSG_SERVER_FULL
    assert roster.find_by_name("bob") is None


def test_connection_registers_once(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    roster.register(a, "alice")
    with pytest.raises(ValueError):
        roster.register(a, "alice2")


def test_remove_frees_name_for_reuse(conn_pair) -> None:
    roster = Roster(capacity=1)
    a, _ = conn_pair()
    b, _ = conn_pair()
    roster.register(a, "alice")

    assert roster.remove(a) == "alice"
    assert roster.find_by_name("alice") is None

    roster.register(b, "alice")
    assert roster.find_by_name("alice") is b


def test_remove_unknown_connection_is_a_noop(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    b, _ = conn_pair()
    roster.register(a, "alice")

    assert roster.remove(b) is None
    assert roster.remove(a) == "alice"
    assert roster.remove(a) is None
    assert roster.count == 0


def test_all_occupied_is_a_snapshot(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    roster.register(a, "alice")
    snap = roster.all_occupied()
    roster.remove(a)
    assert snap == [(a, "alice")]
    assert roster.all_occupied() == []


def test_clear_returns_connections(conn_pair) -> None:
    roster = Roster(capacity=4)
    a, _ = conn_pair()
    b, _ = conn_pair()
    roster.register(a, "alice")
    roster.register(b, "bob")
    assert set(roster.clear()) == {a, b}
    assert roster.count == 0
    assert roster.find_by_name("alice") is None


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Roster(capacity=0)


def test_concurrent_registrations_of_one_name_admit_exactly_one(conn_pair) -> None:
    roster = Roster(capacity=64)
    conns = [conn_pair()[0] for _ in range(16)]
    results: list[bool] = []
    start = threading.Barrier(len(conns))

    def attempt(conn) -> None:
        start.wait()
        try:
            roster.register(conn, "same")
        except NameConflict:
            results.append(False)
        else:
            results.append(True)

    threads = [threading.Thread(target=attempt, args=(c,)) for c in conns]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert roster.count == 1
