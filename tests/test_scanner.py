import logging
import random

import pytest

from uid_bus import BusConfig, UidScanner
from uid_bus.config import ALPHABET, MAXLEN
from uid_bus.errors import ConfigError
from uid_bus.scanner import SearchFrame

from conftest import EOF

A = "CB0000000000000000A"
B = "CB0000000000000000B"


def random_uids(prefix, count, seed):
    rng = random.Random(seed)
    uids = set()
    while len(uids) < count:
        uids.add(prefix + "".join(rng.choice(ALPHABET) for _ in range(MAXLEN)))
    return sorted(uids)


# --- End-to-end scenarios over an in-process responder ---

def test_single_device(make_bus):
    bus = make_bus([A])
    result = bus.scanner.scan(["CB"])
    assert result.found == [A]
    assert bus.sent.count("SETADDR:" + A) == 1
    assert [line for line in bus.sent if line.startswith("SETADDR:")] == ["SETADDR:" + A]
    assert bus.sent[0] == "RESETALL"


def test_two_devices_differing_in_last_char(make_bus):
    bus = make_bus([A, B])
    result = bus.scanner.scan(["CB"])
    assert sorted(result.found) == [A, B]
    assert result.collisions >= 1
    # Siblings are visited in alphabet order
    assert result.found == [A, B]


def test_two_devices_differing_in_middle(make_bus):
    uids = ["CBAA00000000000000X", "CBBB00000000000000X"]
    bus = make_bus(uids)
    result = bus.scanner.scan(["CB"])
    assert sorted(result.found) == uids
    # Both share the 15-character suffix, so the walk has to get that deep
    deepest = max(len(p) for p in bus.probes() if p not in uids)
    assert deepest >= 2 + 16
    assert "CBX" in bus.probes()


def test_disjoint_prefixes(make_bus):
    cb = "CB0000000000000000A"
    hs = "HS0000000000000000B"
    bus = make_bus([cb, hs])
    result = bus.scanner.scan(["CB", "HS"])
    assert [run.found for run in result.runs] == [[cb], [hs]]
    assert bus.sent.count("RESETALL") == 2


def test_prefix_without_devices(make_bus):
    bus = make_bus([A])
    result = bus.scanner.scan(["HS"])
    assert result.found == []
    assert result.runs[0].probes == 1


@pytest.mark.parametrize("prefix, seed", [("CB", 1), ("HS", 2), ("Zq", 3)])
def test_discovers_every_device(make_bus, prefix, seed):
    uids = random_uids(prefix, 12, seed)
    bus = make_bus(uids, rng_seed=seed)
    result = bus.scanner.scan([prefix])
    assert sorted(result.found) == uids
    assert len(result.found) == len(set(result.found))
    assert result.runs[0].unresolved == []


def test_discovers_close_neighbours_with_mixture_collisions(make_bus):
    uids = ["HS0000000000000000A", "HS0000000000000000B",
            "HS00000000000000A0A", "HS1000000000000000A"]
    bus = make_bus(uids, rng_seed=5)
    result = bus.scanner.scan(["HS"])
    assert sorted(result.found) == sorted(uids)


def test_ignores_devices_of_other_prefixes(make_bus):
    uids = random_uids("CB", 4, 9) + random_uids("HS", 4, 10)
    bus = make_bus(uids)
    result = bus.scanner.scan(["HS"])
    assert sorted(result.found) == sorted(u for u in uids if u.startswith("HS"))


def test_each_uid_muted_once(make_bus):
    uids = random_uids("CB", 6, 11)
    bus = make_bus(uids)
    bus.scanner.scan(["CB"])
    mutes = [line for line in bus.sent if line.startswith("SETADDR:")]
    assert sorted(mutes) == sorted("SETADDR:" + uid for uid in uids)


def test_reset_before_each_prefix_unmutes_previous_run(make_bus):
    bus = make_bus([A, B])
    first = bus.scanner.scan(["CB"])
    second = bus.scanner.scan(["CB"])
    assert sorted(first.found) == sorted(second.found) == [A, B]


def test_patterns_are_probed_once_except_for_confirmation(make_bus):
    bus = make_bus(random_uids("CB", 5, 12))
    bus.scanner.scan(["CB"])
    probes = bus.probes()
    # A pattern is probed, re-probed to confirm, verified by full UID
    # and revisited after muting: never more than four times
    assert max(probes.count(p) for p in set(probes)) <= 4


def test_termination_is_roughly_linear(make_bus):
    uids = random_uids("CB", 8, 13)
    bus = make_bus(uids)
    result = bus.scanner.scan(["CB"])
    assert result.probes <= len(uids) * MAXLEN * len(ALPHABET)


def test_duplicate_uids_are_reported_unresolved(make_bus):
    bus = make_bus([A, A])
    result = bus.scanner.scan(["CB"])
    assert result.found == []
    assert result.runs[0].unresolved == [A]


def test_duplicate_prefixes_scanned_once(make_bus):
    bus = make_bus([A])
    result = bus.scanner.scan(["CB", "CB"])
    assert len(result.runs) == 1


def test_bad_prefix_is_rejected_before_any_traffic(make_bus):
    bus = make_bus([A])
    with pytest.raises(ConfigError):
        bus.scanner.scan(["CB", "HSX"])
    assert bus.sent == []


def test_no_prefixes():
    with pytest.raises(ConfigError):
        UidScanner(None).scan([])


def test_unmute_and_reset_all_send_control_lines(scripted):
    transport = scripted()
    scanner = UidScanner(transport)
    scanner.mute(A)
    scanner.unmute(A)
    scanner.reset_all()
    assert transport.sent == ["SETADDR:" + A, "RESETADDR:" + A, "RESETALL"]


def test_search_frame_defaults():
    frame = SearchFrame("A0")
    assert frame.next_index == 0


# --- Partial failures with scripted replies ---

def test_timeout_is_silence(scripted):
    transport = scripted()
    result = UidScanner(transport).scan(["CB"])
    assert result.found == []
    assert transport.sent == ["RESETALL", "CB"]


def test_malformed_reply_forces_descent(scripted):
    transport = scripted({"CB": ["CB0"]})
    result = UidScanner(transport).scan(["CB"])
    assert result.collisions == 1
    assert result.probes == 1 + len(ALPHABET)
    assert transport.sent[2:4] == ["CB0", "CB1"]


def test_confirmation_mismatch_is_a_collision(scripted, caplog):
    transport = scripted({
        "CB": [A, B],
        "CBA": [A, A],
        A: [A],
        "CBB": [B, B],
        B: [B],
    })
    with caplog.at_level(logging.WARNING):
        result = UidScanner(transport).scan(["CB"])
    assert "Confirmation mismatch" in caplog.text
    assert result.found == [A, B]


def test_silent_confirmation_is_a_collision(scripted):
    transport = scripted({"CB": [A], "CBA": [A, A], A: [A]})
    result = UidScanner(transport).scan(["CB"])
    assert result.found == [A]
    assert result.collisions == 1


def test_phantom_candidate_is_not_recorded(scripted, caplog):
    phantom = "CB0000000000000000Z"
    transport = scripted({
        # A garbage reply that happens to repeat
        "CB": [phantom, phantom],
        "CBA": [A, A],
        A: [A],
    })
    with caplog.at_level(logging.WARNING):
        result = UidScanner(transport).scan(["CB"])
    assert result.found == [A]
    assert "SETADDR:" + phantom not in transport.sent
    assert phantom in transport.sent
    assert "did not answer its own address" in caplog.text


def test_device_ignoring_mute_terminates(scripted, caplog):
    transport = scripted({line: [A] * 100 for line in
                          ["CB"] + ["CB" + A[2:][-n:] for n in range(1, MAXLEN + 1)]})
    with caplog.at_level(logging.WARNING):
        result = UidScanner(transport).scan(["CB"])
    assert result.found == [A]
    assert [line for line in transport.sent if line.startswith("SETADDR:")] == ["SETADDR:" + A]
    assert "still answers after SETADDR" in caplog.text
    assert result.runs[0].unresolved == [A]


def test_end_of_stream_drains_cleanly(scripted):
    transport = scripted({"CB": [EOF]})
    result = UidScanner(transport).scan(["CB", "HS"])
    assert result.closed
    assert len(result.runs) == 1
    assert "HS" not in transport.sent


def test_end_of_stream_keeps_what_was_found(scripted):
    # Root collides, the line drops right after the first device is muted
    transport = scripted({"CB": [""], "CBA": [A, A], A: [A], "CBB": [EOF]})
    result = UidScanner(transport).scan(["CB"])
    assert result.found == [A]
    assert result.closed


def test_timeout_comes_from_config(scripted):
    seen = []

    class Recording(scripted):
        def read_line(self, timeout=None):
            seen.append(timeout)
            return super().read_line(timeout)

    UidScanner(Recording(), BusConfig(timeout_ms=50)).scan(["CB"])
    assert seen == [0.05]
