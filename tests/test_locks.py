import threading
import time

from pulse.agents.locks import KeyedLocks


def test_same_key_shares_a_reentrant_lock():
    locks = KeyedLocks()

    assert locks.get("c-1") is locks.get("c-1")
    assert locks.get("c-1") is not locks.get("c-2")
    with locks.hold("c-1"):
        with locks.hold("c-1"):
            pass
    assert len(locks) == 2


def test_hold_serializes_one_key():
    locks = KeyedLocks()
    active = []
    overlaps = []

    def work():
        with locks.hold("conversation"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(1)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
