"""ReadWriteLock: shared readers, exclusive writer."""

import threading
import time

from tankmon.unit.rwlock import ReadWriteLock


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(3, timeout=2.0)

        def reader():
            with lock.read():
                # all three must be inside at once or the barrier times out
                inside.wait()

        ts = [threading.Thread(target=reader) for _ in range(3)]
        for t in ts:
            t.start()
        for t in ts:
            t.join()

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        writer_in = threading.Event()

        def writer():
            with lock.write():
                writer_in.set()
                time.sleep(0.05)
                events.append("w-done")

        def reader():
            writer_in.wait()
            with lock.read():
                events.append("r")

        w = threading.Thread(target=writer)
        r = threading.Thread(target=reader)
        w.start()
        r.start()
        w.join()
        r.join()

        assert events == ["w-done", "r"]

    def test_counter_under_write_lock(self):
        lock = ReadWriteLock()
        counter = {"n": 0}

        def bump():
            for _ in range(1000):
                with lock.write():
                    counter["n"] += 1

        ts = [threading.Thread(target=bump) for _ in range(4)]
        for t in ts:
            t.start()
        for t in ts:
            t.join()

        assert counter["n"] == 4000

    def test_released_after_exception(self):
        lock = ReadWriteLock()
        try:
            with lock.write():
                raise RuntimeError("x")
        except RuntimeError:
            pass
        with lock.read():
            pass
        with lock.write():
            pass
