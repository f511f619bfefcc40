import asyncio
import unittest

from conceptgraph.graph.locks import KeyedLock, ReadWriteLock


class TestLocks(unittest.IsolatedAsyncioTestCase):
    async def test_keyed_lock_serializes_same_key(self):
        locks = KeyedLock()
        order = []

        async def worker(tag):
            async with locks.hold("k"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))
        self.assertEqual(order, ["a-in", "a-out", "b-in", "b-out"])
        self.assertEqual(len(locks), 0)

    async def test_shared_holders_overlap(self):
        rw = ReadWriteLock()
        active = []
        peak = 0

        async def reader():
            nonlocal peak
            async with rw.shared():
                active.append(1)
                peak = max(peak, len(active))
                await asyncio.sleep(0.01)
                active.pop()

        await asyncio.gather(*(reader() for _ in range(3)))
        self.assertEqual(peak, 3)

    async def test_exclusive_waits_for_readers(self):
        rw = ReadWriteLock()
        events = []
        entered = asyncio.Event()

        async def reader():
            async with rw.shared():
                entered.set()
                await asyncio.sleep(0.02)
                events.append("read-done")

        async def writer():
            await entered.wait()
            async with rw.exclusive():
                events.append("write")

        await asyncio.gather(reader(), writer())
        self.assertEqual(events, ["read-done", "write"])


if __name__ == "__main__":
    unittest.main()
