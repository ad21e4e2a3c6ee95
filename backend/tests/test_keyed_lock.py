import asyncio

from bustrack.core.keyed_lock import KeyedLock


def test_same_key_runs_in_arrival_order():
    lock = KeyedLock()
    log = []

    async def worker(name):
        async with lock.hold("bus-1"):
            log.append(f"{name}:start")
            await asyncio.sleep(0)
            log.append(f"{name}:end")

    async def run():
        await asyncio.gather(worker("a"), worker("b"), worker("c"))

    asyncio.run(run())
    assert log == ["a:start", "a:end", "b:start", "b:end", "c:start", "c:end"]


def test_different_keys_do_not_block():
    lock = KeyedLock()

    async def run():
        async with lock.hold("bus-1"):
            assert lock.is_locked("bus-1")
            # Would deadlock if keys shared a lock
            async with lock.hold("bus-2"):
                assert lock.is_locked("bus-2")
                assert len(lock) == 2

    asyncio.run(run())


def test_idle_keys_are_forgotten():
    lock = KeyedLock()

    async def run():
        async with lock.hold("bus-1"):
            pass

    asyncio.run(run())
    assert len(lock) == 0
    assert not lock.is_locked("bus-1")


def test_released_after_exception():
    lock = KeyedLock()

    async def run():
        try:
            async with lock.hold("bus-1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        async with lock.hold("bus-1"):
            return True

    assert asyncio.run(run())
    assert len(lock) == 0
