import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


class Dispatcher:
    """Runs every contract call on one event loop owned by a background thread.

    Request threads hand coroutines over with ``run`` and block until they
    finish, so the contracts see calls one at a time in submission order.
    """

    def __init__(self, name: str = "rps-dispatcher"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._serve, name=name, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def run(self, coro, timeout: float = 30.0):
        if self._loop.is_closed():
            raise RuntimeError("Dispatcher is closed")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def call(self, fn, *args, **kwargs):
        """Run a plain function on the loop, ordered with the writes."""
        async def _invoke():
            return fn(*args, **kwargs)

        return self.run(_invoke())

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()

    def close(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
        logger.debug("dispatcher stopped")
