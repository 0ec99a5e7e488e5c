"""Live display: a single-slot, replace-in-place holder for a turn's latest snapshot."""

import asyncio
from collections.abc import AsyncIterator

from weatherchat.schemas.chat import SnapshotKind, UISnapshot


class LiveDisplay:
    """Last-write-wins cell the caller polls or subscribes to.

    Every write bumps ``version``; subscribers that fall behind skip straight to
    the newest snapshot. ``finish`` publishes the final snapshot and closes the
    slot for writing.
    """

    def __init__(self) -> None:
        self._version = 0
        self._snapshot = UISnapshot(kind=SnapshotKind.THINKING, version=0)
        self._changed = asyncio.Event()

    @property
    def current(self) -> UISnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_final(self) -> bool:
        return self._snapshot.final

    def _publish(self, snapshot: UISnapshot, final: bool) -> UISnapshot:
        if self.is_final:
            raise RuntimeError("Display is already final")
        self._version += 1
        self._snapshot = snapshot.model_copy(update={"version": self._version, "final": final})
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()
        return self._snapshot

    def update(self, snapshot: UISnapshot) -> UISnapshot:
        """Replace the current snapshot."""
        return self._publish(snapshot, final=False)

    def finish(self, snapshot: UISnapshot | None = None) -> UISnapshot:
        """Publish the final snapshot (the current one if none is given)."""
        return self._publish(snapshot or self._snapshot, final=True)

    async def wait_for_update(self, after_version: int) -> UISnapshot:
        """Wait until a snapshot newer than ``after_version`` exists, then return it."""
        while self._version <= after_version and not self.is_final:
            await self._changed.wait()
        return self._snapshot

    async def subscribe(self) -> AsyncIterator[UISnapshot]:
        """Yield the current snapshot, then each newer one, until the final one."""
        snapshot = self._snapshot
        yield snapshot
        while not snapshot.final:
            snapshot = await self.wait_for_update(snapshot.version)
            yield snapshot
