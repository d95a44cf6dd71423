"""In-memory transport answering connection requests from fixed tables."""

from __future__ import annotations

import asyncio

from cutviz import TransportError

DIMENSIONS = {
    "test03": [{"id": "a", "label": "Alpha"}, {"id": "b", "label": "Beta"}],
    "test06": [{"id": "FR-75", "label": "Paris"}, {"id": "FR", "label": "France"}],
}

OBSERVATIONS = {
    None: [{"total": 2000}],
    "test02": [{"id": "2024-01-01", "total": 4}, {"id": "2024-02-01", "total": 6}],
    "test03": [{"id": "b", "total": 500}, {"id": "a", "total": 1500}],
    "test04": [{"id": 0, "total": 3}, {"id": 5, "total": 7}],
    "test05": [{"id": 1.5, "total": 2}],
    "test06": [
        {"id": "FR-75", "total": 10, "level": "city"},
        {"id": "FR", "total": 30, "level": "country"},
    ],
}


class FakeTransport:
    """Answers connection requests from the tables above.

    ``hold()`` makes every following request wait until ``release()``;
    ``hold(path)`` and ``release(path)`` do the same for one path only.
    Paths listed in ``failing`` raise TransportError.
    """

    def __init__(self):
        self.requests: list[tuple[str, list[tuple[str, str]]]] = []
        self.failing: set[str] = set()
        self._gates: dict[str | None, asyncio.Event] = {}

    def hold(self, path: str | None = None) -> None:
        self._gates[path] = asyncio.Event()

    def release(self, path: str | None = None) -> None:
        gate = self._gates.pop(path, None)
        if gate is not None:
            gate.set()

    async def fetch(self, path, params):
        self.requests.append((path, list(params)))
        gate = self._gates.get(path) or self._gates.get(None)
        if gate is not None:
            await gate.wait()
        if path in self.failing:
            raise TransportError(f"{path} is unavailable")

        parts = path.strip("/").split("/")
        kind = parts[2]
        dimension = parts[3] if len(parts) == 4 else None
        if kind == "dimensions":
            return {dimension: DIMENSIONS[dimension]}
        return OBSERVATIONS[dimension]


async def settle(rounds: int = 10) -> None:
    """Let pending connection tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)
