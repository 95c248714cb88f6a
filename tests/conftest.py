"""Shared fixtures for stab tests."""

from typing import Dict, Iterable, List, Optional

import pytest

from stab.core.config import Config
from stab.core.errors import HostError
from stab.core.storage import Storage
from stab.core.types import Resource
from stab.host import ResourceHost
from stab.system import TabSteward

MINUTE = 60 * 1000


class FakeClock:
    """Settable epoch-ms clock."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeHost(ResourceHost):
    """In-memory host that records every call."""

    def __init__(self, resources: Iterable[Resource] = (), memory: Optional[Dict[str, int]] = None):
        self.resources: Dict[str, Resource] = {r.id: r for r in resources}
        self.memory = memory
        self.remove_calls: List[List[str]] = []
        self.groups: List[Dict] = []
        self.windows: Dict[str, List[str]] = {}
        self.fail_remove_for: set = set()
        self.fail_group_named: set = set()

    def add(self, **kwargs) -> Resource:
        r = Resource(**kwargs)
        self.resources[r.id] = r
        return r

    def focus(self, resource_id: str) -> None:
        for r in self.resources.values():
            r.active = r.id == resource_id

    def list_resources(self) -> List[Resource]:
        return list(self.resources.values())

    def remove(self, resource_ids):
        ids = list(resource_ids)
        self.remove_calls.append(ids)
        if self.fail_remove_for & set(ids):
            raise HostError("Tabs cannot be edited right now")
        for rid in ids:
            self.resources.pop(rid, None)

    def create_window(self, seed_id):
        window_id = f"w{len(self.windows) + 1}"
        self.windows[window_id] = [seed_id]
        return window_id

    def move_to_window(self, resource_ids, window_id):
        self.windows[window_id].extend(resource_ids)

    def group(self, resource_ids, title, color):
        if title in self.fail_group_named:
            raise HostError(f"cannot group {title}")
        self.groups.append({"tabIds": list(resource_ids), "title": title, "color": color})
        return f"g{len(self.groups)}"

    def memory_samples(self):
        return self.memory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    """Provide a Config pointing at a temp directory."""
    cfg = Config.from_data_dir(tmp_path / "data", llm_provider="custom")
    cfg.ensure_directories()
    return cfg


@pytest.fixture
def storage(config):
    return Storage(config)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def steward(config, host, clock):
    return TabSteward(host=host, config=config, clock=clock)
