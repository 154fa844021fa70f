"""
    Copyright 2024 Inmanta

    Licensed under the Apache License, Version 2.0 (the "License");
    you may not use this file except in compliance with the License.
    You may obtain a copy of the License at

        http://www.apache.org/licenses/LICENSE-2.0

    Unless required by applicable law or agreed to in writing, software
    distributed under the License is distributed on an "AS IS" BASIS,
    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
    See the License for the specific language governing permissions and
    limitations under the License.

    Contact: code@inmanta.com
"""

import copy
import logging
import os
from collections.abc import Mapping, Sequence
from typing import Optional

import pytest

import clustersnap
from clustersnap.client import ClientError, ErrorKind, SnapshotClient
from clustersnap.config import Config
from clustersnap.snapshot import DbClusterSnapshot, DbClusterSnapshotHandler


class FakeClock:
    """
    A clock that only moves when something sleeps on it
    """

    def __init__(self) -> None:
        self.now: float = 0.0
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        assert seconds >= 0
        self.sleeps.append(seconds)
        self.now += seconds


def make_record(snapshot_id: str, cluster_id: str, status: str = "creating") -> dict[str, object]:
    """A snapshot record the way the provider returns it"""
    return {
        "DBClusterSnapshotIdentifier": snapshot_id,
        "DBClusterIdentifier": cluster_id,
        "Status": status,
        "AllocatedStorage": 1,
        "AvailabilityZones": ["eu-west-1a", "eu-west-1b", "eu-west-1c"],
        "DBClusterSnapshotArn": f"arn:aws:rds:eu-west-1:123456789012:cluster-snapshot:{snapshot_id}",
        "Engine": "aurora-postgresql",
        "EngineVersion": "15.4",
        "LicenseModel": "postgresql-license",
        "IAMDatabaseAuthenticationEnabled": False,
        "MasterUsername": "admin",
        "Port": 0,
        "SnapshotType": "manual",
        "StorageEncrypted": True,
        "VpcId": "vpc-0a1b2c3d",
        "PercentProgress": 100,
    }


class FakeSnapshotClient(SnapshotClient):
    """
    In memory backend. The status reported by consecutive describe calls of a snapshot can be scripted.
    """

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock
        self.snapshots: dict[str, dict[str, object]] = {}
        # statuses returned by the next describe calls of a snapshot, the last one sticks
        self.status_script: dict[str, list[str]] = {}
        # number of describe calls that do not see a snapshot yet
        self.hidden: dict[str, int] = {}
        # number of describe calls that still see a snapshot before it disappears
        self.vanish_after: dict[str, int] = {}
        # number of describe calls that still see a deleted snapshot
        self.delete_polls: int = 0
        self._deleting: dict[str, int] = {}
        self.record_count: dict[str, int] = {}
        self.create_error: Optional[Exception] = None
        self.describe_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.calls: list[tuple[object, ...]] = []

    def _now(self) -> float:
        return self.clock.time() if self.clock else 0.0

    def _not_found(self, snapshot_id: str) -> ClientError:
        return ClientError(
            ErrorKind.not_found, f"DBClusterSnapshot {snapshot_id} not found.", code="DBClusterSnapshotNotFoundFault"
        )

    def describe_calls(self) -> list[tuple[object, ...]]:
        return [call for call in self.calls if call[0] == "describe"]

    def create_snapshot(self, snapshot_identifier: str, cluster_identifier: str) -> None:
        self.calls.append(("create", snapshot_identifier, cluster_identifier))
        if self.create_error is not None:
            raise self.create_error
        if snapshot_identifier in self.snapshots:
            raise ClientError(ErrorKind.already_exists, f"Snapshot {snapshot_identifier} already exists.")
        self.snapshots[snapshot_identifier] = make_record(snapshot_identifier, cluster_identifier)

    def describe_snapshots(self, snapshot_identifier: str) -> Sequence[Mapping[str, object]]:
        self.calls.append(("describe", snapshot_identifier, self._now()))
        if self.describe_error is not None:
            raise self.describe_error
        if self.hidden.get(snapshot_identifier, 0) > 0:
            self.hidden[snapshot_identifier] -= 1
            raise self._not_found(snapshot_identifier)
        if snapshot_identifier in self.vanish_after:
            if self.vanish_after[snapshot_identifier] == 0:
                del self.vanish_after[snapshot_identifier]
                self.snapshots.pop(snapshot_identifier, None)
            else:
                self.vanish_after[snapshot_identifier] -= 1
        if snapshot_identifier in self._deleting:
            if self._deleting[snapshot_identifier] == 0:
                del self._deleting[snapshot_identifier]
                del self.snapshots[snapshot_identifier]
            else:
                self._deleting[snapshot_identifier] -= 1
        if snapshot_identifier not in self.snapshots:
            raise self._not_found(snapshot_identifier)

        script = self.status_script.get(snapshot_identifier)
        if script:
            status = script.pop(0) if len(script) > 1 else script[0]
            self.snapshots[snapshot_identifier]["Status"] = status

        record = copy.deepcopy(self.snapshots[snapshot_identifier])
        return [copy.deepcopy(record) for _ in range(self.record_count.get(snapshot_identifier, 1))]

    def delete_snapshot(self, snapshot_identifier: str) -> None:
        self.calls.append(("delete", snapshot_identifier))
        if self.delete_error is not None:
            raise self.delete_error
        if snapshot_identifier not in self.snapshots:
            raise self._not_found(snapshot_identifier)
        self.status_script.pop(snapshot_identifier, None)
        self.snapshots[snapshot_identifier]["Status"] = "deleting"
        self._deleting[snapshot_identifier] = self.delete_polls
        if self.delete_polls == 0:
            del self._deleting[snapshot_identifier]
            del self.snapshots[snapshot_identifier]


@pytest.fixture(autouse=True)
def running_tests(monkeypatch):
    monkeypatch.setattr(clustersnap, "RUNNING_TESTS", True)


@pytest.fixture(autouse=True)
def clean_config(tmp_path, monkeypatch):
    """Make sure no config file or environment variable of the host leaks into the tests"""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("CLUSTERSNAP_"):
            monkeypatch.delenv(key)
    Config._reset()
    Config.load_config(main_cfg_file=str(tmp_path / "clustersnap.cfg"))
    yield
    Config._reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(clock: FakeClock) -> FakeSnapshotClient:
    return FakeSnapshotClient(clock)


@pytest.fixture
def handler(client: FakeSnapshotClient, clock: FakeClock) -> DbClusterSnapshotHandler:
    return DbClusterSnapshotHandler(
        client,
        create_timeout=300,
        delay=30,
        min_interval=10,
        max_interval=10,
        clock=clock.time,
        sleep=clock.sleep,
    )


@pytest.fixture
def snapshot() -> DbClusterSnapshot:
    return DbClusterSnapshot.from_config({"db_cluster_snapshot_identifier": "snap-1", "db_cluster_identifier": "cluster-1"})


@pytest.fixture
def debug_logs(caplog):
    caplog.set_level(logging.DEBUG)
    return caplog
