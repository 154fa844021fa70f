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

import pydantic
import pytest

from clustersnap.data.model import LogLine, RawSnapshot
from conftest import make_record


def test_raw_snapshot_from_provider_record():
    record = make_record("snap-1", "cluster-1", status="available")
    record["SourceDBClusterSnapshotArn"] = "arn:aws:rds:eu-west-1:123456789012:cluster-snapshot:origin"

    snapshot = RawSnapshot.model_validate(record)

    assert snapshot.db_cluster_snapshot_identifier == "snap-1"
    assert snapshot.status == "available"
    assert snapshot.port == "0"
    assert snapshot.availability_zones == frozenset({"eu-west-1a", "eu-west-1b", "eu-west-1c"})
    assert snapshot.source_db_cluster_snapshot_arn.endswith(":origin")
    assert snapshot.iam_database_authentication_enabled is False


def test_raw_snapshot_minimal():
    snapshot = RawSnapshot.model_validate({"DBClusterSnapshotIdentifier": "snap-1", "Status": "creating", "AvailabilityZones": None})

    assert snapshot.availability_zones == frozenset()
    assert snapshot.engine is None


def test_raw_snapshot_requires_status():
    with pytest.raises(pydantic.ValidationError):
        RawSnapshot.model_validate({"DBClusterSnapshotIdentifier": "snap-1"})


def test_log_line():
    line = LogLine.log(20, "Deleted %(identifier)s", identifier="snap-1")

    assert line.level == "INFO"
    assert line.msg == "Deleted snap-1"
    assert line.timestamp.tzinfo is not None
