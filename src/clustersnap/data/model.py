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

import datetime
import json
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import clustersnap


class AttributeStateChange(BaseModel):
    """
    Changes in the attribute
    """

    current: Optional[object] = None
    desired: Optional[object] = None

    @field_validator("current", "desired")
    @classmethod
    def check_serializable(cls, v: Optional[object]) -> Optional[object]:
        """
        Verify whether the value is serializable
        """
        if isinstance(v, (set, frozenset)):
            return sorted(v)
        try:
            json.dumps(v)
        except TypeError:
            if clustersnap.RUNNING_TESTS:
                # Fail the test when the value is not serializable
                raise Exception(f"Failed to serialize attribute {v}")
            else:
                # In production, cast the non-serializable value to str to prevent the handler from failing.
                return str(v)
        return v


class RawSnapshot(BaseModel):
    """
    A db cluster snapshot as reported by the provider. The provider casing of the keys is accepted as well as the
    attribute names. Keys the provider adds later on are ignored.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    db_cluster_snapshot_identifier: str = Field(alias="DBClusterSnapshotIdentifier")
    db_cluster_identifier: Optional[str] = Field(default=None, alias="DBClusterIdentifier")
    status: str = Field(alias="Status")
    allocated_storage: Optional[int] = Field(default=None, alias="AllocatedStorage")
    availability_zones: frozenset[str] = Field(default=frozenset(), alias="AvailabilityZones")
    db_cluster_snapshot_arn: Optional[str] = Field(default=None, alias="DBClusterSnapshotArn")
    engine: Optional[str] = Field(default=None, alias="Engine")
    engine_version: Optional[str] = Field(default=None, alias="EngineVersion")
    kms_key_id: Optional[str] = Field(default=None, alias="KmsKeyId")
    license_model: Optional[str] = Field(default=None, alias="LicenseModel")
    iam_database_authentication_enabled: Optional[bool] = Field(
        default=None, alias="IAMDatabaseAuthenticationEnabled"
    )
    master_username: Optional[str] = Field(default=None, alias="MasterUsername")
    port: Optional[str] = Field(default=None, alias="Port")
    snapshot_type: Optional[str] = Field(default=None, alias="SnapshotType")
    source_db_cluster_snapshot_arn: Optional[str] = Field(default=None, alias="SourceDBClusterSnapshotArn")
    storage_encrypted: Optional[bool] = Field(default=None, alias="StorageEncrypted")
    vpc_id: Optional[str] = Field(default=None, alias="VpcId")

    @field_validator("availability_zones", mode="before")
    @classmethod
    def none_is_empty(cls, v: object) -> object:
        return frozenset() if v is None else v

    @field_validator("port", mode="before")
    @classmethod
    def port_as_str(cls, v: object) -> object:
        # The provider reports the port as a number, it is exposed as a string
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class LogLine(BaseModel):
    """
    A log line produced while handling a resource. The message is rendered with the keyword arguments it was logged
    with, the arguments themselves are kept for structured consumers.
    """

    level: str
    msg: str
    kwargs: dict[str, object] = {}
    timestamp: datetime.datetime

    @classmethod
    def log(cls, level: int, msg: str, timestamp: Optional[datetime.datetime] = None, **kwargs: object) -> "LogLine":
        if timestamp is None:
            timestamp = datetime.datetime.now().astimezone()

        log_line = msg % kwargs if kwargs else msg
        return cls(level=logging.getLevelName(level), msg=log_line, kwargs=kwargs, timestamp=timestamp)
