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

import functools
import logging
import time
from collections.abc import Callable, Mapping
from typing import Optional

from clustersnap import config, const
from clustersnap.client import ClientError, SnapshotClient
from clustersnap.converge import ABSENT, GONE, ConvergenceError, RefreshResult, StateWaiter
from clustersnap.data.model import RawSnapshot
from clustersnap.handler import CRUDHandler, HandlerContext, ResourcePurged, ResourceTainted, provider
from clustersnap.resources import Attribute, AttributeType, PurgeableResource, resource

LOGGER = logging.getLogger(__name__)

RESOURCE_TYPE = "rds::DbClusterSnapshot"


class InconsistentResponseError(Exception):
    """
    The backend returned zero or several snapshots for a query by a single identifier.
    """

    def __init__(self, identifier: str, count: int) -> None:
        super().__init__(f"Expected exactly one db cluster snapshot for {identifier}, got {count}")
        self.identifier = identifier
        self.count = count


@resource(RESOURCE_TYPE)
class DbClusterSnapshot(PurgeableResource):
    """
    A manual snapshot of a database cluster. The snapshot identifier is chosen by the user and doubles as the
    identifier of the resource.
    """

    schema = (
        Attribute("db_cluster_snapshot_identifier", AttributeType.string, required=True, force_new=True),
        Attribute("db_cluster_identifier", AttributeType.string, required=True, force_new=True),
        Attribute("allocated_storage", AttributeType.int, computed=True),
        Attribute("availability_zones", AttributeType.string_set, computed=True),
        Attribute("db_cluster_snapshot_arn", AttributeType.string, computed=True),
        Attribute("engine", AttributeType.string, computed=True),
        Attribute("engine_version", AttributeType.string, computed=True),
        Attribute("kms_key_id", AttributeType.string, computed=True),
        Attribute("license_model", AttributeType.string, computed=True),
        Attribute("iam_database_authentication_enabled", AttributeType.bool, computed=True),
        Attribute("master_username", AttributeType.string, computed=True),
        Attribute("port", AttributeType.string, computed=True),
        Attribute("snapshot_type", AttributeType.string, computed=True),
        Attribute("source_db_cluster_snapshot_arn", AttributeType.string, computed=True),
        Attribute("status", AttributeType.string, computed=True),
        Attribute("storage_encrypted", AttributeType.bool, computed=True),
        Attribute("vpc_id", AttributeType.string, computed=True),
    )

    db_cluster_snapshot_identifier: str
    db_cluster_identifier: str
    allocated_storage: Optional[int]
    availability_zones: Optional[frozenset[str]]
    db_cluster_snapshot_arn: Optional[str]
    engine: Optional[str]
    engine_version: Optional[str]
    kms_key_id: Optional[str]
    license_model: Optional[str]
    iam_database_authentication_enabled: Optional[bool]
    master_username: Optional[str]
    port: Optional[str]
    snapshot_type: Optional[str]
    source_db_cluster_snapshot_arn: Optional[str]
    status: Optional[str]
    storage_encrypted: Optional[bool]
    vpc_id: Optional[str]


def describe_snapshot(client: SnapshotClient, identifier: str) -> Optional[RawSnapshot]:
    """
    Describe a single snapshot.

    :return: The snapshot, None when it does not exist
    :raise InconsistentResponseError: The backend returned another number of snapshots than one
    :raise ClientError: Any other error of the backend
    """
    LOGGER.debug("Describing db cluster snapshot %s", identifier)
    try:
        records = client.describe_snapshots(identifier)
    except ClientError as e:
        if e.is_not_found:
            return None
        raise

    if len(records) != 1:
        raise InconsistentResponseError(identifier, len(records))

    return RawSnapshot.model_validate(records[0])


def refresh_snapshot(client: SnapshotClient, identifier: str) -> RefreshResult:
    """
    Query the current state of a snapshot and extract its status label.

    :return: :data:`~clustersnap.converge.GONE` when the snapshot does not exist
    """
    snapshot = describe_snapshot(client, identifier)
    if snapshot is None:
        return GONE
    return RefreshResult(raw=snapshot, state=snapshot.status)


@provider(RESOURCE_TYPE, name="rds")
class DbClusterSnapshotHandler(CRUDHandler):
    """
    Handler for :class:`DbClusterSnapshot`. Timings that are not passed explicitly are taken from the ``snapshot``
    section of the configuration.
    """

    def __init__(
        self,
        client: SnapshotClient,
        *,
        create_timeout: Optional[float] = None,
        delay: Optional[float] = None,
        min_interval: Optional[float] = None,
        max_interval: Optional[float] = None,
        wait_for_delete: Optional[bool] = None,
        delete_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(client)
        self.create_timeout = create_timeout if create_timeout is not None else config.create_timeout.get()
        self.delay = delay if delay is not None else config.initial_delay.get()
        self.min_interval = min_interval if min_interval is not None else config.min_poll_interval.get()
        self.max_interval = max_interval if max_interval is not None else config.max_poll_interval.get()
        self.wait_for_delete = wait_for_delete if wait_for_delete is not None else config.wait_for_delete.get()
        self.delete_timeout = delete_timeout if delete_timeout is not None else config.delete_timeout.get()
        self._clock = clock
        self._sleep = sleep

    def _waiter(
        self, pending: set[str], target: set[str], timeout: float, description: str, delay: Optional[float] = None
    ) -> StateWaiter:
        return StateWaiter(
            pending=pending,
            target=target,
            timeout=timeout,
            delay=self.delay if delay is None else delay,
            min_interval=self.min_interval,
            max_interval=self.max_interval,
            description=description,
            clock=self._clock,
            sleep=self._sleep,
        )

    def _wait_available(self, ctx: HandlerContext, resource: DbClusterSnapshot, delay: Optional[float] = None) -> None:
        """
        Wait until the snapshot leaves the creating state and read it once it is available.

        :raise ConvergenceError: The snapshot failed, did not become available in time or disappeared.
        """
        identifier = resource.identifier
        assert identifier is not None
        description = f"db cluster snapshot {identifier}"
        waiter = self._waiter(
            pending={const.SnapshotStatus.creating.value},
            target={const.SnapshotStatus.available.value},
            timeout=self.create_timeout,
            description=description,
            delay=delay,
        )
        waiter.wait(functools.partial(refresh_snapshot, self.client, identifier))

        try:
            self.read_resource(ctx, resource)
        except ResourcePurged:
            raise ConvergenceError(f"{description} disappeared after it became available", description) from None

    def read_resource(self, ctx: HandlerContext, resource: DbClusterSnapshot) -> None:
        if resource.identifier is None:
            raise ResourcePurged()

        snapshot = describe_snapshot(self.client, resource.identifier)
        if snapshot is None:
            raise ResourcePurged()

        self._apply(resource, snapshot)
        ctx.debug("Read %(resource_id)s in state %(status)s", resource_id=str(resource), status=snapshot.status)

    def create_resource(self, ctx: HandlerContext, resource: DbClusterSnapshot) -> None:
        identifier = resource.db_cluster_snapshot_identifier
        self.client.create_snapshot(identifier, resource.db_cluster_identifier)
        resource.identifier = identifier
        ctx.set_created()
        ctx.info(
            "Requested snapshot %(identifier)s of cluster %(cluster)s",
            identifier=identifier,
            cluster=resource.db_cluster_identifier,
        )

        self._wait_available(ctx, resource)

    def verify_resource(self, ctx: HandlerContext, resource: DbClusterSnapshot) -> None:
        """
        A snapshot that is still creating is waited for again, without initial delay. Any other state than available
        means the snapshot will never be usable.
        """
        if resource.status == const.SnapshotStatus.creating.value:
            ctx.info("Snapshot %(identifier)s is still being created, waiting for it", identifier=resource.identifier)
            try:
                self._wait_available(ctx, resource, delay=0)
            except ConvergenceError as e:
                raise ResourceTainted(resource, str(e)) from e
        elif resource.status != const.SnapshotStatus.available.value:
            raise ResourceTainted(resource, f"snapshot is in state {resource.status}")

    def delete_resource(self, ctx: HandlerContext, resource: DbClusterSnapshot) -> None:
        identifier = resource.identifier
        if identifier is None:
            identifier = resource.db_cluster_snapshot_identifier
        self.client.delete_snapshot(identifier)
        ctx.set_purged()
        ctx.info("Requested deletion of snapshot %(identifier)s", identifier=identifier)

        if self.wait_for_delete:
            waiter = self._waiter(
                pending={
                    const.SnapshotStatus.available.value,
                    const.SnapshotStatus.deleting.value,
                },
                target={ABSENT},
                timeout=self.delete_timeout,
                description=f"deletion of db cluster snapshot {identifier}",
            )
            waiter.wait(functools.partial(refresh_snapshot, self.client, identifier))

    @staticmethod
    def _apply(resource: DbClusterSnapshot, snapshot: RawSnapshot) -> None:
        """
        Overwrite every computed attribute of the resource with the values of the snapshot. The user supplied
        attributes reflect the remote object as well, so a difference shows up in the diff.
        """
        observed: Mapping[str, object] = snapshot.model_dump()
        resource.set_computed(observed)
        resource.db_cluster_snapshot_identifier = snapshot.db_cluster_snapshot_identifier
        if snapshot.db_cluster_identifier is not None:
            resource.db_cluster_identifier = snapshot.db_cluster_identifier
