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

import abc
import enum
from collections.abc import Mapping, Sequence
from typing import Optional


class ErrorKind(str, enum.Enum):
    """
    The kind of failure reported by a :class:`SnapshotClient`. Handlers branch on the kind, never on the raw error code
    of the backend.
    """

    not_found = "not_found"
    already_exists = "already_exists"
    invalid_state = "invalid_state"
    throttled = "throttled"
    access_denied = "access_denied"
    transport = "transport"
    backend = "backend"


class ClientError(Exception):
    """
    An error raised by a :class:`SnapshotClient`.

    :param kind: The kind of failure
    :param message: A human readable description
    :param code: The error code as reported by the backend, for information only
    """

    def __init__(self, kind: ErrorKind, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.not_found


class SnapshotClient(abc.ABC):
    """
    The calls a snapshot handler makes to the backend. Implementations wrap a provider SDK or API and translate its
    errors to :class:`ClientError`.

    A single client instance is shared by all handlers of a process, implementations have to be safe for concurrent
    use.
    """

    @abc.abstractmethod
    def create_snapshot(self, snapshot_identifier: str, cluster_identifier: str) -> None:
        """
        Request the creation of a snapshot of the given cluster. Returns as soon as the request is accepted.
        """

    @abc.abstractmethod
    def describe_snapshots(self, snapshot_identifier: str) -> Sequence[Mapping[str, object]]:
        """
        Return the provider records of the snapshots matching the given identifier.

        :raise ClientError: with kind :attr:`ErrorKind.not_found` when no such snapshot exists
        """

    @abc.abstractmethod
    def delete_snapshot(self, snapshot_identifier: str) -> None:
        """
        Request the deletion of the given snapshot. Returns as soon as the request is accepted.
        """
