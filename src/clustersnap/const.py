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

from enum import Enum


class ResourceState(str, Enum):
    skipped = "skipped"
    dry = "dry"
    deployed = "deployed"
    failed = "failed"
    tainted = "tainted"  # The remote create was accepted, but the resource never became usable
    replacement_required = "replacement_required"  # A force-new attribute differs from the remote object


class Change(str, Enum):
    nochange = "nochange"
    created = "created"
    purged = "purged"


class SnapshotStatus(str, Enum):
    """
    Status labels reported by the provider for a db cluster snapshot
    """

    creating = "creating"
    available = "available"
    deleting = "deleting"
    failed = "failed"


ENV_PREFIX = "CLUSTERSNAP"

# Timing defaults for the snapshot handler, in seconds
DEFAULT_CREATE_TIMEOUT = 300
DEFAULT_DELETE_TIMEOUT = 300
# The provider does not reflect a new snapshot in its describe calls right away
DEFAULT_INITIAL_DELAY = 30
DEFAULT_MIN_POLL_INTERVAL = 10
DEFAULT_MAX_POLL_INTERVAL = 10

ENVIRON_FORCE_TTY = "CLUSTERSNAP_FORCE_TTY"
