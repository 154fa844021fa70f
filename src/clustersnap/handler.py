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

import json
import logging
import traceback
import typing
import uuid
from collections import defaultdict
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type

import clustersnap
from clustersnap import const
from clustersnap.client import SnapshotClient
from clustersnap.const import ResourceState
from clustersnap.data.model import AttributeStateChange, LogLine
from clustersnap.resources import PurgeableResource, Resource

LOGGER = logging.getLogger(__name__)


class provider(object):  # noqa: N801
    """
    A decorator that registers a new handler.

    :param resource_type: The type of the resource this handler provides an implementation for.
                          For example, ``rds::DbClusterSnapshot``
    :param name: A name to reference this provider.
    """

    def __init__(self, resource_type: str, name: str) -> None:
        self._resource_type = resource_type
        self._name = name

    def __call__(self, function):
        Commander.add_provider(self._resource_type, self._name, function)
        return function


class SkipResource(Exception):
    """
    A handler should raise this exception when a resource should be skipped. The resource will be marked as skipped
    instead of failed.
    """


class ResourcePurged(Exception):
    """
    If the :func:`~clustersnap.handler.CRUDHandler.read_resource` method raises this exception, the remote object does
    not exist (anymore).
    """


class InvalidOperation(Exception):
    """
    This exception is raised by the context or handler methods when an invalid operation is performed.
    """


class ReplacementRequired(Exception):
    """
    Raised when the desired state differs from the remote object in attributes that can only be changed by destroying
    and recreating the object.
    """

    def __init__(self, resource: Resource, attributes: Sequence[str]) -> None:
        super().__init__(f"{resource} requires replacement, attributes {', '.join(sorted(attributes))} can not be updated")
        self.attributes = list(attributes)


class ResourceTainted(Exception):
    """
    Raised by :func:`~clustersnap.handler.CRUDHandler.verify_resource` when the remote object exists but will never
    become usable. The resource is marked as tainted instead of failed.
    """

    def __init__(self, resource: Resource, reason: str) -> None:
        super().__init__(f"{resource} is not usable: {reason}")
        self.reason = reason


class HandlerNotAvailableException(Exception):
    """
    This exception is thrown when no single handler can be selected for a resource.
    """


class HandlerContext(object):
    """
    Context passed to handler methods for state related "things"
    """

    def __init__(
        self,
        resource: Resource,
        dry_run: bool = False,
        action_id: Optional[uuid.UUID] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._resource = resource
        self._dry_run = dry_run
        self._cache: Dict[str, Any] = {}

        self._change = const.Change.nochange
        self._changes: Dict[str, AttributeStateChange] = {}

        if action_id is None:
            action_id = uuid.uuid4()
        self._action_id = action_id
        self._status: Optional[ResourceState] = None
        self._logs: List[LogLine] = []
        self.logger: logging.Logger
        if logger is None:
            self.logger = LOGGER
        else:
            self.logger = logger

    @property
    def action_id(self) -> uuid.UUID:
        return self._action_id

    @property
    def status(self) -> Optional[ResourceState]:
        return self._status

    @property
    def logs(self) -> List[LogLine]:
        return self._logs

    def set_status(self, status: ResourceState) -> None:
        """
        Set the status of the handler operation.
        """
        self._status = status

    def is_dry_run(self) -> bool:
        """
        Is this a dryrun?
        """
        return self._dry_run

    def get(self, name: str) -> Any:
        return self._cache[name]

    def contains(self, key: str) -> bool:
        return key in self._cache

    def set(self, name: str, value: Any) -> None:
        self._cache[name] = value

    def _set_change(self, change: const.Change) -> None:
        if self._change is not const.Change.nochange:
            raise InvalidOperation(f"Unable to set {change} operation, {self._change} already set.")
        self._change = change

    def set_created(self) -> None:
        self._set_change(const.Change.created)

    def set_purged(self) -> None:
        self._set_change(const.Change.purged)

    @property
    def changed(self) -> bool:
        return self._change is not const.Change.nochange

    @property
    def change(self) -> const.Change:
        return self._change

    def add_change(self, name: str, desired: object, current: object = None) -> None:
        """
        Report a change of a field.

        :param name: The name of the field that was updated
        :param desired: The desired value to which the field was updated (or should be updated)
        :param current: The value of the field before it was updated
        """
        self._changes[name] = AttributeStateChange(current=current, desired=desired)

    @property
    def changes(self) -> Dict[str, AttributeStateChange]:
        return self._changes

    def log_msg(self, level: int, msg: str, args: Sequence[object], kwargs: Dict[str, object]) -> None:
        if len(args) > 0:
            raise Exception("Args not supported")
        if "exc_info" in kwargs:
            exc_info = kwargs.pop("exc_info")
            kwargs["traceback"] = traceback.format_exc()
        else:
            exc_info = False

        for k, v in dict(kwargs).items():
            try:
                json.dumps(v)
            except TypeError:
                if clustersnap.RUNNING_TESTS:
                    # Fail the test when the value is not serializable
                    raise Exception(f"Failed to serialize argument for log message {k}={v}")
                else:
                    # In production, cast the non-serializable value to str to prevent the handler from failing.
                    kwargs[k] = str(v)

        log = LogLine.log(level, msg, **kwargs)
        self.logger.log(level, "resource %s: %s", self._resource, log.msg, exc_info=exc_info)
        self._logs.append(log)

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        """
        Log 'msg % kwargs' with severity 'DEBUG'.

        Keyword arguments should be JSON serializable.

        ``ctx.debug("Polling %(identifier)s", identifier="snap-1")``
        """
        self.log_msg(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        """
        Log 'msg % kwargs' with severity 'INFO'.
        """
        self.log_msg(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        """
        Log 'msg % kwargs' with severity 'WARNING'.
        """
        self.log_msg(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        """
        Log 'msg % kwargs' with severity 'ERROR'.

        To pass exception information, use the keyword argument exc_info with a true value.
        """
        self.log_msg(logging.ERROR, msg, args, kwargs)

    def exception(self, msg: str, *args: object, exc_info: bool = True, **kwargs: object) -> None:
        """
        Convenience method for logging an ERROR with exception information.
        """
        self.error(msg, *args, exc_info=exc_info, **kwargs)


class CRUDHandler(object):
    """
    This handler base class requires the create, read and delete methods to be implemented. Remote objects are never
    updated in place: a change to an attribute that can not be applied is reported as a required replacement.

    A handler receives its client explicitly. The client is the only state shared between handler instances.
    """

    def __init__(self, client: SnapshotClient) -> None:
        self._client = client

    @property
    def client(self) -> SnapshotClient:
        return self._client

    def read_resource(self, ctx: HandlerContext, resource: PurgeableResource) -> None:
        """
        This method reads the current state of the resource. It provides a copy of the resource that should be deployed,
        the method implementation should modify the attributes of this resource to the current state.

        :param ctx: Context can be used to pass values discovered in the read method to the other methods.
        :param resource: A clone of the desired resource state. The read method need to set values on this object.
        :raise SkipResource: Raise this exception when the handler should skip this resource
        :raise ResourcePurged: Raise this exception when the resource does not exist.
        """
        raise NotImplementedError()

    def create_resource(self, ctx: HandlerContext, resource: PurgeableResource) -> None:
        """
        This method is called by the handler when the resource should be created. It assigns the identifier of the
        resource as soon as the remote object exists, even when the object never becomes usable afterwards.

        :param ctx: Context to report the changes that were made.
        :param resource: The desired resource state.
        """
        raise NotImplementedError()

    def delete_resource(self, ctx: HandlerContext, resource: PurgeableResource) -> None:
        """
        This method is called by the handler when the resource should be deleted.

        :param ctx: Context to report the changes that were made.
        :param resource: The desired resource state.
        """
        raise NotImplementedError()

    def verify_resource(self, ctx: HandlerContext, resource: PurgeableResource) -> None:
        """
        This method is called by :func:`execute` when the remote object exists and should keep existing. It can finish
        a create that was left unfinished. The default implementation accepts the remote object as it is.

        :param ctx: Context to report the changes that were made.
        :param resource: The desired resource state, with the computed attributes of the last read.
        :raise ResourceTainted: The remote object will never become usable.
        """

    def calculate_diff(
        self, ctx: HandlerContext, current: Resource, desired: Resource
    ) -> typing.Dict[str, typing.Dict[str, typing.Any]]:
        """
        Calculate the diff between the current and desired resource state. Computed attributes are never part of the
        diff, they are owned by the remote side.

        :return: A dict with key the name of the field and value another dict with "current" and "desired" as keys for
                 fields that require changes.
        """
        changes: Dict[str, Dict[str, Any]] = {}
        for attribute in desired.get_schema():
            if attribute.computed:
                continue
            current_value = getattr(current, attribute.name)
            desired_value = getattr(desired, attribute.name)
            if current_value != desired_value:
                changes[attribute.name] = {"current": current_value, "desired": desired_value}
        return changes

    def create(self, resource: PurgeableResource, ctx: Optional[HandlerContext] = None) -> str:
        """
        Create the remote object for the given resource and wait until it is usable.

        :return: The identifier assigned to the resource
        :raise Exception: Any failure is propagated. If the remote create call was accepted, the identifier is assigned
            to the resource regardless, so the caller can keep track of the remote object.
        """
        if ctx is None:
            ctx = HandlerContext(resource)
        self.create_resource(ctx, resource)
        if resource.identifier is None:
            raise InvalidOperation(f"create_resource of {self.__class__.__name__} did not assign an identifier")
        return resource.identifier

    def read(self, resource: PurgeableResource, ctx: Optional[HandlerContext] = None) -> bool:
        """
        Refresh the computed attributes of the resource from the remote object.

        :return: False when the remote object no longer exists. The resource is left untouched in that case.
        """
        if ctx is None:
            ctx = HandlerContext(resource)
        try:
            self.read_resource(ctx, resource)
        except ResourcePurged:
            ctx.info("%(resource_id)s no longer exists", resource_id=str(resource))
            return False
        return True

    def delete(self, resource: PurgeableResource, ctx: Optional[HandlerContext] = None) -> None:
        """
        Delete the remote object of the given resource.
        """
        if ctx is None:
            ctx = HandlerContext(resource)
        self.delete_resource(ctx, resource)

    def execute(self, ctx: HandlerContext, resource: PurgeableResource, dry_run: Optional[bool] = None) -> None:
        """
        Converge the remote object to the given desired state. The outcome is reported through the context.

        :param ctx: Context object to report changes and logs.
        :param resource: The desired state. Its identifier and computed attributes are refreshed when the remote object
            exists.
        :param dry_run: True will only determine the required changes but will not execute them.
        """
        try:
            desired = resource
            current = desired.clone(purged=False)
            changes: typing.Dict[str, typing.Dict[str, typing.Any]] = {}
            exists = True
            try:
                ctx.debug("Calling read_resource")
                self.read_resource(ctx, current)
                changes = self.calculate_diff(ctx, current, desired)
            except ResourcePurged:
                exists = False

            if exists:
                desired.identifier = current.identifier
                desired.set_computed(current.computed_attributes())
                if desired.purged:
                    changes["purged"] = dict(desired=True, current=False)
            elif not desired.purged:
                changes["purged"] = dict(desired=False, current=True)

            for field, values in changes.items():
                ctx.add_change(field, desired=values["desired"], current=values["current"])

            if dry_run:
                ctx.set_status(ResourceState.dry)
                return

            if "purged" in changes:
                if not changes["purged"]["desired"]:
                    ctx.debug("Calling create_resource")
                    self.create_resource(ctx, desired)
                else:
                    ctx.debug("Calling delete_resource")
                    self.delete_resource(ctx, desired)
            elif exists:
                replace = [field for field in changes if desired.get_attribute(field).force_new]
                if replace:
                    raise ReplacementRequired(desired, replace)
                ctx.debug("Calling verify_resource")
                self.verify_resource(ctx, desired)

            ctx.set_status(ResourceState.deployed)

        except SkipResource as e:
            ctx.set_status(ResourceState.skipped)
            ctx.warning(msg="Resource %(resource_id)s was skipped: %(reason)s", resource_id=str(resource), reason=str(e))

        except ReplacementRequired as e:
            ctx.set_status(ResourceState.replacement_required)
            ctx.warning(
                msg="Resource %(resource_id)s can not be updated in place: %(attributes)s",
                resource_id=str(resource),
                attributes=e.attributes,
            )

        except ResourceTainted as e:
            ctx.set_status(ResourceState.tainted)
            ctx.error("Resource %(resource_id)s is not usable: %(reason)s", resource_id=str(resource), reason=e.reason)

        except Exception as e:
            if ctx.change is const.Change.created:
                # The remote object exists but did not become usable
                ctx.set_status(ResourceState.tainted)
            else:
                ctx.set_status(ResourceState.failed)
            ctx.exception(
                "An error occurred during deployment of %(resource_id)s (exception: %(exception)s)",
                resource_id=str(resource),
                exception=f"{e.__class__.__name__}('{e}')",
            )


class Commander(object):
    """
    Registry of the handler classes, per resource type
    """

    __command_functions: Dict[str, Dict[str, Type[CRUDHandler]]] = defaultdict(dict)

    @classmethod
    def get_handlers(cls) -> Dict[str, Dict[str, Type[CRUDHandler]]]:
        return cls.__command_functions

    @classmethod
    def reset(cls) -> None:
        cls.__command_functions = defaultdict(dict)

    @classmethod
    def get_provider(cls, client: SnapshotClient, resource: Resource, **kwargs: Any) -> CRUDHandler:
        """
        Return a handler instance for the given resource

        :param kwargs: Passed to the constructor of the handler
        """
        resource_type = resource.resource_type
        handlers = cls.__command_functions.get(resource_type, {})

        if len(handlers) > 1:
            raise HandlerNotAvailableException("More than one handler registered for resource %s" % resource)

        elif len(handlers) == 1:
            (handler_class,) = handlers.values()
            return handler_class(client, **kwargs)

        raise HandlerNotAvailableException("No resource handler registered for resource of type %s" % resource_type)

    @classmethod
    def add_provider(cls, resource: str, name: str, provider: Type[CRUDHandler]) -> None:
        """
        Register a new provider

        :param resource: the name of the resource this handler applies to
        :param name: the name of the handler itself
        :param provider: the handler class
        """
        cls.__command_functions[resource][name] = provider

    @classmethod
    def get_providers(cls) -> Iterator[Tuple[str, Type[CRUDHandler]]]:
        """Return an iterator over resource type, handler definition"""
        for resource_type, handler_map in cls.__command_functions.items():
            for handler_class in handler_map.values():
                yield (resource_type, handler_class)

    @classmethod
    def get_provider_class(cls, resource_type: str, name: str) -> Optional[Type[CRUDHandler]]:
        """
        Return the class of the handler for the given type and with the given name
        """
        return cls.__command_functions.get(resource_type, {}).get(name)
