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

import dataclasses
import enum
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

R = TypeVar("R", bound="Resource")


class ResourceException(Exception):
    pass


class AttributeType(str, enum.Enum):
    string = "string"
    int = "int"
    bool = "bool"
    string_set = "set-of-string"


@dataclasses.dataclass(frozen=True)
class Attribute:
    """
    One row of the schema of a resource kind.

    :param name: The name of the attribute
    :param type: The type of the values of the attribute
    :param required: The attribute has to be supplied by the user
    :param computed: The attribute is derived from the remote object, it can not be supplied by the user
    :param force_new: A change to this attribute can only be applied by destroying and recreating the resource
    """

    name: str
    type: AttributeType
    required: bool = False
    computed: bool = False
    force_new: bool = False

    def __post_init__(self) -> None:
        if self.required and self.computed:
            raise ResourceException(f"Attribute {self.name} can not be both required and computed")
        if self.name.startswith("_") or self.name in RESERVED_FOR_RESOURCE:
            raise ResourceException(f"{self.name} is not a valid attribute name")

    def validate(self, value: object) -> object:
        """
        Validate the given value against the type of this attribute and return it in its canonical form.

        :raise ResourceException: The value does not match the type of this attribute
        """
        if value is None:
            if self.required:
                raise ResourceException(f"Attribute {self.name} is required")
            return None

        match self.type:
            case AttributeType.string:
                valid = isinstance(value, str)
            case AttributeType.int:
                # bool is a subclass of int
                valid = isinstance(value, int) and not isinstance(value, bool)
            case AttributeType.bool:
                valid = isinstance(value, bool)
            case AttributeType.string_set:
                if isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping)):
                    value = frozenset(value)
                    valid = all(isinstance(v, str) for v in value)
                else:
                    valid = False

        if not valid:
            raise ResourceException(
                f"Invalid value {value!r} for attribute {self.name}, expected a value of type {self.type.value}"
            )
        return value


class ResourceMeta(type):
    @classmethod
    def _get_parent_schema(cls, bases: Sequence[type]) -> list[Attribute]:
        schema: list[Attribute] = []
        for base in bases:
            schema.extend(cls._get_parent_schema(base.__bases__))
            if "schema" in base.__dict__:
                schema.extend(base.__dict__["schema"])

        return schema

    def __new__(cls, class_name, bases, dct):
        schema = cls._get_parent_schema(bases)
        if "schema" in dct:
            if not isinstance(dct["schema"], (tuple, list)):
                raise ResourceException("schema attribute of %s should be a tuple or list" % class_name)

            schema.extend(dct["schema"])

        merged: dict[str, Attribute] = {}
        for attribute in schema:
            merged[attribute.name] = attribute

        dct["_schema"] = tuple(merged.values())
        dct["fields"] = tuple(merged.keys())
        return type.__new__(cls, class_name, bases, dct)


RESERVED_FOR_RESOURCE = {"identifier", "fields", "schema", "purged", "clone", "serialize", "deserialize"}


class resource:  # noqa: N801
    """
    A decorator that registers a new resource kind. The decorator must be applied to classes that inherit from
    :class:`~clustersnap.resources.Resource`

    :param name: The type name of the resource kind, for example ``rds::DbClusterSnapshot``
    """

    _resources: dict[str, type["Resource"]] = {}

    def __init__(self, name: str) -> None:
        self._cls_name = name

    def __call__(self, cls: type[R]) -> type[R]:
        if self._cls_name in resource._resources:
            LOGGER.info("Reloading resource %s", self._cls_name)

        cls.resource_type = self._cls_name
        resource._resources[self._cls_name] = cls
        return cls

    @classmethod
    def get_class(cls, name: str) -> Optional[type["Resource"]]:
        """
        Get the class definition for the given resource type.
        """
        return cls._resources.get(name)

    @classmethod
    def get_resources(cls) -> Iterator[tuple[str, type["Resource"]]]:
        """Return an iterator over resource type, resource definition"""
        return iter(cls._resources.items())

    @classmethod
    def reset(cls) -> None:
        """
        Clear the list of registered resources
        """
        cls._resources = {}


class Resource(metaclass=ResourceMeta):
    """
    The typed attribute record of one resource kind.

    Each subclass declares its attributes in a class field named ``schema``. The metaclass merges the schema of the
    class and all its superclasses and exposes the attribute names as ``fields``.

    The ``identifier`` is the opaque id of the remote object. It is assigned by the handler when the object is created
    and never changes afterwards.
    """

    schema: Sequence[Attribute] = ()
    fields: Sequence[str]
    _schema: Sequence[Attribute]
    resource_type: str = "unregistered"

    def __init__(self, identifier: Optional[str] = None, **attributes: object) -> None:
        self.identifier = identifier
        for field in self.fields:
            setattr(self, field, None)

        for name, value in attributes.items():
            if name not in self.fields:
                raise ResourceException(f"{self.__class__.__name__} has no attribute {name}")
            setattr(self, name, self.get_attribute(name).validate(value) if value is not None else None)

    @classmethod
    def get_schema(cls) -> Sequence[Attribute]:
        return cls._schema

    @classmethod
    def get_attribute(cls, name: str) -> Attribute:
        for attribute in cls._schema:
            if attribute.name == name:
                return attribute
        raise KeyError(name)

    @classmethod
    def _validate_config(cls, config: Mapping[str, object]) -> tuple[dict[str, object], list[str]]:
        """
        Check the user supplied attributes against the schema.

        :return: The validated values and the list of problems found
        """
        errors: list[str] = []
        for name in config:
            if name not in cls.fields:
                errors.append(f"unknown attribute {name}")

        values: dict[str, object] = {}
        for attribute in cls._schema:
            if attribute.computed:
                if attribute.name in config:
                    errors.append(f"attribute {attribute.name} is computed and can not be set")
                continue
            value = config.get(attribute.name)
            try:
                values[attribute.name] = attribute.validate(value)
            except ResourceException as e:
                errors.append(str(e))

        return values, errors

    @classmethod
    def _config_exception(cls, errors: Sequence[str]) -> ResourceException:
        return ResourceException(f"Invalid configuration for {cls.resource_type}: " + ", ".join(errors))

    @classmethod
    def from_config(cls: type[R], config: Mapping[str, object]) -> R:
        """
        Build a resource from the attributes supplied by the user. All problems with the input are reported at once.

        :raise ResourceException: A required attribute is missing, a computed or unknown attribute is supplied or a
            value has the wrong type.
        """
        values, errors = cls._validate_config(config)
        if errors:
            raise cls._config_exception(errors)
        return cls(**values)

    def computed_attributes(self) -> dict[str, object]:
        return {a.name: getattr(self, a.name) for a in self._schema if a.computed}

    def config_attributes(self) -> dict[str, object]:
        return {a.name: getattr(self, a.name) for a in self._schema if not a.computed}

    def clear_computed(self) -> None:
        for attribute in self._schema:
            if attribute.computed:
                setattr(self, attribute.name, None)

    def set_computed(self, values: Mapping[str, object]) -> None:
        """
        Replace all computed attributes with the given values. Computed attributes missing from values are reset.
        """
        for attribute in self._schema:
            if attribute.computed:
                setattr(self, attribute.name, attribute.validate(values.get(attribute.name)))

    def items(self) -> Iterator[tuple[str, object]]:
        for key in self.fields:
            yield key, getattr(self, key)

    def __getitem__(self, key: str) -> object:
        """Support dict like access on the resource"""
        if key in self.fields:
            return getattr(self, key)

        raise KeyError(key)

    def __contains__(self, item: str) -> bool:
        return item in self.fields

    def __str__(self) -> str:
        return f"{self.resource_type}[{self.identifier}]"

    def __repr__(self) -> str:
        return str(self)

    def clone(self: R, **kwargs: Any) -> R:
        """
        Create a clone of this resource. The given kwargs can be used to override attributes.

        :return: The cloned resource
        """
        res = self.__class__.deserialize(self.serialize())
        for k, v in kwargs.items():
            setattr(res, k, v)
        return res

    def serialize(self) -> dict[str, Any]:
        """
        Serialize this resource to its json compatible dictionary representation
        """
        dictionary: dict[str, Any] = {"id": self.identifier, "type": self.resource_type}

        for field in self.fields:
            value = getattr(self, field)
            if isinstance(value, (set, frozenset)):
                value = sorted(value)
            dictionary[field] = value

        return dictionary

    @classmethod
    def deserialize(cls: type[R], obj_map: Mapping[str, Any]) -> R:
        """Deserialize the resource from the given dictionary

        :param obj_map: The json structure that represents all fields of the resource
        """
        if "type" in obj_map and obj_map["type"] != cls.resource_type:
            cls_resource = resource.get_class(obj_map["type"])
            if cls_resource is None:
                raise TypeError("No resource class registered for resource type %s" % obj_map["type"])
            return cls_resource.deserialize(obj_map)  # type: ignore[return-value]

        obj = cls(identifier=obj_map.get("id"))
        for field in cls.fields:
            if obj_map.get(field) is not None:
                setattr(obj, field, cls.get_attribute(field).validate(obj_map[field]))
        return obj


class PurgeableResource(Resource):
    """
    A resource with a desired state flag ``purged``: when set the resource should not exist.
    """

    purged: bool

    def __init__(self, identifier: Optional[str] = None, purged: bool = False, **attributes: object) -> None:
        super().__init__(identifier, **attributes)
        self.purged = purged

    def serialize(self) -> dict[str, Any]:
        dictionary = super().serialize()
        dictionary["purged"] = self.purged
        return dictionary

    @classmethod
    def deserialize(cls: type[R], obj_map: Mapping[str, Any]) -> R:
        obj = super().deserialize(obj_map)
        obj.purged = bool(obj_map.get("purged", False))  # type: ignore[attr-defined]
        return obj

    @classmethod
    def from_config(cls: type[R], config: Mapping[str, object]) -> R:
        """
        Build a resource from the attributes supplied by the user. Besides the attributes of the schema, the desired
        state flag ``purged`` is accepted.
        """
        purged = config.get("purged", False)
        values, errors = cls._validate_config({k: v for k, v in config.items() if k != "purged"})
        if not isinstance(purged, bool):
            errors.append(f"Invalid value {purged!r} for attribute purged, expected a value of type bool")
        if errors:
            raise cls._config_exception(errors)
        return cls(purged=purged, **values)  # type: ignore[call-arg]
