"""Device type manifests and the configuration questions they declare.

A manifest's ``options`` array holds a mix of plain questions and question
groups, e.g.::

    {
        "slug": "raspberrypi3",
        "arch": "armv7hf",
        "options": [
            {
                "isGroup": true,
                "name": "network",
                "options": [
                    {"name": "network", "type": "list", "choices": ["ethernet", "wifi"]},
                    {"name": "wifiSsid", "type": "text", "when": {"network": "wifi"}},
                    {"name": "wifiKey", "type": "password", "when": {"network": "wifi"}}
                ]
            },
            {
                "isGroup": true,
                "name": "advanced",
                "options": [
                    {"name": "appUpdatePollInterval", "type": "number", "default": 10}
                ]
            }
        ]
    }

Only the children of groups are configurable questions; top-level plain
options are informational.
"""

from dataclasses import dataclass, field
import functools
from typing import Any, Callable, Final, Mapping, TypeAlias

import fastjsonschema
from fastjsonschema.exceptions import JsonSchemaException

from .errors import ManifestError

ADVANCED_GROUP_NAME: Final = "advanced"

DEFAULT_CONFIG_PARTITION: Final = 1
DEFAULT_CONFIG_PATH: Final = "/config.json"

AnswerValue: TypeAlias = str | int | bool

MANIFEST_SCHEMA: Final[dict[str, object]] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["slug"],
    "properties": {
        "slug": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "arch": {"type": "string"},
        "isDependent": {"type": "boolean"},
        "options": {
            "type": "array",
            "items": {"$ref": "#/definitions/option"},
        },
        "configuration": {
            "type": "object",
            "properties": {
                "config": {
                    "type": "object",
                    "properties": {
                        "partition": {
                            "anyOf": [
                                {"type": "integer", "minimum": 1},
                                {
                                    "type": "object",
                                    "required": ["primary"],
                                    "properties": {
                                        "primary": {"type": "integer", "minimum": 1},
                                    },
                                },
                            ],
                        },
                        "path": {"type": "string", "minLength": 1},
                    },
                },
            },
        },
    },
    "definitions": {
        "option": {
            "type": "object",
            "properties": {
                "name": {"type": ["string", "null"]},
                "message": {"type": "string"},
                "type": {"type": "string"},
                "isGroup": {"type": "boolean"},
                "when": {"type": "object"},
                "choices": {"type": "array"},
                "options": {
                    "type": "array",
                    "items": {"$ref": "#/definitions/option"},
                },
            },
        },
    },
}


@functools.cache
def _get_manifest_validator() -> Callable[[object], object]:
    return fastjsonschema.compile(MANIFEST_SCHEMA)


@dataclass(frozen=True)
class OptionLeaf:
    name: str | None
    type: str = "text"
    default: AnswerValue | None = None
    message: str | None = None
    choices: tuple[tuple[str, AnswerValue], ...] = ()
    """``(label, value)`` pairs for ``list`` questions."""
    when: Mapping[str, object] = field(default_factory=dict)
    """Answers that must all hold for this question to be asked."""


@dataclass(frozen=True)
class OptionGroup:
    name: str | None
    message: str | None = None
    children: tuple["DeviceTypeOption", ...] = ()


DeviceTypeOption: TypeAlias = OptionLeaf | OptionGroup


@dataclass(frozen=True)
class ConfigLocation:
    partition: int = DEFAULT_CONFIG_PARTITION
    path: str = DEFAULT_CONFIG_PATH


@dataclass(frozen=True)
class DeviceTypeManifest:
    slug: str
    name: str
    arch: str | None
    is_dependent: bool
    options: tuple[DeviceTypeOption, ...]
    config_location: ConfigLocation
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: object) -> "DeviceTypeManifest":
        try:
            _get_manifest_validator()(data)
        except JsonSchemaException as e:
            raise ManifestError(f"malformed device type manifest: {e}") from e

        assert isinstance(data, dict)
        return cls(
            slug=data["slug"],
            name=data.get("name") or data["slug"],
            arch=data.get("arch"),
            is_dependent=bool(data.get("isDependent", False)),
            options=tuple(_parse_option(o) for o in data.get("options", [])),
            config_location=_parse_config_location(data.get("configuration")),
            raw=data,
        )


def _parse_choices(choices: list[Any]) -> tuple[tuple[str, AnswerValue], ...]:
    result: list[tuple[str, AnswerValue]] = []
    for c in choices:
        if isinstance(c, dict):
            value = c.get("value", c.get("name"))
            result.append((str(c.get("name", value)), value))
        else:
            result.append((str(c), c))
    return tuple(result)


def _parse_option(data: dict[str, Any]) -> DeviceTypeOption:
    if data.get("isGroup"):
        return OptionGroup(
            name=data.get("name"),
            message=data.get("message"),
            children=tuple(_parse_option(o) for o in data.get("options", [])),
        )

    return OptionLeaf(
        name=data.get("name"),
        type=data.get("type", "text"),
        default=data.get("default"),
        message=data.get("message"),
        choices=_parse_choices(data.get("choices", [])),
        when=data.get("when", {}),
    )


def _parse_config_location(configuration: dict[str, Any] | None) -> ConfigLocation:
    if not configuration or "config" not in configuration:
        return ConfigLocation()

    cfg = configuration["config"]
    partition = cfg.get("partition", DEFAULT_CONFIG_PARTITION)
    if isinstance(partition, dict):
        partition = partition["primary"]
    return ConfigLocation(partition, cfg.get("path", DEFAULT_CONFIG_PATH))


def iter_group_questions(manifest: DeviceTypeManifest) -> list[OptionLeaf]:
    """Flattened leaf questions declared under groups, in declaration order."""

    result: list[OptionLeaf] = []
    for opt in manifest.options:
        match opt:
            case OptionGroup(children=children):
                result.extend(c for c in children if isinstance(c, OptionLeaf))
            case OptionLeaf():
                continue
    return result


def extract_question_names(manifest: DeviceTypeManifest) -> list[str]:
    """Returns the names of all answerable questions in the manifest.

    These are the names of every group's direct children, in declaration
    order, with empty names dropped and duplicates collapsed onto their
    first occurrence."""

    seen: set[str] = set()
    names: list[str] = []
    for opt in manifest.options:
        match opt:
            case OptionGroup(children=children):
                for child in children:
                    if child.name and child.name not in seen:
                        seen.add(child.name)
                        names.append(child.name)
            case OptionLeaf():
                # informational only
                continue
    return names


def find_group(manifest: DeviceTypeManifest, name: str) -> OptionGroup | None:
    for opt in manifest.options:
        if isinstance(opt, OptionGroup) and opt.name == name:
            return opt
    return None


def get_group_defaults(group: OptionGroup) -> dict[str, AnswerValue]:
    return {
        child.name: child.default
        for child in group.children
        if isinstance(child, OptionLeaf) and child.name and child.default is not None
    }
