"""
In-memory CloudFormation template.

Templates are loaded with a safe YAML loader that keeps date-looking scalars as
strings and turns short-form intrinsic functions (``!Ref``, ``!GetAtt``,
``!Sub``...) into their long JSON form, so every property value is a plain
str/number/bool/None, list or dict.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import yaml

from importer_utils import statics
from importer_utils.errors import ParseError


class TemplateLoader(yaml.SafeLoader):
    pass


class TemplateDumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


# parse date strings as string, not date objects
TemplateLoader.yaml_implicit_resolvers = {
    k: [r for r in v if r[0] != 'tag:yaml.org,2002:timestamp'] for
    k, v in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def intrinsic_tag_constructor(loader, tag_suffix, node):
    if tag_suffix in ("Ref", "Condition"):
        key = tag_suffix
    else:
        key = "Fn::" + tag_suffix

    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
        if key == "Fn::GetAtt":
            value = value.split(".", 1)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)
    return {key: value}


TemplateLoader.add_multi_constructor("!", intrinsic_tag_constructor)


def is_ref(value) -> bool:
    return isinstance(value, dict) and len(value) == 1 and statics.REF_KEY in value


@dataclass
class Resource:
    type: str
    properties: Optional[Dict[str, Any]] = None
    deletion_policy: Optional[str] = None
    # DependsOn, Condition, Metadata, UpdateReplacePolicy...
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, logical_name: str, body) -> "Resource":
        if not isinstance(body, dict):
            raise ParseError("resource '{}' is not a mapping".format(logical_name))
        resource_type = body.get(statics.TYPE_KEY)
        if not isinstance(resource_type, str) or not resource_type:
            raise ParseError("resource '{}' has no Type".format(logical_name))
        properties = body.get(statics.PROPERTIES_KEY)
        if properties is not None and not isinstance(properties, dict):
            raise ParseError("resource '{}' Properties is not a mapping".format(logical_name))
        attributes = {k: v for k, v in body.items()
                      if k not in (statics.TYPE_KEY, statics.PROPERTIES_KEY, statics.DELETION_POLICY_KEY)}
        return cls(type=resource_type,
                   properties=properties,
                   deletion_policy=body.get(statics.DELETION_POLICY_KEY),
                   attributes=attributes)

    def to_dict(self) -> Dict[str, Any]:
        body = {statics.TYPE_KEY: self.type}
        if self.deletion_policy is not None:
            body[statics.DELETION_POLICY_KEY] = self.deletion_policy
        if self.properties is not None:
            body[statics.PROPERTIES_KEY] = self.properties
        body.update(self.attributes)
        return body

    def get_property(self, name: str, default=None):
        if not self.properties:
            return default
        return self.properties.get(name, default)

    def retained_copy(self) -> "Resource":
        resource = copy.deepcopy(self)
        resource.deletion_policy = statics.DELETION_POLICY_RETAIN
        return resource


@dataclass
class Template:
    resources: Dict[str, Resource] = field(default_factory=dict)
    # every other top-level key, passed through untouched
    sections: Dict[str, Any] = field(default_factory=dict)
    resources_position: int = 0

    def get_resource(self, logical_name: str) -> Optional[Resource]:
        return self.resources.get(logical_name)

    def copy_with_resources(self, resources: Dict[str, Resource]) -> "Template":
        # other sections may Ref resources that are not imported
        return Template(resources=dict(resources))

    def to_dict(self) -> Dict[str, Any]:
        body = {}
        items = list(self.sections.items())
        position = min(self.resources_position, len(items))
        for key, value in items[:position]:
            body[key] = value
        body[statics.RESOURCES_KEY] = {name: resource.to_dict() for name, resource in self.resources.items()}
        for key, value in items[position:]:
            body[key] = value
        return body


def parse(data: Union[bytes, str]) -> Template:
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError("template is not valid utf-8: {}".format(e)) from e
    try:
        document = yaml.load(data, Loader=TemplateLoader)
    except yaml.YAMLError as e:
        raise ParseError("failed to parse template: {}".format(e)) from e

    if not isinstance(document, dict):
        raise ParseError("template is not a mapping")
    if statics.RESOURCES_KEY not in document:
        raise ParseError("template has no Resources section")
    resources = document[statics.RESOURCES_KEY]
    if resources is None:
        resources = {}
    if not isinstance(resources, dict):
        raise ParseError("template Resources is not a mapping")

    parsed = {}
    for logical_name, body in resources.items():
        if not isinstance(logical_name, str) or not logical_name:
            raise ParseError("invalid logical resource name '{}'".format(logical_name))
        parsed[logical_name] = Resource.from_dict(logical_name, body)

    keys = list(document)
    sections = {k: v for k, v in document.items() if k != statics.RESOURCES_KEY}
    return Template(resources=parsed, sections=sections, resources_position=keys.index(statics.RESOURCES_KEY))


def serialize(template: Template) -> bytes:
    return yaml.dump(template.to_dict(),
                     Dumper=TemplateDumper,
                     default_flow_style=False,
                     sort_keys=False,
                     allow_unicode=True).encode("utf-8")
