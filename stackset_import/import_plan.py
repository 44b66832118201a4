import json
from typing import Dict, List, Union

from importer_utils import Logger
from stackset_import import template as template_model
from stackset_import.identity_resolver import IdentityResolver
from stackset_import.models import ResolvedIdentity
from stackset_import.template import Template


class ImportPlan(object):
    """
    The reduced template and the identities of the live resources it adopts.

    Every logical name in identities is a resource of the reduced template and the other way around.
    """

    def __init__(self, template_body: bytes, identities: List[ResolvedIdentity]):
        self.template_body = template_body
        self.identities = identities

    def is_empty(self) -> bool:
        return not self.identities

    def logical_names(self):
        return [identity.logical_name for identity in self.identities]

    def resources_to_import(self) -> List[Dict]:
        return [identity.to_api() for identity in self.identities]

    def manifest_json(self) -> str:
        return json.dumps(self.resources_to_import())

    def template_text(self) -> str:
        return self.template_body.decode("utf-8")


class ImportPlanBuilder(object):

    def __init__(self, resolver: IdentityResolver):
        self.resolver = resolver

    def build_from_bytes(self, data: Union[bytes, str]) -> ImportPlan:
        return self.build(template_model.parse(data))

    def build(self, template: Template) -> ImportPlan:
        reduced = {}
        identities = []
        resolved = self.resolver.resolve_all(template)
        for (logical_name, resource), identity in zip(template.resources.items(), resolved):
            if identity is None:
                continue
            reduced[logical_name] = resource.retained_copy()
            identities.append(identity)

        Logger.logger.info(f"Import plan: {len(identities)} of {len(template.resources)} resources can be imported")
        body = template_model.serialize(template.copy_with_resources(reduced))
        return ImportPlan(template_body=body, identities=identities)
