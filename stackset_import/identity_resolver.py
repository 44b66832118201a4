from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from importer_utils import Logger, statics
from importer_utils.errors import ResolverError
from stackset_import.models import ResolvedIdentity
from stackset_import.template import Resource, Template, is_ref


class IdentityResolver(object):
    """
    Matches declared IAM resources to live ones in the account aws_manager points at.

    aws_manager needs get_role_name, get_instance_profile_name and find_policy_arn_by_name.
    """

    def __init__(self, aws_manager, max_workers: int = 1):
        self.aws_manager = aws_manager
        self.max_workers = max(1, max_workers)
        self.resolvers = {
            statics.IAM_ROLE_TYPE: self.resolve_role,
            statics.IAM_MANAGED_POLICY_TYPE: self.resolve_managed_policy,
            statics.IAM_INSTANCE_PROFILE_TYPE: self.resolve_instance_profile,
        }

    def supports(self, resource_type: str) -> bool:
        return resource_type in self.resolvers

    def resolve(self, template: Template, logical_name: str, resource: Resource) -> Optional[ResolvedIdentity]:
        resolver = self.resolvers.get(resource.type)
        if resolver is None:
            return None
        return resolver(template, logical_name, resource)

    def resolve_all(self, template: Template) -> List[Optional[ResolvedIdentity]]:
        """
        Resolve every resource of the template, results in template order.
        """
        items = list(template.resources.items())
        if self.max_workers == 1 or len(items) < 2:
            return [self.resolve(template, name, resource) for name, resource in items]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda item: self.resolve(template, item[0], item[1]), items))

    @staticmethod
    def _plain_name(logical_name: str, resource: Resource, property_name: str) -> Optional[str]:
        value = resource.get_property(property_name)
        if isinstance(value, str) and value:
            return value
        Logger.logger.warning(f"{logical_name} ({resource.type}) has no plain {property_name}, it can not be matched to a live resource")
        return None

    @staticmethod
    def _identity(resource: Resource, logical_name: str, key: str, value: str) -> ResolvedIdentity:
        return ResolvedIdentity(resource_type=resource.type, logical_name=logical_name, identifier_map={key: value})

    def resolve_role(self, template: Template, logical_name: str, resource: Resource) -> Optional[ResolvedIdentity]:
        role_name = self._plain_name(logical_name, resource, statics.ROLE_NAME_PROPERTY)
        if role_name is None:
            return None
        name = self.aws_manager.get_role_name(role_name)
        if name is None:
            Logger.logger.debug(f"IAM role {role_name} does not exist")
            return None
        Logger.logger.info(f"IAM role name: {name}")
        return self._identity(resource, logical_name, statics.ROLE_IDENTIFIER_KEY, name)

    def resolve_managed_policy(self, template: Template, logical_name: str, resource: Resource) -> Optional[ResolvedIdentity]:
        policy_name = self._plain_name(logical_name, resource, statics.MANAGED_POLICY_NAME_PROPERTY)
        if policy_name is None:
            return None
        arn = self.aws_manager.find_policy_arn_by_name(policy_name)
        if arn is None:
            Logger.logger.debug(f"Managed policy {policy_name} does not exist")
            return None
        Logger.logger.info(f"Policy ARN: {arn}")
        return self._identity(resource, logical_name, statics.POLICY_IDENTIFIER_KEY, arn)

    def resolve_instance_profile(self, template: Template, logical_name: str, resource: Resource) -> Optional[ResolvedIdentity]:
        value = resource.get_property(statics.INSTANCE_PROFILE_NAME_PROPERTY)
        if is_ref(value):
            profile_name = self.referenced_role_name(template, logical_name, value[statics.REF_KEY])
        else:
            profile_name = self._plain_name(logical_name, resource, statics.INSTANCE_PROFILE_NAME_PROPERTY)
        if profile_name is None:
            return None

        name = self.aws_manager.get_instance_profile_name(profile_name)
        if name is None:
            Logger.logger.debug(f"Instance profile {profile_name} does not exist")
            return None
        Logger.logger.info(f"Instance profile name: {name}")
        return self._identity(resource, logical_name, statics.INSTANCE_PROFILE_IDENTIFIER_KEY, name)

    @staticmethod
    def referenced_role_name(template: Template, logical_name: str, ref: str) -> str:
        # the profile is presumed to carry the name of the role it references
        role = template.get_resource(ref)
        if role is None:
            raise ResolverError(f"{logical_name} references '{ref}' which is not in the template")
        if role.type != statics.IAM_ROLE_TYPE:
            raise ResolverError(f"{logical_name} references '{ref}' which is a {role.type}, not an {statics.IAM_ROLE_TYPE}")
        role_name = role.get_property(statics.ROLE_NAME_PROPERTY)
        if not isinstance(role_name, str) or not role_name:
            raise ResolverError(f"{logical_name} references role '{ref}' which has no plain RoleName")
        return role_name
