"""
Unit tests for identity_resolver.py
"""

import time
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from importer_utils.errors import ResolverError
from infrastructure.aws import AwsManager
from stackset_import import template as template_model
from stackset_import.identity_resolver import IdentityResolver


def client_error(code, operation="GetRole"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def fake_iam(roles=(), profiles=(), policy_pages=()):
    roles = set(roles)
    profiles = set(profiles)

    def get_role(RoleName):
        if RoleName not in roles:
            raise client_error("NoSuchEntity")
        return {"Role": {"RoleName": RoleName}}

    def get_instance_profile(InstanceProfileName):
        if InstanceProfileName not in profiles:
            raise client_error("NoSuchEntity", "GetInstanceProfile")
        return {"InstanceProfile": {"InstanceProfileName": InstanceProfileName}}

    iam = MagicMock()
    iam.get_role.side_effect = get_role
    iam.get_instance_profile.side_effect = get_instance_profile
    iam.get_paginator.return_value.paginate.return_value = list(policy_pages)
    return iam


def manager_with(iam):
    manager = AwsManager(region="us-east-1")
    manager._clients["iam"] = iam
    return manager


class TestIdentityResolver(unittest.TestCase):

    def test_existing_role(self):
        template = template_model.parse("""
Resources:
  MyRole:
    Type: AWS::IAM::Role
    Properties:
      RoleName: alpha
""")
        resolver = IdentityResolver(manager_with(fake_iam(roles=["alpha"])))
        identity = resolver.resolve(template, "MyRole", template.resources["MyRole"])
        self.assertEqual(identity.to_api(), {"ResourceType": "AWS::IAM::Role",
                                             "LogicalResourceId": "MyRole",
                                             "ResourceIdentifier": {"RoleName": "alpha"}})

    def test_missing_role(self):
        template = template_model.parse("""
Resources:
  MyRole:
    Type: AWS::IAM::Role
    Properties:
      RoleName: missing
""")
        resolver = IdentityResolver(manager_with(fake_iam()))
        self.assertIsNone(resolver.resolve(template, "MyRole", template.resources["MyRole"]))

    def test_policy_found_on_later_page_ignoring_case(self):
        pages = [
            {"Policies": [{"PolicyName": "Other", "Arn": "arn:aws:iam::111111111111:policy/Other"}]},
            {"Policies": [{"PolicyName": "readonly", "Arn": "arn:aws:iam::111111111111:policy/readonly"}]},
        ]
        iam = fake_iam(policy_pages=pages)
        template = template_model.parse("""
Resources:
  P:
    Type: AWS::IAM::ManagedPolicy
    Properties:
      ManagedPolicyName: ReadOnly
""")
        identity = IdentityResolver(manager_with(iam)).resolve(template, "P", template.resources["P"])
        self.assertEqual(identity.identifier_map, {"PolicyArn": "arn:aws:iam::111111111111:policy/readonly"})
        iam.get_paginator.assert_called_once_with("list_policies")
        iam.get_paginator.return_value.paginate.assert_called_once_with(Scope="All")

    def test_policy_not_found(self):
        iam = fake_iam(policy_pages=[{"Policies": []}])
        template = template_model.parse("""
Resources:
  P:
    Type: AWS::IAM::ManagedPolicy
    Properties:
      ManagedPolicyName: ReadOnly
""")
        self.assertIsNone(IdentityResolver(manager_with(iam)).resolve(template, "P", template.resources["P"]))

    def test_instance_profile_by_ref_uses_role_name(self):
        iam = fake_iam(profiles=["alpha"])
        template = template_model.parse("""
Resources:
  MyRole:
    Type: AWS::IAM::Role
    Properties:
      RoleName: alpha
  Profile:
    Type: AWS::IAM::InstanceProfile
    Properties:
      InstanceProfileName: !Ref MyRole
""")
        identity = IdentityResolver(manager_with(iam)).resolve(template, "Profile", template.resources["Profile"])
        self.assertEqual(identity.identifier_map, {"InstanceProfileName": "alpha"})
        iam.get_instance_profile.assert_called_once_with(InstanceProfileName="alpha")

    def test_instance_profile_plain_name(self):
        template = template_model.parse("""
Resources:
  Profile:
    Type: AWS::IAM::InstanceProfile
    Properties:
      InstanceProfileName: web
""")
        resolver = IdentityResolver(manager_with(fake_iam(profiles=["web"])))
        identity = resolver.resolve(template, "Profile", template.resources["Profile"])
        self.assertEqual(identity.identifier_map, {"InstanceProfileName": "web"})

    def test_instance_profile_ref_to_missing_resource(self):
        template = template_model.parse("""
Resources:
  Profile:
    Type: AWS::IAM::InstanceProfile
    Properties:
      InstanceProfileName: !Ref Nowhere
""")
        resolver = IdentityResolver(manager_with(fake_iam()))
        with self.assertRaises(ResolverError):
            resolver.resolve(template, "Profile", template.resources["Profile"])

    def test_instance_profile_ref_to_non_role(self):
        template = template_model.parse("""
Resources:
  Bucket:
    Type: AWS::S3::Bucket
  Profile:
    Type: AWS::IAM::InstanceProfile
    Properties:
      InstanceProfileName: !Ref Bucket
""")
        resolver = IdentityResolver(manager_with(fake_iam()))
        with self.assertRaises(ResolverError):
            resolver.resolve(template, "Profile", template.resources["Profile"])

    def test_non_plain_name_is_not_looked_up(self):
        iam = fake_iam(roles=["alpha"])
        template = template_model.parse("""
Resources:
  MyRole:
    Type: AWS::IAM::Role
    Properties:
      RoleName: !Sub "${AWS::StackName}-role"
  NoName:
    Type: AWS::IAM::Role
    Properties: {}
""")
        resolver = IdentityResolver(manager_with(iam))
        self.assertIsNone(resolver.resolve(template, "MyRole", template.resources["MyRole"]))
        self.assertIsNone(resolver.resolve(template, "NoName", template.resources["NoName"]))
        iam.get_role.assert_not_called()

    def test_unsupported_type(self):
        iam = fake_iam()
        template = template_model.parse("""
Resources:
  Bucket:
    Type: AWS::S3::Bucket
    Properties:
      BucketName: b
""")
        resolver = IdentityResolver(manager_with(iam))
        self.assertFalse(resolver.supports("AWS::S3::Bucket"))
        self.assertIsNone(resolver.resolve(template, "Bucket", template.resources["Bucket"]))

    def test_lookup_error_propagates(self):
        iam = MagicMock()
        iam.get_role.side_effect = client_error("AccessDenied")
        template = template_model.parse("""
Resources:
  MyRole:
    Type: AWS::IAM::Role
    Properties:
      RoleName: alpha
""")
        resolver = IdentityResolver(manager_with(iam))
        with self.assertRaises(ResolverError):
            resolver.resolve(template, "MyRole", template.resources["MyRole"])

    def test_resolve_all_keeps_template_order(self):
        iam = fake_iam(roles=["r1", "r3"])
        template = template_model.parse("""
Resources:
  R1:
    Type: AWS::IAM::Role
    Properties:
      RoleName: r1
  R2:
    Type: AWS::IAM::Role
    Properties:
      RoleName: r2
  R3:
    Type: AWS::IAM::Role
    Properties:
      RoleName: r3
""")
        for workers in (1, 3):
            resolved = IdentityResolver(manager_with(iam), max_workers=workers).resolve_all(template)
            self.assertEqual([r.logical_name if r else None for r in resolved], ["R1", None, "R3"])

    def test_workers_share_one_iam_client(self):
        iam = fake_iam(roles=["r{}".format(i) for i in range(8)])
        template = template_model.parse("Resources:\n" + "".join(
            "  R{0}:\n    Type: AWS::IAM::Role\n    Properties:\n      RoleName: r{0}\n".format(i) for i in range(8)))
        manager = AwsManager(region="us-east-1")

        def slow_client(service_name):
            time.sleep(0.05)
            return iam

        with patch.object(manager.base_session, "client", side_effect=slow_client) as client:
            resolved = IdentityResolver(manager, max_workers=4).resolve_all(template)

        client.assert_called_once_with("iam")
        self.assertEqual([r.logical_name for r in resolved], ["R{}".format(i) for i in range(8)])


if __name__ == "__main__":
    unittest.main()
