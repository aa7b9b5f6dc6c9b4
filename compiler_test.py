# Unit Tests for resolution/compiler.py

import json
import unittest
from unittest.mock import MagicMock

import yaml

from resolution import audit
from resolution.accounts import Account, AccountInventory, DeploymentTargetEvaluator
from resolution.compiler import compile_target
from resolution.config import parse_iam_config
from resolution.context import CompilerContext
from resolution.errors import (
    ConfigurationFileError,
    DuplicateLogicalId,
    UnresolvableAccountReference,
)
from resolution.models import (
    AssignmentDefinition,
    AssignmentPrincipal,
    CompilationTarget,
    PermissionSetDefinition,
)

INSTANCE_ARN = "arn:aws:sso:::instance/ssoins-1111111111111111"
IDENTITY_STORE_ID = "d-1111111111"

EXAMPLE_IAM_CONFIG = """
providers:
  - name: corp-idp
    metadataDocument: metadata/corp-idp.xml
policySets:
  - deploymentTargets:
      organizationalUnits: [Root]
    policies:
      - name: Default-Boundary
        policy: policies/boundary.json
roleSets:
  - deploymentTargets:
      accounts: [Management]
    path: /
    roles:
      - name: Backup-Role
        instanceProfile: true
        assumedBy:
          - type: service
            principal: backup.amazonaws.com
          - type: account
            principal: Audit
        policies:
          awsManaged: [service-role/AWSBackupServiceRolePolicyForBackup]
        boundaryPolicy: Default-Boundary
      - name: Federated-Admin
        assumedBy:
          - type: provider
            principal: corp-idp
        policies:
          awsManaged: [AdministratorAccess]
groupSets:
  - deploymentTargets:
      organizationalUnits: [Root]
    groups:
      - name: Operators
        policies:
          customerManaged: [Default-Boundary]
userSets:
  - deploymentTargets:
      organizationalUnits: [Root]
    users:
      - username: breakglass
        group: Operators
        boundaryPolicy: Default-Boundary
identityCenter:
  name: identityCenter1
  delegatedAdminAccount: Management
  identityCenterPermissionSets:
    - name: Admin
      policies:
        awsManaged: [AdministratorAccess]
      sessionDuration: 60
    - name: ReadOnly
      policies:
        awsManaged: [ReadOnlyAccess]
  identityCenterAssignments:
    - name: Admin-Assignment
      permissionSetName: Admin
      principals:
        - type: GROUP
          name: Admins
        - type: USER
          name: alice
      deploymentTargets:
        organizationalUnits: [Workloads/Dev, Security]
"""

BOUNDARY_POLICY = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [{"Effect": "Deny", "Action": "iam:CreateUser", "Resource": "*"}],
    }
)

INVENTORY = AccountInventory(
    [
        Account(name="Management", id="111111111111", organizational_unit="Root"),
        Account(name="Audit", id="222222222222", organizational_unit="Security"),
        Account(name="Dev", id="333333333333", organizational_unit="Workloads/Dev"),
    ]
)


def resolve_principals(principals, identity_store_id):
    return [
        AssignmentPrincipal(type=p.type, name=p.name, id=f"id-{p.name}")
        for p in principals
    ]


def make_context(account_id="111111111111", region="us-east-1", **kwargs):
    target = CompilationTarget(account_id=account_id, region=region)
    evaluator = DeploymentTargetEvaluator(INVENTORY, target)
    options = dict(
        target=target,
        partition="aws",
        lookup_account_id=INVENTORY.lookup_account_id,
        is_included=evaluator.is_included,
        account_ids_for=evaluator.account_ids_for,
        resolve_principals_metadata=resolve_principals,
        load_policy_document=lambda path, substitution_context: BOUNDARY_POLICY,
        home_region="us-east-1",
    )
    options.update(kwargs)
    return CompilerContext(**options)


class TestCompileTarget(unittest.TestCase):
    def setUp(self):
        self.iam_config = parse_iam_config(yaml.safe_load(EXAMPLE_IAM_CONFIG))

    def compile(self, context=None, **kwargs):
        options = dict(instance_arn=INSTANCE_ARN, identity_store_id=IDENTITY_STORE_ID)
        options.update(kwargs)
        return compile_target(self.iam_config, context or make_context(), **options)

    def test_definitions_in_creation_order(self):
        result = self.compile()
        self.assertEqual(
            [definition.logical_id for definition in result.definitions],
            [
                "CorpIdpSamlProvider",
                "DefaultBoundary",
                "BackupRole",
                "BackupRoleInstanceProfile",
                "FederatedAdmin",
                "Operators",
                "Breakglass",
                "AdminIdentityCenterPermissionSet",
                "ReadOnlyIdentityCenterPermissionSet",
                "AdminAssignment-222222222222-GROUP-Admins",
                "AdminAssignment-222222222222-USER-Alice",
                "AdminAssignment-333333333333-GROUP-Admins",
                "AdminAssignment-333333333333-USER-Alice",
            ],
        )

    def test_dependencies_point_to_earlier_definitions(self):
        result = self.compile()
        seen = set()
        for definition in result.definitions:
            for dependency in definition.references + definition.depends_on:
                self.assertIn(dependency, seen, definition.logical_id)
            seen.add(definition.logical_id)

    def test_dependency_edges(self):
        edges = self.compile().dependencies
        for edge in [
            ("BackupRole", "DefaultBoundary"),
            ("BackupRoleInstanceProfile", "BackupRole"),
            ("FederatedAdmin", "CorpIdpSamlProvider"),
            ("Operators", "DefaultBoundary"),
            ("Breakglass", "Operators"),
            ("Breakglass", "DefaultBoundary"),
            ("ReadOnlyIdentityCenterPermissionSet", "AdminIdentityCenterPermissionSet"),
            (
                "AdminAssignment-222222222222-GROUP-Admins",
                "AdminIdentityCenterPermissionSet",
            ),
            (
                "AdminAssignment-222222222222-USER-Alice",
                "AdminAssignment-222222222222-GROUP-Admins",
            ),
        ]:
            self.assertIn(edge, edges)
        self.assertEqual(len(edges), len(set(edges)))

    def test_compilation_is_deterministic(self):
        self.assertEqual(self.compile(), self.compile())

    def test_not_the_home_region(self):
        lookup = MagicMock()
        result = self.compile(
            make_context(region="eu-west-1", lookup_account_id=lookup)
        )
        self.assertEqual(result.definitions, [])
        self.assertEqual(result.audit_suppressions, [])
        lookup.assert_not_called()

    def test_identity_center_only_in_delegated_admin_account(self):
        result = self.compile(make_context(account_id="222222222222"))
        self.assertEqual(result.of_type(PermissionSetDefinition), [])
        self.assertEqual(result.of_type(AssignmentDefinition), [])
        # Audit is not a target of the Management role set
        self.assertEqual(
            [d.logical_id for d in result.definitions],
            ["CorpIdpSamlProvider", "DefaultBoundary", "Operators", "Breakglass"],
        )

    def test_security_admin_account_is_the_fallback_delegated_admin(self):
        self.iam_config = parse_iam_config(
            yaml.safe_load(EXAMPLE_IAM_CONFIG.replace("  delegatedAdminAccount: Management\n", ""))
        )
        self.assertEqual(
            len(self.compile(security_admin_account="Management").of_type(PermissionSetDefinition)),
            2,
        )
        self.assertEqual(
            len(self.compile(security_admin_account="222222222222").of_type(PermissionSetDefinition)),
            0,
        )
        with self.assertLogs("resolution.compiler", level="WARNING"):
            self.assertEqual(self.compile().of_type(PermissionSetDefinition), [])

    def test_unknown_delegated_admin_account(self):
        self.iam_config = parse_iam_config(
            yaml.safe_load(EXAMPLE_IAM_CONFIG.replace("delegatedAdminAccount: Management", "delegatedAdminAccount: Typo"))
        )
        with self.assertRaises(UnresolvableAccountReference):
            self.compile()

    def test_instance_arn_is_required_in_delegated_admin_account(self):
        with self.assertRaises(ConfigurationFileError):
            self.compile(instance_arn=None)

    def test_audit_suppressions_are_collected_and_forwarded(self):
        register = MagicMock()
        result = self.compile(make_context(register_audit_suppression=register))
        self.assertEqual(
            [(s.resource_path, s.rule_id) for s in result.audit_suppressions],
            [
                ("IamResources/DefaultBoundary/Resource", audit.IAM5),
                ("IamResources/BackupRole/Resource", audit.IAM4),
                ("IamResources/FederatedAdmin/Resource", audit.IAM4),
                ("IamResources/Operators/Resource", audit.IAM4),
                ("IamResources/BreakglassSecret/Resource", audit.SMG4),
            ],
        )
        self.assertEqual(register.call_count, 5)

    def test_permission_sets_use_instance_arn(self):
        result = self.compile()
        admin = result.of_type(PermissionSetDefinition)[0]
        self.assertEqual(admin.instance_arn, INSTANCE_ARN)
        self.assertEqual(admin.session_duration, "PT1H")
        for assignment in result.of_type(AssignmentDefinition):
            self.assertEqual(assignment.instance_arn, INSTANCE_ARN)
            self.assertEqual(assignment.permission_set_arn, admin.arn)


COLLIDING_IAM_CONFIG = """
policySets:
  - deploymentTargets:
      organizationalUnits: [Root]
    policies:
      - name: Admin
        policy: policies/admin.json
roleSets:
  - deploymentTargets:
      organizationalUnits: [Root]
    roles:
      - name: admin
        assumedBy:
          - type: service
            principal: ec2.amazonaws.com
        policies:
          customerManaged: [Admin]
groupSets:
  - deploymentTargets:
      organizationalUnits: [Root]
    groups:
      - name: ADMIN
"""


class TestUniqueLogicalIds(unittest.TestCase):
    def test_names_normalized_to_the_same_logical_id(self):
        iam_config = parse_iam_config(yaml.safe_load(COLLIDING_IAM_CONFIG))
        with self.assertLogs("resolution.compiler", level="ERROR"):
            with self.assertRaises(DuplicateLogicalId) as error:
                compile_target(iam_config, make_context())
        self.assertEqual(error.exception.entry, "IAM::Role admin")
        self.assertIn("'Admin'", str(error.exception))
        self.assertIn("IAM::ManagedPolicy Admin", str(error.exception))

    def test_repeated_principal_in_an_assignment(self):
        iam_config = parse_iam_config(
            yaml.safe_load(
                EXAMPLE_IAM_CONFIG.replace(
                    "        - type: USER\n          name: alice\n",
                    "        - type: GROUP\n          name: admins\n",
                )
            )
        )
        with self.assertRaises(DuplicateLogicalId) as error:
            compile_target(
                iam_config,
                make_context(),
                instance_arn=INSTANCE_ARN,
                identity_store_id=IDENTITY_STORE_ID,
            )
        self.assertEqual(
            error.exception.entry, "SSO::Assignment Admin-Assignment|222222222222"
        )


if __name__ == "__main__":
    unittest.main()
