# Unit Tests for resolution/roles.py

import dataclasses
import json
import unittest
from unittest.mock import MagicMock

from resolution import audit
from resolution.audit import AuditSuppressionRecorder
from resolution.config import (
    DeploymentTargets,
    GroupConfig,
    GroupSetConfig,
    PoliciesConfig,
    PolicyConfig,
    PolicySetConfig,
    ProviderConfig,
    RoleConfig,
    RoleSetConfig,
    UserConfig,
    UserSetConfig,
)
from resolution.context import CompilerContext
from resolution.errors import (
    AmbiguousProviderPrincipal,
    MalformedPolicyDocument,
    UnregisteredGroup,
    UnregisteredPolicy,
)
from resolution.models import (
    CompilationTarget,
    CompositePrincipal,
    PrincipalKind,
    PrincipalReference,
    ResolvedPrincipal,
    ResolvedPrincipalKind,
)
from resolution.policies import PolicyRegistry
from resolution.roles import (
    compile_groups,
    compile_managed_policies,
    compile_role,
    compile_role_sets,
    compile_saml_providers,
    compile_users,
)

BOUNDARY_POLICY = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [{"Effect": "Deny", "Action": "iam:CreateUser", "Resource": "*"}],
    }
)

ALL_ACCOUNTS = DeploymentTargets(organizational_units=("Root",))


def make_context(included=True, accounts=None, documents=None, partition="aws"):
    accounts = accounts or {}
    documents = documents or {}
    return CompilerContext(
        target=CompilationTarget(account_id="111111111111", region="us-east-1"),
        partition=partition,
        lookup_account_id=accounts.get,
        is_included=lambda deployment_targets: included,
        account_ids_for=lambda deployment_targets: [],
        resolve_principals_metadata=MagicMock(),
        load_policy_document=lambda path, substitution_context: documents[path],
        register_audit_suppression=AuditSuppressionRecorder(),
    )


def role(name, *assumed_by, aws_managed=(), customer_managed=(), boundary=None):
    return RoleConfig(
        name=name,
        assumed_by=tuple(
            PrincipalReference(kind=kind, value=value) for kind, value in assumed_by
        ),
        policies=PoliciesConfig(
            aws_managed=tuple(aws_managed), customer_managed=tuple(customer_managed)
        ),
        boundary_policy=boundary,
    )


class TestCompileSamlProviders(unittest.TestCase):
    def test_provider_arn_and_logical_id(self):
        providers = compile_saml_providers(
            [ProviderConfig(name="corp-idp", metadata_document="metadata/idp.xml")],
            make_context(partition="aws-us-gov"),
        )
        self.assertEqual(len(providers), 1)
        self.assertEqual(providers[0].logical_id, "CorpIdpSamlProvider")
        self.assertEqual(
            providers[0].arn, "arn:aws-us-gov:iam::111111111111:saml-provider/corp-idp"
        )


class TestCompileManagedPolicies(unittest.TestCase):
    def setUp(self):
        self.policy_set = PolicySetConfig(
            deployment_targets=ALL_ACCOUNTS,
            policies=(PolicyConfig(name="Default-Boundary", policy="boundary.json"),),
        )

    def test_policies_are_created_and_registered(self):
        context = make_context(documents={"boundary.json": BOUNDARY_POLICY})
        registry = PolicyRegistry()
        definitions = compile_managed_policies([self.policy_set], context, registry)

        self.assertEqual(len(definitions), 1)
        self.assertEqual(definitions[0].logical_id, "DefaultBoundary")
        self.assertEqual(definitions[0].statements[0].effect, "Deny")
        policy = registry.lookup("Default-Boundary")
        self.assertEqual(
            policy.arn_or_document, "arn:aws:iam::111111111111:policy/Default-Boundary"
        )
        self.assertEqual(policy.logical_id, "DefaultBoundary")
        suppressions = context.register_audit_suppression.suppressions
        self.assertEqual(
            [(s.resource_path, s.rule_id) for s in suppressions],
            [("IamResources/DefaultBoundary/Resource", audit.IAM5)],
        )

    def test_excluded_policy_set(self):
        registry = PolicyRegistry()
        definitions = compile_managed_policies(
            [self.policy_set], make_context(included=False), registry
        )
        self.assertEqual(definitions, [])
        self.assertEqual(len(registry), 0)

    def test_identity_center_dependency_is_skipped(self):
        policy_set = PolicySetConfig(
            deployment_targets=ALL_ACCOUNTS,
            policies=self.policy_set.policies,
            identity_center_dependency=True,
        )
        registry = PolicyRegistry()
        self.assertEqual(
            compile_managed_policies([policy_set], make_context(), registry), []
        )
        self.assertNotIn("Default-Boundary", registry)

    def test_malformed_policy_names_the_policy_document(self):
        context = make_context(documents={"boundary.json": "not json"})
        with self.assertRaises(MalformedPolicyDocument) as error:
            compile_managed_policies([self.policy_set], context, PolicyRegistry())
        self.assertEqual(error.exception.entry, "boundary.json")


class TestCompileRole(unittest.TestCase):
    def setUp(self):
        self.context = make_context(accounts={"Audit": "222222222222"})
        self.registry = PolicyRegistry()
        self.registry.register(
            "Default-Boundary",
            "arn:aws:iam::111111111111:policy/Default-Boundary",
            logical_id="DefaultBoundary",
        )
        self.providers = {
            provider.name: provider
            for provider in compile_saml_providers(
                [ProviderConfig(name="corp-idp", metadata_document="idp.xml")],
                self.context,
            )
        }
        self.role_set = RoleSetConfig(deployment_targets=ALL_ACCOUNTS, roles=(), path="/")

    def test_multiple_principals_become_composite(self):
        role_config = role(
            "Backup-Role",
            (PrincipalKind.SERVICE, "backup.amazonaws.com"),
            (PrincipalKind.ACCOUNT, "Audit"),
            aws_managed=["service-role/AWSBackupServiceRolePolicyForBackup"],
            boundary="Default-Boundary",
        )
        definition, instance_profile = compile_role(
            role_config, self.role_set, self.context, self.registry, self.providers
        )
        self.assertIsNone(instance_profile)
        self.assertEqual(definition.logical_id, "BackupRole")
        self.assertEqual(definition.path, "/")
        self.assertEqual(
            definition.assumed_by,
            CompositePrincipal(
                principals=(
                    ResolvedPrincipal(
                        kind=ResolvedPrincipalKind.SERVICE,
                        identifier="backup.amazonaws.com",
                    ),
                    ResolvedPrincipal(
                        kind=ResolvedPrincipalKind.ACCOUNT_ID,
                        identifier="222222222222",
                    ),
                )
            ),
        )
        self.assertEqual(definition.boundary.name, "Default-Boundary")
        self.assertEqual(definition.references, ("DefaultBoundary",))

    def test_single_principal_is_still_composite(self):
        definition, _ = compile_role(
            role("Ops", (PrincipalKind.SERVICE, "ec2.amazonaws.com")),
            self.role_set,
            self.context,
            self.registry,
            self.providers,
        )
        self.assertIsInstance(definition.assumed_by, CompositePrincipal)
        self.assertEqual(len(definition.assumed_by.principals), 1)

    def test_provider_principal_is_used_alone(self):
        definition, _ = compile_role(
            role("Federated-Admin", (PrincipalKind.PROVIDER, "corp-idp")),
            self.role_set,
            self.context,
            self.registry,
            self.providers,
        )
        self.assertIsInstance(definition.assumed_by, ResolvedPrincipal)
        self.assertTrue(definition.assumed_by.console_principal)
        self.assertEqual(
            definition.assumed_by.identifier,
            "arn:aws:iam::111111111111:saml-provider/corp-idp",
        )
        self.assertEqual(definition.references, ("CorpIdpSamlProvider",))

    def test_provider_with_other_principals_is_ambiguous(self):
        lookup = MagicMock(return_value="222222222222")
        context = dataclasses.replace(make_context(), lookup_account_id=lookup)
        role_config = role(
            "Mixed",
            (PrincipalKind.ACCOUNT, "Audit"),
            (PrincipalKind.PROVIDER, "corp-idp"),
        )
        with self.assertRaises(AmbiguousProviderPrincipal) as error:
            compile_role(
                role_config, self.role_set, context, self.registry, self.providers
            )
        self.assertEqual(error.exception.entry, "Role: Mixed")
        # Rejected before any principal is resolved
        lookup.assert_not_called()

    def test_unregistered_customer_managed_policy(self):
        role_config = role(
            "Ops",
            (PrincipalKind.SERVICE, "ec2.amazonaws.com"),
            customer_managed=["Not-Created"],
        )
        with self.assertRaises(UnregisteredPolicy) as error:
            compile_role(
                role_config, self.role_set, self.context, self.registry, self.providers
            )
        self.assertEqual(error.exception.entry, "Role: Ops")

    def test_instance_profile_references_role(self):
        role_config = RoleConfig(
            name="Ec2-Role",
            assumed_by=(
                PrincipalReference(kind=PrincipalKind.SERVICE, value="ec2.amazonaws.com"),
            ),
            policies=PoliciesConfig(),
            instance_profile=True,
        )
        definition, instance_profile = compile_role(
            role_config, self.role_set, self.context, self.registry, self.providers
        )
        self.assertTrue(definition.instance_profile)
        self.assertEqual(instance_profile.logical_id, "Ec2RoleInstanceProfile")
        self.assertEqual(instance_profile.role_name, "Ec2-Role")
        self.assertEqual(instance_profile.references, ("Ec2Role",))

    def test_role_sets_keep_instance_profile_after_role(self):
        role_set = RoleSetConfig(
            deployment_targets=ALL_ACCOUNTS,
            roles=(
                RoleConfig(
                    name="Ec2-Role",
                    assumed_by=(
                        PrincipalReference(
                            kind=PrincipalKind.SERVICE, value="ec2.amazonaws.com"
                        ),
                    ),
                    policies=PoliciesConfig(),
                    instance_profile=True,
                ),
                role("Ops", (PrincipalKind.SERVICE, "ec2.amazonaws.com")),
            ),
        )
        definitions = compile_role_sets(
            [role_set], self.context, self.registry, self.providers
        )
        self.assertEqual(
            [definition.logical_id for definition in definitions],
            ["Ec2Role", "Ec2RoleInstanceProfile", "Ops"],
        )
        suppressions = self.context.register_audit_suppression.suppressions
        self.assertEqual([s.rule_id for s in suppressions], [audit.IAM4, audit.IAM4])

    def test_excluded_role_set(self):
        role_set = RoleSetConfig(
            deployment_targets=ALL_ACCOUNTS,
            roles=(role("Ops", (PrincipalKind.ACCOUNT, "Unknown")),),
        )
        self.assertEqual(
            compile_role_sets(
                [role_set], make_context(included=False), self.registry, {}
            ),
            [],
        )


class TestCompileGroupsAndUsers(unittest.TestCase):
    def setUp(self):
        self.context = make_context()
        self.registry = PolicyRegistry()
        self.registry.register(
            "Default-Boundary",
            "arn:aws:iam::111111111111:policy/Default-Boundary",
            logical_id="DefaultBoundary",
        )
        self.group_sets = [
            GroupSetConfig(
                deployment_targets=ALL_ACCOUNTS,
                groups=(
                    GroupConfig(
                        name="Operators",
                        policies=PoliciesConfig(aws_managed=("ReadOnlyAccess",)),
                    ),
                ),
            )
        ]

    def test_groups_by_name(self):
        groups = compile_groups(self.group_sets, self.context, self.registry)
        self.assertEqual(list(groups), ["Operators"])
        self.assertEqual(
            groups["Operators"].managed_policies[0].arn_or_document,
            "arn:aws:iam::aws:policy/ReadOnlyAccess",
        )
        self.assertEqual(groups["Operators"].references, ())

    def test_user_references_group_and_boundary(self):
        groups = compile_groups(self.group_sets, self.context, self.registry)
        user_sets = [
            UserSetConfig(
                deployment_targets=ALL_ACCOUNTS,
                users=(
                    UserConfig(
                        username="breakglass",
                        group="Operators",
                        boundary_policy="Default-Boundary",
                    ),
                ),
            )
        ]
        users = compile_users(user_sets, self.context, self.registry, groups)
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].logical_id, "Breakglass")
        self.assertEqual(users[0].password_secret_name, "/accelerator/breakglass")
        self.assertTrue(users[0].password_reset_required)
        self.assertEqual(users[0].references, ("Operators", "DefaultBoundary"))
        suppressions = self.context.register_audit_suppression.suppressions
        self.assertIn(
            ("IamResources/BreakglassSecret/Resource", audit.SMG4),
            [(s.resource_path, s.rule_id) for s in suppressions],
        )

    def test_user_with_unknown_group(self):
        user_sets = [
            UserSetConfig(
                deployment_targets=ALL_ACCOUNTS,
                users=(UserConfig(username="alice", group="Missing"),),
            )
        ]
        with self.assertRaises(UnregisteredGroup) as error:
            compile_users(user_sets, self.context, self.registry, {})
        self.assertEqual(error.exception.entry, "User: alice")


if __name__ == "__main__":
    unittest.main()
