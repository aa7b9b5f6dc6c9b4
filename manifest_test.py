# Unit Tests for resolution/manifest.py

import json
import unittest

from pyfakefs import fake_filesystem_unittest

from resolution.audit import IAM4
from resolution.manifest import (
    get_permission_set_properties,
    get_role_properties,
    get_trust_policy,
    render_manifest,
    write_manifest,
)
from resolution.models import (
    AuditSuppression,
    CompilationResult,
    CompilationTarget,
    CompositePrincipal,
    CustomerManagedPolicyReference,
    InstanceProfileDefinition,
    PermissionsBoundary,
    PermissionSetDefinition,
    PolicySourceKind,
    ResolvedPolicy,
    ResolvedPrincipal,
    ResolvedPrincipalKind,
    RoleDefinition,
)

INSTANCE_ARN = "arn:aws:sso:::instance/ssoins-1111111111111111"
PROVIDER_ARN = "arn:aws:iam::111111111111:saml-provider/corp-idp"

BOUNDARY = ResolvedPolicy(
    name="Default-Boundary",
    source_kind=PolicySourceKind.CUSTOMER_MANAGED,
    arn_or_document="arn:aws:iam::111111111111:policy/Default-Boundary",
    logical_id="DefaultBoundary",
)

BACKUP_ROLE = RoleDefinition(
    logical_id="BackupRole",
    name="Backup-Role",
    assumed_by=CompositePrincipal(
        principals=(
            ResolvedPrincipal(
                kind=ResolvedPrincipalKind.SERVICE, identifier="backup.amazonaws.com"
            ),
            ResolvedPrincipal(
                kind=ResolvedPrincipalKind.ACCOUNT_ID, identifier="222222222222"
            ),
        )
    ),
    managed_policies=(
        ResolvedPolicy(
            name="ReadOnlyAccess",
            source_kind=PolicySourceKind.AWS_MANAGED,
            arn_or_document="arn:aws:iam::aws:policy/ReadOnlyAccess",
        ),
    ),
    boundary=BOUNDARY,
    path="/",
    instance_profile=True,
    references=("DefaultBoundary",),
)


class TestTrustPolicy(unittest.TestCase):
    def test_composite_principal(self):
        self.assertEqual(
            get_trust_policy(BACKUP_ROLE.assumed_by, "aws"),
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": "backup.amazonaws.com"},
                        "Action": "sts:AssumeRole",
                    },
                    {
                        "Effect": "Allow",
                        "Principal": {"AWS": "arn:aws:iam::222222222222:root"},
                        "Action": "sts:AssumeRole",
                    },
                ],
            },
        )

    def test_console_provider_uses_partition_audience(self):
        principal = ResolvedPrincipal(
            kind=ResolvedPrincipalKind.FEDERATED_PROVIDER,
            identifier=PROVIDER_ARN,
            console_principal=True,
        )
        statement = get_trust_policy(principal, "aws-us-gov")["Statement"][0]
        self.assertEqual(statement["Action"], "sts:AssumeRoleWithSAML")
        self.assertEqual(statement["Principal"], {"Federated": PROVIDER_ARN})
        self.assertEqual(
            statement["Condition"],
            {"StringEquals": {"SAML:aud": "https://signin.amazonaws-us-gov.com/saml"}},
        )

    def test_explicit_conditions(self):
        conditions = {"StringEquals": {"SAML:aud": "https://signin.amazonaws.cn/saml"}}
        principal = ResolvedPrincipal(
            kind=ResolvedPrincipalKind.FEDERATED_PROVIDER,
            identifier=PROVIDER_ARN,
            extra_conditions=conditions,
        )
        statement = get_trust_policy(principal, "aws-cn")["Statement"][0]
        self.assertEqual(statement["Condition"], conditions)


class TestResourceProperties(unittest.TestCase):
    def test_role_properties(self):
        properties = get_role_properties(BACKUP_ROLE, "aws")
        self.assertEqual(properties["RoleName"], "Backup-Role")
        self.assertEqual(
            properties["ManagedPolicyArns"], ["arn:aws:iam::aws:policy/ReadOnlyAccess"]
        )
        self.assertEqual(
            properties["PermissionsBoundary"],
            "arn:aws:iam::111111111111:policy/Default-Boundary",
        )

    def test_role_without_policies(self):
        role = RoleDefinition(
            logical_id="Ops",
            name="Ops",
            assumed_by=ResolvedPrincipal(
                kind=ResolvedPrincipalKind.SERVICE, identifier="ec2.amazonaws.com"
            ),
            managed_policies=(),
        )
        self.assertEqual(
            sorted(get_role_properties(role, "aws")), ["AssumeRolePolicyDocument", "RoleName"]
        )

    def test_permission_set_properties(self):
        permission_set = PermissionSetDefinition(
            logical_id="AdminIdentityCenterPermissionSet",
            name="Admin",
            instance_arn=INSTANCE_ARN,
            managed_policy_arns=("arn:aws:iam::aws:policy/AdministratorAccess",),
            customer_managed_policy_references=(
                CustomerManagedPolicyReference(name="Ops-Policy"),
            ),
            session_duration="PT1H30M",
            permissions_boundary=PermissionsBoundary(
                customer_managed_policy_reference=CustomerManagedPolicyReference(
                    name="Ops-Boundary", path="/boundaries/"
                )
            ),
        )
        self.assertEqual(
            get_permission_set_properties(permission_set, "aws"),
            {
                "Name": "Admin",
                "InstanceArn": INSTANCE_ARN,
                "ManagedPolicies": ["arn:aws:iam::aws:policy/AdministratorAccess"],
                "CustomerManagedPolicyReferences": [{"Name": "Ops-Policy"}],
                "SessionDuration": "PT1H30M",
                "PermissionsBoundary": {
                    "CustomerManagedPolicyReference": {
                        "Name": "Ops-Boundary",
                        "Path": "/boundaries/",
                    }
                },
            },
        )

    def test_aws_managed_permissions_boundary(self):
        permission_set = PermissionSetDefinition(
            logical_id="ReadOnlyIdentityCenterPermissionSet",
            name="ReadOnly",
            instance_arn=INSTANCE_ARN,
            permissions_boundary=PermissionsBoundary(
                managed_policy_arn="arn:aws:iam::aws:policy/PowerUserAccess"
            ),
        )
        self.assertEqual(
            get_permission_set_properties(permission_set, "aws")["PermissionsBoundary"],
            {"ManagedPolicyArn": "arn:aws:iam::aws:policy/PowerUserAccess"},
        )


def make_result():
    return CompilationResult(
        target=CompilationTarget(account_id="111111111111", region="us-east-1"),
        definitions=[
            BACKUP_ROLE,
            InstanceProfileDefinition(
                logical_id="BackupRoleInstanceProfile",
                name="Backup-Role",
                role_name="Backup-Role",
                references=("BackupRole",),
            ),
        ],
        audit_suppressions=[
            AuditSuppression(
                resource_path="IamResources/BackupRole/Resource",
                rule_id=IAM4,
                reason="IAM Role created as per iam-config needs AWS managed policy",
            )
        ],
    )


class TestRenderManifest(unittest.TestCase):
    def test_render_manifest(self):
        manifest = render_manifest(make_result(), "aws")
        self.assertEqual(
            manifest["Target"], {"AccountId": "111111111111", "Region": "us-east-1"}
        )
        self.assertEqual(
            [(r["LogicalId"], r["Type"], r["DependsOn"]) for r in manifest["Resources"]],
            [
                ("BackupRole", "IAM::Role", ["DefaultBoundary"]),
                ("BackupRoleInstanceProfile", "IAM::InstanceProfile", ["BackupRole"]),
            ],
        )
        self.assertEqual(
            manifest["Dependencies"],
            [
                {"Dependent": "BackupRole", "Dependency": "DefaultBoundary"},
                {"Dependent": "BackupRoleInstanceProfile", "Dependency": "BackupRole"},
            ],
        )
        self.assertEqual(manifest["AuditSuppressions"][0]["RuleId"], IAM4)


class TestWriteManifest(fake_filesystem_unittest.TestCase):
    def setUp(self):
        self.setUpPyfakefs()

    def test_write_manifest(self):
        path = write_manifest(make_result(), "/out", "aws")
        self.assertEqual(path, "/out/111111111111-us-east-1.json")
        with open(path) as f:
            manifest = json.load(f)
        self.assertEqual(len(manifest["Resources"]), 2)
        self.assertEqual(
            manifest["Resources"][1]["Properties"],
            {"InstanceProfileName": "Backup-Role", "Roles": ["Backup-Role"]},
        )


if __name__ == "__main__":
    unittest.main()
