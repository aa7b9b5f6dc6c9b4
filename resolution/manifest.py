# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

# Permission is hereby granted, free of charge, to any person obtaining a copy of this
# software and associated documentation files (the "Software"), to deal in the Software
# without restriction, including without limitation the rights to use, copy, modify,
# merge, publish, distribute, sublicense, and/or sell copies of the Software, and to
# permit persons to whom the Software is furnished to do so.

# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED,
# INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A
# PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT
# HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
# OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE
# SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.

## + ----------------------------------
## | Resource manifest
## +-----------------------------------

"""
Renders a CompilationResult as a JSON manifest that a provisioning engine can
consume:

{
  "Target": {"AccountId": "111111111111", "Region": "us-east-1"},
  "Resources": [
    {"LogicalId": "...", "Type": "IAM::Role", "Properties": {...}, "DependsOn": [...]}
  ],
  "Dependencies": [{"Dependent": "...", "Dependency": "..."}],
  "AuditSuppressions": [{"Path": "...", "RuleId": "...", "Reason": "..."}]
}

Resources are listed in creation order. Permission set ARNs that only exist
once the permission set is provisioned are written as ${LogicalId.PermissionSetArn}.
"""

import json
import logging
import os
from typing import Optional, Union

from .models import (
    AssignmentDefinition,
    CompilationResult,
    CompositePrincipal,
    GroupDefinition,
    InstanceProfileDefinition,
    ManagedPolicyDefinition,
    PermissionSetDefinition,
    ResolvedPolicy,
    ResolvedPrincipal,
    ResolvedPrincipalKind,
    RoleDefinition,
    SamlProviderDefinition,
    UserDefinition,
)
from .permission_sets import POLICY_VERSION

log = logging.getLogger(__name__)

SAML_SIGN_IN_AUDIENCES = {
    "aws": "https://signin.aws.amazon.com/saml",
    "aws-cn": "https://signin.amazonaws.cn/saml",
    "aws-us-gov": "https://signin.amazonaws-us-gov.com/saml",
}


def get_trust_statement(principal: ResolvedPrincipal, partition: str) -> dict:
    """
    Helper function to build the trust policy statement of one principal.
    :param principal: The resolved principal
    :param partition: The active partition
    :return: An IAM policy statement allowing the principal to assume the role
    :rtype: dict
    """
    identifier = principal.identifier
    if principal.kind == ResolvedPrincipalKind.ACCOUNT_ID:
        identifier = f"arn:{partition}:iam::{identifier}:root"
    statement = {
        "Effect": "Allow",
        "Principal": {principal.kind.value: identifier},
        "Action": principal.assume_role_action,
    }
    if principal.extra_conditions:
        statement["Condition"] = principal.extra_conditions
    elif principal.console_principal:
        statement["Condition"] = {
            "StringEquals": {
                "SAML:aud": SAML_SIGN_IN_AUDIENCES.get(
                    partition, SAML_SIGN_IN_AUDIENCES["aws"]
                )
            }
        }
    return statement


def get_trust_policy(
    assumed_by: Union[ResolvedPrincipal, CompositePrincipal], partition: str
) -> dict:
    if isinstance(assumed_by, CompositePrincipal):
        principals = assumed_by.principals
    else:
        principals = (assumed_by,)
    return {
        "Version": POLICY_VERSION,
        "Statement": [get_trust_statement(p, partition) for p in principals],
    }


def _policy_arn(policy: Optional[ResolvedPolicy]) -> Optional[str]:
    if policy is None:
        return None
    return policy.arn_or_document


def _without_empty(properties: dict) -> dict:
    return {key: value for key, value in properties.items() if value not in (None, [], {})}


def get_saml_provider_properties(definition: SamlProviderDefinition, partition: str) -> dict:
    return {
        "Name": definition.name,
        "MetadataDocument": definition.metadata_document,
        "Arn": definition.arn,
    }


def get_managed_policy_properties(definition: ManagedPolicyDefinition, partition: str) -> dict:
    return {
        "ManagedPolicyName": definition.name,
        "PolicyDocument": {
            "Version": POLICY_VERSION,
            "Statement": [statement.to_json() for statement in definition.statements],
        },
    }


def get_role_properties(definition: RoleDefinition, partition: str) -> dict:
    return _without_empty(
        {
            "RoleName": definition.name,
            "Path": definition.path,
            "AssumeRolePolicyDocument": get_trust_policy(definition.assumed_by, partition),
            "ManagedPolicyArns": [_policy_arn(p) for p in definition.managed_policies],
            "PermissionsBoundary": _policy_arn(definition.boundary),
        }
    )


def get_instance_profile_properties(
    definition: InstanceProfileDefinition, partition: str
) -> dict:
    return {
        "InstanceProfileName": definition.name,
        "Roles": [definition.role_name],
    }


def get_group_properties(definition: GroupDefinition, partition: str) -> dict:
    return _without_empty(
        {
            "GroupName": definition.name,
            "ManagedPolicyArns": [_policy_arn(p) for p in definition.managed_policies],
        }
    )


def get_user_properties(definition: UserDefinition, partition: str) -> dict:
    return _without_empty(
        {
            "UserName": definition.username,
            "Groups": [definition.group],
            "PermissionsBoundary": _policy_arn(definition.boundary),
            "PasswordSecretName": definition.password_secret_name,
            "PasswordResetRequired": definition.password_reset_required,
        }
    )


def get_permission_set_properties(
    definition: PermissionSetDefinition, partition: str
) -> dict:
    permissions_boundary = None
    boundary = definition.permissions_boundary
    if boundary and boundary.customer_managed_policy_reference:
        reference = boundary.customer_managed_policy_reference
        permissions_boundary = {
            "CustomerManagedPolicyReference": _without_empty(
                {"Name": reference.name, "Path": reference.path}
            )
        }
    elif boundary and boundary.managed_policy_arn:
        permissions_boundary = {"ManagedPolicyArn": boundary.managed_policy_arn}

    return _without_empty(
        {
            "Name": definition.name,
            "InstanceArn": definition.instance_arn,
            "ManagedPolicies": list(definition.managed_policy_arns),
            "CustomerManagedPolicyReferences": [
                _without_empty({"Name": reference.name, "Path": reference.path})
                for reference in definition.customer_managed_policy_references
            ],
            "SessionDuration": definition.session_duration,
            "PermissionsBoundary": permissions_boundary,
            "InlinePolicy": definition.inline_policy,
        }
    )


def get_assignment_properties(definition: AssignmentDefinition, partition: str) -> dict:
    return {
        "InstanceArn": definition.instance_arn,
        "PermissionSetArn": definition.permission_set_arn,
        "PrincipalType": definition.principal_type,
        "PrincipalId": definition.principal_id,
        "TargetId": definition.target_account_id,
        "TargetType": definition.target_type,
    }


PROPERTY_RENDERERS = {
    SamlProviderDefinition: get_saml_provider_properties,
    ManagedPolicyDefinition: get_managed_policy_properties,
    RoleDefinition: get_role_properties,
    InstanceProfileDefinition: get_instance_profile_properties,
    GroupDefinition: get_group_properties,
    UserDefinition: get_user_properties,
    PermissionSetDefinition: get_permission_set_properties,
    AssignmentDefinition: get_assignment_properties,
}


def render_manifest(result: CompilationResult, partition: str) -> dict:
    resources = []
    for definition in result.definitions:
        depends_on = []
        for dependency in definition.references + definition.depends_on:
            if dependency not in depends_on:
                depends_on.append(dependency)
        resources.append(
            {
                "LogicalId": definition.logical_id,
                "Type": definition.resource_type,
                "Properties": PROPERTY_RENDERERS[type(definition)](definition, partition),
                "DependsOn": depends_on,
            }
        )
    return {
        "Target": {
            "AccountId": result.target.account_id,
            "Region": result.target.region,
        },
        "Resources": resources,
        "Dependencies": [
            {"Dependent": dependent, "Dependency": dependency}
            for dependent, dependency in result.dependencies
        ],
        "AuditSuppressions": [
            {
                "Path": suppression.resource_path,
                "RuleId": suppression.rule_id,
                "Reason": suppression.reason,
            }
            for suppression in result.audit_suppressions
        ],
    }


def get_manifest_path(output_dir: str, result: CompilationResult) -> str:
    return os.path.join(
        output_dir, f"{result.target.account_id}-{result.target.region}.json"
    )


def write_manifest(result: CompilationResult, output_dir: str, partition: str) -> str:
    """
    Writes the manifest of *result* to <output_dir>/<account>-<region>.json.
    :return: The path of the manifest file
    :rtype: str
    """
    os.makedirs(output_dir, exist_ok=True)
    manifest_path = get_manifest_path(output_dir, result)
    with open(manifest_path, "w") as f:
        json.dump(render_manifest(result, partition), f, indent=2)
    log.info(f"Resource manifest successfully created at {manifest_path}")
    return manifest_path
