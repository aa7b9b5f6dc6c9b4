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
## | IAM configuration model
## +-----------------------------------

"""
Loads the iam-config YAML file into immutable configuration objects.

Example:

    providers:
      - name: CorpIdP
        metadataDocument: iam-policies/corp-idp-metadata.xml
    policySets:
      - deploymentTargets:
          organizationalUnits: [Root]
        policies:
          - name: Default-Boundary-Policy
            policy: iam-policies/boundary-policy.json
    roleSets:
      - deploymentTargets:
          accounts: [Network]
        path: /
        roles:
          - name: Backup-Role
            instanceProfile: false
            assumedBy:
              - type: service
                principal: backup.amazonaws.com
            policies:
              awsManaged: [service-role/AWSBackupServiceRolePolicyForBackup]
            boundaryPolicy: Default-Boundary-Policy
    identityCenter:
      name: identityCenter1
      identityCenterPermissionSets:
        - name: PermissionSet1
          policies:
            awsManaged: [AdministratorAccess]
          sessionDuration: 60
      identityCenterAssignments:
        - name: Assignment1
          permissionSetName: PermissionSet1
          principals:
            - type: GROUP
              name: Admins
          deploymentTargets:
            accounts: [LogArchive]
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import yaml

from .errors import ConfigurationFileError
from .models import PrincipalKind, PrincipalReference

log = logging.getLogger(__name__)


def _required(data: dict, key: str, context: str):
    try:
        return data[key]
    except (KeyError, TypeError):
        raise ConfigurationFileError(
            f"A required key '{key}' was not found. Review its contents and try again.",
            entry=context,
        )


def _names(values) -> Tuple[str, ...]:
    return tuple(str(value) for value in values or [])


@dataclass(frozen=True)
class DeploymentTargets:
    accounts: Tuple[str, ...] = ()
    organizational_units: Tuple[str, ...] = ()
    excluded_accounts: Tuple[str, ...] = ()
    excluded_regions: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DeploymentTargets":
        data = data or {}
        return cls(
            accounts=_names(data.get("accounts")),
            organizational_units=_names(data.get("organizationalUnits")),
            excluded_accounts=_names(data.get("excludedAccounts")),
            excluded_regions=_names(data.get("excludedRegions")),
        )


@dataclass(frozen=True)
class PoliciesConfig:
    aws_managed: Tuple[str, ...] = ()
    customer_managed: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PoliciesConfig":
        data = data or {}
        return cls(
            aws_managed=_names(data.get("awsManaged")),
            customer_managed=_names(data.get("customerManaged")),
        )


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    metadata_document: str


@dataclass(frozen=True)
class PolicyConfig:
    name: str
    policy: str


@dataclass(frozen=True)
class PolicySetConfig:
    deployment_targets: DeploymentTargets
    policies: Tuple[PolicyConfig, ...]
    identity_center_dependency: bool = False


@dataclass(frozen=True)
class RoleConfig:
    name: str
    assumed_by: Tuple[PrincipalReference, ...]
    policies: PoliciesConfig
    boundary_policy: Optional[str] = None
    instance_profile: bool = False


@dataclass(frozen=True)
class RoleSetConfig:
    deployment_targets: DeploymentTargets
    roles: Tuple[RoleConfig, ...]
    path: Optional[str] = None


@dataclass(frozen=True)
class GroupConfig:
    name: str
    policies: PoliciesConfig


@dataclass(frozen=True)
class GroupSetConfig:
    deployment_targets: DeploymentTargets
    groups: Tuple[GroupConfig, ...]


@dataclass(frozen=True)
class UserConfig:
    username: str
    group: str
    boundary_policy: Optional[str] = None


@dataclass(frozen=True)
class UserSetConfig:
    deployment_targets: DeploymentTargets
    users: Tuple[UserConfig, ...]


@dataclass(frozen=True)
class CustomerManagedPolicyConfig:
    name: str
    path: Optional[str] = None


@dataclass(frozen=True)
class PermissionsBoundaryConfig:
    customer_managed_policy: Optional[CustomerManagedPolicyConfig] = None
    aws_managed_policy_name: Optional[str] = None


@dataclass(frozen=True)
class PermissionSetPoliciesConfig:
    aws_managed: Tuple[str, ...] = ()
    customer_managed: Tuple[str, ...] = ()
    accelerator_managed: Tuple[str, ...] = ()
    inline_policy: Optional[str] = None
    permissions_boundary: Optional[PermissionsBoundaryConfig] = None


@dataclass(frozen=True)
class PermissionSetConfig:
    name: str
    policies: Optional[PermissionSetPoliciesConfig] = None
    # Minutes
    session_duration: Optional[int] = None


@dataclass(frozen=True)
class AssignmentPrincipalConfig:
    type: str
    name: str


@dataclass(frozen=True)
class AssignmentConfig:
    name: str
    permission_set_name: str
    deployment_targets: DeploymentTargets
    principal_id: Optional[str] = None
    principal_type: Optional[str] = None
    principals: Tuple[AssignmentPrincipalConfig, ...] = ()


@dataclass(frozen=True)
class IdentityCenterConfig:
    name: str
    delegated_admin_account: Optional[str] = None
    permission_sets: Tuple[PermissionSetConfig, ...] = ()
    assignments: Tuple[AssignmentConfig, ...] = ()


@dataclass(frozen=True)
class IamConfig:
    providers: Tuple[ProviderConfig, ...] = ()
    policy_sets: Tuple[PolicySetConfig, ...] = ()
    role_sets: Tuple[RoleSetConfig, ...] = ()
    group_sets: Tuple[GroupSetConfig, ...] = ()
    user_sets: Tuple[UserSetConfig, ...] = ()
    identity_center: Optional[IdentityCenterConfig] = None


#####################
# Parsing helpers   #
#####################


def _parse_principal_reference(data: dict, context: str) -> PrincipalReference:
    kind = _required(data, "type", context)
    try:
        principal_kind = PrincipalKind(kind)
    except ValueError:
        raise ConfigurationFileError(
            f"Unsupported assumedBy type '{kind}'. Expected one of service, account, provider.",
            entry=context,
        )
    return PrincipalReference(
        kind=principal_kind, value=str(_required(data, "principal", context))
    )


def _parse_role(data: dict) -> RoleConfig:
    name = _required(data, "name", "Role")
    context = f"Role: {name}"
    return RoleConfig(
        name=name,
        assumed_by=tuple(
            _parse_principal_reference(item, context)
            for item in _required(data, "assumedBy", context)
        ),
        policies=PoliciesConfig.from_dict(data.get("policies")),
        boundary_policy=data.get("boundaryPolicy"),
        instance_profile=bool(data.get("instanceProfile", False)),
    )


def _parse_permission_set(data: dict) -> PermissionSetConfig:
    name = _required(data, "name", "PermissionSet")
    policies_data = data.get("policies")
    policies = None
    if policies_data:
        boundary = None
        boundary_data = policies_data.get("permissionsBoundary")
        if boundary_data:
            customer_managed = None
            if boundary_data.get("customerManagedPolicy"):
                customer_managed = CustomerManagedPolicyConfig(
                    name=_required(
                        boundary_data["customerManagedPolicy"], "name", f"PS: {name}"
                    ),
                    path=boundary_data["customerManagedPolicy"].get("path"),
                )
            boundary = PermissionsBoundaryConfig(
                customer_managed_policy=customer_managed,
                aws_managed_policy_name=boundary_data.get("awsManagedPolicyName"),
            )
        policies = PermissionSetPoliciesConfig(
            aws_managed=_names(policies_data.get("awsManaged")),
            customer_managed=_names(policies_data.get("customerManaged")),
            accelerator_managed=_names(policies_data.get("acceleratorManaged")),
            inline_policy=policies_data.get("inlinePolicy"),
            permissions_boundary=boundary,
        )
    session_duration = data.get("sessionDuration")
    return PermissionSetConfig(
        name=name,
        policies=policies,
        session_duration=int(session_duration) if session_duration else None,
    )


def _parse_assignment(data: dict) -> AssignmentConfig:
    name = _required(data, "name", "Assignment")
    context = f"Assignment: {name}"
    principal_id = data.get("principalId")
    return AssignmentConfig(
        name=name,
        permission_set_name=_required(data, "permissionSetName", context),
        deployment_targets=DeploymentTargets.from_dict(
            _required(data, "deploymentTargets", context)
        ),
        principal_id=str(principal_id) if principal_id is not None else None,
        principal_type=data.get("principalType"),
        principals=tuple(
            AssignmentPrincipalConfig(
                type=_required(item, "type", context),
                name=str(_required(item, "name", context)),
            )
            for item in data.get("principals") or []
        ),
    )


def parse_iam_config(data: dict) -> IamConfig:
    """
    Converts the raw iam-config dictionary into an IamConfig.
    :param data: The dictionary loaded from the iam-config YAML file
    :return: The parsed configuration
    :rtype: IamConfig
    """
    data = data or {}
    identity_center = None
    identity_center_data = data.get("identityCenter")
    if identity_center_data:
        identity_center = IdentityCenterConfig(
            name=_required(identity_center_data, "name", "IdentityCenter"),
            delegated_admin_account=identity_center_data.get("delegatedAdminAccount"),
            permission_sets=tuple(
                _parse_permission_set(item)
                for item in identity_center_data.get("identityCenterPermissionSets")
                or []
            ),
            assignments=tuple(
                _parse_assignment(item)
                for item in identity_center_data.get("identityCenterAssignments")
                or []
            ),
        )

    return IamConfig(
        providers=tuple(
            ProviderConfig(
                name=_required(item, "name", "Provider"),
                metadata_document=_required(
                    item, "metadataDocument", f"Provider: {item.get('name')}"
                ),
            )
            for item in data.get("providers") or []
        ),
        policy_sets=tuple(
            PolicySetConfig(
                deployment_targets=DeploymentTargets.from_dict(
                    item.get("deploymentTargets")
                ),
                policies=tuple(
                    PolicyConfig(
                        name=_required(policy, "name", "Policy"),
                        policy=_required(policy, "policy", f"Policy: {policy.get('name')}"),
                    )
                    for policy in _required(item, "policies", "PolicySet")
                ),
                identity_center_dependency=bool(
                    item.get("identityCenterDependency", False)
                ),
            )
            for item in data.get("policySets") or []
        ),
        role_sets=tuple(
            RoleSetConfig(
                deployment_targets=DeploymentTargets.from_dict(
                    item.get("deploymentTargets")
                ),
                roles=tuple(
                    _parse_role(role) for role in _required(item, "roles", "RoleSet")
                ),
                path=item.get("path"),
            )
            for item in data.get("roleSets") or []
        ),
        group_sets=tuple(
            GroupSetConfig(
                deployment_targets=DeploymentTargets.from_dict(
                    item.get("deploymentTargets")
                ),
                groups=tuple(
                    GroupConfig(
                        name=_required(group, "name", "Group"),
                        policies=PoliciesConfig.from_dict(group.get("policies")),
                    )
                    for group in _required(item, "groups", "GroupSet")
                ),
            )
            for item in data.get("groupSets") or []
        ),
        user_sets=tuple(
            UserSetConfig(
                deployment_targets=DeploymentTargets.from_dict(
                    item.get("deploymentTargets")
                ),
                users=tuple(
                    UserConfig(
                        username=_required(user, "username", "User"),
                        group=_required(user, "group", f"User: {user.get('username')}"),
                        boundary_policy=user.get("boundaryPolicy"),
                    )
                    for user in item.get("users") or []
                ),
            )
            for item in data.get("userSets") or []
        ),
        identity_center=identity_center,
    )


def load_yaml_file(file_path: str) -> dict:
    """Reads a YAML file, raising ConfigurationFileError if it is missing or invalid."""
    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as error:
        raise ConfigurationFileError(
            f"Could not read configuration file. Reason: {error}", entry=file_path
        )
    except yaml.YAMLError as error:
        raise ConfigurationFileError(
            f"Configuration file is not valid YAML. Reason: {error}", entry=file_path
        )
    if data is not None and not isinstance(data, dict):
        raise ConfigurationFileError(
            "Configuration file must contain a YAML mapping.", entry=file_path
        )
    return data or {}


def load_iam_config(file_path: str) -> IamConfig:
    config = parse_iam_config(load_yaml_file(file_path))
    log.info(f"IAM configuration successfully loaded from {file_path}")
    return config
