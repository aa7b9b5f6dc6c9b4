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

"""
Resolved resource definitions. Pure data, no AWS calls.

Every definition carries a logical id, the logical ids it references
(``references``) and the logical ids it must be created after
(``depends_on``). Both only ever point at definitions emitted earlier in the
same run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union


class PrincipalKind(Enum):
    SERVICE = "service"
    ACCOUNT = "account"
    PROVIDER = "provider"


class ResolvedPrincipalKind(Enum):
    SERVICE = "Service"
    ACCOUNT_ID = "AWS"
    FEDERATED_PROVIDER = "Federated"


class PolicySourceKind(Enum):
    AWS_MANAGED = "aws_managed"
    CUSTOMER_MANAGED = "customer_managed"
    INLINE_DOCUMENT = "inline_document"


@dataclass(frozen=True)
class PrincipalReference:
    kind: PrincipalKind
    value: str


@dataclass(frozen=True)
class ResolvedPrincipal:
    """
    A concrete trust principal.

    Federated principals either carry ``extra_conditions`` (partitions where the
    console helper cannot be used) or are flagged as ``console_principal``, in
    which case the renderer adds the partition's SAML sign-in audience.
    """

    kind: ResolvedPrincipalKind
    identifier: str
    extra_conditions: Optional[dict] = None
    console_principal: bool = False

    @property
    def assume_role_action(self) -> str:
        if self.kind == ResolvedPrincipalKind.FEDERATED_PROVIDER:
            return "sts:AssumeRoleWithSAML"
        return "sts:AssumeRole"


@dataclass(frozen=True)
class CompositePrincipal:
    """Trust principal matching any of ``principals``."""

    principals: Tuple[ResolvedPrincipal, ...]


@dataclass(frozen=True)
class ResolvedPolicy:
    name: str
    source_kind: PolicySourceKind
    arn_or_document: Union[str, dict]
    # Logical id of the definition creating the policy, for policies created in this run
    logical_id: Optional[str] = None


@dataclass(frozen=True)
class PolicyStatement:
    effect: str
    actions: Tuple[str, ...] = ()
    not_actions: Tuple[str, ...] = ()
    resources: Tuple[str, ...] = ()
    not_resources: Tuple[str, ...] = ()
    sid: Optional[str] = None
    principal: Optional[dict] = None
    conditions: Optional[dict] = None

    def to_json(self) -> dict:
        statement = {}
        if self.sid:
            statement["Sid"] = self.sid
        statement["Effect"] = self.effect
        if self.principal:
            statement["Principal"] = self.principal
        if self.actions:
            statement["Action"] = list(self.actions)
        if self.not_actions:
            statement["NotAction"] = list(self.not_actions)
        if self.resources:
            statement["Resource"] = list(self.resources)
        if self.not_resources:
            statement["NotResource"] = list(self.not_resources)
        if self.conditions:
            statement["Condition"] = self.conditions
        return statement


@dataclass(frozen=True)
class SamlProviderDefinition:
    resource_type: ClassVar[str] = "IAM::SAMLProvider"

    logical_id: str
    name: str
    metadata_document: str
    arn: str
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ManagedPolicyDefinition:
    resource_type: ClassVar[str] = "IAM::ManagedPolicy"

    logical_id: str
    name: str
    statements: Tuple[PolicyStatement, ...]
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RoleDefinition:
    resource_type: ClassVar[str] = "IAM::Role"

    logical_id: str
    name: str
    assumed_by: Union[ResolvedPrincipal, CompositePrincipal]
    managed_policies: Tuple[ResolvedPolicy, ...]
    boundary: Optional[ResolvedPolicy] = None
    path: Optional[str] = None
    instance_profile: bool = False
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InstanceProfileDefinition:
    resource_type: ClassVar[str] = "IAM::InstanceProfile"

    logical_id: str
    name: str
    role_name: str
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GroupDefinition:
    resource_type: ClassVar[str] = "IAM::Group"

    logical_id: str
    name: str
    managed_policies: Tuple[ResolvedPolicy, ...]
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UserDefinition:
    resource_type: ClassVar[str] = "IAM::User"

    logical_id: str
    username: str
    group: str
    password_secret_name: str
    boundary: Optional[ResolvedPolicy] = None
    password_reset_required: bool = True
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CustomerManagedPolicyReference:
    name: str
    path: Optional[str] = None


@dataclass(frozen=True)
class PermissionsBoundary:
    """Exactly one of the two fields is set."""

    customer_managed_policy_reference: Optional[CustomerManagedPolicyReference] = None
    managed_policy_arn: Optional[str] = None


@dataclass(frozen=True)
class PermissionSetDefinition:
    resource_type: ClassVar[str] = "SSO::PermissionSet"

    logical_id: str
    name: str
    instance_arn: str
    managed_policy_arns: Tuple[str, ...] = ()
    customer_managed_policy_references: Tuple[CustomerManagedPolicyReference, ...] = ()
    session_duration: Optional[str] = None
    permissions_boundary: Optional[PermissionsBoundary] = None
    inline_policy: Optional[dict] = None
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()

    @property
    def arn(self) -> str:
        """Deferred reference to the ARN the provisioning engine assigns."""
        return f"${{{self.logical_id}.PermissionSetArn}}"


@dataclass(frozen=True)
class AssignmentPrincipal:
    type: str
    name: str
    id: str


@dataclass(frozen=True)
class AssignmentDefinition:
    resource_type: ClassVar[str] = "SSO::Assignment"

    logical_id: str
    assignment_name: str
    instance_arn: str
    permission_set_arn: str
    principal_type: str
    principal_id: str
    target_account_id: str
    target_type: str = "AWS_ACCOUNT"
    references: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()


Definition = Union[
    SamlProviderDefinition,
    ManagedPolicyDefinition,
    RoleDefinition,
    InstanceProfileDefinition,
    GroupDefinition,
    UserDefinition,
    PermissionSetDefinition,
    AssignmentDefinition,
]


@dataclass(frozen=True)
class AuditSuppression:
    resource_path: str
    rule_id: str
    reason: str


@dataclass(frozen=True)
class CompilationTarget:
    account_id: str
    region: str


@dataclass
class CompilationResult:
    target: CompilationTarget
    definitions: List[Definition] = field(default_factory=list)
    audit_suppressions: List[AuditSuppression] = field(default_factory=list)

    @property
    def dependencies(self) -> List[Tuple[str, str]]:
        """(dependent, dependency) edges in definition order."""
        edges = []
        for definition in self.definitions:
            for dependency in definition.references + definition.depends_on:
                edge = (definition.logical_id, dependency)
                if edge not in edges:
                    edges.append(edge)
        return edges

    def of_type(self, definition_type) -> list:
        return [d for d in self.definitions if isinstance(d, definition_type)]
