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
## | IAM Identity Center Permission Sets
## +-----------------------------------

"""
Compiles Identity Center permission sets.

Each permission set depends on every permission set compiled before it in the
same run, so the provisioning engine creates them one at a time. Identity
Center throttles concurrent permission set mutations and the limit is not
documented.
"""

import logging
from typing import List, Optional, Sequence

from .config import IdentityCenterConfig, PermissionSetConfig
from .context import CompilerContext
from .errors import configuration_entry
from .models import (
    CustomerManagedPolicyReference,
    PermissionsBoundary,
    PermissionSetDefinition,
)
from .naming import pascal_case
from .policies import aws_managed_policy_arn, resolve_inline_document

log = logging.getLogger(__name__)

POLICY_VERSION = "2012-10-17"


def convert_minutes_to_iso8601(minutes: int) -> str:
    """
    Converts a session duration in minutes to an ISO-8601 duration.
    60 -> "PT1H", 90 -> "PT1H30M", 45 -> "PT45M"
    """
    hours, remaining_minutes = divmod(int(minutes), 60)
    duration = "PT"
    if hours:
        duration += f"{hours}H"
    if remaining_minutes or not hours:
        duration += f"{remaining_minutes}M"
    return duration


def get_customer_managed_policy_references(
    permission_set: PermissionSetConfig,
) -> List[CustomerManagedPolicyReference]:
    """Customer managed and accelerator managed policies, both referenced by name."""
    if not permission_set.policies:
        return []
    return [
        CustomerManagedPolicyReference(name=name)
        for name in list(permission_set.policies.customer_managed)
        + list(permission_set.policies.accelerator_managed)
    ]


def get_aws_managed_policy_arns(
    permission_set: PermissionSetConfig, partition: str
) -> List[str]:
    """Entries already shaped like an ARN pass through unchanged."""
    if not permission_set.policies:
        return []
    arns = []
    for policy in permission_set.policies.aws_managed:
        if policy.startswith("arn:"):
            arns.append(policy)
        else:
            arns.append(aws_managed_policy_arn(policy, partition))
    return arns


def get_permissions_boundary(
    permission_set: PermissionSetConfig, partition: str
) -> Optional[PermissionsBoundary]:
    """
    Helper function to resolve a permission set's permissions boundary
    :param permission_set: The permission set configuration
    :param partition: The active partition
    :return: The boundary, or None if none is configured
    :rtype: PermissionsBoundary
    """
    if not permission_set.policies or not permission_set.policies.permissions_boundary:
        return None
    boundary = permission_set.policies.permissions_boundary

    if boundary.customer_managed_policy:
        if boundary.aws_managed_policy_name:
            log.warning(
                f"[PS: {permission_set.name}] Both a customer managed and an AWS managed "
                "permissions boundary are configured. Using the customer managed policy "
                f"'{boundary.customer_managed_policy.name}'."
            )
        return PermissionsBoundary(
            customer_managed_policy_reference=CustomerManagedPolicyReference(
                name=boundary.customer_managed_policy.name,
                path=boundary.customer_managed_policy.path,
            )
        )
    if boundary.aws_managed_policy_name:
        return PermissionsBoundary(
            managed_policy_arn=aws_managed_policy_arn(
                boundary.aws_managed_policy_name, partition
            )
        )
    return None


def compile_permission_set(
    permission_set: PermissionSetConfig,
    instance_arn: str,
    context: CompilerContext,
    previous_permission_sets: Sequence[PermissionSetDefinition],
) -> PermissionSetDefinition:
    """
    Compiles a single permission set that depends on all of
    *previous_permission_sets*, in order.
    :raises MalformedPolicyDocument: the inline policy cannot be parsed
    """
    log.info(f"Adding Identity Center Permission Set {permission_set.name}")
    session_duration = None
    if permission_set.session_duration:
        session_duration = convert_minutes_to_iso8601(permission_set.session_duration)

    inline_policy = None
    if permission_set.policies and permission_set.policies.inline_policy:
        with configuration_entry(f"PS: {permission_set.name}"):
            statements = resolve_inline_document(
                permission_set.policies.inline_policy,
                context.substitution_context,
                context.load_policy_document,
            )
        inline_policy = {
            "Version": POLICY_VERSION,
            "Statement": [statement.to_json() for statement in statements],
        }

    return PermissionSetDefinition(
        logical_id=f"{pascal_case(permission_set.name)}IdentityCenterPermissionSet",
        name=permission_set.name,
        instance_arn=instance_arn,
        managed_policy_arns=tuple(
            get_aws_managed_policy_arns(permission_set, context.partition)
        ),
        customer_managed_policy_references=tuple(
            get_customer_managed_policy_references(permission_set)
        ),
        session_duration=session_duration,
        permissions_boundary=get_permissions_boundary(
            permission_set, context.partition
        ),
        inline_policy=inline_policy,
        depends_on=tuple(previous.logical_id for previous in previous_permission_sets),
    )


def compile_permission_sets(
    identity_center: IdentityCenterConfig,
    instance_arn: str,
    context: CompilerContext,
) -> List[PermissionSetDefinition]:
    """
    Compiles every permission set in configuration order. The returned list is
    also the registry used to resolve assignment permission set names.
    """
    permission_sets: List[PermissionSetDefinition] = []
    for permission_set in identity_center.permission_sets:
        permission_sets.append(
            compile_permission_set(
                permission_set, instance_arn, context, permission_sets
            )
        )
    return permission_sets


def find_permission_set(
    permission_sets: Sequence[PermissionSetDefinition], name: str
) -> Optional[PermissionSetDefinition]:
    match = None
    for permission_set in permission_sets:
        if permission_set.name == name:
            match = permission_set
    return match
