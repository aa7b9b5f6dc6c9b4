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
## | IAM roles, groups, users and policies
## +-----------------------------------

"""
Compiles the IAM sections of the configuration (providers, policy sets, role
sets, group sets, user sets) into resource definitions for one target.

Order matters: providers and customer managed policies must be compiled first,
because roles, groups and users resolve their references against them.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import audit
from .config import (
    GroupSetConfig,
    PolicySetConfig,
    ProviderConfig,
    RoleConfig,
    RoleSetConfig,
    UserSetConfig,
)
from .context import CompilerContext
from .errors import AmbiguousProviderPrincipal, UnregisteredGroup, configuration_entry
from .models import (
    CompositePrincipal,
    GroupDefinition,
    InstanceProfileDefinition,
    ManagedPolicyDefinition,
    PrincipalKind,
    ResolvedPolicy,
    RoleDefinition,
    SamlProviderDefinition,
    UserDefinition,
)
from .naming import pascal_case, resource_path
from .policies import (
    PolicyRegistry,
    customer_managed_policy_arn,
    resolve_boundary,
    resolve_inline_document,
    resolve_managed_policies,
)
from .principals import PrincipalContext, resolve_principal

log = logging.getLogger(__name__)


def _policy_references(
    policies: Iterable[Optional[ResolvedPolicy]],
) -> Tuple[str, ...]:
    """Logical ids of the policies created in this run, without duplicates."""
    references = []
    for policy in policies:
        if policy is not None and policy.logical_id and policy.logical_id not in references:
            references.append(policy.logical_id)
    return tuple(references)


def compile_saml_providers(
    providers: Sequence[ProviderConfig], context: CompilerContext
) -> List[SamlProviderDefinition]:
    definitions = []
    for provider in providers:
        log.info(f"Add Provider {provider.name}")
        definitions.append(
            SamlProviderDefinition(
                logical_id=f"{pascal_case(provider.name)}SamlProvider",
                name=provider.name,
                metadata_document=provider.metadata_document,
                arn=f"arn:{context.partition}:iam::{context.account_id}:saml-provider/{provider.name}",
            )
        )
    return definitions


def compile_managed_policies(
    policy_sets: Sequence[PolicySetConfig],
    context: CompilerContext,
    registry: PolicyRegistry,
) -> List[ManagedPolicyDefinition]:
    """
    Creates the customer managed policies deployed to this target and registers
    each one in *registry*.

    Policy sets flagged as an Identity Center dependency are deployed
    separately and skipped here.
    """
    definitions = []
    for policy_set in policy_sets:
        if (
            not context.is_included(policy_set.deployment_targets)
            or policy_set.identity_center_dependency
        ):
            log.info("Item excluded")
            continue

        for policy in policy_set.policies:
            log.info(f"Add customer managed policy {policy.name}")
            logical_id = pascal_case(policy.name)
            with configuration_entry(f"Policy: {policy.name}"):
                statements = resolve_inline_document(
                    policy.policy,
                    context.substitution_context,
                    context.load_policy_document,
                )
            definitions.append(
                ManagedPolicyDefinition(
                    logical_id=logical_id,
                    name=policy.name,
                    statements=tuple(statements),
                )
            )
            registry.register(
                policy.name,
                customer_managed_policy_arn(
                    policy.name, context.account_id, context.partition
                ),
                logical_id=logical_id,
            )
            context.register_audit_suppression(
                resource_path(context.stack_name, logical_id),
                audit.IAM5,
                "Policies definition are derived from iam-config policy files",
            )
    return definitions


def compile_role(
    role_config: RoleConfig,
    role_set: RoleSetConfig,
    context: CompilerContext,
    registry: PolicyRegistry,
    providers: Mapping[str, SamlProviderDefinition],
) -> Tuple[RoleDefinition, Optional[InstanceProfileDefinition]]:
    """
    Compiles a single role and, when requested, its instance profile.

    A provider principal adds SAML conditions to the trust policy, so it cannot
    be combined with other principals. Every other combination becomes one
    composite principal.

    :raises AmbiguousProviderPrincipal: a provider reference is not the only principal
    :raises UnresolvableAccountReference, UnknownProviderReference, UnregisteredPolicy
    """
    entry = f"Role: {role_config.name}"
    principal_context = PrincipalContext(
        partition=context.partition,
        lookup_account_id=context.lookup_account_id,
        providers={name: provider.arn for name, provider in providers.items()},
    )
    logical_id = pascal_case(role_config.name)

    with configuration_entry(entry):
        has_provider = any(
            reference.kind == PrincipalKind.PROVIDER
            for reference in role_config.assumed_by
        )
        if has_provider and len(role_config.assumed_by) > 1:
            log.error(f"[{entry}] More than one principal found when adding provider")
            raise AmbiguousProviderPrincipal(
                "A provider principal cannot be combined with other principals."
            )

        principals = []
        references = []
        for reference in role_config.assumed_by:
            log.info(
                f"[{entry}] assumed by type({reference.kind.value}) principal({reference.value})"
            )
            principals.append(resolve_principal(reference, principal_context))
            if reference.kind == PrincipalKind.PROVIDER:
                references.append(providers[reference.value].logical_id)

        if has_provider:
            assumed_by = principals[0]
        else:
            assumed_by = CompositePrincipal(principals=tuple(principals))

        managed_policies = resolve_managed_policies(
            role_config.policies.aws_managed,
            role_config.policies.customer_managed,
            registry,
            context.partition,
        )
        boundary = resolve_boundary(role_config.boundary_policy, registry)

    references.extend(_policy_references(managed_policies + [boundary]))
    role = RoleDefinition(
        logical_id=logical_id,
        name=role_config.name,
        assumed_by=assumed_by,
        managed_policies=tuple(managed_policies),
        boundary=boundary,
        path=role_set.path,
        instance_profile=role_config.instance_profile,
        references=tuple(references),
    )

    context.register_audit_suppression(
        resource_path(context.stack_name, logical_id),
        audit.IAM4,
        "IAM Role created as per iam-config needs AWS managed policy",
    )

    instance_profile = None
    if role_config.instance_profile:
        log.info(f"[{entry}] creating instance profile")
        instance_profile = InstanceProfileDefinition(
            logical_id=f"{logical_id}InstanceProfile",
            name=role_config.name,
            role_name=role_config.name,
            references=(logical_id,),
        )
    return role, instance_profile


def compile_role_sets(
    role_sets: Sequence[RoleSetConfig],
    context: CompilerContext,
    registry: PolicyRegistry,
    providers: Mapping[str, SamlProviderDefinition],
) -> list:
    """Returns roles, each followed by its instance profile when one is requested."""
    definitions = []
    for role_set in role_sets:
        if not context.is_included(role_set.deployment_targets):
            log.info("Item excluded")
            continue
        for role_config in role_set.roles:
            log.info(f"Add role {role_config.name}")
            role, instance_profile = compile_role(
                role_config, role_set, context, registry, providers
            )
            definitions.append(role)
            if instance_profile is not None:
                definitions.append(instance_profile)
    return definitions


def compile_groups(
    group_sets: Sequence[GroupSetConfig],
    context: CompilerContext,
    registry: PolicyRegistry,
) -> Dict[str, GroupDefinition]:
    """Returns the compiled groups by name, in configuration order."""
    groups = {}
    for group_set in group_sets:
        if not context.is_included(group_set.deployment_targets):
            log.info("Item excluded")
            continue
        for group_config in group_set.groups:
            log.info(f"Add group {group_config.name}")
            logical_id = pascal_case(group_config.name)
            with configuration_entry(f"Group: {group_config.name}"):
                managed_policies = resolve_managed_policies(
                    group_config.policies.aws_managed,
                    group_config.policies.customer_managed,
                    registry,
                    context.partition,
                )
            groups[group_config.name] = GroupDefinition(
                logical_id=logical_id,
                name=group_config.name,
                managed_policies=tuple(managed_policies),
                references=_policy_references(managed_policies),
            )
            context.register_audit_suppression(
                resource_path(context.stack_name, logical_id),
                audit.IAM4,
                "Groups created as per iam-config needs AWS managed policy",
            )
    return groups


def compile_users(
    user_sets: Sequence[UserSetConfig],
    context: CompilerContext,
    registry: PolicyRegistry,
    groups: Mapping[str, GroupDefinition],
) -> List[UserDefinition]:
    """
    Users reference a group compiled earlier in the run. Only the name of the
    secret holding the initial password is recorded; generating it is left to
    the provisioning engine.
    """
    definitions = []
    for user_set in user_sets:
        if not context.is_included(user_set.deployment_targets):
            log.info("Item excluded")
            continue
        for user_config in user_set.users:
            log.info(f"Add user {user_config.username}")
            entry = f"User: {user_config.username}"
            group = groups.get(user_config.group)
            if group is None:
                raise UnregisteredGroup(
                    f"The group '{user_config.group}' has not been created in this account.",
                    entry=entry,
                )
            with configuration_entry(entry):
                boundary = resolve_boundary(user_config.boundary_policy, registry)

            logical_id = pascal_case(user_config.username)
            secret_name = f"{context.secret_prefix}/{user_config.username}"
            log.info(f"[{entry}] password stored to {secret_name}")
            definitions.append(
                UserDefinition(
                    logical_id=logical_id,
                    username=user_config.username,
                    group=user_config.group,
                    password_secret_name=secret_name,
                    boundary=boundary,
                    references=(group.logical_id,) + _policy_references([boundary]),
                )
            )
            context.register_audit_suppression(
                resource_path(context.stack_name, f"{logical_id}Secret"),
                audit.SMG4,
                "Users created as per iam-config file, MFA usage is enforced with boundary policy",
            )
    return definitions
