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
## | IAM resource compilation for one target
## +-----------------------------------

"""
Compiles the whole iam-config for one account/region.

IAM and Identity Center resources are only compiled in the home region, and
Identity Center resources only in the Identity Center delegated administrator
account. Everything else returns an empty result for the target.
"""

import dataclasses
import logging
from typing import Optional

from .assignments import compile_assignments
from .audit import AuditSuppressionRecorder
from .config import IamConfig
from .context import CompilerContext
from .errors import (
    ConfigurationFileError,
    DuplicateLogicalId,
    UnresolvableAccountReference,
)
from .models import AssignmentDefinition, CompilationResult, UserDefinition
from .permission_sets import compile_permission_sets
from .policies import PolicyRegistry
from .principals import ACCOUNT_ID_PATTERN
from .roles import (
    compile_groups,
    compile_managed_policies,
    compile_role_sets,
    compile_saml_providers,
    compile_users,
)

log = logging.getLogger(__name__)


def describe_definition(definition) -> str:
    if isinstance(definition, UserDefinition):
        return f"{definition.resource_type} {definition.username}"
    if isinstance(definition, AssignmentDefinition):
        return f"{definition.resource_type} {definition.assignment_name}|{definition.target_account_id}"
    return f"{definition.resource_type} {definition.name}"


def check_unique_logical_ids(definitions) -> None:
    """
    Logical ids must be unique within a target. Names such as 'Admin', 'admin'
    and 'ADMIN' all normalize to the same id.
    :raises DuplicateLogicalId: two definitions share a logical id
    """
    emitted = {}
    for definition in definitions:
        previous = emitted.get(definition.logical_id)
        if previous is not None:
            entry = describe_definition(definition)
            log.error(f"[{entry}] Logical id {definition.logical_id} is already in use")
            raise DuplicateLogicalId(
                f"The logical id '{definition.logical_id}' is already used by "
                f"'{describe_definition(previous)}'. Rename one of the two entries.",
                entry=entry,
            )
        emitted[definition.logical_id] = definition


def resolve_delegated_admin_account_id(
    iam_config: IamConfig,
    context: CompilerContext,
    security_admin_account: Optional[str],
) -> Optional[str]:
    """
    The Identity Center delegated admin account, defaulting to the security
    services delegated admin account. Accepts an account name or id.
    """
    account = None
    if iam_config.identity_center:
        account = iam_config.identity_center.delegated_admin_account
    account = account or security_admin_account
    if not account:
        return None
    if ACCOUNT_ID_PATTERN.match(account):
        return account
    account_id = context.lookup_account_id(account)
    if account_id is None:
        raise UnresolvableAccountReference(
            f"Could not find an account id for account name '{account}'.",
            entry="IdentityCenter: delegatedAdminAccount",
        )
    return account_id


def compile_target(
    iam_config: IamConfig,
    context: CompilerContext,
    instance_arn: Optional[str] = None,
    identity_store_id: Optional[str] = None,
    security_admin_account: Optional[str] = None,
    allow_missing_permission_sets: bool = False,
) -> CompilationResult:
    """
    Compiles every resource of *iam_config* deployed to ``context.target``.
    :param iam_config: The parsed iam-config
    :param context: The target and its collaborators
    :param instance_arn: Identity Center instance ARN, required when Identity Center is compiled
    :param identity_store_id: Identity Store id, required when assignments use principals
    :param security_admin_account: Fallback Identity Center delegated admin account (name or id)
    :param allow_missing_permission_sets: Emit assignments naming unknown permission sets with an empty ARN
    :return: The ordered definitions, their dependency edges and audit suppressions
    :rtype: CompilationResult
    """
    result = CompilationResult(target=context.target)
    recorder = AuditSuppressionRecorder()
    forward = context.register_audit_suppression

    def register_audit_suppression(resource_path: str, rule_id: str, reason: str):
        recorder(resource_path, rule_id, reason)
        forward(resource_path, rule_id, reason)

    context = dataclasses.replace(
        context, register_audit_suppression=register_audit_suppression
    )

    if context.home_region and context.region != context.home_region:
        log.info(
            f"[{context.account_id}|{context.region}] Not the home region, no IAM resources to compile"
        )
        return result

    log.info(f"[{context.account_id}|{context.region}] Compiling IAM resources")
    registry = PolicyRegistry()
    providers = compile_saml_providers(iam_config.providers, context)
    result.definitions.extend(providers)
    result.definitions.extend(
        compile_managed_policies(iam_config.policy_sets, context, registry)
    )
    result.definitions.extend(
        compile_role_sets(
            iam_config.role_sets,
            context,
            registry,
            {provider.name: provider for provider in providers},
        )
    )
    groups = compile_groups(iam_config.group_sets, context, registry)
    result.definitions.extend(groups.values())
    result.definitions.extend(
        compile_users(iam_config.user_sets, context, registry, groups)
    )

    identity_center = iam_config.identity_center
    if identity_center:
        delegated_admin_account_id = resolve_delegated_admin_account_id(
            iam_config, context, security_admin_account
        )
        if delegated_admin_account_id is None:
            log.warning(
                "No Identity Center delegated admin account configured, skipping Identity Center resources"
            )
        elif delegated_admin_account_id == context.account_id:
            if not instance_arn:
                raise ConfigurationFileError(
                    "An Identity Center instance ARN is required to compile permission sets.",
                    entry=f"IdentityCenter: {identity_center.name}",
                )
            permission_sets = compile_permission_sets(
                identity_center, instance_arn, context
            )
            result.definitions.extend(permission_sets)
            result.definitions.extend(
                compile_assignments(
                    identity_center,
                    permission_sets,
                    instance_arn,
                    identity_store_id or "",
                    context,
                    allow_missing_permission_sets=allow_missing_permission_sets,
                )
            )

    check_unique_logical_ids(result.definitions)
    result.audit_suppressions = list(recorder.suppressions)
    log.info(
        f"[{context.account_id}|{context.region}] {len(result.definitions)} resource definitions compiled"
    )
    return result
