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
## | IAM Identity Center Assignments
## +-----------------------------------

"""
Expands Identity Center assignments into one definition per
(target account, principal).

Two paths exist for backward compatibility and both fire when both are
configured:
- legacy: a single principalId/principalType, one assignment per account
- principals list: principals resolved through the identity store, chained so
  that assignments of the same (assignment, account) are created one after
  the other
"""

import logging
from typing import List, Sequence

from .config import AssignmentConfig, IdentityCenterConfig
from .context import CompilerContext
from .errors import UnknownPermissionSet
from .models import AssignmentDefinition, PermissionSetDefinition
from .naming import pascal_case
from .permission_sets import find_permission_set

log = logging.getLogger(__name__)


def compile_assignment(
    assignment: AssignmentConfig,
    permission_sets: Sequence[PermissionSetDefinition],
    instance_arn: str,
    identity_store_id: str,
    context: CompilerContext,
    allow_missing_permission_sets: bool = False,
) -> List[AssignmentDefinition]:
    """
    Compiles one assignment entry for every account of its deployment targets.

    :raises UnknownPermissionSet: the permission set was not compiled in this run,
        unless *allow_missing_permission_sets* is set, in which case the
        assignment is emitted with an empty permission set ARN
    """
    entry = f"Assignment: {assignment.name}"
    target_account_ids = context.account_ids_for(assignment.deployment_targets)

    permission_set = find_permission_set(permission_sets, assignment.permission_set_name)
    if permission_set is None:
        if not allow_missing_permission_sets:
            raise UnknownPermissionSet(
                f"The permission set '{assignment.permission_set_name}' is not defined "
                "in identityCenterPermissionSets.",
                entry=entry,
            )
        log.warning(
            f"[{entry}] The permission set '{assignment.permission_set_name}' is not defined. "
            "The assignment is emitted with an empty permission set ARN."
        )
        permission_set_arn = ""
        references = ()
    else:
        permission_set_arn = permission_set.arn
        references = (permission_set.logical_id,)

    base_id = pascal_case(assignment.name)
    definitions = []
    for target_account_id in target_account_ids:
        if assignment.principal_id and assignment.principal_type:
            log.info(
                f"Creating Identity Center Assignment {assignment.name}-{target_account_id}"
            )
            definitions.append(
                AssignmentDefinition(
                    logical_id=f"{base_id}-{target_account_id}",
                    assignment_name=assignment.name,
                    instance_arn=instance_arn,
                    permission_set_arn=permission_set_arn,
                    principal_type=assignment.principal_type,
                    principal_id=assignment.principal_id,
                    target_account_id=target_account_id,
                    references=references,
                )
            )

        if not assignment.principals:
            continue
        resolved_principals = context.resolve_principals_metadata(
            list(assignment.principals), identity_store_id
        )
        previous = None
        for principal in resolved_principals:
            log.info(
                f"[{entry}|{target_account_id}] Creating assignment for {principal.type} {principal.name}"
            )
            definition = AssignmentDefinition(
                logical_id=f"{base_id}-{target_account_id}-{principal.type}-{pascal_case(principal.name)}",
                assignment_name=assignment.name,
                instance_arn=instance_arn,
                permission_set_arn=permission_set_arn,
                principal_type=principal.type,
                principal_id=principal.id,
                target_account_id=target_account_id,
                references=references,
                depends_on=(previous.logical_id,) if previous else (),
            )
            definitions.append(definition)
            previous = definition
    return definitions


def compile_assignments(
    identity_center: IdentityCenterConfig,
    permission_sets: Sequence[PermissionSetDefinition],
    instance_arn: str,
    identity_store_id: str,
    context: CompilerContext,
    allow_missing_permission_sets: bool = False,
) -> List[AssignmentDefinition]:
    definitions = []
    for assignment in identity_center.assignments:
        definitions.extend(
            compile_assignment(
                assignment,
                permission_sets,
                instance_arn,
                identity_store_id,
                context,
                allow_missing_permission_sets=allow_missing_permission_sets,
            )
        )
    return definitions
