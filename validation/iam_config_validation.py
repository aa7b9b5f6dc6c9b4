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

## + -----------------------
## | IAM Configuration Validation
## +-----------------------------------

"""
Static checks run on the iam-config before any resource is compiled.

Each check returns a list of error messages, or an empty list when nothing was
found, so that every problem is reported in a single run.
"""

import logging
from collections import Counter
from typing import List, Optional

from resolution.config import IamConfig
from resolution.models import PrincipalKind

from .validate_policies import validate_policies

log = logging.getLogger(__name__)


def validate_unique_permission_set_name(iam_config: IamConfig) -> List[str]:
    if not iam_config.identity_center:
        return []
    list_of_permission_set_name = [
        permission_set.name
        for permission_set in iam_config.identity_center.permission_sets
    ]

    if len(list_of_permission_set_name) > len(set(list_of_permission_set_name)):
        log.error(
            "There are Permission Sets with the same name. Please check your configuration."
        )
        counter = Counter(list_of_permission_set_name)
        duplicates = [item for item, count in counter.items() if count > 1]
        return [f"ERROR - Duplicate Permission Set Names: {duplicates}"]

    log.info("No permission sets with the same name were detected.")
    return []


def validate_assignments_have_unique_identifiers(iam_config: IamConfig) -> List[str]:
    """
    This function checks if the assignments have unique identifiers.
    Identifiers here refers to the assignment name, or the combination of
    targets, principals and permission set. Assignments sharing either of them
    compile to resources with the same logical ids.
    """
    if not iam_config.identity_center:
        return []
    errors = []
    list_of_names = []
    list_of_identifiers = []
    for each_assignment in iam_config.identity_center.assignments:
        list_of_names.append(each_assignment.name)
        principals = [f"{p.type}:{p.name}" for p in each_assignment.principals]
        if each_assignment.principal_id:
            principals.append(
                f"{each_assignment.principal_type}:{each_assignment.principal_id}"
            )
        targets = each_assignment.deployment_targets
        identifier_string = (
            f"{sorted(targets.accounts)}|{sorted(targets.organizational_units)}"
            f"|{sorted(principals)}|{each_assignment.permission_set_name}"
        )
        list_of_identifiers.append(identifier_string)

    for kind, values in (("Names", list_of_names), ("Identifiers", list_of_identifiers)):
        if len(values) > len(set(values)):
            counter = Counter(values)
            duplicates = [item for item, count in counter.items() if count > 1]
            error_message = f"ERROR - Duplicate Assignment {kind}: {duplicates}"
            log.error(error_message)
            errors.append(error_message)

    if not errors:
        log.info("No assignments with the same identifiers were detected. Good!")
    return errors


def validate_single_permissions_boundary(iam_config: IamConfig) -> List[str]:
    """A permission set can only have one permissions boundary."""
    if not iam_config.identity_center:
        return []
    errors = []
    for permission_set in iam_config.identity_center.permission_sets:
        policies = permission_set.policies
        if not policies or not policies.permissions_boundary:
            continue
        boundary = policies.permissions_boundary
        if boundary.customer_managed_policy and boundary.aws_managed_policy_name:
            error_message = (
                f"[PS: {permission_set.name}] You cannot specify more than one "
                "permission boundary for a permission set."
            )
            log.error(error_message)
            errors.append(error_message)
    return errors


def validate_provider_principals_are_isolated(iam_config: IamConfig) -> List[str]:
    """
    Returns an error for every role assumed by a provider together with other
    principals, and for every provider that is not defined.
    """
    errors = []
    provider_names = {provider.name for provider in iam_config.providers}
    for role_set in iam_config.role_sets:
        for role in role_set.roles:
            providers = [
                reference.value
                for reference in role.assumed_by
                if reference.kind == PrincipalKind.PROVIDER
            ]
            if providers and len(role.assumed_by) > 1:
                error_message = (
                    f"[Role: {role.name}] A provider principal cannot be combined "
                    "with other principals."
                )
                log.error(error_message)
                errors.append(error_message)
            for provider in providers:
                if provider not in provider_names:
                    error_message = (
                        f"[Role: {role.name}] The SAML provider '{provider}' is not "
                        "defined in the providers section."
                    )
                    log.error(error_message)
                    errors.append(error_message)
    return errors


def validate_customer_managed_policies_are_defined(iam_config: IamConfig) -> List[str]:
    """
    Every customer managed policy and boundary referenced by name must be
    defined in a policy set. Whether it is deployed to the same accounts is
    only known at compile time.
    """
    defined_policies = {
        policy.name
        for policy_set in iam_config.policy_sets
        for policy in policy_set.policies
    }
    references = []
    for role_set in iam_config.role_sets:
        for role in role_set.roles:
            references.extend(
                (f"Role: {role.name}", name) for name in role.policies.customer_managed
            )
            if role.boundary_policy:
                references.append((f"Role: {role.name}", role.boundary_policy))
    for group_set in iam_config.group_sets:
        for group in group_set.groups:
            references.extend(
                (f"Group: {group.name}", name)
                for name in group.policies.customer_managed
            )
    for user_set in iam_config.user_sets:
        for user in user_set.users:
            if user.boundary_policy:
                references.append((f"User: {user.username}", user.boundary_policy))
    if iam_config.identity_center:
        for permission_set in iam_config.identity_center.permission_sets:
            if permission_set.policies:
                references.extend(
                    (f"PS: {permission_set.name}", name)
                    for name in permission_set.policies.customer_managed
                )

    errors = []
    for entry, name in references:
        if name not in defined_policies:
            error_message = (
                f"[{entry}] The customer managed policy '{name}' is not defined in any policy set."
            )
            log.error(error_message)
            errors.append(error_message)
    return errors


def validate_permission_sets(iam_config: IamConfig) -> List[str]:
    errors = []
    errors += validate_unique_permission_set_name(iam_config)
    errors += validate_single_permissions_boundary(iam_config)
    return errors


def validate_assignments(iam_config: IamConfig) -> List[str]:
    return validate_assignments_have_unique_identifiers(iam_config)


def validate_iam_resources(iam_config: IamConfig) -> List[str]:
    errors = []
    errors += validate_provider_principals_are_isolated(iam_config)
    errors += validate_customer_managed_policies_are_defined(iam_config)
    return errors


def main(
    iam_config: IamConfig,
    fail_on_types: Optional[List[str]] = None,
    load_policy_document=None,
    substitution_context: Optional[dict] = None,
    boto_config=None,
) -> bool:
    """
    Returns True if all checks successfully passed validation.
    Otherwise, returns False.

    Policy documents are only sent to IAM Access Analyzer when
    *load_policy_document* is given.
    """
    log.info("Starting IAM configuration validation")

    checks = [
        ("IAM resources", validate_iam_resources),
        ("Permission sets", validate_permission_sets),
        ("Assignments", validate_assignments),
    ]
    for title, check in checks:
        errors = check(iam_config)
        if errors:
            log.error(f"{title} failed validation. Review findings and correct them:")
            for error in errors:
                log.error(error)
            return False

    if load_policy_document is not None:
        policy_errors = validate_policies(
            iam_config,
            load_policy_document=load_policy_document,
            substitution_context=substitution_context or {},
            fail_on_types=fail_on_types or ["SECURITY_WARNING", "ERROR"],
            boto_config=boto_config,
        )
        if policy_errors:
            log.error("Policies failed validation. Review findings and correct them:")
            for policy_error in policy_errors:
                log.error(policy_error)
            return False

    log.info("Congrats! The IAM configuration was evaluated without errors! :)")
    return True
