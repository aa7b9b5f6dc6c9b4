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
Policy resolution: AWS managed names, customer managed names registered
earlier in the run, permission boundaries and inline policy documents.
"""

import json
import logging
from typing import Callable, Dict, Iterable, List, Optional, Union

from .errors import MalformedPolicyDocument, UnregisteredPolicy
from .models import PolicySourceKind, PolicyStatement, ResolvedPolicy

log = logging.getLogger(__name__)

VALID_EFFECTS = ["Allow", "Deny"]


class PolicyRegistry:
    """
    Customer managed policies created in the current run, by policy name.

    Resolving a name that was never registered is an error: it means a role or
    permission set references a policy before (or without) its creation.
    """

    def __init__(self):
        self._policies: Dict[str, ResolvedPolicy] = {}

    def register(self, name: str, arn: str, logical_id: Optional[str] = None):
        policy = ResolvedPolicy(
            name=name,
            source_kind=PolicySourceKind.CUSTOMER_MANAGED,
            arn_or_document=arn,
            logical_id=logical_id,
        )
        self._policies[name] = policy
        return policy

    def lookup(self, name: str) -> ResolvedPolicy:
        if name not in self._policies:
            raise UnregisteredPolicy(
                f"The customer managed policy '{name}' has not been created. "
                "Check that it is defined in a policy set deployed to this account."
            )
        return self._policies[name]

    def __contains__(self, name: str) -> bool:
        return name in self._policies

    def __len__(self) -> int:
        return len(self._policies)


def aws_managed_policy_arn(name: str, partition: str) -> str:
    return f"arn:{partition}:iam::aws:policy/{name}"


def customer_managed_policy_arn(name: str, account_id: str, partition: str) -> str:
    return f"arn:{partition}:iam::{account_id}:policy/{name}"


def resolve_aws_managed_policy(name: str, partition: str) -> ResolvedPolicy:
    return ResolvedPolicy(
        name=name,
        source_kind=PolicySourceKind.AWS_MANAGED,
        arn_or_document=aws_managed_policy_arn(name, partition),
    )


def resolve_managed_policies(
    aws_names: Iterable[str],
    customer_names: Iterable[str],
    registry: PolicyRegistry,
    partition: str,
) -> List[ResolvedPolicy]:
    """
    Resolves AWS managed names (always valid) followed by customer managed names.
    :raises UnregisteredPolicy: a customer managed name is missing from the registry
    """
    managed_policies = []
    for name in aws_names:
        log.info(f"aws managed policy {name}")
        managed_policies.append(resolve_aws_managed_policy(name, partition))
    for name in customer_names:
        log.info(f"customer managed policy {name}")
        managed_policies.append(registry.lookup(name))
    return managed_policies


def resolve_boundary(
    name: Optional[str], registry: PolicyRegistry
) -> Optional[ResolvedPolicy]:
    if not name:
        return None
    return registry.lookup(name)


def _as_tuple(statement: dict, key: str) -> tuple:
    value = statement.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise MalformedPolicyDocument(
        f"'{key}' must be a string or a list of strings, got {value!r}"
    )


def parse_policy_statement(statement: dict) -> PolicyStatement:
    if not isinstance(statement, dict):
        raise MalformedPolicyDocument(f"Statement must be an object, got {statement!r}")
    effect = statement.get("Effect")
    if effect not in VALID_EFFECTS:
        raise MalformedPolicyDocument(
            f"Statement Effect must be one of {VALID_EFFECTS}, got {effect!r}"
        )
    actions = _as_tuple(statement, "Action")
    not_actions = _as_tuple(statement, "NotAction")
    if not actions and not not_actions:
        raise MalformedPolicyDocument("Statement has neither Action nor NotAction")
    return PolicyStatement(
        effect=effect,
        actions=actions,
        not_actions=not_actions,
        resources=_as_tuple(statement, "Resource"),
        not_resources=_as_tuple(statement, "NotResource"),
        sid=statement.get("Sid"),
        principal=statement.get("Principal"),
        conditions=statement.get("Condition"),
    )


def parse_policy_document(document: Union[str, dict]) -> List[PolicyStatement]:
    """
    Converts a substituted policy document into typed statements.
    :param document: JSON text or an already parsed document
    :raises MalformedPolicyDocument: not JSON, no Statement, or an invalid statement
    """
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as error:
            raise MalformedPolicyDocument(f"Policy document is not valid JSON: {error}")
    if not isinstance(document, dict) or "Statement" not in document:
        raise MalformedPolicyDocument("Policy document has no Statement element")
    statements = document["Statement"]
    # A single statement may be given as an object
    if isinstance(statements, dict):
        statements = [statements]
    if not isinstance(statements, list):
        raise MalformedPolicyDocument("Statement must be a list or an object")
    return [parse_policy_statement(statement) for statement in statements]


def resolve_inline_document(
    path: str,
    substitution_context: dict,
    load_policy_document: Callable[[str, dict], Union[str, dict]],
) -> List[PolicyStatement]:
    """
    Loads a policy document through the injected loader and parses its statements.

    Loader failures (missing file...) propagate unchanged; parse failures are
    re-raised as MalformedPolicyDocument naming the document path.
    """
    document = load_policy_document(path, substitution_context)
    try:
        return parse_policy_document(document)
    except MalformedPolicyDocument as error:
        raise MalformedPolicyDocument(str(error), entry=path)
