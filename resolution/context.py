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
Per-target compilation context: the target itself plus the injected
collaborators. Registries built during the run are passed separately.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .config import AssignmentPrincipalConfig, DeploymentTargets
from .models import AssignmentPrincipal, CompilationTarget


def _ignore_audit_suppression(resource_path: str, rule_id: str, reason: str) -> None:
    return None


@dataclass(frozen=True)
class CompilerContext:
    """
    :param target: The account/region being compiled
    :param partition: The active partition
    :param stack_name: Prefix for resource paths in audit suppressions
    :param lookup_account_id: Account name -> id, or None when unknown
    :param is_included: Whether deployment targets include the current target
    :param account_ids_for: Deployment targets -> concrete account ids
    :param resolve_principals_metadata: (principals, identity store id) -> resolved principals
    :param load_policy_document: (path, substitution context) -> substituted document
    :param register_audit_suppression: (resource path, rule id, reason) -> None
    """

    target: CompilationTarget
    partition: str
    lookup_account_id: Callable[[str], Optional[str]]
    is_included: Callable[[DeploymentTargets], bool]
    account_ids_for: Callable[[DeploymentTargets], List[str]]
    resolve_principals_metadata: Callable[
        [List[AssignmentPrincipalConfig], str], List[AssignmentPrincipal]
    ]
    load_policy_document: Callable[[str, dict], Union[str, dict]]
    register_audit_suppression: Callable[[str, str, str], None] = _ignore_audit_suppression
    stack_name: str = "IamResources"
    home_region: Optional[str] = None
    organization_id: Optional[str] = None
    secret_prefix: str = "/accelerator"

    @property
    def account_id(self) -> str:
        return self.target.account_id

    @property
    def region(self) -> str:
        return self.target.region

    @property
    def substitution_context(self) -> dict:
        """
        Placeholder values replaced in policy documents before parsing. ORG_ID is
        only present when the organization id is known.
        """
        substitution_context = {
            "PARTITION": self.partition,
            "ACCOUNT_ID": self.account_id,
            "REGION": self.region,
            "HOME_REGION": self.home_region or self.region,
        }
        if self.organization_id:
            substitution_context["ORG_ID"] = self.organization_id
        return substitution_context
