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
Identity Store lookups: Identity Center instance discovery and user/group
name -> principal id resolution.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from .config import AssignmentPrincipalConfig
from .models import AssignmentPrincipal

log = logging.getLogger(__name__)


class PrincipalLookupError(Exception):
    """Raised when a user or group name does not match exactly one principal."""


def discover_identity_center_instance(sso_client) -> Tuple[str, str]:
    """
    Returns the (instance ARN, identity store id) of the Identity Center instance.
    """
    response = sso_client.list_instances()
    if not response["Instances"]:
        raise PrincipalLookupError("No IAM Identity Center instance found.")
    instance = response["Instances"][0]
    return instance["InstanceArn"], instance["IdentityStoreId"]


class IdentityStorePrincipalResolver:
    """
    Resolves USER and GROUP names to Identity Store principal ids.

    Results are cached by type and name for the lifetime of the resolver, so one
    resolver can be shared by every target of a run.
    """

    def __init__(self, client):
        self.client = client
        self.principal_cache: Dict[str, str] = {}

    def lookup_principal_id(
        self, principal_name: str, principal_type: str, identity_store_id: str
    ) -> str:
        """
        Given an identity store and principal Name and Type, looks up the principal ID in the given Identity Store
        Returns: string with principal ID
        """
        cache_key = f"{principal_type}|{principal_name}"
        if cache_key in self.principal_cache:
            return self.principal_cache[cache_key]

        if principal_type == "GROUP":
            response = self.client.list_groups(
                IdentityStoreId=identity_store_id,
                Filters=[
                    {"AttributePath": "DisplayName", "AttributeValue": principal_name},
                ],
            )
            results = [group["GroupId"] for group in response["Groups"]]
        elif principal_type == "USER":
            response = self.client.list_users(
                IdentityStoreId=identity_store_id,
                Filters=[
                    {"AttributePath": "UserName", "AttributeValue": principal_name},
                ],
            )
            results = [user["UserId"] for user in response["Users"]]
        else:
            raise PrincipalLookupError(
                f"[PR: {principal_name}] Unsupported principal type '{principal_type}'. Expected USER or GROUP."
            )

        # Error handling in case the name does not exist or has duplicates
        if len(results) != 1:
            log.error(
                f"[PR: {principal_name}] [{principal_type}] It was not possible to lookup target."
            )
            raise PrincipalLookupError(
                f"[PR: {principal_name}] [{principal_type}] Expected 1 result, but got {len(results)}"
            )
        self.principal_cache[cache_key] = results[0]
        return results[0]

    def __call__(
        self,
        principals: Sequence[AssignmentPrincipalConfig],
        identity_store_id: str,
    ) -> List[AssignmentPrincipal]:
        return [
            AssignmentPrincipal(
                type=principal.type,
                name=principal.name,
                id=self.lookup_principal_id(
                    principal.name, principal.type, identity_store_id
                ),
            )
            for principal in principals
        ]
