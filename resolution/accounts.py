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
## | Account inventory and deployment targets
## +-----------------------------------

"""
Account inventory (names, ids, organizational units) and deployment target
evaluation.

The inventory is read from an accounts-config YAML file:

    accounts:
      - name: Management
        id: "111111111111"
        organizationalUnit: Root
      - name: Dev
        id: "222222222222"
        organizationalUnit: Workloads/Dev

or, when no file is given, from AWS Organizations. This script then requires
organizations:ListRoots, organizations:ListOrganizationalUnitsForParent,
organizations:ListAccountsForParent and organizations:DescribeOrganization.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import DeploymentTargets, load_yaml_file
from .errors import ConfigurationFileError, UnresolvableAccountReference
from .models import CompilationTarget
from .principals import ACCOUNT_ID_PATTERN

log = logging.getLogger(__name__)

ROOT_OU = "Root"


@dataclass(frozen=True)
class Account:
    name: str
    id: str
    organizational_unit: str


class AccountInventory:
    """Accounts of the organization, in a stable order."""

    def __init__(self, accounts: List[Account]):
        self.accounts = list(accounts)
        self._ids_by_name: Dict[str, str] = {}
        for account in self.accounts:
            if account.name in self._ids_by_name:
                raise ConfigurationFileError(
                    f"Duplicate account name '{account.name}' in the account inventory."
                )
            self._ids_by_name[account.name] = account.id

    def lookup_account_id(self, name: str) -> Optional[str]:
        return self._ids_by_name.get(name)

    def get_account_id(self, name: str) -> str:
        account_id = self.lookup_account_id(name)
        if account_id is None:
            raise UnresolvableAccountReference(
                f"Could not find an account id for account name '{name}'."
            )
        return account_id

    def get_account_by_id(self, account_id: str) -> Optional[Account]:
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    @classmethod
    def from_file(cls, file_path: str) -> "AccountInventory":
        data = load_yaml_file(file_path)
        accounts = []
        for item in data.get("accounts") or []:
            try:
                accounts.append(
                    Account(
                        name=str(item["name"]),
                        id=str(item["id"]),
                        organizational_unit=str(item.get("organizationalUnit", ROOT_OU)),
                    )
                )
            except (KeyError, TypeError):
                raise ConfigurationFileError(
                    "Each account requires a name and an id.", entry=file_path
                )
        log.info(f"Account inventory successfully loaded from {file_path}")
        return cls(accounts)

    @classmethod
    def from_organizations(cls, client) -> "AccountInventory":
        """
        Walks the organization tree from its root. Accounts directly under the root
        belong to the "Root" organizational unit, nested OUs are named by path
        ("Workloads/Dev"). Inactive accounts are skipped.
        """
        root_id = client.list_roots()["Roots"][0]["Id"]
        log.info("Resolving organization accounts from AWS Organizations")
        accounts = []
        for ou_id, ou_name in [(root_id, ROOT_OU)] + resolve_ou_names(root_id, client):
            for account in list_active_accounts_for_parent(ou_id, client):
                accounts.append(
                    Account(
                        name=account["Name"],
                        id=account["Id"],
                        organizational_unit=ou_name,
                    )
                )
        return cls(accounts)


def resolve_ou_names(parent_id: str, client, parent_path: str = "") -> List[tuple]:
    """
    Recursively resolves the OUs below *parent_id* to (OU ID, OU path name) pairs.
    The root itself is not included.
    """
    results = []
    response = client.list_organizational_units_for_parent(ParentId=parent_id)
    children = response["OrganizationalUnits"]
    while "NextToken" in response:
        response = client.list_organizational_units_for_parent(
            ParentId=parent_id, NextToken=response["NextToken"]
        )
        children.extend(response["OrganizationalUnits"])

    for each_ou in children:
        ou_path = f"{parent_path}/{each_ou['Name']}" if parent_path else each_ou["Name"]
        results.append((each_ou["Id"], ou_path))
        results.extend(resolve_ou_names(each_ou["Id"], client, ou_path))
    return results


def list_active_accounts_for_parent(parent_id: str, client) -> List[dict]:
    accounts = []
    response = client.list_accounts_for_parent(ParentId=parent_id)
    accounts.extend(response["Accounts"])
    while "NextToken" in response:
        response = client.list_accounts_for_parent(
            ParentId=parent_id, NextToken=response["NextToken"]
        )
        accounts.extend(response["Accounts"])
    return [account for account in accounts if account["Status"] == "ACTIVE"]


def describe_organization_id(client) -> str:
    return client.describe_organization()["Organization"]["Id"]


class DeploymentTargetEvaluator:
    """
    Evaluates deployment targets for one compilation target.

    An account matches when its name or id is listed in ``accounts`` or its
    organizational unit is listed in ``organizationalUnits`` ("Root" matches
    every account), and it is not listed in ``excludedAccounts``.
    """

    def __init__(self, inventory: AccountInventory, target: CompilationTarget):
        self.inventory = inventory
        self.target = target

    def _matches(self, account: Account, deployment_targets: DeploymentTargets) -> bool:
        if {account.name, account.id} & set(deployment_targets.excluded_accounts):
            return False
        if {account.name, account.id} & set(deployment_targets.accounts):
            return True
        return (
            ROOT_OU in deployment_targets.organizational_units
            or account.organizational_unit in deployment_targets.organizational_units
        )

    def is_included(self, deployment_targets: DeploymentTargets) -> bool:
        if self.target.region in deployment_targets.excluded_regions:
            return False
        account = self.inventory.get_account_by_id(self.target.account_id)
        if account is None:
            log.warning(
                f"[{self.target.account_id}] Account is not part of the account inventory"
            )
            return False
        return self._matches(account, deployment_targets)

    def account_ids_for(self, deployment_targets: DeploymentTargets) -> List[str]:
        for name in deployment_targets.accounts + deployment_targets.excluded_accounts:
            # Unknown names would otherwise silently target nothing
            if not ACCOUNT_ID_PATTERN.match(name):
                self.inventory.get_account_id(name)
        account_ids = []
        for account in self.inventory.accounts:
            if self._matches(account, deployment_targets) and account.id not in account_ids:
                account_ids.append(account.id)
        return account_ids
