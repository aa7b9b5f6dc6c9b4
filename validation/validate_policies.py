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
This script will validate the policy documents referenced by the iam-config:
customer managed policies of the policy sets and permission set inline policies.

It will NOT check for overly-permissive *managed* policies.
For example, if AdministratorAccess is attached to a permission set,
this script will NOT flag it as problematic (though it likely is).
"""

import json
import logging
from typing import Callable, List

import boto3

from resolution.config import IamConfig

log = logging.getLogger(__name__)


def list_policy_documents(iam_config: IamConfig) -> List[str]:
    """Paths of every policy document in the configuration, without duplicates."""
    paths = []
    for policy_set in iam_config.policy_sets:
        for policy in policy_set.policies:
            paths.append(policy.policy)
    if iam_config.identity_center:
        for permission_set in iam_config.identity_center.permission_sets:
            if permission_set.policies and permission_set.policies.inline_policy:
                paths.append(permission_set.policies.inline_policy)
    return list(dict.fromkeys(paths))


def validate_policies(
    iam_config: IamConfig,
    load_policy_document: Callable[[str, dict], str],
    substitution_context: dict,
    fail_on_types=["SECURITY_WARNING", "ERROR"],
    boto_config=None,
) -> List[str]:
    """
    Returns a list of files that failed policy validation, or an empty list if all files passed.
    """
    bad_files = []
    access_analyzer_client = boto3.client("accessanalyzer", config=boto_config)
    for file in list_policy_documents(iam_config):
        policy_document = load_policy_document(file, substitution_context)
        if not isinstance(policy_document, str):
            policy_document = json.dumps(policy_document)
        log.info(f"Validating policy document {file}")
        findings = access_analyzer_client.validate_policy(
            policyDocument=policy_document,
            policyType="IDENTITY_POLICY",
        )["findings"]
        filtered_findings = []
        for finding in findings:
            if finding["findingType"] in fail_on_types:
                # Remove overly verbose location information
                finding.pop("locations", None)
                filtered_findings.append(finding)
        if filtered_findings:
            bad_files.append(file)
            log.error(f"Failed policy validation for {file}. Details:")
            log.error(filtered_findings)

    return bad_files
