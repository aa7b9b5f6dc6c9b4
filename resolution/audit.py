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

"""Collects audit-rule suppressions for resources that intentionally break a rule."""

import logging
from typing import List

from .models import AuditSuppression

log = logging.getLogger(__name__)

# The IAM user, role, or group uses AWS managed policies
IAM4 = "AwsSolutions-IAM4"
# The IAM entity contains wildcard permissions
IAM5 = "AwsSolutions-IAM5"
# The secret does not have automatic rotation scheduled
SMG4 = "AwsSolutions-SMG4"


class AuditSuppressionRecorder:
    def __init__(self):
        self.suppressions: List[AuditSuppression] = []

    def __call__(self, resource_path: str, rule_id: str, reason: str) -> None:
        log.debug(f"[{resource_path}] Suppressing {rule_id}: {reason}")
        self.suppressions.append(
            AuditSuppression(resource_path=resource_path, rule_id=rule_id, reason=reason)
        )
