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

import logging
import os
import re

from .errors import ConfigurationFileError

log = logging.getLogger(__name__)

# ${PARTITION}, ${ACCOUNT_ID}, ... but not IAM policy variables such as ${aws:username}
PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Z_]+)\}")


class PolicyDocumentLoader:
    """
    Reads policy documents relative to the configuration directory and replaces
    placeholders with the values of the substitution context.

    A placeholder missing from the context raises ConfigurationFileError.
    """

    def __init__(self, config_dir: str):
        self.config_dir = config_dir

    def __call__(self, policy_path: str, substitution_context: dict) -> str:
        file_path = os.path.join(self.config_dir, policy_path)
        try:
            with open(file_path, "r") as f:
                content = f.read()
        except OSError as error:
            raise ConfigurationFileError(
                f"Could not read policy document. Reason: {error}", entry=policy_path
            )
        log.debug(f"Loaded policy document {file_path}")

        unresolved = sorted(
            {
                name
                for name in PLACEHOLDER_PATTERN.findall(content)
                if name not in substitution_context
            }
        )
        if unresolved:
            log.error(f"[{policy_path}] Unresolved placeholders: {unresolved}")
            raise ConfigurationFileError(
                f"No value for the placeholders {unresolved}. "
                f"Known placeholders: {sorted(substitution_context)}",
                entry=policy_path,
            )
        return PLACEHOLDER_PATTERN.sub(
            lambda match: str(substitution_context[match.group(1)]), content
        )
