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
Configuration errors raised while resolving IAM resources.

Every error is fatal to the run. The offending configuration entry (role name,
permission set name, assignment name...) is kept on the exception so the
operator knows what to fix.
"""

from contextlib import contextmanager
from typing import Optional


class ResolutionError(Exception):
    """Base class for all configuration-correctness errors."""

    def __init__(self, message: str, entry: Optional[str] = None):
        self.entry = entry
        self.reason = message
        if entry:
            message = f"[{entry}] {message}"
        super().__init__(message)


@contextmanager
def configuration_entry(entry: str):
    """
    Tags resolution errors raised inside the block with the configuration entry
    being compiled, unless they already name one.
    """
    try:
        yield
    except ResolutionError as error:
        if error.entry is not None:
            raise
        raise type(error)(error.reason, entry=entry) from error


class UnresolvableAccountReference(ResolutionError):
    pass


class UnknownProviderReference(ResolutionError):
    pass


class AmbiguousProviderPrincipal(ResolutionError):
    pass


class UnregisteredPolicy(ResolutionError):
    pass


class MalformedPolicyDocument(ResolutionError):
    pass


class UnknownPermissionSet(ResolutionError):
    pass


class UnregisteredGroup(ResolutionError):
    pass


class ConfigurationFileError(ResolutionError):
    """Raised when a configuration file cannot be read or has the wrong shape."""


class DuplicateLogicalId(ResolutionError):
    """Two configuration entries compile to the same logical id."""
