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
Resolve a symbolic trust-principal reference (service, account, provider) into
a concrete ResolvedPrincipal.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional

from .errors import UnknownProviderReference, UnresolvableAccountReference
from .models import (
    PrincipalKind,
    PrincipalReference,
    ResolvedPrincipal,
    ResolvedPrincipalKind,
)

log = logging.getLogger(__name__)

ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")  # Regex for AWS Account Id

CHINA_PARTITION = "aws-cn"
CHINA_SAML_AUDIENCE = "https://signin.amazonaws.cn/saml"


@dataclass(frozen=True)
class PrincipalContext:
    """
    Lookups used while resolving principals.

    :param partition: The active partition (aws, aws-cn, aws-us-gov...)
    :param lookup_account_id: Maps an account name to its id, or None when unknown
    :param providers: SAML provider name -> provider ARN
    """

    partition: str
    lookup_account_id: Callable[[str], Optional[str]]
    providers: Mapping[str, str] = field(default_factory=dict)


def account_root_arn_pattern(partition: str) -> "re.Pattern":
    return re.compile(r"^arn:" + re.escape(partition) + r":iam::(\d{12}):root$")


def _resolve_service(reference: PrincipalReference, context: PrincipalContext):
    return ResolvedPrincipal(
        kind=ResolvedPrincipalKind.SERVICE, identifier=reference.value
    )


def _resolve_account(reference: PrincipalReference, context: PrincipalContext):
    value = reference.value
    if ACCOUNT_ID_PATTERN.match(value):
        account_id = value
    else:
        arn_match = account_root_arn_pattern(context.partition).match(value)
        if arn_match:
            account_id = arn_match.group(1)
        else:
            account_id = context.lookup_account_id(value)
            if account_id is None:
                raise UnresolvableAccountReference(
                    f"Could not find an account id for account name '{value}'."
                )
    return ResolvedPrincipal(
        kind=ResolvedPrincipalKind.ACCOUNT_ID, identifier=account_id
    )


def _resolve_provider(reference: PrincipalReference, context: PrincipalContext):
    provider_arn = context.providers.get(reference.value)
    if provider_arn is None:
        raise UnknownProviderReference(
            f"The SAML provider '{reference.value}' is not defined in the providers section."
        )
    # The console principal helper is not available in the China partition,
    # the SAML audience condition is set explicitly instead.
    if context.partition == CHINA_PARTITION:
        return ResolvedPrincipal(
            kind=ResolvedPrincipalKind.FEDERATED_PROVIDER,
            identifier=provider_arn,
            extra_conditions={"StringEquals": {"SAML:aud": CHINA_SAML_AUDIENCE}},
        )
    return ResolvedPrincipal(
        kind=ResolvedPrincipalKind.FEDERATED_PROVIDER,
        identifier=provider_arn,
        console_principal=True,
    )


_RESOLVERS: Dict[PrincipalKind, Callable] = {
    PrincipalKind.SERVICE: _resolve_service,
    PrincipalKind.ACCOUNT: _resolve_account,
    PrincipalKind.PROVIDER: _resolve_provider,
}


def resolve_principal(
    reference: PrincipalReference, context: PrincipalContext
) -> ResolvedPrincipal:
    """
    Resolves one trust-principal reference.

    Account references are tested in order: a bare 12-digit id, an account root
    ARN in the active partition, then an account name looked up through
    ``context.lookup_account_id``.

    Raises:
        UnresolvableAccountReference: the account name lookup has no entry.
        UnknownProviderReference: the provider is not in ``context.providers``.
    """
    log.debug(
        f"Resolving principal type({reference.kind.value}) principal({reference.value})"
    )
    return _RESOLVERS[reference.kind](reference, context)
