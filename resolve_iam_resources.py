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
## | IAM and Identity Center Resource Resolution
## +-----------------------------------

"""
Summary
    This script takes an iam-config YAML file and resolves every IAM and IAM Identity
    Center resource it describes into ordered, dependency-annotated resource definitions,
    one manifest per target account and region.

    This script is intended to be run from a pipeline ahead of the provisioning step.
    You should not commit its results to a code repo. Let the pipeline do the work.

Requirements
    Without --accounts-config, this script requires read-only access to AWS Organizations:
        organizations:ListRoots
        organizations:ListOrganizationalUnitsForParent
        organizations:ListAccountsForParent
        organizations:DescribeOrganization
    When the configuration has an identityCenter section, it also requires:
        sso:ListInstances (unless --instance-arn and --identity-store-id are given)
        identitystore:ListUsers
        identitystore:ListGroups
    With --validate-policies:
        access-analyzer:ValidatePolicy

Inputs
    A path to the iam-config YAML file
    Optionally, a path to an accounts-config YAML file with the account inventory
    The targets (ACCOUNT:REGION) to compile, by default every account in the home region

Outputs
    <output-dir>/<account>-<region>.json: Resource manifest for each target
"""

import argparse
import logging
import os
import sys

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

import validation.iam_config_validation as iam_config_validation
from resolution.accounts import (
    AccountInventory,
    DeploymentTargetEvaluator,
    describe_organization_id,
)
from resolution.compiler import compile_target
from resolution.config import load_iam_config
from resolution.context import CompilerContext
from resolution.documents import PolicyDocumentLoader
from resolution.errors import ResolutionError
from resolution.identity_store import (
    IdentityStorePrincipalResolver,
    PrincipalLookupError,
    discover_identity_center_instance,
)
from resolution.manifest import write_manifest
from resolution.models import CompilationTarget
from resolution.principals import ACCOUNT_ID_PATTERN

# Logging configuration
logging.basicConfig(
    format="%(asctime)s,%(msecs)03d %(levelname)-8s [%(filename)s:%(lineno)d] %(message)s",
    datefmt="%Y-%m-%d:%H:%M:%S",
    level=logging.DEBUG,
)
log = logging.getLogger()
log.setLevel(logging.INFO)


def parse_target(value: str) -> CompilationTarget:
    """
    Converts an ACCOUNT:REGION argument into a CompilationTarget.
    """
    account_id, _, region = value.partition(":")
    if not ACCOUNT_ID_PATTERN.match(account_id) or not region:
        raise argparse.ArgumentTypeError(
            f"Invalid target '{value}'. Expected ACCOUNT_ID:REGION, eg. 111111111111:us-east-1"
        )
    return CompilationTarget(account_id=account_id, region=region)


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AWS IAM and IAM Identity Center Resource Resolution"
    )
    parser.add_argument(
        "--iam-config",
        action="store",
        help="Path of the iam-config YAML file",
        default="./iam-config.yaml",
    )
    parser.add_argument(
        "--accounts-config",
        action="store",
        help="Path of the accounts-config YAML file. The account inventory is read from AWS Organizations when not specified",
        default=os.environ.get("ACCOUNTS_CONFIG"),
    )
    parser.add_argument(
        "--config-dir",
        action="store",
        help="Directory policy documents are relative to. Defaults to the directory of the iam-config file",
    )
    parser.add_argument(
        "--targets",
        action="append",
        type=parse_target,
        help="ACCOUNT_ID:REGION to compile. Can be repeated. Defaults to every account in the home region",
    )
    parser.add_argument(
        "--home-region",
        type=str,
        help="The home region, the only region IAM resources are compiled in",
        default=os.environ.get("HOME_REGION"),
    )
    parser.add_argument(
        "--partition",
        type=str,
        help="The AWS partition (aws, aws-cn, aws-us-gov...)",
        default=os.environ.get("AWS_PARTITION", "aws"),
    )
    parser.add_argument(
        "--organization-id",
        type=str,
        help="The AWS Organizations id substituted for ${ORG_ID}. Read from AWS Organizations when --accounts-config is not specified",
        default=os.environ.get("ORGANIZATION_ID"),
    )
    parser.add_argument(
        "--security-admin-account",
        type=str,
        help="Account name or id used as Identity Center delegated admin when identityCenter.delegatedAdminAccount is not set",
        default=os.environ.get("SECURITY_ADMIN_ACCOUNT"),
    )
    parser.add_argument(
        "--instance-arn",
        type=str,
        help="The IAM Identity Center instance ARN. Discovered when not specified",
    )
    parser.add_argument(
        "--identity-store-id",
        type=str,
        help="The Identity Store id. Discovered when not specified",
    )
    parser.add_argument(
        "--region",
        type=str,
        required=False,
        help="The name of the AWS region your Identity Center lives in (eg. us-east-1)",
    )
    parser.add_argument(
        "--output-dir",
        action="store",
        help="Directory the resource manifests are written to",
        default="./manifests",
    )
    parser.add_argument(
        "--allow-missing-permission-sets",
        action="store_true",
        help="Emit assignments referencing an undefined permission set with an empty permission set ARN instead of failing",
    )
    parser.add_argument(
        "--skip-validation",
        action="store_true",
        help="Skip the configuration validation section",
    )
    parser.add_argument(
        "--validate-policies",
        action="store_true",
        help="Validate the policy documents with IAM Access Analyzer",
    )
    parser.add_argument(
        "--fail-on-types",
        nargs="+",
        default=["SECURITY_WARNING", "ERROR"],
        help="The types of policy findings that should cause the script to fail.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def build_compiler_context(
    target: CompilationTarget,
    inventory: AccountInventory,
    principal_resolver,
    load_policy_document,
    partition: str,
    home_region: str,
    organization_id=None,
) -> CompilerContext:
    evaluator = DeploymentTargetEvaluator(inventory, target)
    return CompilerContext(
        target=target,
        partition=partition,
        lookup_account_id=inventory.lookup_account_id,
        is_included=evaluator.is_included,
        account_ids_for=evaluator.account_ids_for,
        resolve_principals_metadata=principal_resolver,
        load_policy_document=load_policy_document,
        home_region=home_region,
        organization_id=organization_id,
    )


def get_validation_substitution_context(
    targets, partition: str, home_region: str, organization_id=None
) -> dict:
    """
    Policy documents are validated once, with the values of the first target.
    """
    substitution_context = {
        "PARTITION": partition,
        "HOME_REGION": home_region,
        "REGION": home_region,
    }
    if targets:
        substitution_context["ACCOUNT_ID"] = targets[0].account_id
    if organization_id:
        substitution_context["ORG_ID"] = organization_id
    return substitution_context


def main(argv=None):
    args = get_parser().parse_args(argv)
    if args.verbose:
        log.setLevel(logging.DEBUG)

    home_region = args.home_region or args.region
    if not home_region:
        log.error("A home region is required. Use --home-region or set HOME_REGION.")
        sys.exit(1)
    config_dir = args.config_dir or os.path.dirname(os.path.abspath(args.iam_config))

    # Config to handle throttling
    config = Config(
        retries={"max_attempts": 1000, "mode": "adaptive"},
        region_name=args.region or home_region,
    )
    load_policy_document = PolicyDocumentLoader(config_dir)

    try:
        iam_config = load_iam_config(args.iam_config)

        organization_id = args.organization_id
        if args.accounts_config:
            inventory = AccountInventory.from_file(args.accounts_config)
        else:
            org_client = boto3.client("organizations", config=config)
            inventory = AccountInventory.from_organizations(org_client)
            organization_id = organization_id or describe_organization_id(org_client)

        targets = args.targets or [
            CompilationTarget(account_id=account.id, region=home_region)
            for account in inventory.accounts
        ]

        if not args.skip_validation:
            print("#################################################")
            print("# Starting IAM Configuration Validation Section #")
            print("#################################################\n")
            is_valid = iam_config_validation.main(
                iam_config,
                fail_on_types=args.fail_on_types,
                load_policy_document=load_policy_document
                if args.validate_policies
                else None,
                substitution_context=get_validation_substitution_context(
                    targets, args.partition, home_region, organization_id
                ),
                boto_config=config,
            )
            if not is_valid:
                print("Validation failed. Exiting. Fix errors and re-run!")
                sys.exit(1)

        print("############################################")
        print("# Starting IAM Resource Resolution Section #")
        print("############################################\n")
        instance_arn = args.instance_arn
        identity_store_id = args.identity_store_id
        if iam_config.identity_center and not (instance_arn and identity_store_id):
            # Get Identity Store and SSO Instance ARN
            sso_client = boto3.client("sso-admin", config=config)
            discovered_instance_arn, discovered_identity_store_id = (
                discover_identity_center_instance(sso_client)
            )
            instance_arn = instance_arn or discovered_instance_arn
            identity_store_id = identity_store_id or discovered_identity_store_id
        principal_resolver = IdentityStorePrincipalResolver(
            boto3.client("identitystore", config=config)
        )

        for target in targets:
            context = build_compiler_context(
                target,
                inventory,
                principal_resolver,
                load_policy_document,
                partition=args.partition,
                home_region=home_region,
                organization_id=organization_id,
            )
            result = compile_target(
                iam_config,
                context,
                instance_arn=instance_arn,
                identity_store_id=identity_store_id,
                security_admin_account=args.security_admin_account,
                allow_missing_permission_sets=args.allow_missing_permission_sets,
            )
            write_manifest(result, args.output_dir, args.partition)
    except (ResolutionError, PrincipalLookupError) as error:
        log.error(f"Resolution failed. Reason: {error}")
        sys.exit(1)
    except ClientError as error:
        log.error(f"An AWS API call failed. Reason: {error}")
        sys.exit(1)

    log.info("Resource manifests successfully created.")


if __name__ == "__main__":
    main()
