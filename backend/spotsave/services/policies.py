"""IAM policy documents and CloudFormation template for the read-only role.

The trust policy lets the SpotSave account assume the customer role only
when it presents the agreed external ID.
"""

import json
import secrets
from typing import Any, Dict, List
from urllib.parse import quote

from spotsave.core.config import settings
from spotsave.core.exceptions import InvalidAccountIdError
from spotsave.utils.validation import ACCOUNT_ID_PATTERN

POLICY_VERSION = "2012-10-17"

COST_EXPLORER_ACTIONS: List[str] = [
    "ce:GetCostAndUsage",
    "ce:GetCostAndUsageWithResources",
    "ce:GetReservationCoverage",
    "ce:GetReservationPurchaseRecommendation",
    "ce:GetReservationUtilization",
    "ce:GetRightsizingRecommendation",
    "ce:GetSavingsPlansCoverage",
    "ce:GetSavingsPlansUtilization",
    "ce:GetSavingsPlansUtilizationDetails",
    "ce:GetUsageReport",
    "ce:ListCostCategoryDefinitions",
    "ce:GetCostForecast",
    "ce:GetUsageForecast",
    "ce:GetDimensionValues",
    "ce:GetTags",
    "ce:DescribeCostCategoryDefinition",
]

BUDGETS_ACTIONS: List[str] = [
    "budgets:ViewBudget",
    "budgets:DescribeBudgets",
    "budgets:DescribeBudgetPerformanceHistory",
    "budgets:DescribeBudgetActionHistories",
    "budgets:DescribeBudgetActionsForAccount",
    "budgets:DescribeBudgetActionsForBudget",
]

TRUSTED_ADVISOR_ACTIONS: List[str] = [
    "trustedadvisor:Describe*",
    "trustedadvisor:RefreshCheck",
    "trustedadvisor:ExcludeCheck",
    "trustedadvisor:IncludeCheck",
]


def _trust_policy_document(account_id: str, external_id: str) -> Dict[str, Any]:
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": f"arn:aws:iam::{account_id}:root"},
                "Action": "sts:AssumeRole",
                "Condition": {"StringEquals": {"sts:ExternalId": external_id}},
            }
        ],
    }


def _permissions_policy_document() -> Dict[str, Any]:
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {"Effect": "Allow", "Action": list(actions), "Resource": "*"}
            for actions in (COST_EXPLORER_ACTIONS, BUDGETS_ACTIONS, TRUSTED_ADVISOR_ACTIONS)
        ],
    }


def build_trust_policy(account_id: str, external_id: str) -> str:
    """Trust policy JSON granting sts:AssumeRole to the given account's root.

    Inputs are not validated here.
    """
    return json.dumps(_trust_policy_document(account_id, external_id), indent=2)


def build_permissions_policy() -> str:
    """Read-only Cost Explorer, Budgets and Trusted Advisor policy JSON."""
    return json.dumps(_permissions_policy_document(), indent=2)


def generate_role_arn(account_id: str, role_name: str = None) -> str:
    """Canonical role ARN for an account.

    Raises:
        InvalidAccountIdError: If account_id is not exactly 12 digits.
    """
    if not isinstance(account_id, str) or not ACCOUNT_ID_PATTERN.fullmatch(account_id):
        raise InvalidAccountIdError("Invalid AWS account ID. Must be 12 digits.")
    return f"arn:aws:iam::{account_id}:role/{role_name or settings.DEFAULT_ROLE_NAME}"


def generate_external_id() -> str:
    """Random external ID made of URL-safe characters only."""
    return f"spotsave-{secrets.token_urlsafe(24)}"


def build_cloudformation_template(
    external_id: str,
    trusted_account_id: str = None,
    role_name: str = None,
) -> str:
    """CloudFormation YAML creating the read-only role with the external ID baked in."""
    trusted_account_id = trusted_account_id or settings.SERVICE_ACCOUNT_ID or "123456789012"
    role_name = role_name or settings.DEFAULT_ROLE_NAME

    def _action_lines(actions: List[str]) -> str:
        return "\n".join(f"                  - '{action}'" for action in actions)

    return f"""AWSTemplateFormatVersion: '2010-09-09'
Description: 'Read-only IAM role that lets SpotSave analyse AWS Cost Explorer data'

Parameters:
  ExternalId:
    Type: String
    Description: 'External ID SpotSave presents when assuming the role'
    Default: '{external_id}'
  TrustedAccountId:
    Type: String
    Description: 'AWS account ID that SpotSave runs in'
    Default: '{trusted_account_id}'

Resources:
  SpotSaveReadOnlyRole:
    Type: AWS::IAM::Role
    Properties:
      RoleName: {role_name}
      MaxSessionDuration: 3600
      AssumeRolePolicyDocument:
        Version: '{POLICY_VERSION}'
        Statement:
          - Effect: Allow
            Principal:
              AWS: !Sub 'arn:aws:iam::${{TrustedAccountId}}:root'
            Action: sts:AssumeRole
            Condition:
              StringEquals:
                'sts:ExternalId': !Ref ExternalId
      Policies:
        - PolicyName: SpotSaveReadOnlyPolicy
          PolicyDocument:
            Version: '{POLICY_VERSION}'
            Statement:
              - Effect: Allow
                Action:
{_action_lines(COST_EXPLORER_ACTIONS)}
                Resource: '*'
              - Effect: Allow
                Action:
{_action_lines(BUDGETS_ACTIONS)}
                Resource: '*'
              - Effect: Allow
                Action:
{_action_lines(TRUSTED_ADVISOR_ACTIONS)}
                Resource: '*'

Outputs:
  RoleArn:
    Description: 'ARN of the created IAM role'
    Value: !GetAtt SpotSaveReadOnlyRole.Arn
  ExternalId:
    Description: 'External ID to enter in SpotSave'
    Value: !Ref ExternalId
"""


def cloudformation_console_url(template_url: str, region: str = None, stack_name: str = "SpotSaveRole") -> str:
    """Quick-create link that opens the template in the CloudFormation console."""
    region = region or settings.AWS_REGION
    return (
        f"https://{region}.console.aws.amazon.com/cloudformation/home?region={region}"
        f"#/stacks/create/review?templateURL={quote(template_url, safe='')}&stackName={stack_name}"
    )
