import json
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import Response

from spotsave.core.config import settings
from spotsave.core.exceptions import InvalidAccountIdError, ValidationError
from spotsave.services.policies import (
    build_cloudformation_template,
    build_permissions_policy,
    build_trust_policy,
    cloudformation_console_url,
    generate_external_id,
    generate_role_arn,
)
from spotsave.utils.validation import sanitize_external_id, validate_account_id, validate_external_id

router = APIRouter()


def _checked_external_id(external_id: str) -> str:
    external_id = sanitize_external_id(external_id)
    if not validate_external_id(external_id):
        raise ValidationError(
            "Invalid external ID format. Must be alphanumeric with hyphens/underscores, 2-1224 characters."
        )
    return external_id


def _trusted_account(account_id: Optional[str]) -> str:
    account_id = (account_id or settings.SERVICE_ACCOUNT_ID or "").strip()
    if not validate_account_id(account_id):
        raise InvalidAccountIdError("Invalid AWS account ID. Must be 12 digits.")
    return account_id


@router.get("/trust")
async def get_trust_policy(
    external_id: str = Query(..., alias="externalId"),
    account_id: Optional[str] = Query(None, alias="accountId"),
):
    """Trust policy letting the SpotSave account assume the customer role"""
    policy = build_trust_policy(_trusted_account(account_id), _checked_external_id(external_id))
    return json.loads(policy)


@router.get("/permissions")
async def get_permissions_policy():
    return json.loads(build_permissions_policy())


@router.get("/role-arn")
async def get_role_arn(
    account_id: str = Query(..., alias="accountId"),
    role_name: Optional[str] = Query(None, alias="roleName"),
):
    return {"roleArn": generate_role_arn(account_id.strip(), role_name)}


@router.get("/external-id")
async def get_external_id():
    return {"externalId": generate_external_id()}


@router.get("/cloudformation")
async def get_cloudformation_template(
    external_id: str = Query(..., alias="externalId"),
    account_id: Optional[str] = Query(None, alias="accountId"),
):
    """CloudFormation YAML for the read-only role, served as a download"""
    trusted = account_id.strip() if account_id else None
    if trusted is not None and not validate_account_id(trusted):
        raise InvalidAccountIdError("Invalid AWS account ID. Must be 12 digits.")

    template = build_cloudformation_template(_checked_external_id(external_id), trusted_account_id=trusted)
    return Response(
        content=template,
        media_type="application/x-yaml",
        headers={"Content-Disposition": 'attachment; filename="spotsave-role.yaml"'},
    )


@router.get("/cloudformation/console-url")
async def get_cloudformation_console_url(
    template_url: str = Query(..., alias="templateUrl"),
    region: Optional[str] = None,
):
    return {"url": cloudformation_console_url(template_url, region)}
