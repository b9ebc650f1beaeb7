"""Access tokens and ACL checks applied when auth is enabled on an app."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from ngsdk_backend.exceptions import AccessDeniedError, AuthorizationRequiredError
from ngsdk_backend.models import Model, coerce_id
from ngsdk_backend.registry import model_builder

logger = structlog.get_logger(__name__)

EVERYONE = "$everyone"
AUTHENTICATED = "$authenticated"
UNAUTHENTICATED = "$unauthenticated"
OWNER = "$owner"


@dataclass
class AccessContext:
    """Who is calling which method of which model."""

    model: Model
    method: str
    access_type: str
    token: dict[str, Any] | None = None
    record_id: Any = None

    @property
    def user_id(self) -> Any:
        return self.token.get("userId") if self.token else None

    @property
    def authenticated(self) -> bool:
        return self.token is not None


def extract_token_id(headers: Any, query_params: Any) -> str | None:
    """Token comes from ``Authorization`` (raw or Bearer) or ``access_token``."""
    raw = headers.get("authorization") or query_params.get("access_token")
    if not raw:
        return None
    scheme, _, rest = raw.strip().partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip() or None
    return raw.strip() or None


def resolve_token(token_id: str | None) -> dict[str, Any] | None:
    """Return the stored token when it exists and has not expired."""
    if not token_id:
        return None
    tokens = model_builder.get("AccessToken")
    if tokens is None or tokens.data_source is None:
        return None
    token = tokens.find_by_id(token_id)
    if token is None:
        return None
    created = token.get("created")
    ttl = token.get("ttl")
    if created and ttl is not None and ttl >= 0:
        issued = datetime.fromisoformat(str(created).replace("Z", "+00:00"))
        if issued.tzinfo is None:
            issued = issued.replace(tzinfo=timezone.utc)
        if issued + timedelta(seconds=ttl) < datetime.now(timezone.utc):
            logger.debug("auth.token_expired", token_id=token_id)
            return None
    return token


def is_owner(context: AccessContext) -> bool:
    if context.user_id is None or context.record_id is None:
        return False
    record_id = coerce_id(context.record_id)
    if context.model.is_a("User"):
        return record_id == context.user_id
    record = context.model.find_by_id(record_id)
    if record is None:
        return False
    return context.user_id in (record.get("userId"), record.get("ownerId"))


def _matches_principal(rule: dict[str, Any], context: AccessContext) -> bool:
    principal_type = rule.get("principalType", "ROLE")
    principal_id = rule.get("principalId")
    if principal_type == "USER":
        return context.user_id is not None and str(principal_id) == str(context.user_id)
    if principal_id == EVERYONE:
        return True
    if principal_id == AUTHENTICATED:
        return context.authenticated
    if principal_id == UNAUTHENTICATED:
        return not context.authenticated
    if principal_id == OWNER:
        return is_owner(context)
    return False


def _specificity(rule: dict[str, Any], context: AccessContext) -> int | None:
    """None when the rule does not apply; higher means more specific."""
    prop = rule.get("property", "*")
    props = prop if isinstance(prop, list) else [prop]
    if context.method in props:
        score = 2
    elif "*" in props or prop is None:
        score = 0
    else:
        return None

    access_type = rule.get("accessType", "*")
    if access_type == context.access_type:
        score += 1
    elif access_type not in ("*", None):
        return None
    return score


def is_allowed(context: AccessContext) -> bool:
    """Most specific matching rule wins; DENY wins ties; no rule means ALLOW."""
    scored = []
    for rule in context.model.acls:
        score = _specificity(rule, context)
        if score is not None and _matches_principal(rule, context):
            scored.append((score, rule.get("permission", "ALLOW").upper()))
    if not scored:
        return True
    best = max(score for score, _ in scored)
    return all(permission != "DENY" for score, permission in scored if score == best)


def check_access(context: AccessContext) -> None:
    if is_allowed(context):
        return
    logger.debug(
        "auth.denied",
        model=context.model.name,
        method=context.method,
        authenticated=context.authenticated,
    )
    if not context.authenticated:
        raise AuthorizationRequiredError("Authorization Required")
    raise AccessDeniedError("Access Denied")
