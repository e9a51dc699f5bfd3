"""
Authorization for carrier configuration across the tenant hierarchy.

Policies are ordered lists of ``(predicate, reason)`` rules evaluated top-down;
the first predicate that holds decides. A ``None`` reason grants access, any
other reason denies with that message. Decisions are computed per request and
never cached. Storage failures propagate as ``DatabaseError``.
"""

from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

import structlog

from messaging_engine.core.exceptions import ValidationError
from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.tenancy import AuthorizationDecision, CredentialLevel

logger = structlog.get_logger(__name__)

ADMIN_ROLE = "admin"
COMPANY_OWNER_ROLE = "company_owner"
AGENCY_OWNER_ROLE = "owner"

ENTITY_LEVELS = (CredentialLevel.AGENCY, CredentialLevel.CLIENT)

DENIAL_REASONS: Dict[CredentialLevel, str] = {
    CredentialLevel.ADMIN: "Only platform admins can modify admin-level carrier configuration",
    CredentialLevel.AGENCY: "Only agency owners can modify agency carrier configuration",
    CredentialLevel.CLIENT: "Not authorized to modify this client's carrier configuration",
}

VIEW_DENIAL_REASONS: Dict[CredentialLevel, str] = {
    CredentialLevel.ADMIN: "Only platform admins can view admin-level carrier configuration",
    CredentialLevel.AGENCY: "Only agency owners can view agency carrier configuration",
    CredentialLevel.CLIENT: "Not authorized to view this client's carrier configuration",
}


def validate_level_request(
    level: Union[str, CredentialLevel, None], entity_id: Optional[str]
) -> CredentialLevel:
    """
    Validate a level/entity pair from a request.

    Raises:
        ValidationError: ``INVALID_LEVEL`` for an unknown level,
            ``MISSING_ENTITY_ID`` when an agency or client id is absent
    """
    try:
        parsed = CredentialLevel(level)
    except ValueError:
        raise ValidationError(
            "Invalid level specified", field="level", value=level, reason_code="INVALID_LEVEL"
        )

    if parsed in ENTITY_LEVELS and not entity_id:
        raise ValidationError(
            f"Entity ID required for {parsed.value} level",
            field="entity_id",
            reason_code="MISSING_ENTITY_ID",
        )

    return parsed


class _Subject:
    """Caller, target, and the memberships looked up while evaluating rules."""

    def __init__(
        self,
        repository: MessagingRepository,
        user_id: str,
        level: CredentialLevel,
        entity_id: Optional[str],
        roles: List[str],
    ):
        self.repository = repository
        self.user_id = user_id
        self.level = level
        self.entity_id = entity_id
        self.roles = roles
        self._client_row: Optional[dict] = None
        self._client_loaded = False

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    async def _client(self) -> Optional[dict]:
        if not self._client_loaded:
            self._client_row = await self.repository.get_client(self.entity_id)
            self._client_loaded = True
        return self._client_row

    async def owns_agency(self, agency_id: Optional[str]) -> bool:
        if not agency_id:
            return False
        role = await self.repository.get_agency_membership_role(self.user_id, agency_id)
        return role == AGENCY_OWNER_ROLE

    async def owns_client_agency(self) -> bool:
        client = await self._client()
        return await self.owns_agency((client or {}).get("agency_id"))

    async def is_client_user(self) -> bool:
        return await self.repository.has_client_association(self.user_id, self.entity_id)


Predicate = Callable[[_Subject], Awaitable[bool]]
Rule = Tuple[Predicate, Optional[str]]


async def _is_admin(subject: _Subject) -> bool:
    return subject.is_admin


async def _targets_admin_level(subject: _Subject) -> bool:
    return subject.level == CredentialLevel.ADMIN


async def _owns_target_agency(subject: _Subject) -> bool:
    return subject.level == CredentialLevel.AGENCY and await subject.owns_agency(subject.entity_id)


async def _owns_client_agency(subject: _Subject) -> bool:
    return subject.level == CredentialLevel.CLIENT and await subject.owns_client_agency()


async def _is_client_company_owner(subject: _Subject) -> bool:
    return (
        subject.level == CredentialLevel.CLIENT
        and COMPANY_OWNER_ROLE in subject.roles
        and await subject.is_client_user()
    )


async def _is_client_member(subject: _Subject) -> bool:
    return subject.level == CredentialLevel.CLIENT and await subject.is_client_user()


MODIFY_RULES: List[Rule] = [
    (_is_admin, None),
    (_targets_admin_level, DENIAL_REASONS[CredentialLevel.ADMIN]),
    (_owns_target_agency, None),
    (_owns_client_agency, None),
    (_is_client_company_owner, None),
]

VIEW_RULES: List[Rule] = [
    (_is_admin, None),
    (_targets_admin_level, VIEW_DENIAL_REASONS[CredentialLevel.ADMIN]),
    (_owns_target_agency, None),
    (_owns_client_agency, None),
    (_is_client_member, None),
]


class AuthorizationService:
    """Evaluates who may modify or view carrier configuration at each tier."""

    def __init__(self, repository: MessagingRepository):
        self.repository = repository

    async def _evaluate(
        self,
        rules: List[Rule],
        denial_reasons: Dict[CredentialLevel, str],
        user_id: str,
        level: CredentialLevel,
        entity_id: Optional[str],
    ) -> AuthorizationDecision:
        level = validate_level_request(level, entity_id)
        roles = await self.repository.get_user_roles(user_id)
        subject = _Subject(self.repository, user_id, level, entity_id, roles)

        for predicate, reason in rules:
            if await predicate(subject):
                decision = AuthorizationDecision(
                    authorized=reason is None, is_admin=subject.is_admin, reason=reason
                )
                break
        else:
            decision = AuthorizationDecision(
                authorized=False, is_admin=subject.is_admin, reason=denial_reasons[level]
            )

        logger.info(
            "Authorization evaluated",
            level=level.value,
            entity_id=entity_id,
            authorized=decision.authorized,
            is_admin=decision.is_admin,
        )
        return decision

    async def check_authorization(
        self, user_id: str, level: CredentialLevel, entity_id: Optional[str] = None
    ) -> AuthorizationDecision:
        """
        Decide whether a user may modify carrier configuration at a tier.

        Admins may act on any tier. Agency owners may act on their agency and
        its clients. Users associated with a client who also hold the
        company-owner role may act on that client.

        Raises:
            ValidationError: If the level is unknown or an agency/client id is missing
            DatabaseError: If a membership lookup fails
        """
        return await self._evaluate(MODIFY_RULES, DENIAL_REASONS, user_id, level, entity_id)

    async def check_view_authorization(
        self, user_id: str, level: CredentialLevel, entity_id: Optional[str] = None
    ) -> AuthorizationDecision:
        """Like ``check_authorization``, but any user associated with a client may view it."""
        return await self._evaluate(VIEW_RULES, VIEW_DENIAL_REASONS, user_id, level, entity_id)

    async def is_admin(self, user_id: str) -> bool:
        """Check whether the user holds the platform admin role."""
        return ADMIN_ROLE in await self.repository.get_user_roles(user_id)
