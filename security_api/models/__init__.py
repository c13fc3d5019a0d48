from security_api.models.user import User, UserStatus
from security_api.models.role import Role, SYSTEM_ROLES
from security_api.models.action import Action
from security_api.models.role_grant import RoleGrant
from security_api.models.owner import Owner, OwnerStatus
from security_api.models.membership import (
    Membership,
    MembershipKind,
    MembershipStatus,
    RoleMembership,
    ActionMembership,
    active_membership_clause,
)
from security_api.models.token import Token
from security_api.models.audit_record import AuditRecord, AuditAction
