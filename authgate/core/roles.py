"""
Role types & their capability table.

Every role shares one join/login mechanism.  What differs per role is
declared here, not in per-role services:

- which credential providers may be used to sign up / log in;
- whether a tenant scope is required, forbidden or optional;
- which profile fields must be supplied at join time;
- whether the role bypasses tenant/owner scope checks;
- whether anyone may sign up for it over HTTP (systemAdmin accounts are
  bootstrapped with `authgate.scripts.create_admin`).

Adding a role = adding an enum member and a table row.
"""

import enum
from dataclasses import dataclass


class RoleType(str, enum.Enum):
    # Platform
    SYSTEM_ADMIN = "systemAdmin"
    ORGANIZATION_ADMIN = "organizationAdmin"
    # Task management
    TPM = "tpm"
    PM = "pm"
    PMO = "pmo"
    DEVELOPER = "developer"
    DESIGNER = "designer"
    QA = "qa"
    # Healthcare
    DEPARTMENT_HEAD = "departmentHead"
    MEDICAL_DOCTOR = "medicalDoctor"
    NURSE = "nurse"
    RECEPTIONIST = "receptionist"
    TECHNICIAN = "technician"
    PATIENT = "patient"


class TenantPolicy(str, enum.Enum):
    REQUIRED = "required"
    FORBIDDEN = "forbidden"
    OPTIONAL = "optional"


LOCAL_PROVIDER = "local"


@dataclass(frozen=True)
class RoleCapabilities:
    allowed_providers: frozenset[str] = frozenset({LOCAL_PROVIDER})
    tenant_policy: TenantPolicy = TenantPolicy.OPTIONAL
    required_profile_fields: tuple[str, ...] = ()
    scope_exempt: bool = False
    open_join: bool = True


_STAFF = RoleCapabilities(
    tenant_policy=TenantPolicy.REQUIRED,
    required_profile_fields=("full_name",),
)

CAPABILITIES: dict[RoleType, RoleCapabilities] = {
    RoleType.SYSTEM_ADMIN: RoleCapabilities(
        tenant_policy=TenantPolicy.FORBIDDEN,
        scope_exempt=True,
        open_join=False,
    ),
    RoleType.ORGANIZATION_ADMIN: _STAFF,
    RoleType.TPM: RoleCapabilities(),
    RoleType.PM: RoleCapabilities(),
    RoleType.PMO: RoleCapabilities(),
    RoleType.DEVELOPER: RoleCapabilities(),
    RoleType.DESIGNER: RoleCapabilities(),
    RoleType.QA: RoleCapabilities(),
    RoleType.DEPARTMENT_HEAD: _STAFF,
    RoleType.MEDICAL_DOCTOR: _STAFF,
    RoleType.NURSE: _STAFF,
    RoleType.RECEPTIONIST: _STAFF,
    RoleType.TECHNICIAN: _STAFF,
    RoleType.PATIENT: RoleCapabilities(
        allowed_providers=frozenset({LOCAL_PROVIDER, "google", "apple"}),
        required_profile_fields=("full_name",),
    ),
}


def capabilities_for(role_type: RoleType) -> RoleCapabilities:
    return CAPABILITIES[role_type]


def scope_exempt_roles() -> frozenset[RoleType]:
    return frozenset(r for r, caps in CAPABILITIES.items() if caps.scope_exempt)
