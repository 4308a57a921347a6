"""
Credential variants presented at join / login.

A local credential always carries a secret; an external one carries a
provider name and the subject that provider vouched for.  Verifying the
external assertion itself (OAuth callback, id-token check) happens
upstream of this package.
"""

from dataclasses import dataclass
from typing import Union

from authgate.core.roles import LOCAL_PROVIDER


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class LocalCredential:
    email: str
    password: str

    @property
    def provider(self) -> str:
        return LOCAL_PROVIDER

    @property
    def provider_key(self) -> str:
        return normalize_email(self.email)

    def __repr__(self) -> str:
        return f"LocalCredential(email={self.email!r}, password='***')"


@dataclass(frozen=True)
class ExternalCredential:
    provider: str
    subject: str

    @property
    def provider_key(self) -> str:
        return self.subject.strip()


PresentedCredential = Union[LocalCredential, ExternalCredential]
