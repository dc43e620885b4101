from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ADMIN = "admin"
# Highest privilege first; used when the identity provider reports several roles.
ROLE_PRECEDENCE = (ROLE_ADMIN, ROLE_USER)


@dataclass(slots=True)
class Principal:
    subject: str
    scopes: set[str]
    role: str = ROLE_USER
    email: str | None = None

    @property
    def actor_id(self) -> str:
        return self.subject

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
