from src.quiz.domain.ports import IIdentityProvider


class StaticIdentityProvider(IIdentityProvider):
    """Fixed identity, or no identity at all (anonymous play)."""

    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id

    def current_user_id(self) -> str | None:
        return self.user_id

    def sign_in(self, user_id: str) -> None:
        self.user_id = user_id

    def sign_out(self) -> None:
        self.user_id = None
