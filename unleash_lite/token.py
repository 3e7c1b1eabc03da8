"""
API token parsing.
"""

from dataclasses import dataclass

from unleash_lite.errors import InvalidCredentialError


@dataclass(frozen=True)
class ApiToken:
    """A client API token and the environment it is scoped to."""

    secret: str
    """The raw token, sent verbatim as the Authorization header."""

    environment: str
    """First dot-delimited segment after the ``:`` separator."""

    @classmethod
    def parse(cls, raw: str) -> "ApiToken":
        """
        Parse a token of the form ``<project>:<environment>.<key>``.

        Args:
            raw: The token string

        Returns:
            The parsed token

        Raises:
            InvalidCredentialError: If the token lacks ``:`` or a ``.`` after it
        """
        if not isinstance(raw, str) or ":" not in raw:
            raise InvalidCredentialError()

        _, env_and_key = raw.split(":", 1)
        if "." not in env_and_key:
            raise InvalidCredentialError()

        environment = env_and_key.split(".", 1)[0]
        return cls(secret=raw, environment=environment)

    def __repr__(self) -> str:
        return f"ApiToken(environment={self.environment!r})"
