"""
Weak entity tags for conditional feature fetches.
"""

from dataclasses import dataclass

from unleash_lite.errors import InvalidTagError

_PREFIX = 'W/"'


@dataclass(frozen=True)
class EntityTag:
    """A weak validator, formatted as ``W/"<value>"``."""

    value: str

    @classmethod
    def parse(cls, text: str) -> "EntityTag":
        """
        Parse a weak entity tag.

        Raises:
            InvalidTagError: If the text is shorter than 4 characters or lacks the ``W/"`` prefix
        """
        if not isinstance(text, str) or len(text) < 4 or not text.startswith(_PREFIX):
            raise InvalidTagError(f"could not parse etag: {text!r}")
        return cls(value=text[3:-1])

    def __str__(self) -> str:
        return f'{_PREFIX}{self.value}"'
