"""Tests for API token and entity tag parsing."""

import pytest
from unleash_lite.entity_tag import EntityTag
from unleash_lite.errors import InvalidCredentialError, InvalidTagError, ValidationError
from unleash_lite.token import ApiToken


class TestApiToken:
    """Tests for ApiToken.parse."""

    @pytest.mark.parametrize("raw", ["abc", "abc:def", "", "abc.def", ".:x"])
    def test_rejects_invalid(self, raw):
        with pytest.raises(InvalidCredentialError):
            ApiToken.parse(raw)

    def test_parses_environment(self):
        token = ApiToken.parse("abc:dev.xyz123")
        assert token.secret == "abc:dev.xyz123"
        assert token.environment == "dev"

    def test_only_first_dot_segment(self):
        assert ApiToken.parse("abc:dev.extra.xyz").environment == "dev"

    def test_dot_before_separator_is_not_enough(self):
        """The dot must appear after the first ':'."""
        with pytest.raises(InvalidCredentialError):
            ApiToken.parse("a.b:cdef")

    def test_empty_environment_segment(self):
        assert ApiToken.parse("*:.key").environment == ""

    def test_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            ApiToken.parse("nope")

    def test_repr_hides_secret(self):
        assert "xyz123" not in repr(ApiToken.parse("abc:dev.xyz123"))


class TestEntityTag:
    """Tests for EntityTag parsing and formatting."""

    def test_format(self):
        assert str(EntityTag("76d8bb0e")) == 'W/"76d8bb0e"'

    def test_parse(self):
        assert EntityTag.parse('W/"76d8bb0e"') == EntityTag("76d8bb0e")

    @pytest.mark.parametrize("value", ["", "a", "76d8bb0e:1024", "with space", "ünïcode"])
    def test_round_trip(self, value):
        tag = EntityTag(value)
        assert EntityTag.parse(str(tag)) == tag

    @pytest.mark.parametrize("text", ["", "W/", 'W/"', '"abc"', "abcd", 'w/"abc"'])
    def test_rejects_invalid(self, text):
        with pytest.raises(InvalidTagError):
            EntityTag.parse(text)

    def test_equality_by_value(self):
        assert EntityTag("x") == EntityTag("x")
        assert EntityTag("x") != EntityTag("y")
