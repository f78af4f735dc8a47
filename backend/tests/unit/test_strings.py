"""Tests for language string lookup."""

from lms_o365.strings import get_string


class TestGetString:
    """Tests for get_string."""

    def test_default_component(self):
        assert get_string("calendar_site") == "Sitewide Calendar"

    def test_other_component(self):
        assert get_string("errorbadpath", "repository_office365") == "Bad Path"

    def test_unknown_identifier(self):
        assert get_string("nosuchstring") == "[[nosuchstring]]"

    def test_unknown_component(self):
        assert get_string("errorbadpath", "no_component") == "[[errorbadpath]]"

    def test_scalar_placeholder(self):
        assert get_string("erroro365apibadcall_message", a="timeout") == (
            "Error in API call: timeout"
        )

    def test_mapping_placeholders(self):
        text = get_string(
            "errorusermatched",
            a={"aadupn": "jdoe@contoso.com", "username": "jdoe"},
        )

        assert '"jdoe@contoso.com"' in text
        assert 'Moodle user "jdoe"' in text

    def test_object_placeholders(self):
        class Match:
            aadupn = "amy@contoso.com"
            username = "amy"

        text = get_string("errorusermatched", a=Match())

        assert '"amy@contoso.com"' in text

    def test_missing_field_is_blank(self):
        text = get_string("errorusermatched", a={"aadupn": "x@contoso.com"})

        assert 'Moodle user ""' in text
