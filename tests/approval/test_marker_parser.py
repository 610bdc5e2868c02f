"""Tests for approval marker extraction from streamed text."""

import pytest

from approval.marker_parser import (
    APPROVAL_SENTINEL,
    clean_marker,
    contains_approval_request,
    default_args_for,
    display_tool_name,
    format_approval_marker,
    parse_approval_markers,
)


@pytest.mark.unit
class TestWellFormedMarkers:
    """Sentinels in the canonical form."""

    def test_narrative_and_request_are_split(self) -> None:
        parsed = parse_approval_markers("Sending now. __REQUIRES_APPROVAL__:abc123:gmail_send_email")

        assert parsed.narrative == "Sending now."
        assert parsed.requires_approval
        request = parsed.first_request()
        assert request is not None
        assert request.id == "abc123"
        assert request.name == "gmail_send_email"
        assert request.args == {"to": "", "subject": "", "body": ""}
        assert not request.synthesized

    def test_repeated_sentinel_suffix_is_stripped(self) -> None:
        text = f"{APPROVAL_SENTINEL}:abc:gmail_send_email{APPROVAL_SENTINEL}{APPROVAL_SENTINEL}"
        request = parse_approval_markers(text).first_request()

        assert request is not None
        assert request.id == "abc"
        assert request.name == "gmail_send_email"

    def test_json_artifacts_do_not_leak_into_tokens(self) -> None:
        text = '{"type":"text","text":"__REQUIRES_APPROVAL__:call_9:calendar_find_event"}'
        request = parse_approval_markers(text).first_request()

        assert request is not None
        assert request.id == "call_9"
        assert request.name == "calendar_find_event"
        assert request.args == {"query": "upcoming events"}

    def test_narrative_keeps_inner_formatting(self) -> None:
        text = "  Here is what I found:\n\n- item one\n- item two\n\n__REQUIRES_APPROVAL__:x1:gmail_find_email"
        parsed = parse_approval_markers(text)

        assert parsed.narrative == "Here is what I found:\n\n- item one\n- item two"
        assert parsed.requests[0].args == {"query": "recent emails", "maxResults": 5}

    def test_multiple_sentinels_are_all_returned_in_order(self) -> None:
        text = (
            "Two actions. __REQUIRES_APPROVAL__:id1:gmail_send_email "
            "__REQUIRES_APPROVAL__:id2:gmail_create_draft "
            "__REQUIRES_APPROVAL__:id1:gmail_send_email"
        )
        parsed = parse_approval_markers(text)

        assert [r.id for r in parsed.requests] == ["id1", "id2"]
        assert [r.name for r in parsed.requests] == ["gmail_send_email", "gmail_create_draft"]
        assert parsed.narrative == "Two actions."

    def test_concatenated_sentinels_are_all_returned(self) -> None:
        text = (
            "Two. __REQUIRES_APPROVAL__:id1:gmail_send_email"
            "__REQUIRES_APPROVAL__:id2:gmail_create_draft"
        )
        parsed = parse_approval_markers(text)

        assert [(r.id, r.name) for r in parsed.requests] == [
            ("id1", "gmail_send_email"),
            ("id2", "gmail_create_draft"),
        ]
        assert parsed.narrative == "Two."

    def test_suffix_then_concatenated_sentinel(self) -> None:
        text = (
            f"{APPROVAL_SENTINEL}:id1:gmail_send_email{APPROVAL_SENTINEL}"
            f"{APPROVAL_SENTINEL}:id2:calendar_find_event{APPROVAL_SENTINEL}"
        )
        parsed = parse_approval_markers(text)

        assert [(r.id, r.name) for r in parsed.requests] == [
            ("id1", "gmail_send_email"),
            ("id2", "calendar_find_event"),
        ]

    def test_unknown_tool_gets_empty_args(self) -> None:
        request = parse_approval_markers("__REQUIRES_APPROVAL__:z:slack_post").first_request()

        assert request is not None
        assert request.args == {}


@pytest.mark.unit
class TestFallbackPatterns:
    """Recovery when the sentinel is missing or mangled."""

    def test_explicit_approval_sentence(self) -> None:
        text = (
            "Let me send that. Tool execution failed: Error executing tool gmail_send_email: "
            "This tool requires explicit user approval"
        )
        parsed = parse_approval_markers(text)

        assert parsed.narrative == "Let me send that."
        request = parsed.first_request()
        assert request is not None
        assert request.name == "gmail_send_email"
        assert request.id.startswith("auto-")
        assert request.args == {}
        assert request.synthesized

    def test_generic_tool_error(self) -> None:
        request = parse_approval_markers(
            "Error executing tool calendar_create_event: upstream refused"
        ).first_request()

        assert request is not None
        assert request.name == "calendar_create_event"
        assert request.id.startswith("auto-")

    def test_synthesized_ids_are_fresh(self) -> None:
        text = "Error executing tool gmail_send_email: nope"
        first = parse_approval_markers(text).first_request()
        second = parse_approval_markers(text).first_request()

        assert first is not None and second is not None
        assert first.id != second.id

    def test_fallback_without_tool_name_is_skipped(self) -> None:
        parsed = parse_approval_markers("Error executing tool ``: nope")

        assert parsed.requests == []
        assert parsed.narrative == "Error executing tool ``: nope"

    def test_malformed_sentinel_keeps_narrative(self) -> None:
        parsed = parse_approval_markers("Working on it. __REQUIRES_APPROVAL__::")

        assert parsed.narrative == "Working on it."
        assert parsed.requests == []

    def test_malformed_sentinel_with_fallback(self) -> None:
        text = "Ok. __REQUIRES_APPROVAL__: Error executing tool gmail_send_email: failed"
        parsed = parse_approval_markers(text)

        assert parsed.narrative == "Ok."
        assert parsed.first_request() is not None


@pytest.mark.unit
class TestPlainText:
    def test_text_without_markers_is_untouched(self) -> None:
        parsed = parse_approval_markers("  Just a normal answer.  ")

        assert parsed.narrative == "  Just a normal answer.  "
        assert not parsed.requires_approval
        assert parsed.first_request() is None

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_input(self, text: str) -> None:
        parsed = parse_approval_markers(text)

        assert parsed.narrative == ""
        assert parsed.requests == []


@pytest.mark.unit
class TestMarkerHelpers:
    def test_format_approval_marker_strips_suffix(self) -> None:
        marker = format_approval_marker("abc", f"gmail_send_email{APPROVAL_SENTINEL}")
        assert marker == "__REQUIRES_APPROVAL__:abc:gmail_send_email"

    def test_produced_marker_is_parsed_back(self) -> None:
        request = parse_approval_markers(format_approval_marker("k1", "gcal_find_event")).first_request()

        assert request is not None
        assert (request.id, request.name) == ("k1", "gcal_find_event")

    def test_clean_marker(self) -> None:
        text = '{"type":"text","text":"__REQUIRES_APPROVAL__:abc:gmail_send_email"}'
        assert clean_marker(text) == "__REQUIRES_APPROVAL__:abc:gmail_send_email"
        assert clean_marker("no marker here") == "no marker here"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("mcp_gmail_send_email", "Gmail Send Email"),
            ("calendar_find_event__REQUIRES_APPROVAL__", "Calendar Find Event"),
            ("search", "Search"),
        ],
    )
    def test_display_tool_name(self, name: str, expected: str) -> None:
        assert display_tool_name(name) == expected

    def test_contains_approval_request(self) -> None:
        assert contains_approval_request("x __REQUIRES_APPROVAL__:a:b")
        assert contains_approval_request("Error executing tool foo: bar")
        assert not contains_approval_request("nothing to see")
        assert not contains_approval_request(None)

    def test_default_args_are_copies(self) -> None:
        args = default_args_for("gmail_find_email")
        args["query"] = "changed"

        assert default_args_for("gmail_find_email")["query"] == "recent emails"
