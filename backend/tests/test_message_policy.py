import pytest

from trudify.services.message_policy import (
    MessagePolicyError,
    check_message,
    contains_email,
    contains_phone_number,
    contains_url,
    enforce_message_policy,
)


@pytest.mark.parametrize(
    "message, code",
    [
        ("call me at 0888123456", "contains_phone"),
        ("088 448 92 89", "contains_phone"),
        ("0-88-44-89-289", "contains_phone"),
        ("visit mysite.com", "contains_url"),
        ("see https://example.org/profile", "contains_url"),
        ("find me on instagram: @master_ivan", "contains_url"),
        ("my site is ivan dot com", "contains_url"),
        ("email me at test@gmail.com", "contains_email"),
        ("write to ivan at gmail", "contains_email"),
        ("ivan @ abv", "contains_email"),
        ("x" * 201, "message_too_long"),
    ],
)
def test_rejected_messages(message, code):
    assert check_message(message) == code


@pytest.mark.parametrize(
    "message",
    ["I can start Monday", "Available this week", "Done similar jobs since 2015, price includes materials", "", None],
)
def test_accepted_messages(message):
    assert check_message(message) is None


def test_detectors_individually():
    assert contains_phone_number("(088) 123-4567")
    assert not contains_phone_number("Call after 18:00 on 12.05")
    assert contains_url("www.example")
    assert not contains_url("a big deal")
    assert contains_email("name@example.bg")
    assert not contains_email("meet at the office")


def test_enforce_raises_with_code():
    with pytest.raises(MessagePolicyError) as exc_info:
        enforce_message_policy("call 0888123456")
    assert exc_info.value.code == "contains_phone"
    enforce_message_policy("I can start Monday")
