from contact_relay.config import RecipientGroup
from contact_relay.models import DeliveryMode
from contact_relay.recipients import RecipientResolver


def resolver():
    return RecipientResolver(
        [
            RecipientGroup(direction="contact", mails=("team@example.org",)),
            RecipientGroup(direction="support", mails=("support@example.org",), allow_html=True),
            RecipientGroup(
                direction="contact",
                mails=("boss@example.org", "team@example.org"),
                allow_html=True,
            ),
        ]
    )


def test_direct_mode_sends_to_caller_with_html():
    result = resolver().resolve(None, "someone@example.org")

    assert result.mode is DeliveryMode.DIRECT
    assert result.recipients == ("someone@example.org",)
    assert result.allow_html is True


def test_routed_mode_unions_matching_groups_in_order():
    result = resolver().resolve("contact", "visitor@example.org")

    assert result.mode is DeliveryMode.ROUTED
    assert result.recipients == ("team@example.org", "boss@example.org")
    assert result.allow_html is True


def test_routed_mode_keeps_group_html_flag():
    assert resolver().resolve("support", "visitor@example.org").allow_html is True
    only_plain = RecipientResolver([RecipientGroup(direction="contact", mails=("a@example.org",))])
    assert only_plain.resolve("contact", "visitor@example.org").allow_html is False


def test_unknown_direction_resolves_to_nothing():
    for direction in ("sales", "", "Contact", "contact "):
        result = resolver().resolve(direction, "visitor@example.org")
        assert result.recipients == ()
        assert result.allow_html is False
        assert result.mode is DeliveryMode.ROUTED


def test_resolver_without_groups():
    result = RecipientResolver([]).resolve("contact", "visitor@example.org")
    assert result.recipients == ()
    assert result.allow_html is False
