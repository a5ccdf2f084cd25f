import pytest

from contact_relay.errors import ConfigurationError
from contact_relay.filters import ContentClassifier, ContentKind, SpamFilter


@pytest.fixture
def spam_filter():
    return SpamFilter(["spam", "viagra", "free money"])


@pytest.mark.parametrize(
    "subject,text",
    [
        ("spam", ""),
        ("Hello", "this is spam."),
        ("Cheap viagra here", "hi"),
        ("", "get free money now"),
        ("", "line one\nspam\nline three"),
    ],
)
def test_blocks_whole_words(spam_filter, subject, text):
    assert spam_filter.is_blocked(subject, text) is True


@pytest.mark.parametrize(
    "subject,text",
    [
        ("Hello", "I am not a spammer"),
        ("antispam", "nothing"),
        ("", "freemoney"),
        ("", "Spam with a capital letter"),
    ],
)
def test_ignores_substrings_and_other_case(spam_filter, subject, text):
    assert spam_filter.is_blocked(subject, text) is False


def test_match_returns_the_word(spam_filter):
    assert spam_filter.match("buy viagra", "") == "viagra"
    assert spam_filter.match("hello", "world") is None


def test_block_words_are_patterns():
    words = SpamFilter([r"casinos?", r"[Cc]rypto"])
    assert words.is_blocked("Best casinos", "")
    assert words.is_blocked("", "crypto deals")
    assert not words.is_blocked("", "cryptography")


def test_empty_block_list_blocks_nothing():
    assert SpamFilter([]).is_blocked("spam", "spam") is False


@pytest.mark.parametrize("word", ["(unclosed", "", "   "])
def test_invalid_block_word_is_configuration_error(word):
    with pytest.raises(ConfigurationError):
        SpamFilter([word])


@pytest.fixture
def classifier():
    return ContentClassifier()


def test_classify_plain_when_html_not_allowed(classifier):
    assert classifier.classify("<p>Hi</p>", allow_html=False) is ContentKind.PLAIN


def test_classify_html_when_allowed(classifier):
    assert classifier.classify("<p>Hi <b>there</b></p>", allow_html=True) is ContentKind.HTML


@pytest.mark.parametrize("text", ["", "Just words", "Two\nlines of text"])
def test_classify_plain_text_even_when_html_allowed(classifier, text):
    assert classifier.classify(text, allow_html=True) is ContentKind.PLAIN


def test_classify_is_idempotent(classifier):
    text = "Hello, plain world"
    kind = classifier.classify(text, allow_html=False)
    for _ in range(3):
        _, body = classifier.render(text, allow_html=False)
        assert classifier.classify(body, allow_html=False) is kind is ContentKind.PLAIN
        text = body


def test_render_strips_markup_when_html_not_allowed(classifier):
    kind, body = classifier.render("<p>Hello <b>world</b></p>", allow_html=False)
    assert kind is ContentKind.PLAIN
    assert body == "Hello world"


def test_render_keeps_plain_text_untouched(classifier):
    assert classifier.render("Hello world", allow_html=False) == (ContentKind.PLAIN, "Hello world")


def test_render_keeps_html_when_allowed(classifier):
    text = "<p>Hello <b>world</b></p>"
    assert classifier.render(text, allow_html=True) == (ContentKind.HTML, text)


@pytest.mark.parametrize("allow_html", [False, True])
def test_render_decodes_entities_in_plain_text(classifier, allow_html):
    assert classifier.render("Tom &amp; Jerry", allow_html=allow_html) == (
        ContentKind.PLAIN,
        "Tom & Jerry",
    )


def test_render_decodes_entities_when_stripping_markup(classifier):
    assert classifier.render("<p>Tom &amp; Jerry</p>", allow_html=False) == (
        ContentKind.PLAIN,
        "Tom & Jerry",
    )
