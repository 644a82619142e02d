import re

from atelier.utils.slugify import generate_slug, is_valid_slug, romanize_hangul


def test_latin_title():
    assert generate_slug("Hello, World!") == "hello-world"


def test_whitespace_runs_collapse():
    assert generate_slug("  Many   spaces\there ") == "many-spaces-here"


def test_hangul_is_romanized():
    assert romanize_hangul("안") == "an"
    assert romanize_hangul("녕") == "nyeong"
    assert generate_slug("안녕 World") == "annyeong-world"


def test_non_hangul_characters_pass_through_romanizer():
    assert romanize_hangul("a") == "a"


def test_empty_result_falls_back():
    assert generate_slug("!!!") == "post"
    assert generate_slug("") == "post"


def test_timestamp_suffix():
    slug = generate_slug("Release notes", use_timestamp=True)
    assert re.fullmatch(r"release-notes-[0-9a-z]+", slug)
    assert is_valid_slug(slug)


def test_is_valid_slug():
    assert is_valid_slug("abc-123")
    assert not is_valid_slug("")
    assert not is_valid_slug("Abc")
    assert not is_valid_slug("a--b")
    assert not is_valid_slug("-a")
    assert not is_valid_slug("a_b")
