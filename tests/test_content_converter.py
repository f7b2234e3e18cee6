"""Tests for field HTML -> markdown conversion."""

from deckport.content_converter import ContentConverter, convert_clozes, convert_field


def test_plain_text():
    assert convert_field("Hola").markup == "Hola"


def test_empty_field():
    result = convert_field("")
    assert result.markup == ""
    assert result.referenced_media == frozenset()


def test_image_becomes_embed():
    result = convert_field('Hello <img src="hola.png">')
    assert result.markup == "Hello ![[hola.png]]"
    assert result.referenced_media == {"hola.png"}


def test_src_is_url_decoded():
    result = convert_field('<img src="my%20photo.jpg">')
    assert result.markup == "![[my photo.jpg]]"
    assert result.referenced_media == {"my photo.jpg"}


def test_underscore_filename_not_escaped():
    assert convert_field('<img src="a_b_c.png">').markup == "![[a_b_c.png]]"


def test_sound_reference():
    result = convert_field("To eat [sound:comer.mp3]")
    assert result.markup == "To eat ![[comer.mp3]]"
    assert result.referenced_media == {"comer.mp3"}


def test_audio_and_video_tags():
    result = convert_field('<audio src="a.ogg"></audio><video src="v.mp4"></video>')
    assert "![[a.ogg]]" in result.markup
    assert "![[v.mp4]]" in result.markup
    assert result.referenced_media == {"a.ogg", "v.mp4"}


def test_image_without_src_is_not_referenced():
    assert convert_field("<img alt='x'>").referenced_media == frozenset()


def test_cloze():
    assert convert_field("{{c1::Madrid}} is the capital").markup == "==Madrid== is the capital"


def test_cloze_hint_dropped():
    assert convert_clozes("{{c2::Paris::city}} and {{c1::France}}") == "==Paris== and ==France=="


def test_bold_and_script_removed():
    result = convert_field("<b>Bold</b><script>alert(1)</script><style>b{}</style>")
    assert result.markup == "**Bold**"


def test_divs_become_lines():
    markup = convert_field("<div>one</div><div>two</div>").markup
    lines = [line for line in markup.splitlines() if line.strip()]
    assert lines == ["one", "two"]


def test_conversion_is_stable_on_its_own_output():
    first = convert_field('{{c1::Madrid}} <img src="m.png">').markup
    assert convert_field(first).markup == first


def test_converter_memo():
    converter = ContentConverter({"0": "a.png"})
    first = converter.convert('<img src="a.png">')
    assert converter.convert('<img src="a.png">') is first
    converter.clear()
    assert converter.convert('<img src="a.png">') is not first


def test_unordered_list_items_stay_at_top_level():
    assert convert_field("<ul><li>one</li><li>two</li><li>three</li></ul>").markup == "- one\n- two\n- three"


def test_ordered_list_items_stay_at_top_level():
    assert convert_field("<ol><li>a</li><li>b</li></ol>").markup == "1. a\n2. b"


def test_list_after_text():
    markup = convert_field("Verbs:<ul><li>comer</li><li>beber</li></ul>").markup
    lines = [line for line in markup.splitlines() if line.strip()]
    assert lines == ["Verbs:", "- comer", "- beber"]


def test_nested_list_keeps_one_level_of_indent():
    markup = convert_field("<ul><li>one<ul><li>inner</li></ul></li><li>two</li></ul>").markup
    lines = [line for line in markup.splitlines() if line.strip()]
    assert lines == ["- one", "  - inner", "- two"]


def test_code_block_indentation_untouched():
    from deckport.html_to_markdown import cleanup_markdown, outdent_list_items

    text = "```\n  - not a list\n x\n```"
    assert outdent_list_items(text) == text
    assert cleanup_markdown(text) == text


def test_stray_leading_space_removed():
    from deckport.html_to_markdown import cleanup_markdown

    assert cleanup_markdown("---\n\n Back\n  - item") == "---\n\nBack\n  - item"
