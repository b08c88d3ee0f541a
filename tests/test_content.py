"""
Prompt building and AI response decoding tests.
"""

import pytest

from auto_blog.content import (
    GeneratedContent,
    build_content_prompt,
    build_topic_cluster_prompt,
    language_instruction,
    parse_generated_content,
    parse_json_response,
    sanitize_json_control_chars,
)
from auto_blog.errors import ErrorKind, InvalidDataError, classify_error


class TestSanitizeJsonControlChars:

    def test_escapes_newlines_inside_strings_only(self):
        raw = '{\n"html": "<p>a\nb</p>"\n}'
        assert sanitize_json_control_chars(raw) == '{\n"html": "<p>a\\nb</p>"\n}'

    def test_keeps_existing_escapes(self):
        raw = '{"t": "say \\"hi\\"\tnow"}'
        assert sanitize_json_control_chars(raw) == '{"t": "say \\"hi\\"\\tnow"}'


class TestParseJsonResponse:

    def test_strips_code_fences(self):
        assert parse_json_response('```json\n{"a": 1}\n```') == {'a': 1}

    def test_raw_control_characters(self):
        assert parse_json_response('{"html": "line1\nline2"}') == {'html': 'line1\nline2'}

    @pytest.mark.parametrize('raw', ['', '   ', 'Sorry, I cannot help with that.', '{"a": '])
    def test_invalid_raises_invalid_data(self, raw):
        with pytest.raises(InvalidDataError) as exc_info:
            parse_json_response(raw)
        assert classify_error(exc_info.value) is ErrorKind.INVALID_DATA


class TestParseGeneratedContent:

    def test_full_response(self):
        raw = (
            '{"title": " Cold Brew Guide ", "seoDescription": "All about cold brew.", '
            '"categories": ["Coffee"], "tags": ["cold brew", "coffee"], "html": "<h2>Intro</h2><p>x</p>"}'
        )
        content = parse_generated_content(raw)

        assert content == GeneratedContent(
            title='Cold Brew Guide',
            html='<h2>Intro</h2><p>x</p>',
            categories=['Coffee'],
            tags=['cold brew', 'coffee'],
            seo_description='All about cold brew.',
        )

    def test_comma_separated_tags(self):
        content = parse_generated_content('{"title": "T", "html": "<p>x</p>", "tags": "a, b,,c"}')
        assert content.tags == ['a', 'b', 'c']
        assert content.categories == []

    def test_long_description_truncated(self):
        content = parse_generated_content('{"title": "T", "html": "<p>x</p>", "seoDescription": "%s"}' % ('d' * 300))
        assert len(content.seo_description) == 155
        assert content.seo_description.endswith('...')

    @pytest.mark.parametrize('raw', [
        '{"html": "<p>x</p>"}',
        '{"title": "", "html": "<p>x</p>"}',
        '{"title": "T"}',
        '{"title": "T", "html": 5}',
        '{"title": "T", "html": "<p>x</p>", "tags": {"a": 1}}',
        '["title", "html"]',
    ])
    def test_incomplete_content_is_invalid(self, raw):
        with pytest.raises(InvalidDataError):
            parse_generated_content(raw)


class TestPrompts:

    def test_cluster_prompt_lists_topics_and_schema(self):
        prompt = build_topic_cluster_prompt(['cold brew ratio', 'espresso grind'])

        assert '- cold brew ratio' in prompt
        assert '- espresso grind' in prompt
        assert '"clusters"' in prompt
        assert '3-5' in prompt
        assert 'How-to/Tutorial' in prompt

    def test_content_prompt_mentions_topic_and_keywords(self):
        prompt = build_content_prompt('Cold Brew Guide', ('cold brew ratio',), 'How-to/Tutorial')

        assert 'Cold Brew Guide' in prompt
        assert 'cold brew ratio' in prompt
        assert 'How-to/Tutorial' in prompt
        assert '"seoDescription"' in prompt

    def test_language_instruction(self):
        assert 'Korean' in language_instruction('ko')
        assert 'English' in language_instruction(None)
        assert 'PT' in language_instruction('pt')
