"""
WordPress client, publisher and HTML sanitizing tests with a mocked session.
"""

import pytest
from unittest.mock import MagicMock
from hypothesis import given
from hypothesis import strategies as st

from auto_blog.cache import MemoryCacheStore
from auto_blog.content import GeneratedContent
from auto_blog.config import DEFAULT_CATEGORY, MAX_SLUG_LENGTH, WP_USER_AGENT
from auto_blog.errors import ErrorKind, RetryPolicy, classify_error, is_retryable
from auto_blog.wordpress import (
    WordPressClient,
    WordPressError,
    WordPressPublisher,
    generate_slug,
    sanitize_html_before_publish,
)


def make_response(status=200, payload=None, text=''):
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.json.return_value = payload
    return response


def make_client(responses, cache_store=None):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = responses
    client = WordPressClient('https://blog.example.com/', 'editor', 'app pass', cache_store=cache_store, session=session)
    return client, session


class TestSanitizeHtml:

    def test_removes_first_h1_and_demotes_others(self):
        html = '<h1>Title</h1><p>a</p><h1>Second</h1><p>b</p>'
        out = sanitize_html_before_publish(html)

        assert '<h1' not in out
        assert 'Title' not in out
        assert '<h2>Second</h2>' in out

    def test_removes_heading_repeating_title(self):
        html = '<h2> Cold  Brew Guide </h2><p>x</p><h2>Cold Brew Guide</h2>'
        out = sanitize_html_before_publish(html, 'Cold Brew Guide')

        assert out.count('Cold Brew Guide') == 1
        assert out.startswith('<p>x</p>')

    def test_strips_scripts(self):
        out = sanitize_html_before_publish('<p>ok</p><script>alert(1)</script><style>p{}</style>')
        assert out == '<p>ok</p>'

    def test_empty(self):
        assert sanitize_html_before_publish('') == ''
        assert sanitize_html_before_publish(None) == ''


class TestWordPressError:

    @pytest.mark.parametrize('status,retryable', [(400, False), (401, False), (404, False),
                                                  (408, True), (429, True), (500, True), (503, True)])
    def test_retryability_by_status(self, status, retryable):
        error = WordPressError(f'WordPress API error ({status})', status_code=status)
        assert is_retryable(error) is retryable
        assert classify_error(error) is ErrorKind.WORDPRESS


class TestWordPressClient:

    def test_request_url_and_auth(self):
        client, session = make_client([make_response(payload=[])])

        client.request('GET', '/posts', params={'per_page': 1})

        args, kwargs = session.request.call_args
        assert args == ('GET', 'https://blog.example.com/wp-json/wp/v2/posts')
        assert session.auth == ('editor', 'app pass')
        assert session.headers['User-Agent'] == WP_USER_AGENT
        assert 'Mozilla' not in WP_USER_AGENT

    def test_non_2xx_raises(self):
        client, _ = make_client([make_response(status=403, text='forbidden')])

        with pytest.raises(WordPressError) as exc_info:
            client.request('GET', '/posts')
        assert exc_info.value.status_code == 403

    def test_ensure_category_finds_existing_case_insensitive(self):
        client, session = make_client([
            make_response(payload=[{'id': 3, 'name': 'Coffee Beans'}, {'id': 4, 'name': 'coffee'}]),
        ])

        assert client.ensure_category('Coffee') == 4
        assert session.request.call_count == 1

    def test_ensure_category_creates_missing(self):
        client, session = make_client([
            make_response(payload=[]),
            make_response(status=201, payload={'id': 9, 'name': 'Coffee', 'slug': 'coffee', 'count': 0}),
        ])

        assert client.ensure_category('Coffee') == 9
        method, url = session.request.call_args.args
        assert method == 'POST'
        assert session.request.call_args.kwargs['json'] == {'name': 'Coffee'}

    def test_term_lookup_cached_compacted(self):
        store = MemoryCacheStore()
        client, session = make_client([
            make_response(payload=[{'id': 4, 'name': 'Coffee', 'slug': 'coffee', 'description': 'd' * 50}]),
        ], cache_store=store)

        assert client.ensure_category('Coffee') == 4
        assert client.ensure_category('coffee') == 4
        assert session.request.call_count == 1
        assert 'description' not in store.get('wp_categories_coffee')

    def test_ensure_tags(self):
        client, _ = make_client([
            make_response(payload=[{'id': 1, 'name': 'a'}]),
            make_response(payload=[]),
            make_response(status=201, payload={'id': 2, 'name': 'b'}),
        ])

        assert client.ensure_tags(['a', ' ', 'b']) == [1, 2]

    def test_create_post(self):
        client, session = make_client([
            make_response(status=201, payload={'id': 55, 'link': 'https://blog.example.com/cold-brew'}),
        ])

        post = client.create_post('T', '<p>x</p>', [4], [1, 2], status='draft', excerpt='e')

        assert post == {'id': 55, 'link': 'https://blog.example.com/cold-brew'}
        payload = session.request.call_args.kwargs['json']
        assert payload == {'title': 'T', 'content': '<p>x</p>', 'status': 'draft',
                           'categories': [4], 'tags': [1, 2], 'excerpt': 'e'}


class TestWordPressPublisher:

    def test_publish(self):
        client = MagicMock()
        client.ensure_category.side_effect = lambda name: {'Coffee': 4}[name]
        client.ensure_tags.return_value = [1]
        client.create_post.return_value = {'id': 55, 'link': 'L'}
        content = GeneratedContent(title='T', html='<h1>T</h1><p>x</p>', categories=['Coffee'],
                                   tags=['a'], seo_description='desc')

        post = WordPressPublisher(client, post_status='publish').publish(content)

        assert post == {'id': 55, 'link': 'L'}
        kwargs = client.create_post.call_args.kwargs
        assert kwargs['html'] == '<p>x</p>'
        assert kwargs['category_ids'] == [4]
        assert kwargs['status'] == 'publish'
        assert kwargs['excerpt'] == 'desc'
        assert kwargs['slug'] == 't'

    def test_default_category_when_none_given(self):
        client = MagicMock()
        client.ensure_category.return_value = 7
        client.ensure_tags.return_value = []
        client.create_post.return_value = {'id': 1, 'link': 'L'}
        content = GeneratedContent(title='Cold Brew Guide', html='<p>x</p>', categories=[' '])

        WordPressPublisher(client).publish(content)

        client.ensure_category.assert_called_once_with(DEFAULT_CATEGORY)
        assert client.create_post.call_args.kwargs['category_ids'] == [7]
        assert client.create_post.call_args.kwargs['slug'] == 'cold-brew-guide'

    def test_term_lookups_retried(self):
        client = MagicMock()
        client.ensure_category.side_effect = [WordPressError('WordPress API error (503)', status_code=503), 4]
        client.ensure_tags.return_value = []
        client.create_post.return_value = {'id': 1, 'link': 'L'}
        publisher = WordPressPublisher(client, retry_policy=RetryPolicy(max_retries=2, initial_delay=0),
                                       sleep=MagicMock())

        publisher.publish(GeneratedContent(title='T', html='<p>x</p>', categories=['Coffee']))

        assert client.ensure_category.call_count == 2
        client.create_post.assert_called_once()

    def test_failed_create_that_landed_is_not_repeated(self):
        client = MagicMock()
        client.ensure_category.return_value = 4
        client.ensure_tags.return_value = []
        client.create_post.side_effect = WordPressError('WordPress API error (502)', status_code=502)
        client.find_post_by_slug.return_value = {'id': 55, 'link': 'L'}
        publisher = WordPressPublisher(client, retry_policy=RetryPolicy(max_retries=3, initial_delay=0),
                                       sleep=MagicMock())

        post = publisher.publish(GeneratedContent(title='Cold Brew Guide', html='<p>x</p>'))

        assert post == {'id': 55, 'link': 'L'}
        client.create_post.assert_called_once()
        client.find_post_by_slug.assert_called_once_with('cold-brew-guide')

    def test_failed_create_that_did_not_land_is_retried(self):
        client = MagicMock()
        client.ensure_category.return_value = 4
        client.ensure_tags.return_value = []
        client.create_post.side_effect = [WordPressError('WordPress API error (502)', status_code=502),
                                          {'id': 56, 'link': 'L'}]
        client.find_post_by_slug.return_value = None
        publisher = WordPressPublisher(client, retry_policy=RetryPolicy(max_retries=3, initial_delay=0),
                                       sleep=MagicMock())

        post = publisher.publish(GeneratedContent(title='Cold Brew Guide', html='<p>x</p>'))

        assert post['id'] == 56
        assert client.create_post.call_count == 2

    def test_create_without_slug_is_not_retried(self):
        client = MagicMock()
        client.ensure_category.return_value = 4
        client.ensure_tags.return_value = []
        client.create_post.side_effect = WordPressError('WordPress API error (502)', status_code=502)
        publisher = WordPressPublisher(client, retry_policy=RetryPolicy(max_retries=3, initial_delay=0),
                                       sleep=MagicMock())

        with pytest.raises(WordPressError):
            publisher.publish(GeneratedContent(title='!!!', html='<p>x</p>'))

        client.create_post.assert_called_once()
        client.find_post_by_slug.assert_not_called()


class TestFindPostBySlug:

    def test_found_in_any_status(self):
        client, session = make_client([
            make_response(payload=[{'id': 55, 'status': 'draft', 'link': 'https://blog.example.com/?p=55'}]),
        ])

        assert client.find_post_by_slug('cold-brew') == {'id': 55, 'link': 'https://blog.example.com/?p=55'}
        assert session.request.call_args.kwargs['params']['status'] == 'any'
        assert session.request.call_args.kwargs['params']['slug'] == 'cold-brew'

    def test_missing(self):
        client, _ = make_client([make_response(payload=[])])
        assert client.find_post_by_slug('cold-brew') is None


class TestGenerateSlug:

    @pytest.mark.parametrize('title,slug', [
        ('Cold Brew Guide', 'cold-brew-guide'),
        ("What's the Best Ratio? (2024)", 'whats-the-best-ratio-2024'),
        ('  -- Spaced   out --  ', 'spaced-out'),
        ('', ''),
    ])
    def test_examples(self, title, slug):
        assert generate_slug(title) == slug

    def test_capped_length(self):
        slug = generate_slug('word ' * 40)
        assert len(slug) <= MAX_SLUG_LENGTH
        assert not slug.endswith('-')

    @given(st.text())
    def test_shape(self, title):
        slug = generate_slug(title)
        assert len(slug) <= MAX_SLUG_LENGTH
        assert '--' not in slug
        assert not slug.startswith('-') and not slug.endswith('-')
        assert not any(c.isspace() for c in slug)
