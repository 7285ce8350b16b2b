"""Tests for LLM providers, error classification and analysis providers."""

import pytest
from unittest.mock import patch

from codecoach.analysis.errors import AnalysisError, ErrorKind
from codecoach.analysis.llm import get_provider
from codecoach.analysis.llm.base import BaseLLMProvider, LLMResponse, classify_exception
from codecoach.analysis.llm.config import (
    get_default_model, get_max_concurrency, get_model_pricing,
)
from codecoach.analysis.prompts.code_review import build_code_review_prompt
from codecoach.analysis.providers import (
    MockFixtureProvider, RemoteLLMAnalysisProvider, get_analysis_provider,
)


class FakeLLM(BaseLLMProvider):
    """In-memory chat backend returning queued replies."""

    PROVIDER_NAME = 'fake'
    DEFAULT_MODEL = 'fake-1'

    def __init__(self, replies):
        super().__init__(api_key='test')
        self.replies = list(replies)
        self.requests = []

    def chat(self, messages, model=None, max_tokens=4096, temperature=0, timeout=None):
        self.requests.append({'messages': messages, 'timeout': timeout, 'model': model})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return LLMResponse(
            content=reply, model=model or self.DEFAULT_MODEL, provider='fake',
            latency_ms=120,
        )

    def list_models(self):
        return [self.DEFAULT_MODEL]


class SDKError(Exception):
    def __init__(self, status_code):
        super().__init__(f'status {status_code}')
        self.status_code = status_code


class APITimeoutError(Exception):
    pass


class TestClassifyException:
    @pytest.mark.parametrize('exc,kind', [
        (TimeoutError(), ErrorKind.TIMEOUT),
        (APITimeoutError(), ErrorKind.TIMEOUT),
        (SDKError(408), ErrorKind.TIMEOUT),
        (SDKError(429), ErrorKind.TRANSIENT),
        (SDKError(500), ErrorKind.TRANSIENT),
        (SDKError(401), ErrorKind.REJECTED),
        (SDKError(413), ErrorKind.REJECTED),
        (ConnectionError('reset'), ErrorKind.TRANSIENT),
        (RuntimeError('unknown'), ErrorKind.TRANSIENT),
    ])
    def test_classification(self, exc, kind):
        assert classify_exception(exc) == kind


class TestModelConfig:
    def test_defaults(self):
        assert get_default_model('claude') == 'claude-haiku-4-5'
        assert get_max_concurrency('unknown') == 3
        assert get_model_pricing('openai', 'gpt-4.1-mini')['input_price'] == 0.40

    def test_estimate_cost_without_pricing(self):
        assert FakeLLM([]).estimate_cost(1000, 1000, 'fake-1') == 0.0

    def test_unknown_llm_provider(self):
        with pytest.raises(ValueError):
            get_provider('does-not-exist')

    @pytest.mark.parametrize('name', ['claude', 'openai', 'zhipu'])
    def test_discovered_backends(self, name):
        llm = get_provider(name, api_key='k')
        assert isinstance(llm, BaseLLMProvider)
        assert llm.PROVIDER_NAME == name
        assert llm.api_key == 'k'


class TestCodeReviewPrompt:
    def test_prompt_contains_code_and_language(self):
        messages = build_code_review_prompt('print(1)', 'python')
        text = '\n'.join(m['content'] for m in messages)
        assert 'print(1)' in text
        assert 'python' in text
        assert messages[-1]['role'] == 'user'


class TestRemoteLLMAnalysisProvider:
    def test_parses_fenced_reply(self):
        llm = FakeLLM([
            '```json\n{"errors": [], "weak_areas": [], "quality_score": 91}\n```'
        ])
        provider = RemoteLLMAnalysisProvider(llm=llm, model='fake-2')
        raw = provider.analyze('x = 1', 'python', timeout=5)

        assert raw['quality_score'] == 91
        assert raw['analysis_time_ms'] == 120
        assert llm.requests[0]['timeout'] == 5
        assert llm.requests[0]['model'] == 'fake-2'
        assert provider.name == 'remote_llm:fake'

    def test_non_json_reply_is_invalid(self):
        provider = RemoteLLMAnalysisProvider(llm=FakeLLM(['Looks good to me!']))
        with pytest.raises(AnalysisError) as exc_info:
            provider.analyze('x = 1', 'python')
        assert exc_info.value.kind == ErrorKind.INVALID_RESPONSE

    def test_sdk_error_is_classified(self):
        provider = RemoteLLMAnalysisProvider(llm=FakeLLM([SDKError(503)]))
        with pytest.raises(AnalysisError) as exc_info:
            provider.analyze('x = 1', 'python')
        assert exc_info.value.kind == ErrorKind.TRANSIENT
        assert isinstance(exc_info.value.__cause__, SDKError)

    @patch('codecoach.analysis.providers.get_provider')
    def test_builds_llm_from_registry(self, mock_get_provider):
        mock_get_provider.return_value = FakeLLM([])
        provider = get_analysis_provider(
            'remote_llm', ai_provider='openai', api_key='sk-test',
        )
        mock_get_provider.assert_called_once_with('openai', api_key='sk-test')
        assert provider.llm.PROVIDER_NAME == 'fake'


class TestMockFixtureProvider:
    def test_script_then_default(self):
        provider = MockFixtureProvider(script=[{'quality_score': 1}])
        assert provider.analyze('a', 'python') == {'quality_score': 1}
        assert provider.analyze('b', 'python')['quality_score'] == 75
        assert provider.calls == [('a', 'python'), ('b', 'python')]

    def test_raises_scripted_exception(self):
        provider = MockFixtureProvider(script=[ConnectionError('down')])
        with pytest.raises(ConnectionError):
            provider.analyze('a', 'python')

    def test_callable_entry(self):
        provider = MockFixtureProvider()
        provider.push(lambda code, language: {'echo': code})
        assert provider.analyze('abc', 'python') == {'echo': 'abc'}

    def test_registry_lookup(self):
        assert isinstance(get_analysis_provider('mock'), MockFixtureProvider)
        with pytest.raises(ValueError):
            get_analysis_provider('carrier-pigeon')
