import json
import unittest
from unittest.mock import patch

import requests

from core.ai_service import FALLBACK_REPLY, ProviderConfig, call_openai_compatible, complete_for_child
from core.errors import AIServiceError


class _MockResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _DummyConfig:
    def __init__(self, data):
        self.data = data

    def get(self, key, default=None):
        return self.data.get(key, default)


PROVIDER = ProviderConfig(base_url="https://llm.test/v1/", api_key="sk-test", model_name="gpt-4o-mini", timeout_seconds=5)


class AIServiceTestCase(unittest.TestCase):
    @patch("core.ai_service.requests.post")
    def test_request_shape_and_result(self, mock_post):
        mock_post.return_value = _MockResponse(
            payload={
                "choices": [{"message": {"content": "  Let's count together!  "}}],
                "usage": {"prompt_tokens": 40, "completion_tokens": 12, "total_tokens": 52},
            }
        )
        result = complete_for_child(PROVIDER, "story", "a brave turtle", child_age=8)

        self.assertEqual(result["response"], "Let's count together!")
        self.assertEqual(result["usage"]["total_tokens"], 52)

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://llm.test/v1/chat/completions")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk-test")
        self.assertEqual(kwargs["timeout"], 5)
        body = json.loads(kwargs["data"].decode("utf-8"))
        self.assertEqual(body["model"], "gpt-4o-mini")
        self.assertEqual(body["max_tokens"], 400)
        self.assertEqual(body["temperature"], 0.8)
        self.assertEqual(body["messages"][0]["role"], "system")
        self.assertIn("early elementary", body["messages"][0]["content"])
        self.assertEqual(body["messages"][1], {"role": "user", "content": "a brave turtle"})

    @patch("core.ai_service.requests.post")
    def test_empty_content_falls_back(self, mock_post):
        mock_post.return_value = _MockResponse(payload={"choices": []})
        result = call_openai_compatible(PROVIDER, "sys", "hi")
        self.assertEqual(result["response"], FALLBACK_REPLY)
        self.assertEqual(result["usage"]["total_tokens"], 0)

    @patch("core.ai_service.requests.post")
    def test_upstream_errors(self, mock_post):
        mock_post.return_value = _MockResponse(status_code=500, text="boom")
        with self.assertRaises(AIServiceError) as ctx:
            call_openai_compatible(PROVIDER, "sys", "hi")
        self.assertEqual(ctx.exception.status_code, 502)

        mock_post.side_effect = requests.Timeout("slow")
        with self.assertRaises(AIServiceError):
            call_openai_compatible(PROVIDER, "sys", "hi")

    @patch("core.ai_service.requests.post")
    def test_not_configured(self, mock_post):
        with self.assertRaises(AIServiceError) as ctx:
            call_openai_compatible(ProviderConfig(api_key=""), "sys", "hi")
        self.assertEqual(ctx.exception.status_code, 503)
        mock_post.assert_not_called()

    def test_from_config(self):
        provider = ProviderConfig.from_config(
            _DummyConfig({"ai.base_url": "mock://local", "ai.timeout_seconds": "bad", "ai.model_name": ""})
        )
        self.assertTrue(provider.is_mock)
        self.assertEqual(provider.timeout_seconds, 60)
        self.assertEqual(provider.model_name, "gpt-4o-mini")


if __name__ == "__main__":
    unittest.main()
