"""
Fake vendor responses and an httpx MockTransport router
"""

import json

import httpx


def openai_chat(*contents, prompt_tokens=10, completion_tokens=20, model="gpt-4o"):
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [
            {"index": i, "message": {"role": "assistant", "content": c}, "finish_reason": "stop"}
            for i, c in enumerate(contents)
        ],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def anthropic_message(text, input_tokens=10, output_tokens=20):
    return {
        "id": "msg_test",
        "model": "claude-3-5-sonnet-20241022",
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def google_content(*texts, prompt_tokens=10, candidate_tokens=20):
    return {
        "candidates": [
            {"content": {"parts": [{"text": t}], "role": "model"}, "finishReason": "STOP"}
            for t in texts
        ],
        "usageMetadata": {"promptTokenCount": prompt_tokens, "candidatesTokenCount": candidate_tokens},
    }


def perplexity_chat(text, citations=()):
    data = openai_chat(text, model="llama-3.1-sonar-large-128k-online")
    data["citations"] = list(citations)
    return data


class FakeVendors:
    """
    httpx MockTransport routing on URL substrings.

    A route value is a JSON body (200), a (status, body) tuple, or a list of
    either, consumed one per request with the last entry repeated.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        for pattern, route in self.routes.items():
            if pattern in url:
                if isinstance(route, list):
                    route = route.pop(0) if len(route) > 1 else route[0]
                status, body = route if isinstance(route, tuple) else (200, route)
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={"error": {"message": f"no route for {url}"}})

    def bodies(self, pattern):
        return [json.loads(r.content) for r in self.requests if pattern in str(r.url)]

    def count(self, pattern):
        return sum(1 for r in self.requests if pattern in str(r.url))
