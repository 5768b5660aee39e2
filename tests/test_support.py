import threading
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from docchat.cache import ResponseCache
from docchat.exceptions import ModelRequestRejected, TransientServiceFailure, ValidationFailed
from docchat.services.language_model import OpenAIChatModel
from docchat.services.locks import KeyedLocks
from docchat.services.pagination import paginate


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestResponseCache:
    def test_entries_expire(self):
        clock = FakeClock()
        cache = ResponseCache(ttl=10, clock=clock)
        cache.set("chats:u1:1", {"chats": []})

        clock.now = 9.9
        assert cache.get("chats:u1:1") == {"chats": []}
        clock.now = 10
        assert cache.get("chats:u1:1") is None
        assert cache.stats() == {"keys": 0, "hits": 1, "misses": 1}

    def test_full_cache_drops_soonest_expiry(self):
        clock = FakeClock()
        cache = ResponseCache(ttl=10, max_keys=2, clock=clock)
        cache.set("a", 1, ttl=5)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_delete_prefix(self):
        cache = ResponseCache()
        cache.set("chats:u1:1", 1)
        cache.set("chats:u1:2", 2)
        cache.set("chats:u2:1", 3)

        assert cache.delete_prefix("chats:u1:") == 2
        assert cache.get("chats:u1:1") is None
        assert cache.get("chats:u2:1") == 3


class TestPagination:
    def test_last_page(self):
        page = paginate(list(range(25)), page=3, limit=10)

        assert page.items == [20, 21, 22, 23, 24]
        assert page.info() == {
            "current_page": 3,
            "total_pages": 3,
            "total": 25,
            "has_next": False,
            "has_prev": True,
        }

    def test_empty(self):
        page = paginate([], page=1, limit=10)
        assert page.items == []
        assert page.total_pages == 0
        assert not page.has_next

    @pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (1, 101)])
    def test_bounds(self, page, limit):
        with pytest.raises(ValidationFailed):
            paginate([1, 2, 3], page=page, limit=limit)


def test_keyed_locks_serialize_same_key():
    locks = KeyedLocks()
    inside = threading.Event()
    release = threading.Event()
    order = []

    def first():
        with locks.hold("chat-1"):
            inside.set()
            release.wait(5)
            order.append("first")

    def second():
        inside.wait(5)
        with locks.hold("chat-1"):
            order.append("second")

    threads = [threading.Thread(target=first), threading.Thread(target=second)]
    for thread in threads:
        thread.start()
    inside.wait(5)
    with locks.hold("chat-2"):
        order.append("other chat")
    release.set()
    for thread in threads:
        thread.join(5)

    assert order == ["other chat", "first", "second"]


class TestOpenAIChatModel:
    REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")

    def model_with(self, client):
        return OpenAIChatModel(client=client, timeout=12)

    def test_returns_stripped_content(self):
        client = MagicMock()
        client.chat.completions.create.return_value = MagicMock(
            choices=[MagicMock(message=MagicMock(content="  Row 1 has a=1 \n"))]
        )

        answer = self.model_with(client).complete(
            model="gpt-4", messages=[{"role": "user", "content": "hi"}], temperature=0.2, max_tokens=200
        )

        assert answer == "Row 1 has a=1"
        client.chat.completions.create.assert_called_once_with(
            model="gpt-4",
            messages=[{"role": "user", "content": "hi"}],
            temperature=0.2,
            max_tokens=200,
            timeout=12,
        )

    def test_timeout_is_transient(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.APITimeoutError(request=self.REQUEST)

        with pytest.raises(TransientServiceFailure) as exc_info:
            self.model_with(client).complete("gpt-4", [], 0.7, 100)
        assert exc_info.value.retryable

    def test_bad_request_is_rejected(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.BadRequestError(
            "bad model", response=httpx.Response(400, request=self.REQUEST), body=None
        )

        with pytest.raises(ModelRequestRejected):
            self.model_with(client).complete("gpt-x", [], 0.7, 100)

    def test_empty_completion_is_transient(self):
        client = MagicMock()
        client.chat.completions.create.return_value = MagicMock(
            choices=[MagicMock(message=MagicMock(content=None))]
        )

        with pytest.raises(TransientServiceFailure):
            self.model_with(client).complete("gpt-4", [], 0.7, 100)


def test_keyed_locks_forget_released_keys():
    locks = KeyedLocks()

    with locks.hold("chat-1"):
        assert len(locks) == 1
        with locks.hold("chat-1"):
            assert len(locks) == 1
        assert len(locks) == 1

    assert len(locks) == 0


def test_keyed_locks_released_after_error():
    locks = KeyedLocks()

    with pytest.raises(RuntimeError):
        with locks.hold("chat-1"):
            raise RuntimeError("boom")

    assert len(locks) == 0
    with locks.hold("chat-1"):
        assert len(locks) == 1


def test_keyed_locks_stay_bounded_over_many_chats():
    locks = KeyedLocks()
    for i in range(1000):
        with locks.hold(f"chat-{i}"):
            pass
    assert len(locks) == 0
