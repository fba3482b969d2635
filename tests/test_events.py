import json

import pytest
from fastapi.testclient import TestClient
from pika.exceptions import AMQPConnectionError

import simple_social_feed.events as events
from simple_social_feed.main import app

from helpers import auth_header, create_post, make_user


class InlineThread:
    """Thread-Ersatz, der sofort im Aufrufer läuft."""

    def __init__(self, target, args=(), daemon=None):
        self.target = target
        self.args = args

    def start(self):
        self.target(*self.args)


class FakeChannel:
    def __init__(self, published):
        self.published = published

    def exchange_declare(self, exchange, exchange_type, durable):
        self.published.append(("declare", exchange, exchange_type))

    def basic_publish(self, exchange, routing_key, body, properties=None):
        self.published.append(("publish", exchange, json.loads(body)))


class FakeConnection:
    def __init__(self, published):
        self.published = published
        self.is_open = True

    def channel(self):
        return FakeChannel(self.published)

    def close(self):
        self.is_open = False


@pytest.fixture()
def queue_enabled(monkeypatch):
    monkeypatch.setenv("DISABLE_QUEUE", "false")
    monkeypatch.setenv("RABBITMQ_HOST", "localhost")
    monkeypatch.setattr(events, "Thread", InlineThread)


@pytest.mark.parametrize("host", ["disabled", "off", "none", "no", "0"])
def test_disabled_hosts(monkeypatch, host):
    monkeypatch.setenv("DISABLE_QUEUE", "false")
    monkeypatch.setenv("RABBITMQ_HOST", host)
    assert events._disabled() is True


def test_disable_queue_flag(monkeypatch):
    monkeypatch.setenv("DISABLE_QUEUE", "TRUE")
    monkeypatch.setenv("RABBITMQ_HOST", "localhost")
    assert events._disabled() is True


def test_publish_event_goes_to_fanout_exchange(queue_enabled, monkeypatch):
    published = []
    monkeypatch.setattr(events.pika, "BlockingConnection", lambda params: FakeConnection(published))

    events.publish_event("posts", {"action": "delete", "post": 7})

    assert published == [
        ("declare", "posts", "fanout"),
        ("publish", "posts", {"action": "delete", "post": 7}),
    ]


def test_publish_event_failure_is_only_logged(queue_enabled, monkeypatch, caplog):
    def refuse(params):
        raise AMQPConnectionError("connection refused")

    monkeypatch.setattr(events.pika, "BlockingConnection", refuse)

    events.publish_event("posts", {"action": "create", "post": {}})

    assert "publish to exchange 'posts' failed" in caplog.text


def test_publish_event_noop_when_disabled(monkeypatch):
    monkeypatch.setenv("DISABLE_QUEUE", "true")

    def fail(*args, **kwargs):
        raise AssertionError("should not connect")

    monkeypatch.setattr(events.pika, "BlockingConnection", fail)
    monkeypatch.setattr(events, "Thread", InlineThread)

    events.publish_event("posts", {"action": "create", "post": {}})


def test_socket_clients_receive_post_events():
    with TestClient(app) as client:
        alice = make_user("Alice")
        with client.websocket_connect("/socket") as ws:
            post = create_post(client, alice).json()["post"]
            message = ws.receive_json()

            assert message["event"] == "posts"
            assert message["data"]["action"] == "create"
            assert message["data"]["post"]["_id"] == post["_id"]
            assert message["data"]["post"]["creator"] == {"_id": alice["id"], "name": "Alice"}

            r = client.delete(f"/feed/post/{post['_id']}", headers=auth_header(alice))
            assert r.status_code == 200
            assert ws.receive_json() == {"event": "posts", "data": {"action": "delete", "post": post["_id"]}}
