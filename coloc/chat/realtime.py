"""Realtime chat delivery over Server-Sent Events (Redis pub/sub)."""
import asyncio
import json
import logging
import uuid

import redis as redis_lib
from django.conf import settings

logger = logging.getLogger(__name__)


def user_channel(user_id):
    return f'chat:user:{user_id}'


def get_sse_redis():
    """Get a Redis client for SSE pub/sub."""
    return redis_lib.from_url(settings.SSE_REDIS_URL)


def message_payload(event_type, message):
    return {
        'event': event_type,
        'message_id': message.pk,
        'visit_id': message.visit_id,
        'sender_id': message.sender_id,
        'receiver_id': message.receiver_id,
        'content': message.content,
        'attachments': message.attachments,
        'kind': message.kind,
        'read': message.read,
        'created_at': message.created_at.isoformat() if message.created_at else None,
    }


def publish_message_event(event_type, message, user_id):
    """Publish a chat event to one user's channel. Failures are logged only."""
    if user_id is None:
        return
    try:
        r = get_sse_redis()
        r.publish(user_channel(user_id), json.dumps(message_payload(event_type, message)))
    except Exception:
        logger.exception('Failed to publish %s for message %s', event_type, message.pk)


class ChatGateway:
    """Owns the table of open realtime sessions (connection id -> user id).

    A session is registered when a stream opens and removed when it closes,
    however the stream ends.
    """

    def __init__(self):
        self.sessions = {}

    def open_session(self, user_id):
        connection_id = uuid.uuid4().hex
        self.sessions[connection_id] = user_id
        logger.debug('Chat session %s opened for user %s', connection_id, user_id)
        return connection_id

    def close_session(self, connection_id):
        user_id = self.sessions.pop(connection_id, None)
        if user_id is not None:
            logger.debug('Chat session %s closed for user %s', connection_id, user_id)

    async def stream(self, user_id):
        """Async SSE generator for one user's chat events.

        pubsub.get_message(timeout=N) blocks on the Redis socket for up to N
        seconds and returns None on timeout, which is where heartbeats go.
        Disconnects surface as CancelledError and run the cleanup below.
        """
        import redis.asyncio as aioredis

        connection_id = self.open_session(user_id)
        r = aioredis.from_url(settings.SSE_REDIS_URL)
        pubsub = r.pubsub()
        channel = user_channel(user_id)
        heartbeat_interval = getattr(settings, 'SSE_HEARTBEAT_SECONDS', 15)

        try:
            await pubsub.subscribe(channel)
            yield f'event: connected\ndata: {json.dumps({"connection_id": connection_id})}\n\n'
            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=heartbeat_interval,
                )
                if message is None:
                    yield ': heartbeat\n\n'
                    continue
                if message['type'] != 'message':
                    continue
                data = json.loads(message['data'])
                yield f'event: {data["event"]}\ndata: {json.dumps(data)}\n\n'
        except asyncio.CancelledError:
            raise
        finally:
            self.close_session(connection_id)
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            await r.aclose()


gateway = ChatGateway()
