"""
Slack Web API client.

Thin async wrappers over chat.postMessage, reminders.add,
conversations.history and chat.scheduleMessage. The bot token is optional at
startup; calls made without one fail with a ConfigError.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from utils.config import SlackConfig
from utils.exceptions import ApiError, ConfigError, SlackError


logger = logging.getLogger(__name__)


class SlackClient:
    """Client for the Slack Web API (bearer token auth, no retries)."""

    def __init__(
        self,
        config: SlackConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0
    ):
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={'Content-Type': 'application/json; charset=utf-8'},
            timeout=timeout,
            transport=transport,
        )

    def _auth_headers(self) -> Dict[str, str]:
        if not self.config.bot_token:
            raise ConfigError("SLACK_BOT_TOKEN is not configured; Slack tools are unavailable")
        return {'Authorization': f"Bearer {self.config.bot_token}"}

    async def _call(
        self,
        api_method: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Call a Web API method.

        Slack reports most failures as HTTP 200 with ``ok: false``; those are
        turned into SlackError just like HTTP-level failures.
        """
        headers = self._auth_headers()
        endpoint = f"/{api_method}"
        http_method = "POST" if payload is not None else "GET"
        logger.debug(f"Slack {http_method} {endpoint}")

        try:
            response = await self._client.request(
                http_method, endpoint, json=payload, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            raise ApiError.from_transport_error(e, http_method, endpoint) from e

        if response.status_code == 429:
            raise SlackError.rate_limited(response.headers.get('Retry-After'))
        if response.is_error:
            raise ApiError.from_response(response)

        data = response.json()
        if not data.get('ok'):
            error = data.get('error') or 'unknown_error'
            if error == 'channel_not_found':
                raise SlackError.channel_not_found(str((payload or params or {}).get('channel')))
            if error == 'ratelimited':
                raise SlackError.rate_limited(response.headers.get('Retry-After'))
            raise SlackError.api_error(error, api_method)

        return data

    async def post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'channel': channel, 'text': text}
        if thread_ts:
            payload['thread_ts'] = thread_ts

        data = await self._call('chat.postMessage', payload)
        logger.info(f"Message posted to {channel}")
        return {'ok': True, 'channel': data.get('channel', channel), 'ts': data.get('ts')}

    async def create_reminder(self, text: str, time: str, user: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'text': text, 'time': time}
        if user:
            payload['user'] = user

        data = await self._call('reminders.add', payload)
        logger.info(f"Reminder created for {time}")
        reminder = data.get('reminder') or {}
        return {'ok': True, 'reminderId': reminder.get('id'), 'text': text, 'time': time}

    async def get_channel_history(self, channel: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Return recent messages as {user, text, timestamp} (ISO 8601 UTC)."""
        data = await self._call('conversations.history', params={'channel': channel, 'limit': limit})

        messages = []
        for message in data.get('messages') or []:
            ts = message.get('ts')
            timestamp = (
                datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat() if ts else None
            )
            messages.append({
                'user': message.get('user'),
                'text': message.get('text'),
                'timestamp': timestamp,
            })
        return messages

    async def schedule_message(self, channel: str, text: str, post_at: int) -> Dict[str, Any]:
        data = await self._call('chat.scheduleMessage', {'channel': channel, 'text': text, 'post_at': post_at})
        scheduled_for = datetime.fromtimestamp(post_at, tz=timezone.utc).isoformat()
        logger.info(f"Message scheduled for {scheduled_for}")
        return {
            'ok': True,
            'scheduledMessageId': data.get('scheduled_message_id'),
            'postAt': scheduled_for,
        }

    async def aclose(self) -> None:
        await self._client.aclose()
