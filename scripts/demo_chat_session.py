#!/usr/bin/env python
"""
Demo script for a live chat session against a running API.

Logs in, ensures the conversation for an appointment, opens a ChatSession
over the Pusher relay and sends whatever is typed on stdin. Incoming
messages are printed as they arrive.

Usage:
    cd apps/api
    python manage.py seed_chat_demo          # prints the ids to use
    python ../../scripts/demo_chat_session.py http://localhost:8000 \
        patient@example.com chat-demo-1234 <appointment_id> <counterpart_user_id>
"""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../apps/api'))

import requests

from apps.chat.client.api import ChatApiClient
from apps.chat.client.session import ChatSession
from apps.chat.client.transport import PysherSubscriber
from apps.core.errors import DomainError


def login(base_url, email, password):
    response = requests.post(
        f'{base_url.rstrip("/")}/api/auth/login/',
        json={'email': email, 'password': password},
        timeout=10,
    )
    if response.status_code != 200:
        print(f"❌ Login failed: HTTP {response.status_code}")
        sys.exit(1)
    return response.json()['token']


def print_new(session, seen):
    for message in session.messages:
        if message['id'] in seen:
            continue
        seen.add(message['id'])
        who = 'me' if session.is_own_message(message) else message['sender_name']
        print(f"[{message['created_at']}] {who}: {message['body']}")


def main():
    if len(sys.argv) != 6:
        print(__doc__)
        sys.exit(2)
    base_url, email, password, appointment_id, counterpart_user_id = sys.argv[1:]

    api = ChatApiClient(base_url, login(base_url, email, password))
    me = api.me()
    print(f"✓ Logged in as {me['display_name']} ({me['role']})")

    conversation = api.ensure_conversation(appointment_id, counterpart_user_id)
    print(f"✓ Conversation {conversation['id']} on {conversation['channel']}")

    seen = set()
    subscriber = PysherSubscriber.from_api(api)
    session = ChatSession(
        conversation['id'], me['id'], api, subscriber,
        on_change=lambda s: print_new(s, seen),
    )
    try:
        session.open()
        print("Type a message and press enter (Ctrl-D to quit)\n")
        for line in sys.stdin:
            session.draft = line.rstrip('\n')
            try:
                session.send()
            except DomainError as exc:
                print(f"❌ Not sent ({exc.code}): {exc.message}")
    finally:
        session.close()
        subscriber.disconnect()


if __name__ == '__main__':
    main()
