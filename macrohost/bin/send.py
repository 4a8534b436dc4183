#!/usr/bin/env python3
"""Send one protocol message to a running macrohost and print the replies.

Examples:
    send.py get_steps
    send.py run_automation --data '{"loop_count": 3}'
    send.py --command key_press --param key=ctrl+c
    send.py stop_automation --url ws://127.0.0.1:5000/ws
"""

import argparse
import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

import aiohttp

from macrohost import messages

DEFAULT_URL = 'ws://127.0.0.1:5000/ws'


def build_message(args) -> dict:
    """Event-type frame by default, command frame with --command."""
    if args.command:
        msg = {'command': args.name}
        for param in args.param:
            key, sep, value = param.partition('=')
            if not sep:
                raise SystemExit(f'--param expects key=value, got {param!r}')
            msg[key] = value
        return msg
    data = json.loads(args.data) if args.data else {}
    return {'type': args.name, 'data': data}


async def send(url: str, message: dict, wait: float) -> None:
    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url) as ws:
            await ws.send_str(json.dumps(message))
            # Print everything that arrives until the socket goes quiet
            while True:
                try:
                    msg = await ws.receive(timeout=wait)
                except asyncio.TimeoutError:
                    break
                if msg.type != aiohttp.WSMsgType.TEXT:
                    break
                event = messages.parse_message(msg.data)
                if event is None or event.get('type') == messages.MOUSE_POSITION:
                    continue
                print(json.dumps(event, indent=2))


def main():
    parser = argparse.ArgumentParser(description='Send a message to macrohost')
    parser.add_argument('name', help='Event type (get_steps, run_automation, ...) or command name')
    parser.add_argument('--command', action='store_true', help='Send as a {"command": ...} frame')
    parser.add_argument('--data', help='JSON object for the "data" field of an event frame')
    parser.add_argument('--param', action='append', default=[],
                        help='key=value parameter for a command frame (repeatable)')
    parser.add_argument('--url', default=os.environ.get('MACROHOST_URL', DEFAULT_URL))
    parser.add_argument('--wait', type=float, default=1.0,
                        help='Seconds of silence before disconnecting (default: 1.0)')

    args = parser.parse_args()
    asyncio.run(send(args.url, build_message(args), args.wait))


if __name__ == '__main__':
    main()
