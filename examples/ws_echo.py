"""WebSocket client that stays connected across server restarts.

Sends a line every few seconds and prints whatever comes back.  Runs
the client on its own background thread, so plain blocking code drives
it.

    pip install stream-client

    python examples/ws_echo.py --url ws://localhost:9000/ws
"""

import argparse
import asyncio
import logging
import time

from stream_client import NotConnectedError, StreamClient


def main(url: str, interval: float):
    with StreamClient(retry_interval=2.0, max_retries=-1) as client:
        conn = (
            client.ws(url)
            .on_open(lambda: print(f"Connected to {url}"))
            .on_event(lambda message: print(f"< {message}"))
            .on_close(lambda close: print(f"Closed ({close.code} {close.reason})"))
            .on_failed_attempt(lambda: print("Connect failed, retrying..."))
            .connect()
        )

        n = 0
        try:
            while True:
                time.sleep(interval)
                n += 1
                future = asyncio.run_coroutine_threadsafe(
                    conn.send_text(f"ping {n}"), client.context.loop
                )
                try:
                    future.result(timeout=5.0)
                    print(f"> ping {n}")
                except NotConnectedError:
                    print("Not connected, skipping")
        except KeyboardInterrupt:
            conn.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reconnecting WebSocket client")
    parser.add_argument("--url", default="ws://localhost:9000/ws")
    parser.add_argument("--interval", type=float, default=3.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    main(args.url, args.interval)
