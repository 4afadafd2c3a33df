"""Server-Sent Events client that resumes where it left off.

Prints every event until Ctrl+C, then prints the last event id so the
next run can continue from it.

    pip install stream-client

    python examples/sse_resume.py --url http://localhost:9000/events
    python examples/sse_resume.py --url http://localhost:9000/events --last-event-id 42
"""

import argparse
import asyncio
import logging
import signal

from stream_client import StreamClient


async def main(url: str, last_event_id: str | None, max_retries: int):
    stop = asyncio.Event()
    loop = asyncio.get_event_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    client = StreamClient(retry_interval=1.0, max_retries=max_retries, loop=loop)
    conn = (
        client.sse(url)
        .last_event_id(last_event_id)
        .on_open(lambda: print(f"Connected to {url}"))
        .on_event(lambda event: print(f"[{event.id}] {event.event}: {event.data}"))
        .on_close(lambda last_id: print(f"Stream closed at {last_id}"))
        .on_retries_exceeded(stop.set)
        .connect()
    )

    await stop.wait()
    resume_from = conn.close()
    await client.aclose()
    print(f"\nResume with --last-event-id {resume_from}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Resumable SSE client")
    parser.add_argument("--url", default="http://localhost:9000/events")
    parser.add_argument("--last-event-id", default=None)
    parser.add_argument("--max-retries", type=int, default=10, help="-1 for unbounded")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    asyncio.run(main(args.url, args.last_event_id, args.max_retries))
