"""
Terminal client for the friendship trials over the /ws/chat WebSocket.
Type answers interactively, or set ANSWERS="start,bunker,sharknado,seeya"
to play a scripted run that should end with the reveal.
"""
import asyncio
import json
import os
import sys

import websockets

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from dotenv import load_dotenv
load_dotenv()

WS_URL = os.getenv("WS_URL", "ws://localhost:3000/ws/chat")
SESSION_TOKEN = os.getenv("SESSION_TOKEN", "")
ANSWERS = [a for a in os.getenv("ANSWERS", "").split(",") if a.strip()]


async def _next_answer() -> str:
    if ANSWERS:
        answer = ANSWERS.pop(0)
        print(f"[you] {answer}")
        return answer
    return await asyncio.to_thread(input, "[you] ")


async def run():
    uri = f"{WS_URL}?session_token={SESSION_TOKEN}" if SESSION_TOKEN else WS_URL
    print(f"[client] Connecting to {WS_URL}")

    async with websockets.connect(uri) as ws:
        while True:
            msg = json.loads(await ws.recv())
            msg_type = msg.get("type")

            if msg_type == "session":
                print(f"[client] session token: {msg['sessionToken']}")
                print(f"[bot] {msg['botResponse']}")

            elif msg_type == "reply":
                print(f"[bot] {msg['botResponse']}  (stage {msg['stage']})")

            elif msg_type == "reveal":
                if msg["kind"] == "image":
                    print(f"[bot] <image: {msg['content']}>")
                    continue
                print(f"[bot] {msg['content']}")
                if msg["content"].startswith("ACCESS GRANTED"):
                    print("\n[client] Trials complete ✓")
                    break
                continue

            elif msg_type == "error":
                print(f"[client] ERROR: {msg.get('message')}")

            answer = await _next_answer()
            while not answer.strip():
                print("[client] Empty answers are not sent")
                answer = await _next_answer()
            await ws.send(json.dumps({"message": answer}))


if __name__ == "__main__":
    try:
        asyncio.run(run())
    except (KeyboardInterrupt, EOFError):
        print("\n[client] bye")
