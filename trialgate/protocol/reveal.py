"""Terminal sequence emitted once the last challenge is passed."""
import asyncio

from trialgate.config import Settings, settings as default_settings
from trialgate.models.session import RevealStep

CONFIRMATION = (
    "CONGRATULATIONS! Your friendship status has been confirmed. "
    "Preparing transmission..."
)


def final_message(friend_name: str, sender_name: str) -> str:
    return (
        f"ACCESS GRANTED! 🎉 Happy Birthday {friend_name}! "
        f"Wishing you the best year ever. I love you! - {sender_name}"
    )


def build_reveal(settings: Settings = default_settings) -> list[RevealStep]:
    delay = settings.reveal_step_delay_s
    return [
        RevealStep(kind="text", content=CONFIRMATION, delay_s=0.0),
        RevealStep(kind="image", content=settings.reveal_image_url, delay_s=delay),
        RevealStep(
            kind="text",
            content=final_message(settings.friend_name, settings.sender_name),
            delay_s=delay,
        ),
    ]


async def play(steps: list[RevealStep], emit, sleep=asyncio.sleep) -> None:
    """Emit each step after its delay. emit is an async callable taking a RevealStep."""
    for step in steps:
        if step.delay_s > 0:
            await sleep(step.delay_s)
        await emit(step)
