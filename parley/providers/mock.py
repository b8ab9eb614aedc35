"""
Canned responses for running without an API key.

Streams demo replies word by word with short, typing-like pauses so the
rest of the application behaves as it would against a real provider.
"""

import asyncio
import random
from typing import AsyncIterator, Optional

MOCK_RESPONSES = [
    """This is a **mock response** from Parley's demo mode.

To get real AI responses, you'll need to:
1. Export `PARLEY_OPENROUTER_API_KEY` (or `OPENROUTER_API_KEY`) before starting
2. Or point `PARLEY_BACKEND_PROVIDER` at a proxy that holds the key for you

Here's what a real response might look like:

```python
def greet(name: str) -> str:
    return f"Hello, {name}!"
```

Parley demonstrates streaming responses, cancellation and conversation management.""",
    """Hello! I'm a **mock assistant** running in demo mode.

Parley showcases:
- **Streaming responses** (like this one!)
- **Stop generation** at any time
- **Automatic conversation titles**

To enable real AI responses, add your OpenRouter API key to the environment.""",
    """I'm demonstrating the **mock mode** of Parley.

Things you can explore right now:
- Type messages and watch the response stream in
- Interrupt a response half way through
- Start several conversations and switch between them

When you configure an API key you'll get real conversations with any OpenRouter model.""",
]

MOCK_THREAD_NAMES = [
    "Python Development Help",
    "API Integration Questions",
    "Mock Mode Walkthrough",
    "Configuration Setup",
    "Streaming Chat Demo",
    "Code Review Session",
    "Feature Planning",
    "Debugging Session",
]


class MockResponses:
    """Source of demo replies and thread names."""

    def __init__(self, delay_scale: float = 1.0, rng: Optional[random.Random] = None):
        """
        Args:
            delay_scale: Multiplier for typing delays; 0 streams without pauses
            rng: Random source (seed it for reproducible output)
        """
        self.delay_scale = delay_scale
        self._random = rng or random.Random()

    def pick_response(self) -> str:
        return self._random.choice(MOCK_RESPONSES)

    def pick_thread_name(self) -> str:
        return self._random.choice(MOCK_THREAD_NAMES)

    async def stream_words(self, response: Optional[str] = None) -> AsyncIterator[str]:
        """Yield a response one word at a time, each after the first with a leading space."""
        words = (response or self.pick_response()).split(" ")

        for i, word in enumerate(words):
            yield word if i == 0 else f" {word}"
            await self._pause(self.word_delay_ms(word))

    async def simulate_processing_delay(self) -> None:
        await self._pause(200 + self._random.randint(0, 300))

    def word_delay_ms(self, word: str) -> int:
        """Longer pauses after line breaks, sentence ends and long words."""
        delay = 20
        if "\n" in word:
            delay += 200
        if any(mark in word for mark in ".!?"):
            delay += 300
        if len(word) > 6:
            delay += 20
        return delay + self._random.randint(0, 30)

    async def _pause(self, milliseconds: int) -> None:
        if self.delay_scale > 0:
            await asyncio.sleep(milliseconds * self.delay_scale / 1000)
