import math


def estimate_tokens(text: str) -> int:
    """Rough token count (4 chars per token), only good for comparing costs."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / 4))
