DEFAULT_COST_PER_1K = {
    "claude": 0.00025,
    "openai": 0.0002,
    "deepseek": 0.0001,
    "mock": 0.0,
}


def estimate_cost_usd(tokens: int, cost_per_1k: float | None) -> float:
    return (tokens / 1000) * (cost_per_1k or 0.0)

