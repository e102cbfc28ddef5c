from gateway.openai_provider import OpenAIProvider


class DeepSeekProvider(OpenAIProvider):
    # OpenAI-compatible API; the base URL carries no version segment
    name = "deepseek"
    label = "DeepSeek"
    completions_path = "/v1/chat/completions"
