class ProviderError(RuntimeError):
    """Non-2xx answer from a provider. Never leaves a provider client."""

    def __init__(self, label: str, status_code: int, body: str) -> None:
        super().__init__(f"{label} API error: {status_code} - {body}")
