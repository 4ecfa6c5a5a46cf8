"""Token usage accounting for agent runs."""

from typing import Any

from pydantic import BaseModel, Field


class UsageSummary(BaseModel):
    """Summary of LLM token usage across all calls of a run.

    Attributes:
        total_calls: Total number of completion calls
        total_input_tokens: Total prompt tokens across all calls
        total_output_tokens: Total completion tokens across all calls
        model_breakdown: Token usage broken down by model name
    """

    total_calls: int = Field(default=0, description="Total API calls")
    total_input_tokens: int = Field(default=0, description="Total input tokens")
    total_output_tokens: int = Field(default=0, description="Total output tokens")
    model_breakdown: dict[str, dict[str, int]] = Field(
        default_factory=dict,
        description="Usage breakdown by model"
    )

    def add_usage(
        self,
        model: str,
        input_tokens: int,
        output_tokens: int
    ) -> None:
        """Add usage statistics for a model call.

        Args:
            model: Model name
            input_tokens: Input tokens used
            output_tokens: Output tokens used
        """
        self.total_calls += 1
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens

        if model not in self.model_breakdown:
            self.model_breakdown[model] = {
                "calls": 0,
                "input_tokens": 0,
                "output_tokens": 0
            }

        self.model_breakdown[model]["calls"] += 1
        self.model_breakdown[model]["input_tokens"] += input_tokens
        self.model_breakdown[model]["output_tokens"] += output_tokens

    def add_stream_usage(self, model: str, usage: dict[str, Any] | None) -> tuple[int, int] | None:
        """Record the usage dict reported by a finished stream.

        Returns:
            (prompt_tokens, completion_tokens), or None if the provider
            reported nothing
        """
        if not usage:
            return None
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        self.add_usage(model, prompt_tokens, completion_tokens)
        return prompt_tokens, completion_tokens
