"""
Claude Code Usage Schemas
=========================
Raw records from the Anthropic Admin API
``/v1/organizations/usage_report/claude_code`` and the per-day rollups we
store from them.

Every numeric field defaults to zero: the report omits tool or model
sections that saw no use, and an omitted counter genuinely means none.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Upstream
# ---------------------------------------------------------------------------

class LinesOfCode(BaseModel):
    added: int = 0
    removed: int = 0


class CoreMetrics(BaseModel):
    num_sessions: int = 0
    lines_of_code: LinesOfCode = Field(default_factory=LinesOfCode)
    commits_by_claude_code: int = 0
    pull_requests_by_claude_code: int = 0


class ToolAction(BaseModel):
    accepted: int = 0
    rejected: int = 0


class ToolActions(BaseModel):
    edit_tool: Optional[ToolAction] = None
    multi_edit_tool: Optional[ToolAction] = None
    write_tool: Optional[ToolAction] = None
    notebook_edit_tool: Optional[ToolAction] = None


class ModelTokens(BaseModel):
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_creation: int = 0


class EstimatedCost(BaseModel):
    currency: str = "USD"
    amount: float = 0.0  # cents


class ModelBreakdown(BaseModel):
    model: str = "unknown"
    tokens: ModelTokens = Field(default_factory=ModelTokens)
    estimated_cost: EstimatedCost = Field(default_factory=EstimatedCost)


class ClaudeCodeRecord(BaseModel):
    """One actor's usage for one day."""

    date: date
    core_metrics: CoreMetrics = Field(default_factory=CoreMetrics)
    tool_actions: ToolActions = Field(default_factory=ToolActions)
    model_breakdown: list[ModelBreakdown] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def _day_only(cls, value):
        # The report sends "2026-03-09T00:00:00Z"
        if isinstance(value, str):
            return value[:10]
        return value


# ---------------------------------------------------------------------------
# Stored rollups
# ---------------------------------------------------------------------------

class ClaudeCodeDaily(BaseModel):
    """All records for one day summed together. Overwritten on re-sync."""

    date: date
    sessions: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    commits: int = 0
    pull_requests: int = 0
    edit_accepted: int = 0
    edit_rejected: int = 0
    write_accepted: int = 0
    write_rejected: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    cost_cents: float = 0.0

    def to_row(self) -> dict:
        return {**self.model_dump(), "date": self.date.isoformat()}


class ClaudeCodeModelDaily(BaseModel):
    """Token and cost totals for one (date, model) pair."""

    date: date
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    cost_cents: float = 0.0

    def to_row(self) -> dict:
        return {**self.model_dump(), "date": self.date.isoformat()}
