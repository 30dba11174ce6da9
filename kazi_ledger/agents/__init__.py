from kazi_ledger.agents.ai_agents import (
    AI_RESULT_SCHEMA,
    FALLBACK_INSIGHTS,
    InsightsAgent,
    IntentAgent,
    coerce_result,
    load_json,
)

__all__ = [
    "AI_RESULT_SCHEMA",
    "FALLBACK_INSIGHTS",
    "InsightsAgent",
    "IntentAgent",
    "coerce_result",
    "load_json",
]
