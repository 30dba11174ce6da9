"""
AI Agents for Kazi Ledger

DESIGN DECISION: The generative model is a black box behind a schema.
We ask for JSON matching AIResult and then RECONCILE whatever comes back
against our own Pydantic models, because:
1. The model can return partial or malformed JSON
2. Type names and amounts need normalizing
3. Nothing the model says may bypass validation

CRITICAL BOUNDARIES:

1. INTENT AGENT:
   - CAN: Turn a sentence or a receipt photo into a draft transaction
   - CAN: Answer a question from the context string it was given
   - CANNOT: Persist anything (drafts go back to the caller)
   - MUST: Raise ExternalServiceError on transport failure, never guess

2. INSIGHTS AGENT:
   - CAN: Suggest a few short tips from the dashboard summary
   - MUST: Fall back to fixed tips on any failure

The LLM is a TRANSLATOR, not a BOOKKEEPER.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
from pydantic import ValidationError as PydanticValidationError

from kazi_ledger.config import GeminiSettings
from kazi_ledger.models.capture import AIResult, Intent
from kazi_ledger.models.ledger import TransactionDraft
from kazi_ledger.observability import get_logger
from kazi_ledger.services.remote import ExternalServiceError


SERVICE = "gemini"

# Schema the model must fill in (Gemini OpenAPI subset)
AI_RESULT_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "intent": {
            "type": "STRING",
            "description": "RECORD for adding a transaction, QUERY for asking about history.",
        },
        "transaction": {
            "type": "OBJECT",
            "properties": {
                "type": {
                    "type": "STRING",
                    "description": "INCOME, EXPENSE, DEBT, or DEBT_PAYMENT",
                },
                "amount": {"type": "NUMBER"},
                "category": {"type": "STRING"},
                "counterparty": {"type": "STRING"},
                "description": {"type": "STRING"},
            },
        },
        "query_answer": {
            "type": "STRING",
            "description": "The answer if the user is asking a question.",
        },
    },
    "required": ["intent"],
}

INSIGHTS_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {"type": "STRING"},
}

FALLBACK_INSIGHTS = [
    "Daily sales help growth.",
    "Track debt consistently.",
    "Monitor your weekly totals.",
]

MAX_INSIGHTS = 3


# =============================================================================
# RESPONSE RECONCILIATION
# =============================================================================

def load_json(text: Optional[str]) -> Any:
    """
    Parse model output as JSON.

    Missing or malformed text yields None. If the model wrapped the JSON
    in prose or code fences, the outermost object or array is extracted.
    """
    if not text or not text.strip():
        return None
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                continue
    return None


def _coerce_draft(payload: Any) -> Optional[TransactionDraft]:
    if not isinstance(payload, dict):
        return None

    data = {key: value for key, value in payload.items() if value is not None}
    tx_type = data.get("type")
    if isinstance(tx_type, str):
        data["type"] = tx_type.strip().upper().replace(" ", "_")
    # The date is stamped on confirmation, never taken from the model
    data.pop("date", None)

    try:
        return TransactionDraft.model_validate(data)
    except PydanticValidationError:
        return None


def coerce_result(payload: Any, default_intent: Intent = Intent.UNKNOWN) -> AIResult:
    """
    Reconcile a decoded model reply into an AIResult.

    - Anything that is not an object becomes an empty (UNKNOWN) result
    - An unrecognized intent becomes UNKNOWN
    - A missing intent falls back to default_intent
    - A transaction that fails validation is dropped
    """
    if not isinstance(payload, dict):
        return AIResult.empty()

    raw_intent = payload.get("intent")
    if raw_intent is None:
        intent = default_intent
    else:
        try:
            intent = Intent(str(raw_intent).strip().upper())
        except ValueError:
            intent = Intent.UNKNOWN

    answer = payload.get("query_answer")
    return AIResult(
        intent=intent,
        transaction=_coerce_draft(payload.get("transaction")),
        query_answer=str(answer) if answer not in (None, "") else None,
    )


def _response_text(response: Any) -> str:
    # .text raises ValueError when the reply was blocked or has no parts
    try:
        return response.text or ""
    except (ValueError, AttributeError):
        return ""


# =============================================================================
# AGENTS
# =============================================================================

class _GeminiAgent:
    """Shared model setup and call handling."""

    response_schema: dict[str, Any] = AI_RESULT_SCHEMA
    max_output_tokens: Optional[int] = None

    def __init__(self, settings: GeminiSettings, model: Any = None):
        self._settings = settings
        self._model = model
        self._logger = get_logger(__name__)

    def _get_model(self) -> Any:
        """Configure Google Generative AI on first use."""
        if self._model is None:
            if not self._settings.is_configured:
                raise ExternalServiceError(SERVICE, "API key is not configured")
            genai.configure(api_key=self._settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=self._settings.model_name,
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self.max_output_tokens or self._settings.max_tokens,
                    "response_mime_type": "application/json",
                    "response_schema": self.response_schema,
                },
            )
        return self._model

    async def _generate(self, contents: Any, operation: str) -> str:
        model = self._get_model()
        try:
            response = await model.generate_content_async(contents)
        except Exception as e:
            self._logger.warning(
                "model_call_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExternalServiceError(SERVICE, f"{operation} failed: {e}")
        return _response_text(response)


class IntentAgent(_GeminiAgent):
    """
    Turns free text or a receipt image into an AIResult.

    BOUNDARIES:
    - NEVER persists data
    - NEVER stamps a date (that happens on confirmation)
    - Transport errors raise; malformed replies become UNKNOWN
    """

    async def parse_text(self, text: str, context: str) -> AIResult:
        """
        Classify a sentence as a record, a question, or neither.

        Args:
            text: What the user typed or dictated
            context: Bounded summary of the active ledger, used to
                     answer questions
        """
        prompt = f"""You are the bookkeeping assistant of a small business ledger.

Analyze this message: "{text}"

Ledger context: {context}

If the user is recording money movement, set intent to RECORD and fill in the transaction:
- INCOME: "Sold 3 sodas for 5000" -> amount 5000, category "Sales", counterparty "Customer"
- EXPENSE: "Paid 10000 for rent" -> amount 10000, category "Rent"
- DEBT: "Lent 2000 to John" -> amount 2000, counterparty "John"
- DEBT_PAYMENT: "John paid 500" -> amount 500, counterparty "John"
Amounts like "200k" mean 200000. Amounts are never negative.

If the user is asking a question, set intent to QUERY and answer it in query_answer
using ONLY the ledger context above.

Otherwise set intent to UNKNOWN.

Respond with JSON only."""

        raw = await self._generate(prompt, "parse_text")
        result = coerce_result(load_json(raw))
        self._logger.info(
            "text_parsed",
            intent=result.intent.value,
            has_transaction=result.transaction is not None,
        )
        return result

    async def parse_image(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
    ) -> AIResult:
        """
        Read a receipt photo into a draft.

        A reply that carries a transaction but no intent is read as RECORD.
        """
        prompt = """Analyze this receipt. Extract:
- type (EXPENSE when the business paid, INCOME when it was paid)
- total amount
- category
- merchant or customer as counterparty
- a brief description
Set intent to RECORD. Respond with JSON only."""

        contents = [
            {"mime_type": mime_type, "data": image_bytes},
            prompt,
        ]
        raw = await self._generate(contents, "parse_image")
        result = coerce_result(load_json(raw), default_intent=Intent.RECORD)
        self._logger.info(
            "image_parsed",
            intent=result.intent.value,
            has_transaction=result.transaction is not None,
            size_bytes=len(image_bytes),
        )
        return result


class InsightsAgent(_GeminiAgent):
    """
    Produces a few short business tips for the dashboard.

    Always returns something: any failure yields FALLBACK_INSIGHTS.
    """

    response_schema = INSIGHTS_SCHEMA
    max_output_tokens = 256

    async def generate_insights(self, context: str) -> list[str]:
        prompt = f"""Analyze: "{context}"
Provide {MAX_INSIGHTS} business insights for the owner.
EXACTLY 5 WORDS OR LESS EACH.
Format as a JSON array of strings."""

        try:
            raw = await self._generate(prompt, "generate_insights")
        except ExternalServiceError as e:
            self._logger.warning("insights_fallback", reason=str(e))
            return list(FALLBACK_INSIGHTS)

        data = load_json(raw)
        if isinstance(data, list):
            tips = [str(item).strip() for item in data if str(item).strip()]
            if tips:
                return tips[:MAX_INSIGHTS]

        self._logger.warning("insights_fallback", reason="malformed reply")
        return list(FALLBACK_INSIGHTS)
