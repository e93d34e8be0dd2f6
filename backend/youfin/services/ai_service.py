# Overview: AI-assisted expense parsing, advice, predictions and chat suggestions.

"""
AI Service

Generated text comes from the Hugging Face Inference API (huggingface_hub
InferenceClient) when HUGGINGFACE_API_KEY is configured. Without a key, or
when the inference call fails, deterministic canned text is used instead and
the response is marked source="fallback".

The numeric parts (amount extraction, category keywords, totals,
predictions) never depend on the model.
"""

import math
import re
from collections import OrderedDict

from flask import current_app
from huggingface_hub import InferenceClient

from ..extensions import db
from ..models import Spending, User
from youfin.time_utils import start_of_month, utcnow
from youfin.validation import ValidationError, cents_to_amount


AMOUNT_RE = re.compile(r"(\d+(?:\.\d{1,2})?)")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

CATEGORY_KEYWORDS = OrderedDict([
    ("food", ["food", "restaurant", "lunch", "dinner", "breakfast", "cafe", "coffee"]),
    ("shopping", ["shop", "store", "mall", "buy", "purchase"]),
    ("entertainment", ["movie", "cinema", "game", "fun", "entertainment"]),
    ("education", ["book", "course", "class", "study"]),
    ("transport", ["bus", "taxi", "transport", "travel"]),
])

ADVICE_HISTORY_LIMIT = 30
HIGH_CATEGORY_SHARE = 30.0
SAFE_SHARE_OF_REMAINING = 0.2
# Upper bound for client-supplied euro figures (budget, spent, history amounts)
MAX_AMOUNT = 10_000_000

FALLBACK_ADVICE = (
    "Track every expense for a week to see where your money goes. "
    "Set a weekly limit for eating out. "
    "Move a fixed part of your allowance into savings as soon as you receive it. "
    "Compare prices and look for student discounts before buying."
)
FALLBACK_PREDICTION = (
    "Expect next month to look like this month. "
    "Plan your biggest categories first. "
    "Keep a small buffer for unexpected costs."
)

CANNED_SUGGESTIONS = {
    "How much can I spend today?": lambda budget, spent: (
        f"Based on your monthly budget of {budget:g}€ and current spending of {spent:g}€, "
        f"you can spend around {(budget - spent) / 30:.2f}€ today to stay on track."
    ),
    "Where should I save money?": lambda budget, spent: (
        "Based on your spending patterns, you could save money by:\n"
        "1. Bringing lunch from home\n"
        "2. Using public transport more\n"
        "3. Looking for student discounts\n"
        "4. Setting aside 10% of your allowance automatically"
    ),
    "Analyze my spending habits": lambda budget, spent: (
        f"You've spent {spent:g}€ out of {budget:g}€ this month. Most of your spending seems "
        "to be on food and entertainment. Consider setting specific limits for each category."
    ),
    "Suggest a budget plan": lambda budget, spent: (
        "Here's a suggested monthly budget breakdown:\n"
        f"- Essential food: 30% ({budget * 0.3:.2f}€)\n"
        f"- Transport: 15% ({budget * 0.15:.2f}€)\n"
        f"- Entertainment: 20% ({budget * 0.2:.2f}€)\n"
        f"- Savings: 25% ({budget * 0.25:.2f}€)\n"
        f"- Emergency: 10% ({budget * 0.1:.2f}€)"
    ),
}
DEFAULT_SUGGESTION = (
    "I understand you're asking about your finances. Could you be more specific about "
    "what you'd like to know about your spending or budget?"
)


def _client() -> InferenceClient | None:
    api_key = current_app.config.get("HUGGINGFACE_API_KEY")
    if not api_key:
        return None
    return InferenceClient(token=api_key, timeout=30)


def generate_text(prompt: str, fallback: str, *, max_new_tokens: int = 100) -> tuple[str, str]:
    """Returns (text, source) where source is "model" or "fallback"."""
    client = _client()
    if client is None:
        return fallback, "fallback"
    try:
        text = client.text_generation(
            prompt,
            model=current_app.config.get("AI_TEXT_MODEL", "gpt2"),
            max_new_tokens=max_new_tokens,
        )
    except Exception:
        current_app.logger.warning("Text generation failed, using fallback", exc_info=True)
        return fallback, "fallback"
    text = (text or "").strip()
    if not text:
        return fallback, "fallback"
    return text, "model"


def classify_confidence(text: str) -> tuple[float, str | None, str]:
    """Returns (score, label, source) from the financial sentiment classifier."""
    client = _client()
    if client is None:
        return 0.0, None, "fallback"
    try:
        results = client.text_classification(
            text,
            model=current_app.config.get("AI_CLASSIFICATION_MODEL", "ProsusAI/finbert"),
        )
    except Exception:
        current_app.logger.warning("Text classification failed, using fallback", exc_info=True)
        return 0.0, None, "fallback"
    if not results:
        return 0.0, None, "fallback"
    top = results[0]
    return float(top.score), top.label, "model"


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text or "") if s.strip()]


def categorize(text: str) -> str:
    lowered = text.lower()
    for category, words in CATEGORY_KEYWORDS.items():
        if any(word in lowered for word in words):
            return category
    return "other"


def extract_amount(text: str) -> float:
    match = AMOUNT_RE.search(text)
    return float(match.group(1)) if match else 0.0


def process_expense(text) -> dict:
    """Turn a free-text (e.g. voice transcribed) expense into structured fields."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text is required")
    text = text.strip()

    confidence, label, classifier_source = classify_confidence(text)
    description, source = generate_text(
        f"Expense description: {text}",
        fallback=text,
        max_new_tokens=50,
    )

    return {
        "amount": extract_amount(text),
        "category": categorize(text),
        "description": description,
        "confidence": confidence,
        "sentiment": label,
        "processed_text": text,
        "source": source if classifier_source == source else "mixed",
    }


def _totals_by_category(spendings) -> tuple[dict[str, int], int]:
    by_category: dict[str, int] = {}
    total = 0
    for spend in spendings:
        by_category[spend.category] = by_category.get(spend.category, 0) + spend.amount_cents
        total += spend.amount_cents
    return by_category, total


def financial_advice(user: User) -> dict:
    """
    Advice from the user's last 30 spendings.

    Categories taking more than 30% of that total get an extra
    recommendation.
    """
    history = (
        db.session.query(Spending)
        .filter_by(user_id=user.id)
        .order_by(Spending.occurred_at.desc(), Spending.id.desc())
        .limit(ADVICE_HISTORY_LIMIT)
        .all()
    )
    by_category, total_cents = _totals_by_category(history)
    ranked = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)

    context = (
        "User spending summary:\n"
        f"- Total spent: {cents_to_amount(total_cents)}€\n"
        f"- Budget: {cents_to_amount(user.allowance_cents)}€\n"
        f"- Top expenses: {', '.join(f'{cat}: {cents_to_amount(amt)}€' for cat, amt in ranked)}\n\n"
        "Generate personalized financial advice."
    )
    ai_text, source = generate_text(context, FALLBACK_ADVICE, max_new_tokens=150)

    sentences = _sentences(ai_text)
    half = (len(sentences) + 1) // 2
    advice = {
        "summary": "Based on AI analysis of your spending patterns:",
        "recommendations": sentences[:half],
        "savingTips": sentences[half:],
        "totalSpent": cents_to_amount(total_cents),
        "source": source,
    }

    for category, amount_cents in by_category.items():
        percentage = amount_cents / total_cents * 100
        if percentage > HIGH_CATEGORY_SHARE:
            advice["recommendations"].append(
                f"Your {category} expenses ({percentage:.1f}%) seem high. Consider setting a category budget."
            )

    return advice


def spending_predictions(user: User) -> dict:
    """Next-month projection from this calendar month's spending."""
    month_spending = (
        db.session.query(Spending)
        .filter(Spending.user_id == user.id, Spending.occurred_at >= start_of_month(utcnow()))
        .all()
    )
    by_category, total_cents = _totals_by_category(month_spending)
    total = cents_to_amount(total_cents)

    spending_data = "\n".join(f"{cat}: {cents_to_amount(amt)}€" for cat, amt in by_category.items())
    ai_text, source = generate_text(
        f"Based on current month spending:\n{spending_data}\n\n"
        "Predict next month's spending and provide recommendations.",
        FALLBACK_PREDICTION,
    )

    top = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)[:3]
    return {
        "nextMonth": {
            "expectedSpending": round(total * 1.1),
            "topCategories": [category for category, _ in top],
            "savingsPotential": round(total * 0.2),
        },
        "currentMonth": {
            "total": total,
            "byCategory": {cat: cents_to_amount(amt) for cat, amt in by_category.items()},
        },
        "recommendations": _sentences(ai_text),
        "source": source,
    }


def _as_number(value, field: str) -> float:
    if value in (None, ""):
        return 0.0
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a number")
    if abs(number) > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return number


def suggest(message, budget=None, spent=None, user_id=None) -> dict:
    """
    Chat-style budget assistant.

    Known questions get canned answers; "buy"/"spend" questions with an
    amount are judged reasonable when the amount is under 20% of the
    remaining budget.
    """
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("message is required")
    budget = _as_number(budget, "budget")
    spent = _as_number(spent, "spent")

    canned = CANNED_SUGGESTIONS.get(message)
    if canned:
        return {"suggestion": canned(budget, spent)}

    lowered = message.lower()
    if "buy" in lowered or "spend" in lowered:
        match = re.search(r"\d+", message)
        if match:
            amount = int(match.group(0))
            remaining = budget - spent
            is_good_idea = amount < remaining * SAFE_SHARE_OF_REMAINING
            if is_good_idea:
                return {
                    "suggestion": (
                        f"Yes, spending {amount}€ seems reasonable given your current budget. "
                        f"You still have {remaining:g}€ left this month."
                    ),
                    "transaction": {
                        "userId": user_id,
                        "amount": amount,
                        "description": f"AI Approved: {message}",
                        "timestamp": utcnow().isoformat() + "Z",
                    },
                }
            if remaining > 0:
                share = f"It's {amount / remaining * 100:.1f}% of your remaining budget ({remaining:g}€)."
            else:
                share = "You have no budget left this month."
            return {
                "suggestion": f"I'd be careful about spending {amount}€ right now. {share}",
                "transaction": None,
            }

    return {"suggestion": DEFAULT_SUGGESTION}


def analyze_deal(deal_type, user_history) -> dict:
    """Recommendation on whether a caught deal fits the user's recent spending."""
    if not isinstance(deal_type, str) or not deal_type.strip():
        raise ValidationError("dealType is required")
    if user_history is None:
        user_history = []
    if not isinstance(user_history, list):
        raise ValidationError("userHistory must be a list")

    lines = []
    same_type_cents = 0
    total_cents = 0
    for item in user_history:
        if not isinstance(item, dict):
            continue
        amount = _as_number(item.get("amount"), "amount")
        category = item.get("category") or "other"
        lines.append(f"- {amount:g}€ on {category}")
        cents = int(round(amount * 100))
        total_cents += cents
        if category == deal_type:
            same_type_cents += cents

    if total_cents and same_type_cents / total_cents > HIGH_CATEGORY_SHARE / 100:
        fallback = (
            f"You already spend a lot on {deal_type}. "
            "Only use this deal if it replaces a purchase you were going to make anyway."
        )
    else:
        fallback = f"This {deal_type} deal fits your recent spending. Enjoy the discount."

    context = (
        f"Deal type: {deal_type}\n"
        "Recent spending history:\n"
        + "\n".join(lines)
        + "\n\nAnalyze if this deal is good for the user and provide a recommendation."
    )
    recommendation, source = generate_text(context, fallback)
    return {"recommendation": recommendation, "source": source}
