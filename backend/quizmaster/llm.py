import json
import logging
import re
import time
from typing import Any, Dict, List

from langchain_google_genai import ChatGoogleGenerativeAI

from .config import GOOGLE_API_KEY, LLM_MODEL
from .prompts import QUESTION_DRAFT_PROMPT, REPAIR_DRAFT_PROMPT
from .schemas import McqQuestionDraft

logger = logging.getLogger(__name__)

MAX_ARTICLE_CHARS = 8000
MIN_ARTICLE_CHARS = 100

_RATE_LIMIT_MARKERS = ("RESOURCE_EXHAUSTED", "429", "quota", "rate limit")


class ArticleTooShortError(ValueError):
    """The article has too little text to draft questions from."""


def _get_model() -> ChatGoogleGenerativeAI:
    """Create the Gemini chat model with our preferred settings."""
    if not GOOGLE_API_KEY:
        raise RuntimeError("GOOGLE_API_KEY environment variable is not set.")

    return ChatGoogleGenerativeAI(
        model=LLM_MODEL,
        temperature=0.2,
        max_output_tokens=2048,
        google_api_key=GOOGLE_API_KEY,
    )


def _is_rate_limited(exc: Exception) -> bool:
    msg = str(exc).lower()
    return any(marker.lower() in msg for marker in _RATE_LIMIT_MARKERS)


def _invoke_chain_with_retries(chain, inputs: Dict[str, Any], max_retries: int = 3, sleep=time.sleep):
    """Invoke a LangChain chain, backing off on rate-limit / quota errors only."""
    for attempt in range(max_retries):
        try:
            return chain.invoke(inputs)
        except Exception as e:
            if not _is_rate_limited(e) or attempt == max_retries - 1:
                raise
            # honour 'Please retry in 56.73s' hints when the API gives one
            m = re.search(r"retry in (\d+(?:\.\d+)?)s", str(e))
            delay = float(m.group(1)) if m else (2 ** attempt) * 5
            logger.warning("LLM rate limited, retrying in %.1fs (attempt %d)", delay, attempt + 1)
            sleep(min(delay, 120))


def _safe_json_parse(text: str) -> Any:
    """Parse JSON from LLM output, tolerating fences, chatter and trailing commas."""
    if not text or not text.strip():
        raise ValueError("LLM returned empty response. Check your API key and model name.")

    text = text.strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL)
    if fence:
        text = fence.group(1)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if not starts:
        raise ValueError(f"No JSON array/object in LLM response: {text[:200]}...")
    start = min(starts)
    end = max(text.rfind("]"), text.rfind("}"))
    if end <= start:
        raise ValueError(f"Unterminated JSON in LLM response: {text[start:start + 200]}...")

    candidate = text[start:end + 1]
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        cleaned = re.sub(r",(\s*[}\]])", r"\1", candidate)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse JSON from LLM response: {candidate[:400]}... Error: {e}")


def _to_drafts(items: Any) -> List[McqQuestionDraft]:
    """Keep only well-formed items whose correct answer is one of the options."""
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        raise ValueError("Question draft result is not a list.")

    drafts = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = str(item.get("question_text") or item.get("question") or "").strip()
        options = [str(o).strip() for o in item.get("options") or [] if str(o).strip()]
        answer = str(item.get("correct_answer") or item.get("answer") or "").strip()
        if not text or not answer or answer not in options:
            logger.debug("Dropping malformed draft item: %r", item)
            continue
        drafts.append(McqQuestionDraft(question_text=text, options=options, correct_answer=answer))
    return drafts


def generate_question_drafts(article_text: str, num_questions: int = 5, model=None) -> List[McqQuestionDraft]:
    """Ask the model for multiple-choice drafts grounded in the article text."""
    text_to_send = (article_text or "")[:MAX_ARTICLE_CHARS].strip()
    if len(text_to_send) < MIN_ARTICLE_CHARS:
        raise ArticleTooShortError(
            f"Article text is too short ({len(text_to_send)} chars). Need at least {MIN_ARTICLE_CHARS} characters."
        )

    model = model or _get_model()
    result = _invoke_chain_with_retries(
        QUESTION_DRAFT_PROMPT | model,
        {"article_text": text_to_send, "num_questions": str(num_questions)},
    )
    content = getattr(result, "content", None)
    if not content:
        raise ValueError("LLM returned empty response. Check your API key and model name.")

    try:
        data = _safe_json_parse(content)
    except ValueError as e:
        logger.info("Draft JSON invalid, asking the model to repair it: %s", e)
        repaired = _invoke_chain_with_retries(REPAIR_DRAFT_PROMPT | model, {"broken_json": content})
        data = _safe_json_parse(getattr(repaired, "content", ""))

    drafts = _to_drafts(data)[:num_questions]
    if not drafts:
        raise ValueError("LLM returned no usable questions (each needs text, options and an answer among them).")
    logger.info("Generated %d question drafts", len(drafts))
    return drafts
