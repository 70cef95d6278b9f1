"""Strategy-advisor async client.

Sends candle windows and detected patterns to a Gemini ``generateContent``
endpoint and returns free-text or structured advice.  Remote failures are
caught here and surfaced as displayable error strings; they never reach
the analysis or backtest code.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from priceaction.advisor.models import (
    AdvisorReply,
    DecisionReply,
    DecisionRequest,
    TradingDecision,
)
from priceaction.config import Config
from priceaction.strategy.analyzer import AnalysisResult
from priceaction.strategy.models import Candle, DetectedPattern

logger = logging.getLogger("priceaction.advisor")

# Gemini answers 429 once the quota is spent and 500/503/504 while the
# model is overloaded or times out.
_MAX_ATTEMPTS = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_MAX_RETRY_DELAY = 30.0
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 503, 504})
_REQUEST_TIMEOUT = 60.0

_PROMPT_WINDOW = 50


def retry_delay(attempt: int, resp: Optional[httpx.Response] = None) -> float:
    """Seconds to wait after failed *attempt* (1-based).

    A numeric ``Retry-After`` header wins over the exponential backoff;
    both are capped at ``_MAX_RETRY_DELAY``.
    """
    retry_after = resp.headers.get("retry-after", "") if resp is not None else ""
    if retry_after.strip().isdigit():
        return min(float(retry_after), _MAX_RETRY_DELAY)
    return min(_RETRY_BASE_DELAY * 2 ** (attempt - 1), _MAX_RETRY_DELAY)


def format_candles(candles: list[Candle], window: int = _PROMPT_WINDOW) -> str:
    """CSV block of the last *window* candles for a prompt."""
    lines = ["time,open,high,low,close,volume"]
    for c in candles[-window:]:
        ts = datetime.fromtimestamp(c.time, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        lines.append(
            f"{ts},{c.open:.4f},{c.high:.4f},{c.low:.4f},{c.close:.4f},{c.volume:.2f}"
        )
    return "\n".join(lines)


def build_pattern_prompt(candles: list[Candle], pattern: DetectedPattern) -> str:
    """Prompt asking for a trading plan around one detected pattern.

    Only candles up to and including the signal bar are included.
    """
    history = format_candles(candles[: pattern.index + 1])
    return f"""You are an expert trading analyst specializing in pure price action.
Your analysis must be based strictly on the historical candle data provided. Do not assume any future price movements.

**Context:**
- A "{pattern.name}" pattern ({pattern.direction}, {pattern.pattern_type}) was detected.
- Description: "{pattern.description}".
- The signal occurred on the candle at index {pattern.index}.

**Historical Data (last {_PROMPT_WINDOW} bars up to and including the signal):**
```
{history}
```

**Task:**
Generate a cautious trading strategy for this signal. Use '###' headings for:
### Market Context Analysis
### Signal Strength
### Entry Strategy
### Stop-Loss Placement
### Profit Targets
### Risk Management

Do not invent outcomes. The plan must rely only on the data above.
"""


def build_decision_prompt(
    request: DecisionRequest,
    series: dict[str, list[Candle]],
    analyses: dict[str, AnalysisResult],
) -> str:
    """Prompt asking for a JSON trading decision across timeframes."""
    blocks = []
    for timeframe, candles in series.items():
        analysis = analyses.get(timeframe)
        summary = analysis.summary if analysis is not None else None
        recent = analysis.patterns[-5:] if analysis is not None else ()
        pattern_lines = "\n".join(
            f"  - index {p.index}: {p.name} ({p.direction}, priority {p.priority})"
            for p in recent
        ) or "  - none"
        header = f"### {timeframe}"
        if summary is not None:
            header += f" (trend {summary.trend}, RSI {summary.rsi})"
        blocks.append(
            f"{header}\nRecent patterns:\n{pattern_lines}\n```\n{format_candles(candles)}\n```"
        )

    return f"""You are a disciplined price-action trader deciding on {request.symbol}.
Market: {request.market_type}. Risk appetite: {request.risk_appetite}.
Position size: {request.position_size}. Leverage: {request.leverage}x.

Use the higher timeframes for bias and the lowest timeframe for entries.

{chr(10).join(blocks)}

Respond with a single JSON object and nothing else:
{{"decision": "LONG" | "SHORT" | "WAIT", "reasoning": str, "entryPrice": str,
"stopLoss": number, "takeProfitLevels": [number, ...], "confidenceScore": 1-10,
"riskWarning": str}}
"""


def parse_decision(text: str) -> TradingDecision:
    """Parse the model's JSON reply into a ``TradingDecision``.

    Markdown code fences around the JSON are tolerated.

    Raises:
        ValueError: If the reply is not valid JSON or misses fields.
    """
    raw = text.strip()
    if raw.startswith("```"):
        raw = raw.strip("`")
        if raw.startswith("json"):
            raw = raw[4:]
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Advisor reply is not valid JSON: {exc}") from exc

    decision = str(data.get("decision", "")).upper()
    if decision not in ("LONG", "SHORT", "WAIT"):
        raise ValueError(f"Unknown decision '{data.get('decision')}'")
    try:
        return TradingDecision(
            decision=decision,
            reasoning=str(data["reasoning"]),
            entry_price=str(data.get("entryPrice", "")),
            stop_loss=float(data.get("stopLoss") or 0.0),
            take_profit_levels=tuple(float(p) for p in data.get("takeProfitLevels", [])),
            confidence_score=max(1, min(10, int(data.get("confidenceScore", 1)))),
            risk_warning=str(data.get("riskWarning", "")),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Advisor reply is missing fields: {exc}") from exc


class AdvisorClient:
    """Async client for the strategy-advisor model."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._model = config.advisor_model
        self._base_url = config.advisor_base_url.rstrip("/")
        # keeps the API key out of request URLs
        self._headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": config.advisor_api_key or "",
        }

    # ── Transport ────────────────────────────────────────────────────────

    async def _post_generate(self, url: str, body: dict) -> httpx.Response:
        """POST to ``generateContent``, retrying quota and overload replies.

        One connection pool serves every attempt.  A retry waits for the
        server's ``Retry-After`` when it sends one, otherwise for an
        exponential backoff.  Other error statuses raise at once; after the
        last attempt the most recent failure is raised.
        """
        last_exc: Optional[httpx.HTTPError] = None

        async with httpx.AsyncClient() as client:
            for attempt in range(1, _MAX_ATTEMPTS + 1):
                resp: Optional[httpx.Response] = None
                try:
                    resp = await client.post(
                        url, headers=self._headers, json=body, timeout=_REQUEST_TIMEOUT,
                    )
                except httpx.TransportError as exc:
                    last_exc = exc
                    cause = type(exc).__name__
                else:
                    if resp.status_code not in _RETRYABLE_STATUS_CODES:
                        resp.raise_for_status()
                        return resp
                    last_exc = httpx.HTTPStatusError(
                        f"Advisor returned {resp.status_code}",
                        request=resp.request,
                        response=resp,
                    )
                    cause = f"HTTP {resp.status_code}"

                if attempt == _MAX_ATTEMPTS:
                    break
                delay = retry_delay(attempt, resp)
                logger.warning(
                    "Advisor request failed (%s), attempt %d/%d, retrying in %.1fs",
                    cause, attempt, _MAX_ATTEMPTS, delay,
                )
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    async def _generate(self, prompt: str) -> str:
        """Send *prompt* and return the first candidate's text."""
        url = f"{self._base_url}/models/{self._model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        resp = await self._post_generate(url, body)
        data = resp.json()
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError("Advisor response contained no candidates") from exc
        return "".join(p.get("text", "") for p in parts)

    # ── Public API ───────────────────────────────────────────────────────

    async def get_pattern_strategy(
        self, candles: list[Candle], pattern: DetectedPattern,
    ) -> AdvisorReply:
        """Free-text trading plan for one detected pattern."""
        if not self._config.advisor_enabled:
            return AdvisorReply(error="Advisor API key is not configured.")
        try:
            text = await self._generate(build_pattern_prompt(candles, pattern))
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Advisor strategy request failed: %s", exc)
            return AdvisorReply(error="Failed to get a strategy from the advisor.")
        return AdvisorReply(text=text)

    async def get_trading_decision(
        self,
        request: DecisionRequest,
        series: dict[str, list[Candle]],
        analyses: dict[str, AnalysisResult],
    ) -> DecisionReply:
        """Structured LONG / SHORT / WAIT decision across timeframes."""
        if not self._config.advisor_enabled:
            return DecisionReply(error="Advisor API key is not configured.")
        try:
            text = await self._generate(build_decision_prompt(request, series, analyses))
            decision = parse_decision(text)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Advisor decision request failed: %s", exc)
            return DecisionReply(error="Failed to get a trading decision from the advisor.")
        logger.info(
            "Advisor decision for %s: %s (confidence %d/10)",
            request.symbol, decision.decision, decision.confidence_score,
        )
        return DecisionReply(decision=decision)
