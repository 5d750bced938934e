"""Decision pipeline for one PreToolUse request.

Strictly linear:
  fast path -> [resolved] done
            -> cache lookup -> [hit] done, reason marked "(cached)"
                            -> [miss] reasoning model -> cache write-through
                               (allow/deny only) -> done
At done, the final decision is appended to the approval log when logging
is enabled. Reasoning failures propagate; no fallback verdict is invented.
"""

import logging
import time
from typing import Callable, Optional

from ccb import fast_path
from ccb.approval_log import ApprovalLogger
from ccb.cache import DecisionCache
from ccb.config import Config, load_config
from ccb.llm_client import ReasoningClient
from ccb.models import Decision, HookRequest

logger = logging.getLogger(__name__)

CACHED_SUFFIX = " (cached)"


class DecisionOrchestrator:
    """Runs fast path, cache and reasoning tiers, then records the outcome."""

    def __init__(
        self,
        config: Optional[Config] = None,
        cache: Optional[DecisionCache] = None,
        approval_logger: Optional[ApprovalLogger] = None,
        client_factory: Optional[Callable[[], ReasoningClient]] = None,
        use_claude_cli: bool = False,
    ):
        self.config = config or load_config()
        self.cache = cache or DecisionCache()
        self.approval_logger = approval_logger or ApprovalLogger()
        self._client_factory = client_factory or (
            lambda: ReasoningClient(self.config, use_claude_cli=use_claude_cli)
        )
        self._client: Optional[ReasoningClient] = None

    @property
    def client(self) -> ReasoningClient:
        """Built on first use so a missing credential only fails model-bound requests."""
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def decide(self, request: HookRequest) -> Decision:
        start = time.time()
        decision = self._evaluate(request, start)
        elapsed = time.time() - start
        logger.info(
            "DECISION: %s [%s] %s - %s (%.3fs)",
            decision.verdict.value.upper(), decision.source.value,
            request.tool_name, decision.reason, elapsed,
        )
        if self.config.log:
            self.approval_logger.log_approval(request, decision)
        return decision

    def _evaluate(self, request: HookRequest, start: float) -> Decision:
        fast = fast_path.classify(request.tool_name, request.tool_input)
        if fast is not None:
            logger.debug("FAST PATH: %s -> %s (%.3fs)", request.tool_name, fast.verdict.value, time.time() - start)
            return fast

        if self.config.cache:
            entry = self.cache.get(request.tool_name, request.tool_input, request.cwd)
            if entry is not None:
                logger.debug("CACHE HIT: %s in %s (%.3fs)", request.tool_name, request.cwd, time.time() - start)
                cached = entry.to_decision()
                return cached.model_copy(update={"reason": cached.reason + CACHED_SUFFIX})

        logger.debug("EVALUATING via model: %s", request.tool_name)
        decision = self.client.decide(request.tool_name, request.tool_input)
        logger.debug("MODEL SAID: %s (%.3fs)", decision.verdict.value, time.time() - start)

        if self.config.cache and decision.is_cacheable:
            self.cache.put_decision(request.tool_name, request.tool_input, request.cwd, decision)

        return decision


def decide(request: HookRequest, config: Optional[Config] = None, use_claude_cli: bool = False) -> Decision:
    """Convenience wrapper: one orchestrator, one request."""
    return DecisionOrchestrator(config=config, use_claude_cli=use_claude_cli).decide(request)
