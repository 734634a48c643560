"""
Generative rewriting oracle.

The autofix engine only sees the ``RewriteOracle`` interface
(``rewrite(prompt) -> text``). ``AbstractCoreOracle`` talks to the configured
LLM provider through AbstractCore; ``RetryingOracle`` wraps any oracle with
the bounded retry policy (3 attempts, fixed 2 s delay).
"""

import logging
import time
from typing import Callable, Optional

from abstractcore import create_llm, ProviderAPIError, ModelNotFoundError, AuthenticationError

from ..config import config, LOCAL_LLM_PROVIDERS
from .errors import (
    AIConfigurationError, OracleError, OracleRateLimitedError, OracleUnavailableError,
    is_rate_limit_message,
)

logger = logging.getLogger(__name__)


class RewriteOracle:
    """Capability: turn a prompt into raw rewritten text."""

    def rewrite(self, prompt: str) -> str:
        raise NotImplementedError


def classify_oracle_error(error: Exception) -> OracleError:
    """Map a provider exception onto the oracle error taxonomy."""
    if isinstance(error, OracleError):
        return error
    message = str(error)
    if is_rate_limit_message(message):
        return OracleRateLimitedError(message)
    if isinstance(error, AuthenticationError):
        return AIConfigurationError(f"LLM authentication failed, check LLM_API_KEY: {message}")
    if isinstance(error, (ProviderAPIError, ModelNotFoundError, ConnectionError, TimeoutError)):
        return OracleUnavailableError(message)
    return OracleError(message)


class AbstractCoreOracle(RewriteOracle):
    """Oracle backed by an AbstractCore LLM, created lazily on first use."""

    def __init__(self, provider: Optional[str] = None, model: Optional[str] = None,
                 api_key: Optional[str] = None, timeout: Optional[int] = None):
        # Load from config if not provided
        self.provider = provider or config.get_llm_provider()
        self.model = model or config.get_llm_model()
        self.api_key = api_key or config.get_llm_api_key()
        self.timeout = timeout or config.get_operation_timeout()
        self.llm = None

    def _initialize_llm(self) -> None:
        if self.llm is not None:
            return

        if self.provider.lower() not in LOCAL_LLM_PROVIDERS and not self.api_key:
            raise AIConfigurationError("LLM_API_KEY not found in environment variables")

        kwargs = {"timeout": self.timeout}
        if self.api_key:
            kwargs["api_key"] = self.api_key

        try:
            self.llm = create_llm(self.provider, model=self.model, **kwargs)
            logger.info(f"✅ Using AI model: {self.provider}/{self.model}")
        except (ProviderAPIError, ModelNotFoundError, AuthenticationError) as e:
            logger.error(f"❌ Failed to initialize LLM: {e}")
            raise classify_oracle_error(e) from e
        except Exception as e:
            logger.error(f"❌ Unexpected error initializing LLM: {e}")
            raise OracleUnavailableError(f"No available AI model: {e}") from e

    def rewrite(self, prompt: str) -> str:
        self._initialize_llm()
        try:
            response = self.llm.generate(prompt, temperature=0.1)
        except Exception as e:
            raise classify_oracle_error(e) from e
        return (response.content or "").strip()


class RetryingOracle(RewriteOracle):
    """
    Retry decorator around another oracle.

    Configuration errors are raised immediately; every other failure is
    retried after a fixed delay until attempts run out, then re-raised.
    """

    def __init__(self, inner: RewriteOracle, max_attempts: int = 3, delay_seconds: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.inner = inner
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def rewrite(self, prompt: str) -> str:
        attempt = 0
        while True:
            try:
                return self.inner.rewrite(prompt)
            except AIConfigurationError:
                raise
            except Exception as e:
                attempt += 1
                logger.warning(f"⚠️ AI attempt {attempt} failed: {e}")
                if attempt >= self.max_attempts:
                    raise
                self._sleep(self.delay_seconds)
