"""
Configuration management for SecureBot.

Handles loading service-level configuration: GitHub App credentials, the
generative model used for fixes, workspace paths and long-operation timeouts.

Configuration priority (highest to lowest):
1. Environment variables (for Docker/container deployments)
2. config.json file (for local development)
3. Built-in defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

# Config file path at project root
CONFIG_FILE = Path(__file__).parent.parent.parent / "config.json"

# Default values (used when neither env var nor config.json specifies)
DEFAULT_LLM_PROVIDER = "ollama"
DEFAULT_LLM_MODEL = "gemma3n:e2b"
DEFAULT_APP_SLUG = "securebot"
DEFAULT_INSTALL_URL = "https://github.com/apps/{app_slug}/installations/new"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_REPOS_DIR = "repos"
DEFAULT_OPERATION_TIMEOUT = 600  # 10 minutes: oracle round-trips plus several file fixes

# Providers that run locally and need no API key
LOCAL_LLM_PROVIDERS = {"ollama", "lmstudio", "vllm", "openai-compatible"}


class Config:
    """
    Project-level configuration manager.

    Priority: ENV > config.json > defaults

    Environment variables:
      - GITHUB_APP_ID: GitHub App identifier (required)
      - GITHUB_PRIVATE_KEY: GitHub App private key, PEM text (required unless GITHUB_PRIVATE_KEY_PATH)
      - GITHUB_PRIVATE_KEY_PATH: Path to the GitHub App private key file
      - GITHUB_APP_SLUG: App slug used to build the installation URL
      - GITHUB_APP_INSTALL_URL: Installation URL template ({app_slug} placeholder)
      - GITHUB_API_URL: GitHub REST API base URL
      - LLM_PROVIDER: LLM provider name (ollama, openai, anthropic, lmstudio, huggingface)
      - LLM_MODEL: Model name for the selected provider
      - LLM_API_KEY: API key for hosted LLM providers
      - REPOS_DIR: Path to the cloned repository workspace root
      - SECUREBOT_OPERATION_TIMEOUT: Timeout in seconds for git and LLM operations
    """

    def __init__(self):
        self.data = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file."""
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE, 'r') as f:
                    return json.load(f)
            except Exception as e:
                logger.error(f"Failed to load config: {e}")
                return self._default_config()
        else:
            return self._default_config()

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "llm": {
                "provider": DEFAULT_LLM_PROVIDER,
                "model": DEFAULT_LLM_MODEL
            }
        }

    def _get(self, env_var: str, section: str, key: str, default: Any = None) -> Any:
        """Resolve a single setting (ENV > config.json > default)."""
        env_value = os.getenv(env_var)
        if env_value:
            return env_value

        config_value = self.data.get(section, {}).get(key)
        if config_value not in (None, ""):
            return config_value

        return default

    # GitHub App

    def get_github_app_id(self) -> Optional[str]:
        """Get the GitHub App id."""
        value = self._get('GITHUB_APP_ID', 'github', 'app_id')
        return str(value) if value is not None else None

    def get_github_private_key(self) -> Optional[str]:
        """
        Get the GitHub App private key as PEM text.

        Inline keys often arrive with escaped newlines from .env files; those are expanded.
        Falls back to reading GITHUB_PRIVATE_KEY_PATH when no inline key is set.
        """
        inline_key = self._get('GITHUB_PRIVATE_KEY', 'github', 'private_key')
        if inline_key:
            return inline_key.replace('\\n', '\n')

        key_path = self._get('GITHUB_PRIVATE_KEY_PATH', 'github', 'private_key_path')
        if key_path:
            return Path(key_path).read_text(encoding='utf-8')

        return None

    def get_github_app_slug(self) -> str:
        """Get the GitHub App slug."""
        return self._get('GITHUB_APP_SLUG', 'github', 'app_slug', DEFAULT_APP_SLUG)

    def get_installation_url(self) -> str:
        """Get the self-service "install the app" URL."""
        template = self._get('GITHUB_APP_INSTALL_URL', 'github', 'install_url', DEFAULT_INSTALL_URL)
        return template.replace('{app_slug}', self.get_github_app_slug())

    def get_github_api_url(self) -> str:
        """Get the GitHub REST API base URL."""
        return self._get('GITHUB_API_URL', 'github', 'api_url', DEFAULT_GITHUB_API_URL).rstrip('/')

    # LLM

    def get_llm_provider(self) -> str:
        """
        Get configured LLM provider.

        Priority: LLM_PROVIDER env var > config.json > default
        """
        return self._get('LLM_PROVIDER', 'llm', 'provider', DEFAULT_LLM_PROVIDER)

    def get_llm_model(self) -> str:
        """
        Get configured LLM model.

        Priority: LLM_MODEL env var > config.json > default
        """
        return self._get('LLM_MODEL', 'llm', 'model', DEFAULT_LLM_MODEL)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for hosted LLM providers."""
        return self._get('LLM_API_KEY', 'llm', 'api_key')

    def llm_requires_api_key(self) -> bool:
        """Hosted providers need a key; local servers do not."""
        return self.get_llm_provider().lower() not in LOCAL_LLM_PROVIDERS

    # Paths and timeouts

    def get_repos_dir(self) -> str:
        """Get the repository workspace root (ENV > config.json > default)."""
        return self._get('REPOS_DIR', 'paths', 'repos_dir', DEFAULT_REPOS_DIR)

    def get_operation_timeout(self) -> int:
        """Get the timeout (seconds) applied to git subprocesses and LLM calls."""
        value = self._get('SECUREBOT_OPERATION_TIMEOUT', 'timeouts', 'operation', DEFAULT_OPERATION_TIMEOUT)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid operation timeout {value!r}, using {DEFAULT_OPERATION_TIMEOUT}s")
            return DEFAULT_OPERATION_TIMEOUT

    def missing_required(self) -> List[str]:
        """List required settings that are not configured."""
        missing = []
        if not self.get_github_app_id():
            missing.append('GITHUB_APP_ID')
        if not (self._get('GITHUB_PRIVATE_KEY', 'github', 'private_key')
                or self._get('GITHUB_PRIVATE_KEY_PATH', 'github', 'private_key_path')):
            missing.append('GITHUB_PRIVATE_KEY')
        return missing


# Global config instance
config = Config()
