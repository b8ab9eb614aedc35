"""
Parley Backend Dependencies

Shared dependency instances for FastAPI routes.
Uses singleton pattern for the conversation store and generation controller.
"""

import logging
from typing import Optional

import httpx
from fastapi import Depends

from parley.conversation.store import ConversationStore
from parley.generation.controller import GenerationController, create_controller
from parley.utilities.config import ParleyConfig, get_config
from parley.utilities.utils import setup_logging

logger = logging.getLogger(__name__)


# ========== GLOBAL INSTANCES (SINGLETONS) ==========
_config: Optional[ParleyConfig] = None
_store: Optional[ConversationStore] = None
_client: Optional[httpx.AsyncClient] = None
_controller: Optional[GenerationController] = None


# ========== INITIALIZATION & CLEANUP ==========
def initialize_resources():
    """
    Initialize shared resources on application startup.

    Called by FastAPI lifespan event.
    """
    global _config, _store, _client, _controller

    # 1. Load configuration
    _config = get_config(from_env=True)
    setup_logging(_config)
    logger.info("Initializing shared resources...")
    logger.info(f"✓ Configuration loaded (version: {_config.version})")

    # 2. Conversation store
    _store = ConversationStore()
    logger.info("✓ Conversation store initialized")

    # 3. Shared HTTP client and controller
    _client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            _config.provider.timeout, connect=_config.provider.connect_timeout
        )
    )
    _controller = create_controller(_config, store=_store, client=_client)
    logger.info(f"✓ Generation controller initialized (model: {_controller.current_model_id})")

    logger.info("✅ All resources initialized")


async def cleanup_resources():
    """
    Cleanup resources on application shutdown.

    Called by FastAPI lifespan event.
    """
    global _config, _store, _client, _controller

    logger.info("Cleaning up resources...")

    if _controller is not None:
        _controller.stop()
        await _controller.wait_for_background_tasks()

    if _client is not None:
        await _client.aclose()

    # Reset all singletons
    _config = None
    _store = None
    _client = None
    _controller = None

    logger.info("✅ Resources cleaned up")


# ========== DEPENDENCY FUNCTIONS ==========
def get_config_dependency() -> ParleyConfig:
    """
    Dependency: Get configuration instance.

    Returns:
        ParleyConfig instance
    """
    global _config

    if _config is None:
        # Lazy initialization
        _config = get_config(from_env=True)

    return _config


def get_store_dependency() -> ConversationStore:
    """Dependency: Get the conversation store."""
    global _store

    if _store is None:
        _store = ConversationStore()

    return _store


def get_controller_dependency(
    config: ParleyConfig = Depends(get_config_dependency),
    store: ConversationStore = Depends(get_store_dependency),
) -> GenerationController:
    """
    Dependency: Get the generation controller.

    Args:
        config: Configuration instance (injected)
        store: Conversation store (injected)

    Returns:
        GenerationController instance
    """
    global _controller

    if _controller is None:
        # Lazy initialization; each request without a shared client opens its own
        _controller = create_controller(config, store=store)
        logger.info("Generation controller lazy-loaded successfully")

    return _controller
