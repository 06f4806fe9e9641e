"""
Supabase configuration for the tailor shop backend
Builds the single async client shared by the order feed, write paths,
auth and photo storage
"""

import logging
from typing import Dict, Optional

from supabase import acreate_client, AsyncClient

from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def get_supabase_config(settings: Optional[Settings] = None) -> Dict[str, str]:
    """Get Supabase configuration from settings"""
    settings = settings or get_settings()
    return {
        "url": settings.SUPABASE_URL,
        "anon_key": settings.SUPABASE_ANON_KEY
    }


async def create_supabase_client(settings: Optional[Settings] = None) -> AsyncClient:
    """Create the async Supabase client used across the service"""
    config = get_supabase_config(settings)

    if not config["url"] or not config["anon_key"]:
        raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY environment variables are required")

    client = await acreate_client(config["url"], config["anon_key"])
    logger.info(f"✅ Supabase client initialized: {config['url']}")
    return client
