"""Delete expired download tokens once and exit.

For deployments that run the purge from cron instead of the in-process
scheduler (TOKEN_REAPER_ENABLED=false).
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from studymate.core.logging_config import configure_logging
from studymate.db.session import engine
from studymate.scheduler.token_reaper import purge_expired_tokens


async def main():
    removed = await purge_expired_tokens()
    await engine.dispose()
    print(f"Removed {removed} expired download tokens.")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
