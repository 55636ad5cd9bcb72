"""Export prospects who went quiet mid-conversation to a follow-up CSV."""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from leadbot.config import config
from leadbot.storage.database import Database
from leadbot.storage.store import ProspectStore

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

COLUMNS = [
    "phone_number",
    "name",
    "company",
    "state",
    "fleet_size",
    "interest_score",
    "prospect_type",
    "source",
    "campaign",
    "last_interaction",
    "hours_idle",
]


def inactive_report(hours: int, output_dir: Path) -> Path:
    """Write the follow-up list and return its path."""
    store = ProspectStore(Database(config.database_path))
    store.open()
    try:
        prospects = store.find_inactive(hours)
    finally:
        store.close()

    logger.info(f"Found {len(prospects)} prospects idle for more than {hours}h")

    now = datetime.now().astimezone()
    rows = []
    for p in prospects:
        last = p.last_interaction or p.created_at
        rows.append(
            {
                "phone_number": p.phone_number,
                "name": p.display_name,
                "company": p.company or "",
                "state": p.conversation_state.value,
                "fleet_size": p.fleet_size_raw or "",
                "interest_score": p.interest_score,
                "prospect_type": p.prospect_type.value if p.prospect_type else "",
                "source": p.source,
                "campaign": p.campaign_name,
                "last_interaction": last.astimezone().strftime("%Y-%m-%d %H:%M"),
                "hours_idle": round((now - last).total_seconds() / 3600, 1),
            }
        )

    df = pd.DataFrame(rows, columns=COLUMNS)
    if not df.empty:
        df = df.sort_values("hours_idle", ascending=False)
        by_state = df.groupby("state").size().to_dict()
        logger.info(f"By state: {by_state}")

    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"inactive_{now.strftime('%Y%m%d_%H%M%S')}.csv"
    df.to_csv(output_file, index=False, encoding="utf-8")
    logger.info(f"Follow-up list saved to {output_file}")
    return output_file


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--hours", type=int, default=config.inactive_hours)
    parser.add_argument("--output-dir", type=Path, default=Path("output"))
    args = parser.parse_args()

    inactive_report(args.hours, args.output_dir)
