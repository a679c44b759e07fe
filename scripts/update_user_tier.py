import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from billing_broker.domain.errors import InvalidArgument
from billing_broker.infrastructure.persistence.sqlite import SQLiteProfileStore


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Set a user's subscription tier in the profile store.")
    parser.add_argument("user_id", help="User identifier of the profile to update")
    parser.add_argument("--tier", default="premium", help="Tier to set (free or premium)")
    parser.add_argument("--plan", default=None, help="Plan to record (monthly or annual)")
    args = parser.parse_args()

    database_path = Path(os.getenv("DATABASE_PATH", "data/profiles.db")).resolve()
    store = SQLiteProfileStore(database_path)
    try:
        print(f"Updating tier to {args.tier} for user: {args.user_id}")
        try:
            updated = store.update_tier(args.user_id, args.tier, plan=args.plan)
        except InvalidArgument as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        if not updated:
            print(f"No profile found for user: {args.user_id}", file=sys.stderr)
            print("Please verify the user_id exists in the profiles table", file=sys.stderr)
            return 1

        profile = store.get_profile(args.user_id)
        print("Tier updated.")
        print("User:", profile.user_id)
        print("New tier:", profile.tier)
        print("Updated at:", profile.updated_at.isoformat())
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
