"""
Print the most-contacted recipients and domains for a mailbox owner.

Usage:
    python examples/01_top_recipients.py you@example.com                   # this week, from Tinybird
    python examples/01_top_recipients.py you@example.com --period month
    python examples/01_top_recipients.py you@example.com --from-date 1700000000000 --to-date 1700600000000
    python examples/01_top_recipients.py you@example.com --gmail           # last 50 sent messages

Requires: INBOX_STATS_TINYBIRD_TOKEN, or a Gmail token.json for --gmail (see GmailAuth).
"""
import argparse
import asyncio
import logging

from inbox_stats import GmailRecipientSource, TinybirdRecipientSource, parse_recipient_stats_query

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show most-contacted recipients")
    parser.add_argument("owner", help="Mailbox owner email address")
    parser.add_argument("--period", default="week", choices=["day", "week", "month", "year"])
    parser.add_argument("--from-date", help="Lower bound, epoch milliseconds")
    parser.add_argument("--to-date", help="Upper bound, epoch milliseconds")
    parser.add_argument("--gmail", action="store_true", help="Count sent mail through the Gmail API")
    parser.add_argument("--top", type=int, default=10, help="Rows to print per list (default: 10)")
    args = parser.parse_args()

    query = parse_recipient_stats_query(args.period, args.from_date, args.to_date)
    source = GmailRecipientSource() if args.gmail else TinybirdRecipientSource()

    result = asyncio.run(source.get_recipients(args.owner, query))

    print(f"--- Top recipients ({query.period}) ---")
    for e in result.most_active_recipient_emails[: args.top]:
        print(f"  {e.value:>4}  {e.name}")

    print("\n--- Top domains ---")
    for e in result.most_active_recipient_domains[: args.top]:
        print(f"  {e.value:>4}  {e.name}")
